"""Local embedding provider backed by Sentence Transformers."""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import List, Sequence

from guidebot.config import DEFAULT_MODEL_NAME
from guidebot.errors import ProviderUnavailableError

from .base import EmbeddingProvider

LOGGER = logging.getLogger(__name__)


class SentenceTransformerProvider(EmbeddingProvider):
    """Embed texts in-process with a SentenceTransformer model.

    The model is loaded by :meth:`warm_up` or lazily on the first call; the load
    is guarded by a lock so concurrent first callers share a single
    initialisation.
    """

    supports_batching = True

    def __init__(
        self,
        model_name_or_path: str = DEFAULT_MODEL_NAME,
        *,
        device: str | None = None,
    ) -> None:
        self._model_name = model_name_or_path
        self._device = device
        self._model = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return f"sentence-transformers:{self._model_name}"

    def _get_model(self):
        if self._model is not None:
            return self._model

        with self._lock:
            if self._model is None:
                LOGGER.info("Loading embedding model %s (device=%s)", self._model_name, self._device or "auto")
                try:
                    from sentence_transformers import SentenceTransformer
                except ImportError as error:
                    raise ProviderUnavailableError(
                        "EMBEDDING_PROVIDER=local requires the 'sentence-transformers' package",
                        cause=error,
                    ) from error

                try:
                    self._model = SentenceTransformer(self._model_name, device=self._device)
                except Exception as error:
                    raise ProviderUnavailableError(
                        f"Failed to initialise sentence-transformers model '{self._model_name}'",
                        cause=error,
                    ) from error
                LOGGER.info(
                    "Embedding model %s ready (%s dimensions)",
                    self._model_name,
                    self._model.get_sentence_embedding_dimension(),
                )
        return self._model

    async def warm_up(self) -> None:
        await asyncio.to_thread(self._get_model)

    def _encode(self, texts: Sequence[str]) -> List[List[float]]:
        model = self._get_model()
        embeddings = model.encode(
            list(texts),
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=True,
        )
        return embeddings.tolist()

    async def embed(self, text: str) -> List[float]:
        vectors = await asyncio.to_thread(self._encode, [text])
        return vectors[0]

    async def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        return await asyncio.to_thread(self._encode, list(texts))
