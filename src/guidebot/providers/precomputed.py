"""Embedding provider serving vectors from a precomputed embeddings file."""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from guidebot.errors import EmbeddingError, ProviderUnavailableError

from .base import EmbeddingProvider

LOGGER = logging.getLogger(__name__)


def _load_index(path: Path) -> Dict[str, Tuple[float, ...]]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise ProviderUnavailableError(f"Embeddings file not found: {path}", cause=error) from error
    except (OSError, ValueError) as error:
        raise ProviderUnavailableError(f"Embeddings file {path} is unreadable", cause=error) from error

    if not isinstance(payload, list):
        raise ProviderUnavailableError(f"Embeddings file {path} must contain a JSON array")

    index: Dict[str, Tuple[float, ...]] = {}
    skipped = 0
    for entry in payload:
        if not isinstance(entry, dict):
            skipped += 1
            continue
        text = str(entry.get("text") or "").strip()
        embedding = entry.get("embedding")
        if not text or not isinstance(embedding, list) or not embedding:
            skipped += 1
            continue
        index[text] = tuple(float(value) for value in embedding)

    if skipped:
        LOGGER.warning("Ignored %d malformed entries in %s", skipped, path)
    LOGGER.info("Loaded %d precomputed embeddings from %s", len(index), path)
    return index


class PrecomputedEmbeddingProvider(EmbeddingProvider):
    """Look up embeddings written by ``scripts/build_embeddings.py``.

    Texts are matched after trimming. Texts missing from the file (typically
    user queries) are delegated to ``fallback`` when one is configured. The
    file is read in a worker thread on first use.
    """

    def __init__(self, path: str | Path, *, fallback: Optional[EmbeddingProvider] = None) -> None:
        self._path = Path(path)
        self._fallback = fallback
        self._index: Optional[Dict[str, Tuple[float, ...]]] = None
        self._index_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return f"precomputed:{self._path.name}"

    async def _get_index(self) -> Dict[str, Tuple[float, ...]]:
        if self._index is None:
            async with self._index_lock:
                if self._index is None:
                    self._index = await asyncio.to_thread(_load_index, self._path)
        return self._index

    async def warm_up(self) -> None:
        await self._get_index()
        if self._fallback is not None:
            await self._fallback.warm_up()

    async def embed(self, text: str) -> List[float]:
        vector = (await self._get_index()).get(text.strip())
        if vector is not None:
            return list(vector)
        if self._fallback is not None:
            return await self._fallback.embed(text)
        raise EmbeddingError(f"No precomputed embedding for text starting {text.strip()[:40]!r}")
