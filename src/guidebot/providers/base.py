"""Base interface shared by every embedding backend."""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import List, Sequence

from guidebot.errors import EmbeddingError, EmbeddingTimeoutError, RetrievalError
from guidebot.telemetry import emit_embeddings_event

__all__ = ["EmbeddingProvider", "embed_many_with_timeout", "embed_with_timeout"]


class EmbeddingProvider(ABC):
    """Abstract interface for embedding providers.

    Callers guarantee that every text is non-empty after trimming.
    """

    #: Whether :meth:`embed_many` issues one backend call for the whole batch.
    supports_batching: bool = False

    @property
    def name(self) -> str:
        return type(self).__name__

    async def warm_up(self) -> None:
        """Prepare the backend (load a model, read an index) before timed calls.

        Raises :class:`ProviderUnavailableError` when the backend cannot be
        used at all. The default implementation does nothing.
        """

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Return the embedding for a single text."""

    async def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        """Return embeddings for several texts, one call per text by default."""

        return [await self.embed(text) for text in texts]


async def _timed(provider: EmbeddingProvider, count: int, call, timeout: float):
    started = time.perf_counter()
    try:
        result = await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as error:
        duration_ms = (time.perf_counter() - started) * 1000.0
        emit_embeddings_event(
            provider=provider.name, count=count, duration_ms=duration_ms, errors=["timeout"]
        )
        raise EmbeddingTimeoutError(
            f"Embedding request to {provider.name} timed out after {timeout:.1f}s", cause=error
        ) from error
    except RetrievalError as error:
        emit_embeddings_event(
            provider=provider.name,
            count=count,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            errors=[str(error)],
        )
        raise
    except Exception as error:
        emit_embeddings_event(
            provider=provider.name,
            count=count,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            errors=[str(error)],
        )
        raise EmbeddingError(f"Embedding request to {provider.name} failed: {error}", cause=error) from error

    emit_embeddings_event(
        provider=provider.name, count=count, duration_ms=(time.perf_counter() - started) * 1000.0
    )
    return result


async def embed_with_timeout(provider: EmbeddingProvider, text: str, timeout: float) -> List[float]:
    """Embed ``text`` and raise :class:`EmbeddingTimeoutError` after ``timeout`` seconds."""

    vector = await _timed(provider, 1, provider.embed(text), timeout)
    if not vector:
        raise EmbeddingError(f"{provider.name} returned an empty embedding")
    return [float(value) for value in vector]


async def embed_many_with_timeout(
    provider: EmbeddingProvider, texts: Sequence[str], timeout: float
) -> List[List[float]]:
    """Batch counterpart of :func:`embed_with_timeout`."""

    vectors = await _timed(provider, len(texts), provider.embed_many(texts), timeout)
    if len(vectors) != len(texts):
        raise EmbeddingError(
            f"{provider.name} returned {len(vectors)} embeddings for {len(texts)} texts"
        )
    return [[float(value) for value in vector] for vector in vectors]
