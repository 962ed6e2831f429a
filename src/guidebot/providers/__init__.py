"""Embedding provider implementations and the configuration driven factory."""
from __future__ import annotations

from guidebot.config import RetrievalSettings

from .base import EmbeddingProvider, embed_many_with_timeout, embed_with_timeout
from .hashing import HashEmbeddingProvider
from .hf_inference import HuggingFaceInferenceProvider
from .precomputed import PrecomputedEmbeddingProvider
from .sentence_transformer import SentenceTransformerProvider


def _query_provider(settings: RetrievalSettings) -> EmbeddingProvider:
    if settings.api_token:
        return HuggingFaceInferenceProvider(
            settings.api_token,
            model=settings.embedding_model,
            api_url=settings.embedding_api_url,
            request_timeout=settings.request_timeout_seconds,
        )
    return SentenceTransformerProvider(settings.embedding_model, device=settings.embedding_device)


def build_embedding_provider(settings: RetrievalSettings) -> EmbeddingProvider:
    """Instantiate the provider selected by ``settings.embedding_provider``."""

    backend = settings.embedding_provider
    if backend == "local":
        return SentenceTransformerProvider(settings.embedding_model, device=settings.embedding_device)
    if backend == "remote":
        return HuggingFaceInferenceProvider(
            settings.api_token,
            model=settings.embedding_model,
            api_url=settings.embedding_api_url,
            request_timeout=settings.request_timeout_seconds,
        )
    if backend == "precomputed":
        if settings.embeddings_file is None:
            raise ValueError("EMBEDDING_PROVIDER=precomputed requires EMBEDDINGS_FILE to be set")
        # Queries are never in the file, so they go to a live model.
        return PrecomputedEmbeddingProvider(settings.embeddings_file, fallback=_query_provider(settings))
    if backend == "hash":
        return HashEmbeddingProvider(settings.hash_dimension)
    raise ValueError(f"Unsupported EMBEDDING_PROVIDER backend: {backend!r}")


__all__ = [
    "EmbeddingProvider",
    "HashEmbeddingProvider",
    "HuggingFaceInferenceProvider",
    "PrecomputedEmbeddingProvider",
    "SentenceTransformerProvider",
    "build_embedding_provider",
    "embed_many_with_timeout",
    "embed_with_timeout",
]
