"""Wiring of the corpus store, loader and retrieval engine for the process."""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from guidebot.config import RetrievalSettings, load_settings
from guidebot.corpus import CorpusLoader, CorpusStats, CorpusStore, LoaderConfig, RetryPolicy
from guidebot.models import ScoredReport
from guidebot.providers import EmbeddingProvider, build_embedding_provider
from guidebot.retrieval import RetrievalEngine


@dataclass(slots=True)
class RetrievalService:
    """The two call sites the chat flow uses, plus diagnostics."""

    settings: RetrievalSettings
    store: CorpusStore
    loader: CorpusLoader
    engine: RetrievalEngine

    async def ensure_loaded(self) -> None:
        await self.loader.ensure_loaded()

    async def retrieve(self, query: str, k: Optional[int] = None) -> List[ScoredReport]:
        return await self.engine.retrieve(query, self.settings.top_k if k is None else k)

    def stats(self) -> CorpusStats:
        return self.store.stats()


def loader_config_from_settings(settings: RetrievalSettings) -> LoaderConfig:
    return LoaderConfig(
        batch_size=settings.batch_size,
        batch_delay_seconds=settings.batch_delay_seconds,
        max_concurrency=settings.max_concurrency,
        request_timeout_seconds=settings.request_timeout_seconds,
        require_report_id=settings.require_report_id,
        retry=RetryPolicy(
            max_attempts=settings.max_attempts,
            backoff_seconds=settings.backoff_seconds,
        ),
    )


def build_retrieval_service(
    settings: RetrievalSettings,
    *,
    provider: Optional[EmbeddingProvider] = None,
) -> RetrievalService:
    """Construct a fresh store, loader and engine sharing one provider."""

    provider = provider or build_embedding_provider(settings)
    store = CorpusStore()
    loader = CorpusLoader(
        store,
        provider,
        settings.corpus_path,
        loader_config_from_settings(settings),
    )
    engine = RetrievalEngine(
        store,
        provider,
        request_timeout_seconds=settings.request_timeout_seconds,
    )
    return RetrievalService(settings=settings, store=store, loader=loader, engine=engine)


@lru_cache()
def get_retrieval_service() -> RetrievalService:
    """Return the process-wide retrieval service built from the environment."""

    return build_retrieval_service(load_settings())


def reset_retrieval_service_cache() -> None:
    """Clear the cached retrieval service (primarily for testing)."""

    get_retrieval_service.cache_clear()  # type: ignore[attr-defined]
