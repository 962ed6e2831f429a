"""Rank corpus reports against a free-text query."""
from __future__ import annotations

import time
from typing import List

from guidebot.corpus.store import CorpusStore
from guidebot.errors import (
    EmbeddingDimensionError,
    EmptyIndexError,
    InvalidQueryError,
    NotLoadedError,
)
from guidebot.models import ScoredReport
from guidebot.providers.base import EmbeddingProvider, embed_with_timeout
from guidebot.similarity import cosine_scores, rank_descending
from guidebot.telemetry import emit_retriever_event


class RetrievalEngine:
    """Cosine-similarity top-k search over a loaded :class:`CorpusStore`.

    The engine never triggers a corpus load; callers run
    ``CorpusLoader.ensure_loaded()`` first so cold-start latency stays visible.
    """

    def __init__(
        self,
        store: CorpusStore,
        provider: EmbeddingProvider,
        *,
        request_timeout_seconds: float = 10.0,
    ) -> None:
        self._store = store
        self._provider = provider
        self._timeout = request_timeout_seconds

    async def retrieve(self, query: str, k: int) -> List[ScoredReport]:
        """Return up to ``k`` reports ordered by descending similarity to ``query``.

        Equal scores keep corpus order. Query embedding failures propagate.
        """

        if not isinstance(query, str) or not query.strip():
            raise InvalidQueryError("Query must be a non-empty string")
        if not self._store.is_loaded:
            raise NotLoadedError("Reports are not loaded; call ensure_loaded() first")
        if k <= 0:
            return []

        started = time.perf_counter()
        query_vector = await embed_with_timeout(self._provider, query.strip(), self._timeout)

        valid_reports = self._store.valid_reports
        if not valid_reports:
            # The loader never publishes a corpus without embeddings.
            raise EmptyIndexError("No reports with valid embeddings found")

        if len(query_vector) != self._store.embedding_dimension:
            raise EmbeddingDimensionError(
                f"Query embedding has {len(query_vector)} dimensions but the corpus uses "
                f"{self._store.embedding_dimension}; the provider changed model mid-process"
            )

        scores = cosine_scores(query_vector, self._store.matrix)
        results = [
            ScoredReport(
                id=valid_reports[index].id,
                text=valid_reports[index].text,
                score=float(scores[index]),
            )
            for index in rank_descending(scores, k)
        ]

        emit_retriever_event(
            query=query,
            top_k=k,
            candidates=len(valid_reports),
            results=[{"id": item.id, "score": round(item.score, 4)} for item in results],
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return results
