"""One-shot corpus loading with batched, rate-limit aware embedding."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from guidebot.errors import (
    EmbeddingError,
    NoEmbeddingsGeneratedError,
    ProviderUnavailableError,
    RateLimitedError,
)
from guidebot.models import Report
from guidebot.providers.base import EmbeddingProvider, embed_many_with_timeout, embed_with_timeout
from guidebot.telemetry import emit_corpus_event

from .reader import read_corpus
from .store import CorpusStore

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

PROGRESS_LOG_INTERVAL = 25


@dataclass(slots=True)
class RetryPolicy:
    """Backoff schedule applied when the embedding backend signals throttling."""

    max_attempts: int = 3
    backoff_seconds: float = 2.0
    multiplier: float = 2.0
    max_backoff_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 2:
            raise ValueError("max_attempts must allow at least one retry")
        if self.backoff_seconds < 0 or self.multiplier < 1:
            raise ValueError("backoff_seconds must be >= 0 and multiplier >= 1")

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float:
        """Seconds to wait after failed ``attempt`` (1-based)."""

        if retry_after is not None:
            return min(max(retry_after, 0.0), self.max_backoff_seconds)
        return min(self.backoff_seconds * self.multiplier ** (attempt - 1), self.max_backoff_seconds)


@dataclass(slots=True)
class LoaderConfig:
    batch_size: int = 5
    batch_delay_seconds: float = 0.5
    max_concurrency: int = 3
    request_timeout_seconds: float = 10.0
    require_report_id: bool = False
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be a positive integer")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be a positive integer")


class CorpusLoader:
    """Populate a :class:`CorpusStore` exactly once.

    :meth:`ensure_loaded` is cheap once the store is loaded and safe to call
    from concurrent requests: callers arriving during a load await the same
    in-flight task instead of starting another one. A failed load leaves the
    store ``failed``; the next call starts a fresh attempt.
    """

    def __init__(
        self,
        store: CorpusStore,
        provider: EmbeddingProvider,
        source: str | Path,
        config: Optional[LoaderConfig] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._provider = provider
        self._source = Path(source)
        self._config = config or LoaderConfig()
        self._sleep = sleep
        self._inflight: Optional[asyncio.Task[None]] = None
        self._loads_started = 0

    @property
    def loads_started(self) -> int:
        """Number of load sequences started over the loader's lifetime."""

        return self._loads_started

    async def ensure_loaded(self) -> None:
        if self._store.is_loaded:
            return

        task = self._inflight
        if task is None or task.done():
            task = asyncio.ensure_future(self._load())
            self._inflight = task
            task.add_done_callback(self._clear_inflight)
        await asyncio.shield(task)

    def _clear_inflight(self, task: asyncio.Task[None]) -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled():
            # Mark the exception retrieved when every waiter was cancelled.
            task.exception()

    async def _load(self) -> None:
        self._loads_started += 1
        started = time.perf_counter()
        source = str(self._source)
        self._store.begin_load()
        emit_corpus_event("corpus.load.start", source=source)

        try:
            read_result = await asyncio.to_thread(
                read_corpus, self._source, require_report_id=self._config.require_report_id
            )
            reports = [
                Report(id=record.id, text=record.text, line_number=record.line_number)
                for record in read_result.records
            ]
            if not reports:
                raise NoEmbeddingsGeneratedError(f"No usable reports found in {source}")

            # Model downloads and index reads are not bounded by the per-call timeout.
            await self._provider.warm_up()
            reports, dimension = await self._embed_reports(reports)
            embedded = sum(1 for report in reports if report.has_embedding)
            LOGGER.info("Successfully generated %d/%d embeddings", embedded, len(reports))
            if embedded == 0 or dimension is None:
                raise NoEmbeddingsGeneratedError(
                    f"Failed to generate any embeddings for {len(reports)} reports"
                )

            self._store.publish(reports, dimension)
        except (Exception, asyncio.CancelledError) as error:
            self._store.mark_failed(error)
            emit_corpus_event(
                "corpus.load.error",
                source=source,
                duration_ms=(time.perf_counter() - started) * 1000.0,
                error=error,
            )
            raise

        emit_corpus_event(
            "corpus.load.complete",
            source=source,
            total=len(reports),
            embedded=embedded,
            failed=len(reports) - embedded,
            skipped_lines=read_result.skipped_lines,
            dimension=dimension,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )

    async def _embed_reports(self, reports: List[Report]) -> Tuple[List[Report], Optional[int]]:
        """Return the reports with embeddings attached and the established dimension."""

        config = self._config
        semaphore = asyncio.Semaphore(config.max_concurrency)
        dimension: Optional[int] = None
        embedded: List[Report] = []
        processed = 0

        for start in range(0, len(reports), config.batch_size):
            batch = reports[start : start + config.batch_size]
            vectors = await self._embed_batch(batch, semaphore)

            for report, vector in zip(batch, vectors):
                processed += 1
                embedded.append(report)
                if not vector:
                    continue
                if dimension is None:
                    dimension = len(vector)
                elif len(vector) != dimension:
                    LOGGER.warning(
                        "Discarding embedding for report %s: %d dimensions, expected %d",
                        report.id,
                        len(vector),
                        dimension,
                    )
                    continue
                embedded[-1] = replace(report, embedding=tuple(vector))

            if processed % PROGRESS_LOG_INTERVAL == 0 or processed == len(reports):
                LOGGER.info("Generated embeddings: %d/%d", processed, len(reports))

            if start + config.batch_size < len(reports) and config.batch_delay_seconds > 0:
                await self._sleep(config.batch_delay_seconds)

        return embedded, dimension

    async def _embed_batch(
        self, batch: Sequence[Report], semaphore: asyncio.Semaphore
    ) -> List[Optional[List[float]]]:
        timeout = self._config.request_timeout_seconds

        if self._provider.supports_batching and len(batch) > 1:
            texts = [report.text for report in batch]
            try:
                return list(
                    await self._with_retry(
                        lambda: embed_many_with_timeout(self._provider, texts, timeout),
                        f"batch of {len(batch)} starting at report {batch[0].id}",
                        semaphore,
                    )
                )
            except ProviderUnavailableError:
                raise
            except EmbeddingError as error:
                LOGGER.warning(
                    "Batch embedding starting at report %s failed (%s); falling back to per-report calls",
                    batch[0].id,
                    error,
                )

        outcomes = await asyncio.gather(
            *(self._embed_report(report, semaphore) for report in batch),
            return_exceptions=True,
        )
        vectors: List[Optional[List[float]]] = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
            vectors.append(outcome)
        return vectors

    async def _embed_report(self, report: Report, semaphore: asyncio.Semaphore) -> Optional[List[float]]:
        try:
            return await self._with_retry(
                lambda: embed_with_timeout(self._provider, report.text, self._config.request_timeout_seconds),
                f"report {report.id}",
                semaphore,
            )
        except ProviderUnavailableError:
            raise
        except EmbeddingError as error:
            LOGGER.error("Failed to generate embedding for report %s: %s", report.id, error)
            return None

    async def _with_retry(
        self,
        call: Callable[[], Awaitable[T]],
        label: str,
        semaphore: asyncio.Semaphore,
    ) -> T:
        policy = self._config.retry
        attempt = 0
        while True:
            attempt += 1
            try:
                async with semaphore:
                    return await call()
            except RateLimitedError as error:
                if attempt >= policy.max_attempts:
                    LOGGER.warning(
                        "Giving up on %s after %d rate-limited attempts", label, attempt
                    )
                    raise
                delay = policy.delay_for(attempt, error.retry_after)
                LOGGER.warning(
                    "Rate limited while embedding %s (attempt %d/%d); retrying in %.2fs",
                    label,
                    attempt,
                    policy.max_attempts,
                    delay,
                )
                await self._sleep(delay)
