from __future__ import annotations

import asyncio
import dataclasses

import pytest

from conftest import FakeEmbeddingProvider, RecordingSleep, write_corpus
from guidebot.corpus import CorpusLoader, CorpusState, CorpusStore, LoaderConfig, RetryPolicy
from guidebot.errors import (
    CorpusSourceError,
    EmbeddingError,
    NoEmbeddingsGeneratedError,
    ProviderUnavailableError,
    RateLimitedError,
)


def _five_report_corpus(tmp_path):
    texts = [f"Report body {index}" for index in range(1, 6)]
    corpus = write_corpus(
        tmp_path / "reports.jsonl",
        [{"ReportID": f"R{index}", "ContentText": text} for index, text in enumerate(texts, start=1)],
    )
    vectors = {text: [float(index), 1.0] for index, text in enumerate(texts, start=1)}
    return corpus, texts, vectors


@pytest.mark.anyio
async def test_concurrent_ensure_loaded_runs_a_single_load(tmp_path, make_components) -> None:
    corpus, texts, vectors = _five_report_corpus(tmp_path)
    provider = FakeEmbeddingProvider(vectors, delay=0.01)
    store, loader, _ = make_components(provider, corpus)

    await asyncio.gather(*(loader.ensure_loaded() for _ in range(10)))

    assert loader.loads_started == 1
    assert sorted(provider.calls) == sorted(texts)
    assert store.state is CorpusState.LOADED
    assert [report.id for report in store.reports] == ["R1", "R2", "R3", "R4", "R5"]

    await loader.ensure_loaded()
    assert loader.loads_started == 1
    assert len(provider.calls) == 5


@pytest.mark.anyio
async def test_failed_record_is_retained_without_embedding(tmp_path, make_components) -> None:
    corpus, texts, vectors = _five_report_corpus(tmp_path)
    provider = FakeEmbeddingProvider(
        vectors, failures={texts[2]: [EmbeddingError("model crashed")]}
    )
    store, loader, _ = make_components(provider, corpus)

    await loader.ensure_loaded()

    assert store.is_loaded
    by_id = {report.id: report for report in store.reports}
    assert by_id["R3"].embedding == ()
    assert all(by_id[report_id].has_embedding for report_id in ("R1", "R2", "R4", "R5"))
    stats = store.stats()
    assert stats.total == 5
    assert stats.with_embeddings == 4
    assert stats.failed_ids == ["R3"]
    assert stats.embedding_dimension == 2


@pytest.mark.anyio
async def test_rate_limited_record_is_retried_after_backoff(tmp_path, fast_config) -> None:
    corpus, texts, vectors = _five_report_corpus(tmp_path)
    provider = FakeEmbeddingProvider(
        vectors, failures={texts[0]: [RateLimitedError("slow down", retry_after=1.5)]}
    )
    sleep = RecordingSleep()
    store = CorpusStore()
    loader = CorpusLoader(store, provider, corpus, fast_config, sleep=sleep)

    await loader.ensure_loaded()

    assert provider.calls.count(texts[0]) == 2
    assert store.reports[0].has_embedding
    assert sleep.delays == [1.5]


@pytest.mark.anyio
async def test_exhausted_rate_limit_retries_skip_only_that_record(tmp_path, make_components) -> None:
    corpus, texts, vectors = _five_report_corpus(tmp_path)
    provider = FakeEmbeddingProvider(
        vectors,
        failures={texts[1]: [RateLimitedError("429"), RateLimitedError("429"), RateLimitedError("429")]},
    )
    store, loader, _ = make_components(provider, corpus)

    await loader.ensure_loaded()

    assert provider.calls.count(texts[1]) == 2
    assert store.stats().failed_ids == ["R2"]


@pytest.mark.anyio
async def test_timeout_is_a_per_record_failure(tmp_path) -> None:
    corpus = write_corpus(
        tmp_path / "reports.jsonl",
        [{"ContentText": "fast"}, {"ContentText": "slow"}],
    )

    class SlowForOneText(FakeEmbeddingProvider):
        async def embed(self, text):
            if text == "slow":
                await asyncio.sleep(5)
            return await super().embed(text)

    provider = SlowForOneText({"fast": [1.0, 0.0], "slow": [0.0, 1.0]})
    store = CorpusStore()
    config = LoaderConfig(
        batch_size=2,
        batch_delay_seconds=0.0,
        request_timeout_seconds=0.05,
        retry=RetryPolicy(max_attempts=2, backoff_seconds=0.0),
    )
    loader = CorpusLoader(store, provider, corpus, config)

    await loader.ensure_loaded()

    assert store.is_loaded
    assert store.stats().failed_ids == ["1"]


@pytest.mark.anyio
async def test_zero_embeddings_fails_load_and_leaves_store_unpublished(tmp_path, make_components) -> None:
    corpus, texts, vectors = _five_report_corpus(tmp_path)
    provider = FakeEmbeddingProvider(
        vectors, failures={text: [EmbeddingError("boom")] for text in texts}
    )
    store, loader, _ = make_components(provider, corpus)

    with pytest.raises(NoEmbeddingsGeneratedError):
        await loader.ensure_loaded()

    assert store.state is CorpusState.FAILED
    assert not store.is_loaded
    assert store.reports == ()
    assert store.last_error

    # A later call starts a fresh attempt, which now succeeds.
    await loader.ensure_loaded()
    assert store.is_loaded
    assert loader.loads_started == 2


@pytest.mark.anyio
async def test_provider_unavailable_aborts_the_load(tmp_path, make_components) -> None:
    corpus, texts, vectors = _five_report_corpus(tmp_path)
    provider = FakeEmbeddingProvider(
        vectors, failures={texts[0]: [ProviderUnavailableError("no token")]}
    )
    store, loader, _ = make_components(provider, corpus)

    with pytest.raises(ProviderUnavailableError):
        await loader.ensure_loaded()

    assert store.state is CorpusState.FAILED


@pytest.mark.anyio
async def test_missing_corpus_file_fails_load(tmp_path, make_components) -> None:
    provider = FakeEmbeddingProvider({})
    store, loader, _ = make_components(provider, tmp_path / "missing.jsonl")

    with pytest.raises(CorpusSourceError):
        await loader.ensure_loaded()

    assert store.state is CorpusState.FAILED
    assert provider.calls == []


@pytest.mark.anyio
async def test_batches_are_separated_by_the_configured_delay(tmp_path) -> None:
    corpus, texts, vectors = _five_report_corpus(tmp_path)
    provider = FakeEmbeddingProvider(vectors)
    sleep = RecordingSleep()
    store = CorpusStore()
    config = LoaderConfig(batch_size=2, batch_delay_seconds=0.25, max_concurrency=1)
    loader = CorpusLoader(store, provider, corpus, config, sleep=sleep)

    await loader.ensure_loaded()

    # Five reports in batches of two: three batches, two pauses.
    assert sleep.delays == [0.25, 0.25]
    assert provider.calls == texts


@pytest.mark.anyio
async def test_batching_provider_gets_one_call_per_batch(tmp_path, make_components) -> None:
    corpus, texts, vectors = _five_report_corpus(tmp_path)
    provider = FakeEmbeddingProvider(vectors, supports_batching=True)
    store, loader, _ = make_components(provider, corpus)

    await loader.ensure_loaded()

    assert provider.batch_calls == [texts[0:2], texts[2:4]]
    # The final single-report batch goes through the per-report path.
    assert provider.calls == [texts[4]]
    assert store.stats().with_embeddings == 5


@pytest.mark.anyio
async def test_failed_batch_falls_back_to_per_report_calls(tmp_path, make_components) -> None:
    corpus, texts, vectors = _five_report_corpus(tmp_path)
    provider = FakeEmbeddingProvider(
        vectors, supports_batching=True, batch_failure=EmbeddingError("bad batch payload")
    )
    store, loader, _ = make_components(provider, corpus)

    await loader.ensure_loaded()

    assert sorted(provider.calls) == sorted(texts)
    assert store.stats().with_embeddings == 5


@pytest.mark.anyio
async def test_mismatched_dimension_is_discarded(tmp_path, make_components) -> None:
    corpus = write_corpus(
        tmp_path / "reports.jsonl",
        [{"ContentText": "two dims"}, {"ContentText": "three dims"}],
    )
    provider = FakeEmbeddingProvider({"two dims": [1.0, 0.0], "three dims": [1.0, 0.0, 0.0]})
    store, loader, _ = make_components(provider, corpus)

    await loader.ensure_loaded()

    assert store.embedding_dimension == 2
    assert store.stats().failed_ids == ["1"]


@pytest.mark.anyio
async def test_warm_up_runs_once_before_embedding_without_the_request_timeout(tmp_path) -> None:
    corpus, texts, vectors = _five_report_corpus(tmp_path)

    class SlowStart(FakeEmbeddingProvider):
        warm_ups = 0

        async def warm_up(self) -> None:
            assert self.calls == []
            await asyncio.sleep(0.2)
            self.warm_ups += 1

    provider = SlowStart(vectors)
    store = CorpusStore()
    config = LoaderConfig(
        batch_size=5,
        batch_delay_seconds=0.0,
        request_timeout_seconds=0.05,
        retry=RetryPolicy(max_attempts=2, backoff_seconds=0.0),
    )
    loader = CorpusLoader(store, provider, corpus, config)

    await loader.ensure_loaded()

    assert provider.warm_ups == 1
    assert store.stats().with_embeddings == 5


@pytest.mark.anyio
async def test_warm_up_failure_aborts_the_load(tmp_path, make_components) -> None:
    corpus, _, vectors = _five_report_corpus(tmp_path)

    class Unavailable(FakeEmbeddingProvider):
        async def warm_up(self) -> None:
            raise ProviderUnavailableError("model download failed")

    provider = Unavailable(vectors)
    store, loader, _ = make_components(provider, corpus)

    with pytest.raises(ProviderUnavailableError):
        await loader.ensure_loaded()

    assert store.state is CorpusState.FAILED
    assert store.last_error == "model download failed"
    assert provider.calls == []


@pytest.mark.anyio
async def test_published_reports_are_immutable(tmp_path, make_components) -> None:
    corpus, _, vectors = _five_report_corpus(tmp_path)
    store, loader, _ = make_components(FakeEmbeddingProvider(vectors), corpus)
    await loader.ensure_loaded()

    with pytest.raises(dataclasses.FrozenInstanceError):
        store.reports[0].embedding = ()  # type: ignore[misc]
    assert store.reports[0].embedding == (1.0, 1.0)


def test_retry_policy_requires_a_retry() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=1)


def test_retry_policy_backoff_schedule() -> None:
    policy = RetryPolicy(max_attempts=4, backoff_seconds=1.0, multiplier=2.0, max_backoff_seconds=3.0)

    assert [policy.delay_for(attempt) for attempt in (1, 2, 3)] == [1.0, 2.0, 3.0]
    assert policy.delay_for(1, retry_after=0.5) == 0.5
    assert policy.delay_for(1, retry_after=99.0) == 3.0
