"""Shared fixtures: fake embedding providers and corpus files."""
from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import pytest

from guidebot.corpus import CorpusLoader, CorpusStore, LoaderConfig, RetryPolicy
from guidebot.providers import EmbeddingProvider
from guidebot.retrieval import RetrievalEngine


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeEmbeddingProvider(EmbeddingProvider):
    """Provider returning fixed vectors keyed by text, with scripted failures.

    ``failures`` maps a text to the exceptions raised by its successive calls;
    once the list is exhausted the text embeds normally.
    """

    def __init__(
        self,
        vectors: Dict[str, Sequence[float]],
        *,
        failures: Optional[Dict[str, List[Exception]]] = None,
        supports_batching: bool = False,
        batch_failure: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.vectors = {text: list(vector) for text, vector in vectors.items()}
        self.failures = {text: list(errors) for text, errors in (failures or {}).items()}
        self.supports_batching = supports_batching
        self.batch_failure = batch_failure
        self.delay = delay
        self.calls: List[str] = []
        self.batch_calls: List[List[str]] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        pending = self.failures.get(text)
        if pending:
            raise pending.pop(0)
        return list(self.vectors[text])

    async def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        if not self.supports_batching:
            return await super().embed_many(texts)
        self.batch_calls.append(list(texts))
        if self.batch_failure is not None:
            raise self.batch_failure
        return [list(self.vectors[text]) for text in texts]


async def _no_sleep(_: float) -> None:
    return None


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def write_corpus(path: Path, records: Iterable[object]) -> Path:
    lines = []
    for record in records:
        lines.append(record if isinstance(record, str) else json.dumps(record))
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


TOP_K_VECTORS: Dict[str, List[float]] = {
    "Right lower lobe consolidation.": [1.0, 0.0],
    "Normal chest radiograph.": [0.0, 1.0],
    "Patchy right basilar opacity.": [0.9, 0.1],
    "Left sided pleural effusion.": [-1.0, 0.0],
    "Bilateral interstitial markings.": [0.5, 0.5],
    "pneumonia right lung": [1.0, 0.0],
}


@pytest.fixture
def top_k_corpus(tmp_path: Path) -> Path:
    texts = [text for text in TOP_K_VECTORS if text != "pneumonia right lung"]
    return write_corpus(
        tmp_path / "reports.jsonl",
        [{"ReportID": f"R{index + 1}", "ContentText": text} for index, text in enumerate(texts)],
    )


@pytest.fixture
def fast_config() -> LoaderConfig:
    return LoaderConfig(
        batch_size=2,
        batch_delay_seconds=0.0,
        max_concurrency=2,
        request_timeout_seconds=1.0,
        retry=RetryPolicy(max_attempts=2, backoff_seconds=0.0),
    )


@pytest.fixture
def make_components(fast_config: LoaderConfig) -> Callable[..., tuple]:
    def _factory(
        provider: EmbeddingProvider,
        corpus: Path,
        config: Optional[LoaderConfig] = None,
    ) -> tuple[CorpusStore, CorpusLoader, RetrievalEngine]:
        store = CorpusStore()
        loader = CorpusLoader(store, provider, corpus, config or fast_config, sleep=_no_sleep)
        engine = RetrievalEngine(store, provider, request_timeout_seconds=1.0)
        return store, loader, engine

    return _factory
