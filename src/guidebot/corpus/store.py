"""In-memory store holding the embedded report corpus."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np

from guidebot.errors import EmbeddingDimensionError
from guidebot.models import Report

LOGGER = logging.getLogger(__name__)


class CorpusState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(slots=True)
class CorpusStats:
    """Diagnostic snapshot exposed to health and debug endpoints."""

    state: CorpusState
    total: int
    with_embeddings: int
    embedding_dimension: int
    failed_ids: List[str] = field(default_factory=list)
    last_error: Optional[str] = None


class CorpusStore:
    """Process-wide report index shared by the loader and the retrieval engine.

    Only the corpus loader mutates the store, and only while a load is in
    flight. Once published as ``loaded`` the contents never change.
    """

    def __init__(self) -> None:
        self._state = CorpusState.UNLOADED
        self._reports: Tuple[Report, ...] = ()
        self._valid: Tuple[Report, ...] = ()
        self._matrix = np.zeros((0, 0), dtype=np.float64)
        self._dimension = 0
        self._last_error: Optional[str] = None

    @property
    def state(self) -> CorpusState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._state is CorpusState.LOADED

    @property
    def reports(self) -> Tuple[Report, ...]:
        return self._reports

    @property
    def valid_reports(self) -> Tuple[Report, ...]:
        """Reports that carry an embedding, in corpus order."""

        return self._valid

    @property
    def matrix(self) -> np.ndarray:
        """Read-only ``(len(valid_reports), embedding_dimension)`` matrix."""

        return self._matrix

    @property
    def embedding_dimension(self) -> int:
        return self._dimension

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def begin_load(self) -> None:
        if self._state is CorpusState.LOADED:
            raise RuntimeError("Corpus is already loaded and cannot be reloaded")
        if self._state is CorpusState.LOADING:
            raise RuntimeError("A corpus load is already in progress")
        self._state = CorpusState.LOADING
        self._last_error = None

    def publish(self, reports: Sequence[Report], dimension: int) -> None:
        """Install the loaded reports and mark the store ``loaded``."""

        if self._state is not CorpusState.LOADING:
            raise RuntimeError(f"Cannot publish a corpus from state {self._state.value!r}")

        valid = tuple(report for report in reports if report.has_embedding)
        for report in valid:
            if len(report.embedding) != dimension:
                raise EmbeddingDimensionError(
                    f"Report {report.id} has {len(report.embedding)} dimensions, expected {dimension}"
                )

        matrix = (
            np.asarray([report.embedding for report in valid], dtype=np.float64)
            if valid
            else np.zeros((0, dimension), dtype=np.float64)
        )
        matrix.setflags(write=False)

        self._reports = tuple(reports)
        self._valid = valid
        self._matrix = matrix
        self._dimension = dimension
        self._state = CorpusState.LOADED
        LOGGER.info(
            "Corpus published: %d reports, %d with %d-dimensional embeddings",
            len(self._reports),
            len(valid),
            dimension,
        )

    def mark_failed(self, error: BaseException) -> None:
        self._state = CorpusState.FAILED
        self._last_error = str(error) or type(error).__name__

    def stats(self) -> CorpusStats:
        return CorpusStats(
            state=self._state,
            total=len(self._reports),
            with_embeddings=len(self._valid),
            embedding_dimension=self._dimension,
            failed_ids=[report.id for report in self._reports if not report.has_embedding],
            last_error=self._last_error,
        )
