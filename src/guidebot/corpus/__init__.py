"""Report corpus storage and loading."""
from __future__ import annotations

from .loader import CorpusLoader, LoaderConfig, RetryPolicy
from .reader import CorpusReadResult, ReportRecord, parse_report_lines, read_corpus
from .store import CorpusState, CorpusStats, CorpusStore

__all__ = [
    "CorpusLoader",
    "CorpusReadResult",
    "CorpusState",
    "CorpusStats",
    "CorpusStore",
    "LoaderConfig",
    "ReportRecord",
    "RetryPolicy",
    "parse_report_lines",
    "read_corpus",
]
