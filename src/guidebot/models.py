"""Data models shared by the corpus loader and the retrieval engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple


@dataclass(frozen=True, slots=True)
class Report:
    """A single radiology report held in the corpus store.

    ``embedding`` is empty when embedding generation failed for the report;
    such reports stay in the store for diagnostics but are never scored.
    Instances are immutable once built; the loader attaches embeddings with
    :func:`dataclasses.replace`.
    """

    id: str
    text: str
    embedding: Tuple[float, ...] = field(default_factory=tuple)
    line_number: int = 0

    @property
    def has_embedding(self) -> bool:
        return len(self.embedding) > 0


@dataclass(frozen=True, slots=True)
class ScoredReport:
    """Read-only retrieval result pairing a report with its similarity score."""

    id: str
    text: str
    score: float

    def snippet(self, length: int = 120) -> str:
        collapsed = " ".join(self.text[:length].split())
        return f"{collapsed}..."
