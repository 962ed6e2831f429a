"""Cosine similarity helpers used to rank reports against a query."""
from __future__ import annotations

from typing import Sequence

import numpy as np

from guidebot.errors import EmbeddingDimensionError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine similarity of two vectors.

    A zero-norm vector is treated as maximally dissimilar to everything and
    scores ``0.0``. Inputs are never modified.
    """

    left = np.asarray(a, dtype=np.float64)
    right = np.asarray(b, dtype=np.float64)
    if left.shape != right.shape:
        raise EmbeddingDimensionError(
            f"Cannot compare vectors of length {left.size} and {right.size}"
        )

    norm = float(np.linalg.norm(left) * np.linalg.norm(right))
    if norm == 0.0:
        return 0.0
    return float(np.dot(left, right) / norm)


def cosine_scores(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Score every row of ``matrix`` against ``query``.

    Rows (or a query) with zero norm score ``0.0``.
    """

    vector = np.asarray(query, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[1] != vector.size:
        raise EmbeddingDimensionError(
            f"Query has {vector.size} dimensions but the index stores "
            f"{matrix.shape[1] if matrix.ndim == 2 else 'malformed'} dimensional vectors"
        )

    query_norm = float(np.linalg.norm(vector))
    row_norms = np.linalg.norm(matrix, axis=1)
    denominators = row_norms * query_norm
    dots = matrix @ vector

    scores = np.zeros(matrix.shape[0], dtype=np.float64)
    nonzero = denominators > 0.0
    scores[nonzero] = dots[nonzero] / denominators[nonzero]
    return scores


def rank_descending(scores: np.ndarray, limit: int) -> list[int]:
    """Return the indices of the ``limit`` best scores, ties kept in input order."""

    if limit <= 0 or scores.size == 0:
        return []
    order = np.argsort(-scores, kind="stable")
    return [int(index) for index in order[:limit]]


__all__ = ["cosine_scores", "cosine_similarity", "rank_descending"]
