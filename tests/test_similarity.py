from __future__ import annotations

import math

import numpy as np
import pytest

from guidebot.errors import EmbeddingDimensionError
from guidebot.similarity import cosine_scores, cosine_similarity, rank_descending


def test_zero_vector_scores_zero() -> None:
    score = cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0])

    assert score == 0.0
    assert not math.isnan(score)


def test_identical_and_opposite_vectors() -> None:
    assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_inputs_are_not_mutated() -> None:
    left = [3.0, 4.0]
    right = [4.0, 3.0]

    cosine_similarity(left, right)

    assert left == [3.0, 4.0]
    assert right == [4.0, 3.0]


def test_length_mismatch_is_rejected() -> None:
    with pytest.raises(EmbeddingDimensionError):
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


def test_cosine_scores_matches_pairwise_primitive() -> None:
    matrix = np.array([[1.0, 0.0], [0.0, 0.0], [0.9, 0.1], [-1.0, 0.0]])

    scores = cosine_scores([1.0, 0.0], matrix)

    expected = [cosine_similarity([1.0, 0.0], row) for row in matrix]
    assert scores.tolist() == pytest.approx(expected)
    assert scores[1] == 0.0


def test_cosine_scores_rejects_wrong_dimension() -> None:
    with pytest.raises(EmbeddingDimensionError):
        cosine_scores([1.0, 0.0, 0.0], np.zeros((2, 2)))


def test_rank_descending_keeps_input_order_for_ties() -> None:
    scores = np.array([0.5, 0.9, 0.5, 0.9, 0.1])

    assert rank_descending(scores, 5) == [1, 3, 0, 2, 4]
    assert rank_descending(scores, 2) == [1, 3]
    assert rank_descending(scores, 0) == []
