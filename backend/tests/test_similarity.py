"""Tests for similarity helpers."""

from __future__ import annotations

import pytest

from docqa.retrieval.similarity import (
    average_similarity,
    cosine_similarity,
    diversity_score,
    overlap_count,
)


def test_cosine_similarity_basics() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 2.0]) == pytest.approx(0.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_cosine_similarity_rejects_dimension_mismatch() -> None:
    with pytest.raises(ValueError):
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


def test_diversity_score_extremes(make_chunk) -> None:
    identical = [make_chunk(str(i), 0.5, [1.0, 1.0]) for i in range(3)]
    orthogonal = [
        make_chunk("x", 0.5, [1.0, 0.0, 0.0]),
        make_chunk("y", 0.5, [0.0, 1.0, 0.0]),
        make_chunk("z", 0.5, [0.0, 0.0, 1.0]),
    ]
    assert diversity_score(identical) == pytest.approx(0.0)
    assert diversity_score(orthogonal) == pytest.approx(1.0)


def test_diversity_score_skips_missing_embeddings(make_chunk) -> None:
    chunks = [make_chunk("a", 0.5, [1.0, 0.0]), make_chunk("b", 0.5, [1.0, 0.0]), make_chunk("c", 0.5, None)]
    # Only one comparable pair remains.
    assert diversity_score(chunks) == 1.0
    assert diversity_score([]) == 1.0


def test_average_similarity_and_overlap(make_chunk) -> None:
    first = [make_chunk("a", 0.9), make_chunk("b", 0.5)]
    second = [make_chunk("b", 0.1), make_chunk("c", 0.2)]
    assert average_similarity(first) == pytest.approx(0.7)
    assert average_similarity([]) == 0.0
    assert overlap_count(first, second) == 1
