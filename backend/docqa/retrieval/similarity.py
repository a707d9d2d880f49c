"""Vector similarity and result-set statistics."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from docqa.models.entities import Chunk


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors; 0.0 when either is all zeros."""
    left = np.asarray(a, dtype=np.float64)
    right = np.asarray(b, dtype=np.float64)
    if left.shape != right.shape:
        raise ValueError("Vector dimension mismatch")
    denom = float(np.linalg.norm(left) * np.linalg.norm(right))
    if denom == 0.0:
        return 0.0
    return float(np.dot(left, right) / denom)


def average_similarity(chunks: Sequence[Chunk]) -> float:
    if not chunks:
        return 0.0
    return sum(chunk.similarity or 0.0 for chunk in chunks) / len(chunks)


def diversity_score(chunks: Sequence[Chunk]) -> float:
    """1 - mean pairwise cosine similarity over chunks that carry embeddings.

    Pairs with a missing embedding are excluded. With fewer than two
    comparable pairs the score is 1.0.
    """
    total = 0.0
    comparisons = 0
    for i in range(len(chunks)):
        left = chunks[i].embedding
        if left is None:
            continue
        for j in range(i + 1, len(chunks)):
            right = chunks[j].embedding
            if right is None:
                continue
            total += cosine_similarity(left, right)
            comparisons += 1
    if comparisons < 2:
        return 1.0
    return 1.0 - total / comparisons


def overlap_count(first: Sequence[Chunk], second: Sequence[Chunk]) -> int:
    return len({chunk.id for chunk in first} & {chunk.id for chunk in second})


__all__ = [
    "average_similarity",
    "cosine_similarity",
    "diversity_score",
    "overlap_count",
]
