"""Maximal marginal relevance selection."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from docqa.core.errors import ValidationError
from docqa.models.entities import Chunk


class MMRSelector:
    """Greedy relevance/diversity trade-off over a candidate pool.

    ``mmr(d) = lambda * sim(q, d) - (1 - lambda) * max_s cos(d, s)``

    The most relevant candidate is always picked first. A candidate or
    selected item without an embedding adds no redundancy penalty for that
    pair, and the running maximum starts at zero.
    """

    def __init__(self, mmr_lambda: float = 0.7) -> None:
        _check_lambda(mmr_lambda)
        self.mmr_lambda = mmr_lambda

    def select(
        self,
        candidates: Sequence[Chunk],
        final_k: int,
        mmr_lambda: float | None = None,
    ) -> list[Chunk]:
        lam = self.mmr_lambda if mmr_lambda is None else mmr_lambda
        _check_lambda(lam)
        if final_k < 0:
            raise ValidationError("final_k must be non-negative")
        if final_k == 0:
            return []
        if len(candidates) <= final_k:
            return list(candidates)

        relevance = [chunk.similarity or 0.0 for chunk in candidates]
        vectors = [_as_unit(chunk.embedding) for chunk in candidates]
        # Largest similarity seen so far against the selected set, per candidate.
        redundancy = [0.0] * len(candidates)
        remaining = list(range(len(candidates)))

        first = max(remaining, key=lambda idx: (relevance[idx], -idx))
        selected: list[Chunk] = [candidates[first].enrich(mmr_score=lam * relevance[first])]
        remaining.remove(first)
        last_vector = vectors[first]

        while remaining and len(selected) < final_k:
            if last_vector is not None:
                for idx in remaining:
                    vector = vectors[idx]
                    if vector is None:
                        continue
                    similarity = float(np.dot(vector, last_vector))
                    if similarity > redundancy[idx]:
                        redundancy[idx] = similarity

            best_idx = -1
            best_score = float("-inf")
            for idx in remaining:
                score = lam * relevance[idx] - (1.0 - lam) * redundancy[idx]
                if score > best_score:
                    best_score = score
                    best_idx = idx
            if best_idx < 0:
                break
            selected.append(candidates[best_idx].enrich(mmr_score=best_score))
            remaining.remove(best_idx)
            last_vector = vectors[best_idx]

        return selected


def _as_unit(embedding: Sequence[float] | None) -> np.ndarray | None:
    if embedding is None:
        return None
    vector = np.asarray(embedding, dtype=np.float64)
    norm = float(np.linalg.norm(vector))
    if norm == 0.0:
        return np.zeros_like(vector)
    return vector / norm


def _check_lambda(value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValidationError("mmr_lambda must be between 0 and 1")


__all__ = ["MMRSelector"]
