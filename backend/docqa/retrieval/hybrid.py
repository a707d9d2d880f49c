"""Hybrid search utilities."""

from __future__ import annotations

import dataclasses
from typing import Sequence

from docqa.models.entities import Chunk

DEFAULT_RRF_K = 60

# Annotations owned by the fusion step itself; never copied across sources.
_FUSION_FIELDS = frozenset({"id", "content", "rrf_score", "dense_rank", "sparse_rank", "retrieval_method"})


def reciprocal_rank_fusion(
    dense_results: Sequence[Chunk],
    sparse_results: Sequence[Chunk],
    dense_weight: float = 0.7,
    sparse_weight: float = 0.3,
    k: int = DEFAULT_RRF_K,
) -> list[Chunk]:
    """Combine a dense and a sparse ranking using weighted reciprocal rank fusion.

    Ranks are 1-based list positions. A chunk present in both lists
    accumulates both contributions. Ties keep encounter order, dense list
    first.
    """
    scores: dict[str, float] = {}
    records: dict[str, Chunk] = {}
    dense_ranks: dict[str, int] = {}
    sparse_ranks: dict[str, int] = {}

    for rank, chunk in enumerate(dense_results, start=1):
        if chunk.id in dense_ranks:
            continue
        dense_ranks[chunk.id] = rank
        scores[chunk.id] = scores.get(chunk.id, 0.0) + dense_weight / (k + rank)
        records[chunk.id] = _merge(records.get(chunk.id), chunk)

    for rank, chunk in enumerate(sparse_results, start=1):
        if chunk.id in sparse_ranks:
            continue
        sparse_ranks[chunk.id] = rank
        scores[chunk.id] = scores.get(chunk.id, 0.0) + sparse_weight / (k + rank)
        records[chunk.id] = _merge(records.get(chunk.id), chunk)

    fused: list[Chunk] = []
    for chunk_id, record in records.items():
        in_dense = chunk_id in dense_ranks
        in_sparse = chunk_id in sparse_ranks
        method = "hybrid" if in_dense and in_sparse else record.retrieval_method
        fused.append(
            record.enrich(
                rrf_score=scores[chunk_id],
                dense_rank=dense_ranks.get(chunk_id),
                sparse_rank=sparse_ranks.get(chunk_id),
                retrieval_method=method,
            )
        )
    fused.sort(key=lambda item: item.rrf_score, reverse=True)
    return fused


class HybridFuser:
    """Reciprocal rank fusion with a fixed damping constant."""

    def __init__(self, k: int = DEFAULT_RRF_K) -> None:
        if k < 0:
            raise ValueError("k must be non-negative")
        self.k = k

    def fuse(
        self,
        dense_results: Sequence[Chunk],
        sparse_results: Sequence[Chunk],
        dense_weight: float = 0.7,
        sparse_weight: float = 0.3,
    ) -> list[Chunk]:
        return reciprocal_rank_fusion(
            dense_results,
            sparse_results,
            dense_weight=dense_weight,
            sparse_weight=sparse_weight,
            k=self.k,
        )


def _merge(existing: Chunk | None, incoming: Chunk) -> Chunk:
    """Keep fields from the first source; fill only the gaps from later ones."""
    if existing is None:
        return incoming
    updates = {}
    for item in dataclasses.fields(Chunk):
        if item.name in _FUSION_FIELDS:
            continue
        if getattr(existing, item.name) is None and getattr(incoming, item.name) is not None:
            updates[item.name] = getattr(incoming, item.name)
    return existing.enrich(**updates) if updates else existing


__all__ = ["DEFAULT_RRF_K", "HybridFuser", "reciprocal_rank_fusion"]
