"""Retrieval orchestration components."""

from .hybrid import HybridFuser, reciprocal_rank_fusion
from .mmr import MMRSelector
from .rerank import RerankingOrchestrator
from .search import RetrievalOrchestrator

__all__ = [
    "HybridFuser",
    "MMRSelector",
    "RerankingOrchestrator",
    "RetrievalOrchestrator",
    "reciprocal_rank_fusion",
]
