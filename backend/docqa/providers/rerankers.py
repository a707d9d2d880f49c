"""Reranker adapters."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from rapidfuzz import fuzz

from docqa.core.config import ProviderMode, Settings

try:  # pragma: no cover - optional dependency
    from sentence_transformers import CrossEncoder

    HAS_CROSS_ENCODER = True
except ImportError:  # pragma: no cover
    CrossEncoder = None  # type: ignore[assignment]
    HAS_CROSS_ENCODER = False

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RerankHit:
    index: int
    relevance_score: float
    document: str | None = None


class Reranker(Protocol):
    model_name: str

    async def rerank(self, query: str, documents: Sequence[str], top_n: int) -> list[RerankHit]:
        ...


class FuzzyReranker:
    """Deterministic token-set similarity reranker for offline use."""

    model_name = "fuzzy-token-set"

    async def rerank(self, query: str, documents: Sequence[str], top_n: int) -> list[RerankHit]:
        scored = [
            RerankHit(index=idx, relevance_score=fuzz.token_set_ratio(query, text) / 100.0, document=text)
            for idx, text in enumerate(documents)
        ]
        scored.sort(key=lambda hit: hit.relevance_score, reverse=True)
        return scored[:top_n]


class CrossEncoderReranker:
    """Wrapper around a sentence-transformers CrossEncoder."""

    def __init__(self, model_name: str, device: str | None = None) -> None:
        if not HAS_CROSS_ENCODER:
            raise ImportError(
                "sentence-transformers is required for live reranking. "
                "Install with: pip install 'docqa-retrieval[live]'"
            )
        self.model_name = model_name
        self.device = device
        self._model: Any = None

    def _load_model(self) -> Any:
        if self._model is None:
            logger.info("Loading rerank model: %s", self.model_name)
            self._model = CrossEncoder(self.model_name, device=self.device)
        return self._model

    def _score(self, query: str, documents: Sequence[str]) -> list[float]:
        model = self._load_model()
        scores = model.predict([[query, text] for text in documents], convert_to_numpy=True)
        return [float(score) for score in scores]

    async def rerank(self, query: str, documents: Sequence[str], top_n: int) -> list[RerankHit]:
        scores = await asyncio.to_thread(self._score, query, documents)
        ranked = sorted(enumerate(scores), key=lambda item: item[1], reverse=True)
        return [
            RerankHit(index=idx, relevance_score=score, document=documents[idx])
            for idx, score in ranked[:top_n]
        ]


def build_reranker(settings: Settings) -> Reranker | None:
    mode = settings.rerank_provider
    if mode is ProviderMode.LIVE:
        return CrossEncoderReranker(settings.rerank_model)
    if mode is ProviderMode.MOCK:
        logger.warning("Using fuzzy mock reranker; rerank scores are lexical only")
        return FuzzyReranker()
    return None


__all__ = ["CrossEncoderReranker", "FuzzyReranker", "RerankHit", "Reranker", "build_reranker"]
