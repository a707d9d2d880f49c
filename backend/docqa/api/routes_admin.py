"""Administrative routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from docqa.api.dependencies import get_capabilities, get_vector_store
from docqa.core.config import RetrievalCapabilities
from docqa.core.metrics import metrics_response
from docqa.providers.vector_store import InMemoryVectorStore

router = APIRouter()


@router.get("/stats", summary="Corpus and provider statistics")
async def get_stats(
    store: InMemoryVectorStore = Depends(get_vector_store),
    capabilities: RetrievalCapabilities = Depends(get_capabilities),
) -> dict[str, Any]:
    return {
        "success": True,
        "store": store.stats(),
        "capabilities": {
            "embedding": capabilities.embedding.value,
            "reranking": capabilities.reranking.value,
            "keyword_search": capabilities.keyword_search,
        },
    }


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
