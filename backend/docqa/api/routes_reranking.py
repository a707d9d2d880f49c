"""Reranking API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from docqa.api.dependencies import get_reranking_orchestrator
from docqa.core.errors import ConfigurationError
from docqa.models.dto import (
    AdvancedRerankRequest,
    BatchRerankRequest,
    BatchRerankResponse,
    ContextualRerankRequest,
    CostEstimateRequest,
    CostEstimateResponse,
    RerankRequestBody,
    RerankResponse,
)
from docqa.retrieval.rerank import RerankingOrchestrator, RerankOutcome, RerankRequest

router = APIRouter()


def require_reranking(
    reranking: RerankingOrchestrator | None = Depends(get_reranking_orchestrator),
) -> RerankingOrchestrator:
    if reranking is None:
        raise ConfigurationError("reranking provider is disabled")
    return reranking


@router.post("/rerank", response_model=RerankResponse, summary="Rerank supplied chunks against a query")
async def rerank(
    request: RerankRequestBody,
    service: RerankingOrchestrator = Depends(require_reranking),
) -> RerankResponse:
    outcome = await service.rerank(
        request.query,
        [chunk.to_chunk() for chunk in request.chunks],
        top_n=request.top_n,
        truncate_chunks=request.truncate_chunks,
    )
    return _to_response(outcome)


@router.post("/advanced", response_model=RerankResponse, summary="Rerank with query expansion or multiple stages")
async def advanced_rerank(
    request: AdvancedRerankRequest,
    service: RerankingOrchestrator = Depends(require_reranking),
) -> RerankResponse:
    outcome = await service.advanced_rerank(
        request.query,
        [chunk.to_chunk() for chunk in request.chunks],
        top_n=request.top_n,
        expand_query=request.expand_query,
        multi_stage=request.multi_stage,
        intermediate_n=request.intermediate_n,
    )
    return _to_response(outcome)


@router.post("/contextual", response_model=RerankResponse, summary="Rerank with conversational context")
async def contextual_rerank(
    request: ContextualRerankRequest,
    service: RerankingOrchestrator = Depends(require_reranking),
) -> RerankResponse:
    outcome = await service.contextual_rerank(
        request.query,
        [chunk.to_chunk() for chunk in request.chunks],
        context=request.context,
        top_n=request.top_n,
    )
    return _to_response(outcome)


@router.post("/batch", response_model=BatchRerankResponse, summary="Rerank several independent requests")
async def batch_rerank(
    request: BatchRerankRequest,
    service: RerankingOrchestrator = Depends(require_reranking),
) -> BatchRerankResponse:
    items = [
        RerankRequest(
            query=item.query,
            chunks=[chunk.to_chunk() for chunk in item.chunks],
            metadata=item.metadata,
        )
        for item in request.requests
    ]
    outcome = await service.batch_rerank(items, top_n=request.top_n)
    return BatchRerankResponse(**outcome.to_dict())


@router.post("/estimate-cost", response_model=CostEstimateResponse, summary="Estimate the price of a rerank call")
async def estimate_cost(
    request: CostEstimateRequest,
    service: RerankingOrchestrator = Depends(require_reranking),
) -> CostEstimateResponse:
    estimate = service.estimate_cost(request.chunk_count, top_n=request.top_n)
    return CostEstimateResponse(**estimate.to_dict())


def _to_response(outcome: RerankOutcome) -> RerankResponse:
    return RerankResponse(**outcome.to_dict())


__all__ = ["router"]
