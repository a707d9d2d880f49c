"""Retrieval API routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from docqa.api.dependencies import get_app_settings, get_retrieval_orchestrator
from docqa.core.config import Settings
from docqa.models.dto import (
    BenchmarkRequest,
    ContextualRetrievalRequest,
    MultiStepRetrievalRequest,
    RetrievalRequest,
    RetrievalResponse,
)
from docqa.models.entities import RetrievalResult
from docqa.retrieval.search import RetrievalOrchestrator

router = APIRouter()


@router.post("/mmr", response_model=RetrievalResponse, summary="Similarity search diversified with MMR")
async def retrieve_mmr(
    request: RetrievalRequest,
    service: RetrievalOrchestrator = Depends(get_retrieval_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> RetrievalResponse:
    result = await service.retrieve_mmr(request.query, request.to_config(settings))
    return _to_response(result)


@router.post("/hybrid", response_model=RetrievalResponse, summary="Dense and keyword search fused with RRF")
async def retrieve_hybrid(
    request: RetrievalRequest,
    service: RetrievalOrchestrator = Depends(get_retrieval_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> RetrievalResponse:
    result = await service.retrieve_hybrid(request.query, request.to_config(settings))
    return _to_response(result)


@router.post("/hybrid-rerank", response_model=RetrievalResponse, summary="Hybrid retrieval followed by reranking")
async def retrieve_hybrid_with_rerank(
    request: RetrievalRequest,
    service: RetrievalOrchestrator = Depends(get_retrieval_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> RetrievalResponse:
    result = await service.retrieve_hybrid_with_rerank(request.query, request.to_config(settings))
    return _to_response(result)


@router.post("/contextual", response_model=RetrievalResponse, summary="MMR retrieval biased by context")
async def retrieve_contextual(
    request: ContextualRetrievalRequest,
    service: RetrievalOrchestrator = Depends(get_retrieval_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> RetrievalResponse:
    result = await service.retrieve_contextual(request.query, request.context, request.to_config(settings))
    return _to_response(result)


@router.post("/multi-step", response_model=RetrievalResponse, summary="Iterative query refinement")
async def retrieve_multi_step(
    request: MultiStepRetrievalRequest,
    service: RetrievalOrchestrator = Depends(get_retrieval_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> RetrievalResponse:
    result = await service.retrieve_multi_step(request.query, request.to_config(settings), steps=request.steps)
    return _to_response(result)


@router.post("/complete", response_model=RetrievalResponse, summary="Similarity search, MMR and reranking")
async def retrieve_complete(
    request: RetrievalRequest,
    service: RetrievalOrchestrator = Depends(get_retrieval_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> RetrievalResponse:
    result = await service.retrieve_complete(request.query, request.to_config(settings))
    return _to_response(result)


@router.post("/compare", summary="Compare MMR and hybrid retrieval")
async def compare_methods(
    request: RetrievalRequest,
    service: RetrievalOrchestrator = Depends(get_retrieval_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    payload = await service.compare_methods(request.query, request.to_config(settings))
    return {"success": True, **payload}


@router.post("/compare-reranking", summary="Compare MMR with and without reranking")
async def compare_reranking(
    request: RetrievalRequest,
    service: RetrievalOrchestrator = Depends(get_retrieval_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    payload = await service.compare_reranking(request.query, request.to_config(settings))
    return {"success": True, **payload}


@router.post("/benchmark", summary="Run MMR retrieval under several configurations")
async def benchmark(
    request: BenchmarkRequest,
    service: RetrievalOrchestrator = Depends(get_retrieval_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    configs = [options.to_config(settings) for options in request.configurations]
    payload = await service.benchmark(request.query, configs)
    return {"success": True, **payload}


def _to_response(result: RetrievalResult) -> RetrievalResponse:
    return RetrievalResponse(**result.to_dict())


__all__ = ["router"]
