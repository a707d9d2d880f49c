"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from docqa.core.config import Settings
from docqa.models.entities import Chunk, PipelineConfig


class PipelineOptions(BaseModel):
    top_k: int | None = Field(default=None, ge=1)
    final_k: int | None = Field(default=None, ge=0)
    rerank_top_n: int | None = Field(default=None, ge=1, le=100)
    mmr_lambda: float | None = Field(default=None, ge=0.0, le=1.0)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    source: str | None = None
    section: str | None = None
    dense_weight: float | None = Field(default=None, ge=0.0)
    sparse_weight: float | None = Field(default=None, ge=0.0)
    use_reranking: bool | None = None

    def to_config(self, settings: Settings) -> PipelineConfig:
        options = self.model_dump(include=set(PipelineOptions.model_fields))
        return PipelineConfig.from_settings(settings, **options)


class RetrievalRequest(PipelineOptions):
    query: str = Field(min_length=1)


class ContextualRetrievalRequest(RetrievalRequest):
    context: str = ""


class MultiStepRetrievalRequest(RetrievalRequest):
    steps: int = Field(default=2, ge=1, le=10)


class BenchmarkRequest(BaseModel):
    query: str = Field(min_length=1)
    configurations: list[PipelineOptions] = Field(min_length=1)


class ChunkPayload(BaseModel):
    id: str
    content: str = Field(min_length=1)
    source: str | None = None
    title: str | None = None
    section: str | None = None
    position: int | None = None
    similarity: float | None = None
    embedding: list[float] | None = None

    def to_chunk(self) -> Chunk:
        return Chunk.from_dict(self.model_dump())


class RerankRequestBody(BaseModel):
    query: str = Field(min_length=1)
    chunks: list[ChunkPayload] = Field(min_length=1)
    top_n: int | None = Field(default=None, ge=1, le=100)
    truncate_chunks: bool = True


class AdvancedRerankRequest(RerankRequestBody):
    expand_query: bool = False
    multi_stage: bool = False
    intermediate_n: int | None = Field(default=None, ge=1)


class ContextualRerankRequest(RerankRequestBody):
    context: str = ""


class BatchRerankItem(BaseModel):
    # Items are validated per request inside the batch, not here.
    query: str = ""
    chunks: list[ChunkPayload] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class BatchRerankRequest(BaseModel):
    requests: list[BatchRerankItem] = Field(min_length=1)
    top_n: int | None = Field(default=None, ge=1, le=100)


class CostEstimateRequest(BaseModel):
    chunk_count: int = Field(ge=0)
    top_n: int | None = Field(default=None, ge=1, le=100)


class ChunkResult(BaseModel):
    id: str
    content: str
    source: str | None = None
    title: str | None = None
    section: str | None = None
    position: int | None = None
    similarity: float | None = None
    keyword_score: float | None = None
    mmr_score: float | None = None
    rerank_score: float | None = None
    rerank_rank: int | None = None
    original_rank: int | None = None
    rank_improvement: int | None = None
    rrf_score: float | None = None
    dense_rank: int | None = None
    sparse_rank: int | None = None
    retrieval_method: str


class RetrievalResponse(BaseModel):
    success: bool = True
    query: str
    results: list[ChunkResult]
    metadata: dict[str, Any]


class RerankResponse(BaseModel):
    success: bool = True
    query: str
    original_count: int
    reranked_count: int
    results: list[ChunkResult]
    metadata: dict[str, Any]


class BatchRerankResponse(BaseModel):
    success: bool = True
    successful: int
    failed: int
    results: list[dict[str, Any]]
    errors: list[dict[str, Any]]


class CostEstimateResponse(BaseModel):
    search_count: int
    documents_count: int
    top_n: int
    estimated_cost: float
    cost_per_document: float
    formatted_cost: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    stage: str | None = None
    detail: str


__all__ = [
    "AdvancedRerankRequest",
    "BatchRerankItem",
    "BatchRerankRequest",
    "BatchRerankResponse",
    "BenchmarkRequest",
    "ChunkPayload",
    "ChunkResult",
    "ContextualRerankRequest",
    "ContextualRetrievalRequest",
    "CostEstimateRequest",
    "CostEstimateResponse",
    "ErrorResponse",
    "MultiStepRetrievalRequest",
    "PipelineOptions",
    "RerankRequestBody",
    "RerankResponse",
    "RetrievalRequest",
    "RetrievalResponse",
]
