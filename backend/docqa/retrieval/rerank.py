"""Reranking orchestration: validation, retry, multi-stage, batching, cost."""

from __future__ import annotations

import asyncio
import math
import operator
import time
from dataclasses import dataclass, field
from typing import Any, Sequence

from docqa.core.config import Settings
from docqa.core.errors import InvalidRequestError, RetrievalError, ValidationError
from docqa.core.logging import get_logger, log_context
from docqa.core.metrics import RERANK_CALLS
from docqa.core.retry import RetryPolicy, call_with_retry
from docqa.models.entities import Chunk
from docqa.providers.rerankers import RerankHit, Reranker
from docqa.utils.text import preview, truncate

logger = get_logger(__name__)

MAX_TOP_N = 100
SIGNIFICANT_RANK_CHANGE = 2


@dataclass(slots=True)
class RerankOutcome:
    query: str
    original_count: int
    results: list[Chunk]
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def reranked_count(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "original_count": self.original_count,
            "reranked_count": self.reranked_count,
            "results": [chunk.to_dict() for chunk in self.results],
            "metadata": self.metadata,
        }


@dataclass(slots=True)
class RerankRequest:
    query: str
    chunks: list[Chunk]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class BatchRerankOutcome:
    results: list[dict[str, Any]]
    errors: list[dict[str, Any]]

    @property
    def successful(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "successful": self.successful,
            "failed": self.failed,
            "results": self.results,
            "errors": self.errors,
        }


@dataclass(frozen=True, slots=True)
class CostEstimate:
    search_count: int
    documents_count: int
    top_n: int
    estimated_cost: float
    cost_per_document: float

    @property
    def formatted_cost(self) -> str:
        return f"${self.estimated_cost:.6f}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "search_count": self.search_count,
            "documents_count": self.documents_count,
            "top_n": self.top_n,
            "estimated_cost": self.estimated_cost,
            "cost_per_document": self.cost_per_document,
            "formatted_cost": self.formatted_cost,
        }


class RerankingOrchestrator:
    """Production wrapper around a Reranker.

    ``rerank`` raises typed errors once retries are exhausted; deciding
    whether a failure is fatal belongs to the retrieval pipeline.
    """

    def __init__(
        self,
        reranker: Reranker,
        settings: Settings | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.reranker = reranker
        self.settings = settings or Settings()
        self.retry_policy = retry_policy or RetryPolicy(
            attempts=self.settings.rerank_retry_attempts,
            base_delay=self.settings.rerank_retry_delay,
        )

    @property
    def model_name(self) -> str:
        return self.reranker.model_name

    async def rerank(
        self,
        query: str,
        chunks: Sequence[Chunk],
        top_n: int | None = None,
        truncate_chunks: bool = True,
    ) -> RerankOutcome:
        requested = self.settings.rerank_top_n if top_n is None else top_n
        _validate_inputs(query, chunks, requested)
        effective_top_n = min(requested, len(chunks))
        documents = self._prepare_documents(chunks, truncate_chunks)

        logger.info(
            "Reranking %d chunks for '%s'",
            len(chunks),
            preview(query),
            extra=log_context(model=self.model_name, top_n=effective_top_n),
        )
        started = time.perf_counter()
        try:
            hits = await call_with_retry(
                lambda: self.reranker.rerank(query.strip(), documents, effective_top_n),
                self.retry_policy,
                name="rerank",
                timeout=self.settings.rerank_timeout,
            )
            processing_time_ms = (time.perf_counter() - started) * 1000.0
            results = _merge_hits(hits, chunks)
        except RetrievalError:
            RERANK_CALLS.labels(outcome="error").inc()
            raise
        stats = calculate_reranking_stats(chunks, results)
        stats["processing_time_ms"] = processing_time_ms
        RERANK_CALLS.labels(outcome="success").inc()
        logger.info(
            "Reranking completed: %d -> %d chunks, avg score %.3f",
            len(chunks),
            len(results),
            stats["avg_rerank_score"],
        )
        return RerankOutcome(
            query=query,
            original_count=len(chunks),
            results=results,
            metadata={
                "model": self.model_name,
                "top_n": effective_top_n,
                "stats": stats,
                "processing_time_ms": processing_time_ms,
            },
        )

    async def multi_stage_rerank(
        self,
        query: str,
        chunks: Sequence[Chunk],
        intermediate_n: int,
        top_n: int,
    ) -> RerankOutcome:
        """Coarse reduction to ``intermediate_n`` followed by a fine pass to ``top_n``."""
        if intermediate_n < top_n:
            raise ValidationError("intermediate_n must be greater than or equal to top_n")
        logger.info("Multi-stage reranking: %d -> %d -> %d", len(chunks), intermediate_n, top_n)
        first = await self.rerank(query, chunks, top_n=intermediate_n)
        second = await self.rerank(query, first.results, top_n=top_n)
        second.original_count = len(chunks)
        second.metadata.update(
            {
                "multi_stage": True,
                "intermediate_n": intermediate_n,
                "stages": [
                    {"stage": 1, "input": len(chunks), "output": len(first.results)},
                    {"stage": 2, "input": len(first.results), "output": len(second.results)},
                ],
            }
        )
        return second

    async def advanced_rerank(
        self,
        query: str,
        chunks: Sequence[Chunk],
        top_n: int | None = None,
        expand_query: bool = False,
        multi_stage: bool = False,
        intermediate_n: int | None = None,
    ) -> RerankOutcome:
        requested = self.settings.rerank_top_n if top_n is None else top_n
        _validate_inputs(query, chunks, requested)
        processed_query = query
        if expand_query:
            processed_query = self.expand_query(query, chunks[:3])
            logger.info("Expanded query: '%s'", preview(processed_query, width=100))

        stage_n = min(15, len(chunks)) if intermediate_n is None else intermediate_n
        if multi_stage and len(chunks) > stage_n:
            outcome = await self.multi_stage_rerank(
                processed_query, chunks, intermediate_n=max(stage_n, requested), top_n=requested
            )
        else:
            outcome = await self.rerank(processed_query, chunks, top_n=requested)
        outcome.metadata["query_expanded"] = expand_query
        if expand_query:
            outcome.metadata["expanded_query"] = processed_query
        return outcome

    async def contextual_rerank(
        self,
        query: str,
        chunks: Sequence[Chunk],
        context: str = "",
        top_n: int | None = None,
    ) -> RerankOutcome:
        context = context or ""
        contextual_query = f"Context: {context}\n\nQuery: {query}" if context.strip() else query
        outcome = await self.rerank(contextual_query, chunks, top_n=top_n)
        outcome.query = query
        outcome.metadata["context_provided"] = bool(context.strip())
        return outcome

    async def batch_rerank(
        self,
        requests: Sequence[RerankRequest],
        top_n: int | None = None,
    ) -> BatchRerankOutcome:
        """Rerank independent requests one after another; failures stay per-item."""
        outcome = BatchRerankOutcome(results=[], errors=[])
        logger.info("Starting batch reranking for %d requests", len(requests))
        for index, request in enumerate(requests):
            try:
                result = await self.rerank(request.query, request.chunks, top_n=top_n)
            except RetrievalError as exc:
                logger.warning("Batch item %d/%d failed: %s", index + 1, len(requests), exc)
                outcome.errors.append(
                    {
                        "index": index,
                        "query": (request.query or "")[:50],
                        "error": str(exc),
                        "metadata": request.metadata,
                    }
                )
            else:
                outcome.results.append({"index": index, "metadata": request.metadata, **result.to_dict()})
            if index < len(requests) - 1 and self.settings.rerank_batch_delay:
                await asyncio.sleep(self.settings.rerank_batch_delay)
        return outcome

    def estimate_cost(self, chunk_count: int, top_n: int | None = None) -> CostEstimate:
        """Price of one rerank call; no network access."""
        if chunk_count < 0:
            raise ValidationError("chunk_count must be non-negative")
        cost_per_search = self.settings.rerank_cost_per_search
        search_count = 1
        return CostEstimate(
            search_count=search_count,
            documents_count=chunk_count,
            top_n=self.settings.rerank_top_n if top_n is None else top_n,
            estimated_cost=search_count * cost_per_search,
            cost_per_document=cost_per_search / chunk_count if chunk_count else 0.0,
        )

    @staticmethod
    def expand_query(query: str, top_chunks: Sequence[Chunk]) -> str:
        """Append up to ten longer leading terms from the top chunks to the query."""
        leading = " ".join(" ".join(chunk.content.split()[:10]) for chunk in top_chunks)
        terms = [term for term in leading.split() if len(term) > 3][:10]
        return f"{query} {' '.join(terms)}".strip()

    @staticmethod
    def performance_summary(outcomes: Sequence[RerankOutcome]) -> dict[str, float | int]:
        if not outcomes:
            return {
                "total_queries": 0,
                "avg_processing_time_ms": 0.0,
                "avg_rerank_score": 0.0,
                "avg_reordering_rate": 0.0,
            }
        count = len(outcomes)
        return {
            "total_queries": count,
            "avg_processing_time_ms": sum(o.metadata.get("processing_time_ms", 0.0) for o in outcomes) / count,
            "avg_rerank_score": sum(o.metadata.get("stats", {}).get("avg_rerank_score", 0.0) for o in outcomes) / count,
            "avg_reordering_rate": sum(o.metadata.get("stats", {}).get("reordering_rate", 0.0) for o in outcomes) / count,
        }

    def _prepare_documents(self, chunks: Sequence[Chunk], truncate_chunks: bool) -> list[str]:
        limit = self.settings.rerank_max_chunk_length
        if not truncate_chunks:
            return [chunk.content for chunk in chunks]
        return [truncate(chunk.content, limit) for chunk in chunks]


def calculate_reranking_stats(original: Sequence[Chunk], reranked: Sequence[Chunk]) -> dict[str, Any]:
    scores = [chunk.rerank_score or 0.0 for chunk in reranked]
    changes = [chunk.rank_improvement or 0 for chunk in reranked]
    similarities = [chunk.similarity or 0.0 for chunk in original]
    improvements = [(chunk.rerank_score or 0.0) - (chunk.similarity or 0.0) for chunk in reranked]
    significant = sum(1 for change in changes if abs(change) >= SIGNIFICANT_RANK_CHANGE)
    count = len(reranked)
    return {
        "avg_rerank_score": sum(scores) / count if count else 0.0,
        "max_rerank_score": max(scores) if scores else 0.0,
        "min_rerank_score": min(scores) if scores else 0.0,
        "avg_original_similarity": sum(similarities) / len(similarities) if similarities else 0.0,
        "avg_rank_change": sum(abs(change) for change in changes) / count if count else 0.0,
        "significant_rank_changes": significant,
        "avg_score_improvement": sum(improvements) / count if count else 0.0,
        "reordering_rate": significant / count if count else 0.0,
    }


def _merge_hits(hits: Sequence[RerankHit], chunks: Sequence[Chunk]) -> list[Chunk]:
    """Attach rerank scores; a malformed hit list raises ``InvalidRequestError``."""
    try:
        hit_list = list(hits)
    except TypeError as exc:
        raise InvalidRequestError(f"reranker returned a non-list response: {exc}", provider="rerank") from exc
    merged: list[Chunk] = []
    seen: set[int] = set()
    for new_rank, hit in enumerate(hit_list, start=1):
        try:
            index = operator.index(hit.index)
            score = float(hit.relevance_score)
        except (TypeError, ValueError, AttributeError) as exc:
            raise InvalidRequestError(f"malformed reranker hit at rank {new_rank}: {exc}", provider="rerank") from exc
        if math.isnan(score):
            raise InvalidRequestError(f"reranker returned NaN score at rank {new_rank}", provider="rerank")
        if not 0 <= index < len(chunks):
            raise InvalidRequestError(
                f"reranker returned index {index} for {len(chunks)} documents",
                provider="rerank",
            )
        if index in seen:
            raise InvalidRequestError(f"reranker returned index {index} twice", provider="rerank")
        seen.add(index)
        original_rank = index + 1
        merged.append(
            chunks[index].enrich(
                rerank_score=score,
                rerank_rank=new_rank,
                original_rank=original_rank,
                rank_improvement=original_rank - new_rank,
                retrieval_method="reranked",
            )
        )
    return merged


def _validate_inputs(query: str, chunks: Sequence[Chunk], top_n: int) -> None:
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("Query is required and must be a non-empty string")
    if not chunks:
        raise ValidationError("Chunks must be a non-empty list")
    if not 1 <= top_n <= MAX_TOP_N:
        raise ValidationError(f"top_n must be between 1 and {MAX_TOP_N}")
    missing = sum(1 for chunk in chunks if not (chunk.content or "").strip())
    if missing:
        raise ValidationError(f"{missing} chunks missing content")


__all__ = [
    "BatchRerankOutcome",
    "CostEstimate",
    "RerankOutcome",
    "RerankRequest",
    "RerankingOrchestrator",
    "calculate_reranking_stats",
]
