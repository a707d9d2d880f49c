"""Search orchestration."""

from __future__ import annotations

import asyncio
import math
import time
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

from docqa.core.config import RetrievalCapabilities, Settings, resolve_capabilities
from docqa.core.errors import (
    ConfigurationError,
    ProviderTimeoutError,
    RetrievalError,
    StageFailedError,
    ValidationError,
    classify_provider_error,
)
from docqa.core.logging import get_logger, log_context
from docqa.core.metrics import (
    CANDIDATE_POOL_SIZE,
    PIPELINE_DEGRADED,
    RETRIEVAL_LATENCY,
    RETRIEVAL_REQUESTS,
)
from docqa.core.retry import RetryPolicy, call_with_retry
from docqa.models.entities import (
    CandidateSet,
    Chunk,
    PipelineConfig,
    RetrievalResult,
    dedupe_by_id,
)
from docqa.providers.embeddings import EmbeddingProvider
from docqa.providers.keyword import KeywordSource
from docqa.providers.vector_store import SimilaritySource
from docqa.retrieval.hybrid import HybridFuser
from docqa.retrieval.mmr import MMRSelector
from docqa.retrieval.rerank import RerankingOrchestrator, RerankOutcome
from docqa.retrieval.similarity import average_similarity, diversity_score, overlap_count
from docqa.utils.text import preview

logger = get_logger(__name__)

HYBRID_EXPANSION = 1.5
MULTI_STEP_SNIPPET = 100
MAX_MULTI_STEPS = 10


class RetrievalOrchestrator:
    """Composes embedding, similarity search, MMR, fusion and reranking into pipelines."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        similarity_source: SimilaritySource,
        keyword_source: KeywordSource | None = None,
        reranking: RerankingOrchestrator | None = None,
        settings: Settings | None = None,
        capabilities: RetrievalCapabilities | None = None,
        selector: MMRSelector | None = None,
        fuser: HybridFuser | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.capabilities = capabilities or resolve_capabilities(self.settings)
        self.embedder = embedder
        self.similarity_source = similarity_source
        self.keyword_source = keyword_source if self.capabilities.keyword_search else None
        self.reranking = reranking if self.capabilities.reranking_enabled else None
        self.selector = selector or MMRSelector(self.settings.mmr_lambda)
        self.fuser = fuser or HybridFuser(self.settings.rrf_k)
        self.embedding_retry = RetryPolicy(
            attempts=self.settings.embedding_retry_attempts,
            base_delay=self.settings.embedding_retry_delay,
        )
        store_model = getattr(similarity_source, "embedding_model", None)
        if store_model is not None and store_model != embedder.model_name:
            raise ConfigurationError(
                f"Similarity source holds '{store_model}' vectors but queries are embedded with "
                f"'{embedder.model_name}'"
            )

    def default_config(self, **overrides: Any) -> PipelineConfig:
        return PipelineConfig.from_settings(self.settings, **overrides)

    # ------------------------------------------------------------------
    # strategies

    async def retrieve_mmr(self, query: str, config: PipelineConfig | None = None) -> RetrievalResult:
        with _instrument("mmr"):
            return await self._retrieve_mmr(query, query, self._resolve(config))

    async def retrieve_hybrid(self, query: str, config: PipelineConfig | None = None) -> RetrievalResult:
        with _instrument("hybrid"):
            return await self._retrieve_hybrid(query, self._resolve(config))

    async def retrieve_hybrid_with_rerank(
        self, query: str, config: PipelineConfig | None = None
    ) -> RetrievalResult:
        with _instrument("hybrid_rerank"):
            config = self._resolve(config)
            hybrid = await self._retrieve_hybrid(query, config)
            if not config.use_reranking or not hybrid.results:
                return hybrid
            outcome = await self._rerank_or_degrade(query, hybrid, config)
            if outcome is None:
                return hybrid
            return RetrievalResult(
                query=query,
                results=outcome.results,
                metadata={
                    "pipeline": "hybrid_rerank",
                    "hybrid_metadata": hybrid.metadata,
                    "rerank_metadata": outcome.metadata,
                    "final_results": len(outcome.results),
                    "reranking_skipped": False,
                },
            )

    async def retrieve_contextual(
        self, query: str, context: str = "", config: PipelineConfig | None = None
    ) -> RetrievalResult:
        """Bias the query embedding by prepending conversational or document context."""
        with _instrument("contextual"):
            context = context or ""
            embed_text = f"{context}\n\nQuery: {query}" if context.strip() else query
            result = await self._retrieve_mmr(query, embed_text, self._resolve(config))
            result.metadata["context_provided"] = bool(context.strip())
            return result

    async def retrieve_multi_step(
        self, query: str, config: PipelineConfig | None = None, steps: int = 2
    ) -> RetrievalResult:
        """Iterative retrieval where each step appends a snippet of the previous top hit."""
        with _instrument("multi_step"):
            if not 1 <= steps <= MAX_MULTI_STEPS:
                raise ValidationError(f"steps must be between 1 and {MAX_MULTI_STEPS}")
            config = self._resolve(config)
            step_config = config.with_updates(final_k=math.ceil(config.final_k / steps))
            collected: list[Chunk] = []
            current_query = query
            for step in range(steps):
                logger.info("Retrieval step %d: '%s'", step + 1, preview(current_query))
                step_result = await self._retrieve_mmr(current_query, current_query, step_config)
                collected.extend(step_result.results)
                if step < steps - 1 and step_result.results:
                    top = step_result.results[0]
                    current_query = f"{query} {top.content[:MULTI_STEP_SNIPPET]}"

            unique = dedupe_by_id(collected)
            ranked = sorted(unique, key=lambda chunk: chunk.similarity or 0.0, reverse=True)[: config.final_k]
            return RetrievalResult(
                query=query,
                results=ranked,
                metadata={
                    "steps": steps,
                    "total_candidates": len(collected),
                    "unique_results": len(unique),
                    "final_results": len(ranked),
                    "parameters": config.parameters(),
                },
            )

    async def retrieve_complete(self, query: str, config: PipelineConfig | None = None) -> RetrievalResult:
        """Similarity search, MMR and reranking; reranking trouble never fails the request."""
        with _instrument("mmr_rerank"):
            config = self._resolve(config)
            mmr = await self._retrieve_mmr(query, query, config)
            if not config.use_reranking or not mmr.results:
                return mmr
            outcome = await self._rerank_or_degrade(query, mmr, config)
            if outcome is None:
                return mmr
            stats = outcome.metadata["stats"]
            logger.info(
                "Complete pipeline: %d candidates -> %d MMR -> %d reranked",
                mmr.metadata["candidates_found"],
                len(mmr.results),
                len(outcome.results),
            )
            return RetrievalResult(
                query=query,
                results=outcome.results,
                metadata={
                    "pipeline": "mmr_rerank",
                    "mmr_metadata": mmr.metadata,
                    "rerank_metadata": outcome.metadata,
                    "total_candidates": mmr.metadata["candidates_found"],
                    "mmr_results": len(mmr.results),
                    "final_results": len(outcome.results),
                    "avg_rerank_score": stats["avg_rerank_score"],
                    "reordering_rate": stats["reordering_rate"],
                    "parameters": config.parameters(),
                    "reranking_skipped": False,
                },
            )

    # ------------------------------------------------------------------
    # comparisons

    async def compare_methods(self, query: str, config: PipelineConfig | None = None) -> dict[str, Any]:
        config = self._resolve(config)
        mmr, hybrid = await asyncio.gather(
            self.retrieve_mmr(query, config),
            self.retrieve_hybrid(query, config),
        )
        return {
            "query": query,
            "methods": {"mmr": mmr.to_dict(), "hybrid": hybrid.to_dict()},
            "comparison": {
                "mmr_result_count": len(mmr.results),
                "hybrid_result_count": len(hybrid.results),
                "overlap_count": overlap_count(mmr.results, hybrid.results),
                "avg_similarity_mmr": mmr.metadata.get("avg_similarity", 0.0),
                "diversity_score_mmr": mmr.metadata.get("diversity_score", 1.0),
            },
        }

    async def compare_reranking(self, query: str, config: PipelineConfig | None = None) -> dict[str, Any]:
        config = self._resolve(config)
        mmr_only, complete = await asyncio.gather(
            self.retrieve_mmr(query, config),
            self.retrieve_complete(query, config.with_updates(use_reranking=True)),
        )
        top_changed = (mmr_only.results[0].id if mmr_only.results else None) != (
            complete.results[0].id if complete.results else None
        )
        return {
            "query": query,
            "methods": {"mmr_only": mmr_only.to_dict(), "mmr_with_rerank": complete.to_dict()},
            "comparison": {
                "mmr_results_count": len(mmr_only.results),
                "rerank_results_count": len(complete.results),
                "overlap_count": overlap_count(mmr_only.results, complete.results),
                "avg_similarity_mmr": mmr_only.metadata.get("avg_similarity", 0.0),
                "avg_rerank_score": complete.metadata.get("avg_rerank_score"),
                "reordering_rate": complete.metadata.get("reordering_rate"),
                "reranking_skipped": bool(complete.metadata.get("reranking_skipped", False)),
                "top_result_changed": top_changed,
            },
        }

    async def benchmark(self, query: str, configs: Sequence[PipelineConfig]) -> dict[str, Any]:
        """Run MMR retrieval under several configurations concurrently."""
        limit = self.settings.max_benchmark_configs
        if not configs:
            raise ValidationError("configurations must be a non-empty list")
        if len(configs) > limit:
            raise ValidationError(f"Maximum {limit} configurations allowed per benchmark")
        for config in configs:
            config.validate()
        logger.info("Benchmarking %d configurations for '%s'", len(configs), preview(query))
        entries = await asyncio.gather(
            *(self._benchmark_one(index, query, config) for index, config in enumerate(configs))
        )
        failed = sum(1 for entry in entries if entry["performance"]["failed"])
        return {
            "query": query,
            "configurations_count": len(configs),
            "results": list(entries),
            "summary": {
                "successful": len(entries) - failed,
                "failed": failed,
                "avg_execution_time_ms": sum(e["performance"]["execution_time_ms"] for e in entries) / len(entries),
            },
        }

    # ------------------------------------------------------------------
    # stages

    async def _retrieve_mmr(self, query: str, embed_text: str, config: PipelineConfig) -> RetrievalResult:
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("query must be a non-empty string")
        logger.info("Starting MMR retrieval for '%s'", preview(query))
        candidates = await self._candidates(embed_text, config)
        CANDIDATE_POOL_SIZE.observe(len(candidates))
        if not candidates.chunks:
            return RetrievalResult(
                query=query,
                results=[],
                metadata={
                    "candidates_found": 0,
                    "final_results": 0,
                    "mmr_applied": False,
                    "parameters": config.parameters(),
                },
            )
        selected = self.selector.select(candidates.chunks, config.final_k, config.mmr_lambda)
        results = [chunk.enrich(retrieval_method="vector_mmr") for chunk in selected]
        logger.info("MMR retrieval completed: %d candidates -> %d results", len(candidates), len(results))
        return RetrievalResult(
            query=query,
            results=results,
            metadata={
                "candidates_found": len(candidates),
                "final_results": len(results),
                "mmr_applied": True,
                "parameters": config.parameters(),
                "avg_similarity": average_similarity(results),
                "diversity_score": diversity_score(results),
            },
        )

    async def _retrieve_hybrid(self, query: str, config: PipelineConfig) -> RetrievalResult:
        expanded_k = math.ceil(config.final_k * HYBRID_EXPANSION)
        dense_config = config.with_updates(final_k=expanded_k)
        skipped: list[str] = []
        dense, sparse = await asyncio.gather(
            self._retrieve_mmr(query, query, dense_config),
            self._keyword_or_degrade(query, expanded_k, config, skipped),
        )
        fused = self.fuser.fuse(
            dense.results,
            sparse,
            dense_weight=config.dense_weight,
            sparse_weight=config.sparse_weight,
        )[: config.final_k]
        result = RetrievalResult(
            query=query,
            results=fused,
            metadata={
                "candidates_found": dense.metadata.get("candidates_found", 0),
                "dense_results_count": len(dense.results),
                "sparse_results_count": len(sparse),
                "fusion_applied": True,
                "weights": {"dense": config.dense_weight, "sparse": config.sparse_weight},
                "final_results": len(fused),
                "parameters": config.parameters(),
            },
        )
        for reason in skipped:
            result.record_degraded("keyword_search", reason)
        return result

    async def _candidates(self, text: str, config: PipelineConfig) -> CandidateSet:
        try:
            query_vector = await call_with_retry(
                lambda: self.embedder.embed(text),
                self.embedding_retry,
                name="embedding",
                timeout=self.settings.embedding_timeout,
            )
        except ValidationError:
            raise
        except RetrievalError as exc:
            raise StageFailedError("embedding", exc) from exc

        try:
            chunks = await asyncio.wait_for(
                self.similarity_source.search(
                    query_vector,
                    threshold=config.threshold,
                    limit=config.top_k,
                    filters=config.filters,
                    include_embeddings=True,
                ),
                timeout=self.settings.search_timeout,
            )
        except asyncio.TimeoutError as exc:
            timeout = ProviderTimeoutError("similarity search timed out", provider="similarity_search")
            raise StageFailedError("similarity_search", timeout) from exc
        except ValidationError:
            raise
        except Exception as exc:  # noqa: BLE001 - vector store clients raise arbitrary types
            raise StageFailedError(
                "similarity_search", classify_provider_error(exc, "similarity_search")
            ) from exc
        return CandidateSet(query_embedding=list(query_vector), chunks=list(chunks))

    async def _keyword_or_degrade(
        self, query: str, limit: int, config: PipelineConfig, skipped: list[str]
    ) -> list[Chunk]:
        if self.keyword_source is None:
            skipped.append("keyword search unavailable")
            PIPELINE_DEGRADED.labels(stage="keyword_search").inc()
            return []
        try:
            return await asyncio.wait_for(
                self.keyword_source.search(query, limit=limit, filters=config.filters),
                timeout=self.settings.search_timeout,
            )
        except Exception as exc:  # noqa: BLE001 - sparse results are optional
            reason = "keyword search timed out" if isinstance(exc, asyncio.TimeoutError) else str(exc)
            logger.warning("Keyword search degraded for '%s': %s", preview(query), reason)
            PIPELINE_DEGRADED.labels(stage="keyword_search").inc()
            skipped.append(reason or exc.__class__.__name__)
            return []

    async def _rerank_or_degrade(
        self, query: str, base: RetrievalResult, config: PipelineConfig
    ) -> RerankOutcome | None:
        if self.reranking is None:
            base.record_degraded("reranking", "reranker unavailable")
            PIPELINE_DEGRADED.labels(stage="reranking").inc()
            return None
        top_n = min(config.rerank_top_n, len(base.results))
        logger.info("Reranking %d results", len(base.results))
        try:
            return await self.reranking.rerank(query, base.results, top_n=top_n)
        except RetrievalError as exc:
            logger.warning(
                "Reranking failed, returning pre-rerank results: %s",
                exc,
                extra=log_context(stage="reranking"),
            )
            PIPELINE_DEGRADED.labels(stage="reranking").inc()
            base.record_degraded("reranking", str(exc))
            return None

    async def _benchmark_one(self, index: int, query: str, config: PipelineConfig) -> dict[str, Any]:
        started = time.perf_counter()
        try:
            result = await self.retrieve_mmr(query, config)
        except RetrievalError as exc:
            return {
                "config_index": index,
                "parameters": config.parameters(),
                "error": str(exc),
                "performance": {
                    "execution_time_ms": (time.perf_counter() - started) * 1000.0,
                    "failed": True,
                },
            }
        return {
            "config_index": index,
            "parameters": config.parameters(),
            "result": result.to_dict(),
            "performance": {
                "execution_time_ms": (time.perf_counter() - started) * 1000.0,
                "results_count": len(result.results),
                "avg_similarity": result.metadata.get("avg_similarity", 0.0),
                "diversity_score": result.metadata.get("diversity_score", 1.0),
                "failed": False,
            },
        }

    def _resolve(self, config: PipelineConfig | None) -> PipelineConfig:
        return (config or self.default_config()).validate()


@contextmanager
def _instrument(strategy: str) -> Iterator[None]:
    started = time.perf_counter()
    status = "ok"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        RETRIEVAL_LATENCY.labels(strategy=strategy).observe(time.perf_counter() - started)
        RETRIEVAL_REQUESTS.labels(strategy=strategy, status=status).inc()


__all__ = ["RetrievalOrchestrator"]
