"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

RETRIEVAL_REQUESTS = Counter(
    "docqa_retrieval_requests_total",
    "Retrieval pipeline invocations",
    labelnames=("strategy", "status"),
    registry=REGISTRY,
)

RETRIEVAL_LATENCY = Histogram(
    "docqa_retrieval_latency_seconds",
    "Latency of retrieval pipelines",
    labelnames=("strategy",),
    registry=REGISTRY,
)

RERANK_CALLS = Counter(
    "docqa_rerank_calls_total",
    "Reranker calls by outcome",
    labelnames=("outcome",),
    registry=REGISTRY,
)

PROVIDER_RETRIES = Counter(
    "docqa_provider_retries_total",
    "Retries issued against external providers",
    labelnames=("operation",),
    registry=REGISTRY,
)

PIPELINE_DEGRADED = Counter(
    "docqa_pipeline_degraded_total",
    "Optional stages skipped because they failed or were unavailable",
    labelnames=("stage",),
    registry=REGISTRY,
)

CANDIDATE_POOL_SIZE = Histogram(
    "docqa_candidate_pool_size",
    "Candidates returned by the similarity source per request",
    buckets=(0, 1, 5, 10, 25, 50, 100, 250),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "CANDIDATE_POOL_SIZE",
    "PIPELINE_DEGRADED",
    "PROVIDER_RETRIES",
    "REGISTRY",
    "RERANK_CALLS",
    "RETRIEVAL_LATENCY",
    "RETRIEVAL_REQUESTS",
    "metrics_response",
]
