"""API integration tests."""

from __future__ import annotations

from pathlib import Path

import orjson
import pytest
from fastapi.testclient import TestClient

from docqa.app import app

CORPUS = [
    {"id": "vec-1", "content": "Vector databases store embeddings for similarity search", "source": "guide.md"},
    {"id": "vec-2", "content": "Similarity search compares query embeddings with stored vectors", "source": "guide.md"},
    {"id": "bm25-1", "content": "BM25 ranks documents by keyword frequency", "source": "notes.md"},
    {"id": "rerank-1", "content": "Cross encoders rerank query document pairs", "source": "notes.md"},
    {"id": "misc-1", "content": "Fresh pasta needs only flour and eggs", "source": "kitchen.md"},
]


@pytest.fixture
def corpus_path(tmp_path: Path) -> Path:
    path = tmp_path / "corpus.json"
    path.write_bytes(orjson.dumps(CORPUS))
    return path


@pytest.fixture
def client(corpus_path: Path, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setenv("DOCQA_CORPUS_PATH", str(corpus_path))
    monkeypatch.setenv("DOCQA_EMBEDDING_DIM", "256")
    with TestClient(app) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_stats_reports_loaded_corpus(client: TestClient) -> None:
    resp = client.get("/stats")
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["store"]["total_chunks"] == len(CORPUS)
    assert payload["store"]["embedding_model"] == "mock-hashed-256"
    assert payload["capabilities"]["reranking"] == "mock"


def test_mmr_query_flow(client: TestClient) -> None:
    resp = client.post(
        "/retrieval/mmr",
        json={"query": "vector databases store embeddings", "final_k": 2, "threshold": 0.1},
    )
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["success"] is True
    assert payload["results"][0]["id"] == "vec-1"
    assert payload["metadata"]["mmr_applied"] is True
    assert "embedding" not in payload["results"][0]


def test_unmatched_query_returns_empty_result(client: TestClient) -> None:
    resp = client.post("/retrieval/mmr", json={"query": "zebra migration patterns", "threshold": 0.9})
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["results"] == []
    assert payload["metadata"]["candidates_found"] == 0
    assert payload["metadata"]["mmr_applied"] is False


def test_complete_pipeline_reranks(client: TestClient) -> None:
    resp = client.post(
        "/retrieval/complete",
        json={"query": "similarity search embeddings", "threshold": 0.1, "rerank_top_n": 2},
    )
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["metadata"]["pipeline"] == "mmr_rerank"
    assert len(payload["results"]) <= 2
    assert all(item["rerank_score"] is not None for item in payload["results"])


def test_hybrid_uses_keyword_search(client: TestClient) -> None:
    resp = client.post("/retrieval/hybrid", json={"query": "BM25 keyword frequency", "threshold": 0.1})
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["metadata"]["sparse_results_count"] >= 1
    assert payload["results"][0]["id"] == "bm25-1"


def test_compare_and_benchmark(client: TestClient) -> None:
    compare = client.post("/retrieval/compare", json={"query": "similarity search", "threshold": 0.1})
    assert compare.status_code == 200
    assert "overlap_count" in compare.json()["comparison"]

    bench = client.post(
        "/retrieval/benchmark",
        json={"query": "similarity search", "configurations": [{"final_k": 1}, {"final_k": 2, "threshold": 0.1}]},
    )
    assert bench.status_code == 200
    assert bench.json()["configurations_count"] == 2

    too_many = client.post(
        "/retrieval/benchmark",
        json={"query": "similarity search", "configurations": [{}] * 6},
    )
    assert too_many.status_code == 400
    assert too_many.json()["success"] is False
    assert too_many.json()["error"] == "ValidationError"


def test_request_validation(client: TestClient) -> None:
    assert client.post("/retrieval/mmr", json={"query": ""}).status_code == 422
    assert client.post("/retrieval/mmr", json={"query": "x", "mmr_lambda": 3}).status_code == 422
    assert client.post("/retrieval/multi-step", json={"query": "x", "steps": 11}).status_code == 422


def test_rerank_endpoints(client: TestClient) -> None:
    chunks = [
        {"id": "a", "content": "pasta with tomato sauce"},
        {"id": "b", "content": "reranking query document pairs"},
    ]
    resp = client.post("/reranking/rerank", json={"query": "rerank document pairs", "chunks": chunks, "top_n": 1})
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["reranked_count"] == 1
    assert payload["results"][0]["id"] == "b"

    batch = client.post(
        "/reranking/batch",
        json={
            "requests": [
                {"query": "pasta", "chunks": chunks},
                {"query": "", "chunks": chunks},
                {"query": "reranking", "chunks": chunks},
            ]
        },
    )
    assert batch.status_code == 200
    assert batch.json()["successful"] == 2
    assert batch.json()["errors"][0]["index"] == 1

    cost = client.post("/reranking/estimate-cost", json={"chunk_count": 4})
    assert cost.status_code == 200
    assert cost.json()["formatted_cost"] == "$0.001000"


def test_metrics_endpoint(client: TestClient) -> None:
    client.post("/retrieval/mmr", json={"query": "vector databases"})
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "docqa_retrieval_requests_total" in resp.text


def test_disabled_embeddings_fail_with_stage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DOCQA_EMBEDDING_PROVIDER", "disabled")
    with TestClient(app) as client:
        resp = client.post("/retrieval/mmr", json={"query": "vector databases"})
    assert resp.status_code == 502
    assert resp.json()["stage"] == "embedding"


def test_disabled_reranking_is_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DOCQA_RERANK_PROVIDER", "disabled")
    with TestClient(app) as client:
        resp = client.post("/reranking/rerank", json={"query": "q", "chunks": [{"id": "a", "content": "text"}]})
        complete = client.post("/retrieval/complete", json={"query": "vector databases"})
    assert resp.status_code == 503
    assert complete.status_code == 200
