"""Test fixtures for the retrieval core."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable, Sequence

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from docqa.core.config import Settings  # noqa: E402
from docqa.models.entities import Chunk  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    for key in list(os.environ):
        if key.startswith("DOCQA_") and key != "DOCQA_LOG_LEVEL":
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DOCQA_CONFIG", str(BACKEND_ROOT / "tests" / "missing-config.yaml"))
    monkeypatch.setenv("DOCQA_EMBEDDING_RETRY_DELAY", "0")
    monkeypatch.setenv("DOCQA_RERANK_RETRY_DELAY", "0")
    monkeypatch.setenv("DOCQA_RERANK_BATCH_DELAY", "0")

    from docqa.api import dependencies as deps

    deps.reset_dependencies()
    yield
    deps.reset_dependencies()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        embedding_retry_delay=0.0,
        rerank_retry_delay=0.0,
        rerank_batch_delay=0.0,
    )


ChunkFactory = Callable[..., Chunk]


@pytest.fixture
def make_chunk() -> ChunkFactory:
    def factory(
        chunk_id: str,
        similarity: float | None = None,
        embedding: Sequence[float] | None = None,
        content: str | None = None,
        **fields: object,
    ) -> Chunk:
        return Chunk(
            id=chunk_id,
            content=content if content is not None else f"content of {chunk_id}",
            similarity=similarity,
            embedding=list(embedding) if embedding is not None else None,
            **fields,
        )

    return factory


@pytest.fixture
def corpus(make_chunk: ChunkFactory) -> list[Chunk]:
    """Six candidates with preset similarities; c1 and c2 are near-duplicates."""
    return [
        make_chunk("c1", 0.92, [1.0, 0.0, 0.0], "Vector databases store dense embeddings", source="guide.md"),
        make_chunk("c2", 0.90, [0.99, 0.14, 0.0], "Vector databases keep dense embeddings", source="guide.md"),
        make_chunk("c3", 0.75, [0.0, 1.0, 0.0], "BM25 ranks documents by keyword overlap", source="notes.md"),
        make_chunk("c4", 0.60, [0.0, 0.0, 1.0], "Rerankers score query and document pairs", source="notes.md"),
        make_chunk("c5", 0.45, [0.5, 0.5, 0.0], "Hybrid search fuses several rankings", source="guide.md"),
        make_chunk("c6", 0.20, [0.0, 0.5, 0.5], "Unrelated note about cooking pasta", source="misc.md"),
    ]
