"""Similarity source abstraction and an in-memory implementation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol, Sequence

import numpy as np
import orjson

from docqa.core.errors import ConfigurationError, ValidationError
from docqa.core.logging import get_logger
from docqa.models.entities import Chunk, SearchFilters
from docqa.providers.embeddings import EmbeddingProvider

logger = get_logger(__name__)


class SimilaritySource(Protocol):
    async def search(
        self,
        query_vector: Sequence[float],
        threshold: float,
        limit: int,
        filters: SearchFilters | None = None,
        include_embeddings: bool = True,
    ) -> list[Chunk]:
        ...


class InMemoryVectorStore:
    """Cosine-similarity index over chunks embedded by a single model."""

    def __init__(self, dim: int, embedding_model: str | None = None) -> None:
        self.dim = dim
        self.embedding_model = embedding_model
        self._chunks: list[Chunk] = []
        self._positions: dict[str, int] = {}
        self._matrix = np.zeros((0, dim), dtype=np.float64)

    @property
    def size(self) -> int:
        return len(self._chunks)

    def chunks(self) -> list[Chunk]:
        return list(self._chunks)

    def upsert(self, chunks: Sequence[Chunk], model: str | None = None) -> None:
        if not chunks:
            return
        if model is not None and self.embedding_model is not None and model != self.embedding_model:
            raise ConfigurationError(
                f"Chunks embedded with '{model}' cannot join a store indexed with '{self.embedding_model}'"
            )
        for chunk in chunks:
            if not chunk.content.strip():
                raise ValidationError(f"chunk {chunk.id} has empty content")
            if chunk.embedding is None:
                raise ValidationError(f"chunk {chunk.id} has no embedding")
            if len(chunk.embedding) != self.dim:
                raise ValueError("Vector dimension mismatch")
        for chunk in chunks:
            stored = chunk.enrich(similarity=None)
            position = self._positions.get(chunk.id)
            if position is None:
                self._positions[chunk.id] = len(self._chunks)
                self._chunks.append(stored)
            else:
                self._chunks[position] = stored
        self._matrix = np.asarray([chunk.embedding for chunk in self._chunks], dtype=np.float64)

    async def search(
        self,
        query_vector: Sequence[float],
        threshold: float,
        limit: int,
        filters: SearchFilters | None = None,
        include_embeddings: bool = True,
    ) -> list[Chunk]:
        if not self._chunks or limit <= 0:
            return []
        if len(query_vector) != self.dim:
            raise ValueError("Query vector dimension mismatch")
        scores = _cosine_scores(self._matrix, np.asarray(query_vector, dtype=np.float64))
        hits: list[tuple[int, float]] = []
        for idx, score in enumerate(scores):
            if score < threshold:
                continue
            if filters is not None and not filters.matches(self._chunks[idx]):
                continue
            hits.append((idx, float(score)))
        hits.sort(key=lambda item: item[1], reverse=True)
        results: list[Chunk] = []
        for idx, score in hits[:limit]:
            chunk = self._chunks[idx]
            results.append(
                chunk.enrich(
                    similarity=score,
                    embedding=list(chunk.embedding) if include_embeddings and chunk.embedding else None,
                    retrieval_method="vector",
                )
            )
        return results

    def stats(self) -> dict[str, Any]:
        total = len(self._chunks)
        sources = {chunk.source for chunk in self._chunks if chunk.source}
        avg_length = sum(len(chunk.content) for chunk in self._chunks) / total if total else 0.0
        return {
            "total_chunks": total,
            "unique_sources": len(sources),
            "avg_content_length": avg_length,
            "embedding_model": self.embedding_model,
        }


def _cosine_scores(matrix: np.ndarray, vector: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(vector)
    dots = matrix @ vector
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / norms, 0.0)
    return scores.astype(np.float64)


def load_corpus_file(path: Path) -> tuple[str | None, list[dict[str, Any]]]:
    """Read a JSON corpus: either a list of chunk records or ``{embedding_model, chunks}``."""
    raw = orjson.loads(path.expanduser().read_bytes())
    if isinstance(raw, list):
        return None, [dict(item) for item in raw]
    if isinstance(raw, Mapping):
        records = raw.get("chunks") or []
        return raw.get("embedding_model"), [dict(item) for item in records]
    raise ValidationError(f"unsupported corpus layout in {path}")


async def index_records(
    store: InMemoryVectorStore,
    embedder: EmbeddingProvider,
    records: Iterable[Mapping[str, Any]],
    embedding_model: str | None = None,
) -> int:
    """Embed records lacking vectors and add everything to ``store``."""
    model = store.embedding_model or embedder.model_name
    if model != embedder.model_name:
        raise ConfigurationError(
            f"Store holds '{model}' vectors but the embedder is '{embedder.model_name}'"
        )
    declared = embedding_model
    chunks: list[Chunk] = []
    for record in records:
        chunk = Chunk.from_dict(record)
        if chunk.embedding is None:
            chunk = chunk.enrich(embedding=await embedder.embed(chunk.content))
        elif declared is not None and declared != model:
            raise ConfigurationError(
                f"Corpus vectors come from '{declared}' but queries are embedded with '{model}'"
            )
        elif declared is None:
            raise ConfigurationError(
                f"Chunk {chunk.id} carries a precomputed embedding but the corpus does not declare its embedding_model"
            )
        chunks.append(chunk)
    store.upsert(chunks, model=model)
    store.embedding_model = model
    logger.info("Indexed %d chunks with %s", len(chunks), model)
    return len(chunks)


__all__ = ["InMemoryVectorStore", "SimilaritySource", "index_records", "load_corpus_file"]
