"""Keyword (sparse) search over the in-memory corpus."""

from __future__ import annotations

from typing import Protocol, Sequence

from rank_bm25 import BM25Okapi

from docqa.core.logging import get_logger
from docqa.models.entities import Chunk, SearchFilters
from docqa.providers.vector_store import InMemoryVectorStore
from docqa.utils.text import preview, tokenize

logger = get_logger(__name__)


class KeywordSource(Protocol):
    async def search(
        self,
        query: str,
        limit: int,
        filters: SearchFilters | None = None,
    ) -> list[Chunk]:
        ...


def bm25_rank(query: str, documents: Sequence[tuple[str, str]]) -> list[tuple[str, float]]:
    """BM25 score per ``(doc_id, text)`` pair, in input order."""
    if not documents:
        return []
    corpus_tokens = [tokenize(text) for _, text in documents]
    model = BM25Okapi(corpus_tokens)
    scores = model.get_scores(tokenize(query))
    return [(doc_id, float(score)) for (doc_id, _), score in zip(documents, scores)]


class BM25KeywordSource:
    """Best-effort lexical search; failures yield an empty list."""

    def __init__(self, store: InMemoryVectorStore) -> None:
        self.store = store

    async def search(
        self,
        query: str,
        limit: int,
        filters: SearchFilters | None = None,
    ) -> list[Chunk]:
        try:
            return self._search(query, limit, filters)
        except Exception as exc:  # noqa: BLE001 - keyword search never fails the request
            logger.warning("Keyword search failed for '%s': %s", preview(query), exc)
            return []

    def _search(self, query: str, limit: int, filters: SearchFilters | None) -> list[Chunk]:
        if limit <= 0 or not tokenize(query):
            return []
        pool = [chunk for chunk in self.store.chunks() if filters is None or filters.matches(chunk)]
        scored = bm25_rank(query, [(chunk.id, chunk.content) for chunk in pool])
        ranked = sorted(
            (
                (chunk, score)
                for chunk, (_, score) in zip(pool, scored)
                if score > 0
            ),
            key=lambda item: item[1],
            reverse=True,
        )
        return [
            chunk.enrich(keyword_score=score, embedding=None, retrieval_method="keyword")
            for chunk, score in ranked[:limit]
        ]


__all__ = ["BM25KeywordSource", "KeywordSource", "bm25_rank"]
