"""Tests for BM25 keyword search."""

from __future__ import annotations

import pytest

from docqa.models.entities import SearchFilters
from docqa.providers.keyword import BM25KeywordSource, bm25_rank
from docqa.providers.vector_store import InMemoryVectorStore

DOCS = [
    ("d1", "Okapi BM25 weighs term frequency against document length"),
    ("d2", "Dense retrieval embeds queries and documents"),
    ("d3", "Rerankers compare query document pairs"),
    ("d4", "Maximal marginal relevance promotes diversity"),
    ("d5", "Fusion combines dense and sparse rankings"),
]


@pytest.fixture
def store(make_chunk) -> InMemoryVectorStore:
    index = InMemoryVectorStore(dim=2, embedding_model="test-model")
    index.upsert(
        [
            make_chunk(doc_id, embedding=[1.0, 0.0], content=text, source="a.md" if doc_id != "d4" else "b.md")
            for doc_id, text in DOCS
        ]
    )
    return index


def test_bm25_rank_scores_matching_document_highest() -> None:
    scores = dict(bm25_rank("bm25 frequency", DOCS))
    assert max(scores, key=scores.get) == "d1"
    assert scores["d2"] == 0.0
    assert bm25_rank("anything", []) == []


@pytest.mark.asyncio
async def test_keyword_search_returns_positive_hits_without_embeddings(store: InMemoryVectorStore) -> None:
    results = await BM25KeywordSource(store).search("diversity", limit=5)
    assert [chunk.id for chunk in results] == ["d4"]
    assert results[0].keyword_score > 0
    assert results[0].embedding is None
    assert results[0].retrieval_method == "keyword"


@pytest.mark.asyncio
async def test_keyword_search_applies_filters_and_limits(store: InMemoryVectorStore) -> None:
    source = BM25KeywordSource(store)
    assert await source.search("diversity", limit=5, filters=SearchFilters(source="a.md")) == []
    assert await source.search("diversity", limit=0) == []
    assert await source.search("   ", limit=5) == []


@pytest.mark.asyncio
async def test_keyword_search_swallows_internal_failures() -> None:
    class BrokenStore:
        def chunks(self):
            raise RuntimeError("index corrupted")

    assert await BM25KeywordSource(BrokenStore()).search("anything", limit=3) == []
