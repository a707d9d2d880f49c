"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from docqa.core.config import RetrievalCapabilities, Settings, get_settings, resolve_capabilities
from docqa.core.logging import get_logger
from docqa.providers.embeddings import EmbeddingProvider, build_embedding_provider
from docqa.providers.keyword import BM25KeywordSource
from docqa.providers.rerankers import build_reranker
from docqa.providers.vector_store import InMemoryVectorStore, index_records, load_corpus_file
from docqa.retrieval import RerankingOrchestrator, RetrievalOrchestrator

logger = get_logger(__name__)

_EMBEDDER: EmbeddingProvider | None = None
_VECTOR_STORE: InMemoryVectorStore | None = None
_RERANKING: RerankingOrchestrator | None = None
_RERANKING_RESOLVED = False
_RETRIEVAL: RetrievalOrchestrator | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_capabilities() -> RetrievalCapabilities:
    return resolve_capabilities(get_app_settings())


def get_embedding_provider() -> EmbeddingProvider:
    global _EMBEDDER
    if _EMBEDDER is None:
        _EMBEDDER = build_embedding_provider(get_app_settings())
    return _EMBEDDER


def get_vector_store() -> InMemoryVectorStore:
    global _VECTOR_STORE
    if _VECTOR_STORE is None:
        embedder = get_embedding_provider()
        _VECTOR_STORE = InMemoryVectorStore(dim=embedder.dim, embedding_model=embedder.model_name)
    return _VECTOR_STORE


def get_reranking_orchestrator() -> RerankingOrchestrator | None:
    global _RERANKING, _RERANKING_RESOLVED
    if not _RERANKING_RESOLVED:
        settings = get_app_settings()
        reranker = build_reranker(settings)
        _RERANKING = RerankingOrchestrator(reranker, settings=settings) if reranker is not None else None
        _RERANKING_RESOLVED = True
    return _RERANKING


def get_retrieval_orchestrator() -> RetrievalOrchestrator:
    global _RETRIEVAL
    if _RETRIEVAL is None:
        store = get_vector_store()
        _RETRIEVAL = RetrievalOrchestrator(
            embedder=get_embedding_provider(),
            similarity_source=store,
            keyword_source=BM25KeywordSource(store),
            reranking=get_reranking_orchestrator(),
            settings=get_app_settings(),
            capabilities=get_capabilities(),
        )
    return _RETRIEVAL


async def load_configured_corpus() -> int:
    """Index the corpus named by ``corpus_path`` into the shared store, if any."""
    settings = get_app_settings()
    if settings.corpus_path is None:
        return 0
    if not settings.corpus_path.exists():
        logger.warning("Corpus file %s does not exist; starting with an empty store", settings.corpus_path)
        return 0
    embedding_model, records = load_corpus_file(settings.corpus_path)
    return await index_records(
        get_vector_store(),
        get_embedding_provider(),
        records,
        embedding_model=embedding_model,
    )


def reset_dependencies() -> None:
    global _EMBEDDER, _VECTOR_STORE, _RERANKING, _RERANKING_RESOLVED, _RETRIEVAL
    _EMBEDDER = None
    _VECTOR_STORE = None
    _RERANKING = None
    _RERANKING_RESOLVED = False
    _RETRIEVAL = None
    get_app_settings.cache_clear()
    get_settings.cache_clear()


__all__ = [
    "get_app_settings",
    "get_capabilities",
    "get_embedding_provider",
    "get_reranking_orchestrator",
    "get_retrieval_orchestrator",
    "get_vector_store",
    "load_configured_corpus",
    "reset_dependencies",
]
