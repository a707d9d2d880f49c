"""Embedding providers."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from docqa.core.config import ProviderMode, Settings
from docqa.core.errors import ProviderError, ValidationError
from docqa.utils.text import tokenize

try:  # pragma: no cover - optional dependency
    from sentence_transformers import SentenceTransformer

    HAS_SENTENCE_TRANSFORMERS = True
except ImportError:  # pragma: no cover
    SentenceTransformer = None  # type: ignore[assignment]
    HAS_SENTENCE_TRANSFORMERS = False

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    model_name: str
    dim: int

    async def embed(self, text: str) -> list[float]:
        ...


@dataclass(slots=True)
class EmbeddingBatch:
    vectors: list[list[float]]
    model: str
    dim: int
    backend: str


class MockEmbeddingProvider:
    """Hashed bag-of-words embeddings with deterministic output.

    Vectors from this provider live in their own embedding space; the
    ``model_name`` tag keeps them from being searched against a corpus that
    was embedded by a real model.
    """

    backend = "hashed"

    def __init__(self, dim: int = 384) -> None:
        if dim < 1:
            raise ValueError("dim must be positive")
        self.dim = dim
        self.model_name = f"mock-hashed-{dim}"

    def encode(self, texts: Iterable[str]) -> EmbeddingBatch:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self.dim
            for token in tokenize(text):
                vector[_hash_token(token, self.dim)] += 1.0
            _normalize(vector)
            vectors.append(vector)
        return EmbeddingBatch(vectors=vectors, model=self.model_name, dim=self.dim, backend=self.backend)

    async def embed(self, text: str) -> list[float]:
        _require_text(text)
        return self.encode([text]).vectors[0]


class SentenceTransformerEmbeddingProvider:
    """Local sentence-transformers model, executed off the event loop."""

    backend = "sentence-transformers"

    def __init__(self, model_name: str, dim: int, device: str | None = None) -> None:
        if not HAS_SENTENCE_TRANSFORMERS:
            raise ImportError(
                "sentence-transformers is required for live embeddings. "
                "Install with: pip install 'docqa-retrieval[live]'"
            )
        self.model_name = model_name
        self.dim = dim
        self.device = device
        self._model: Any = None

    def _load_model(self) -> Any:
        if self._model is None:
            logger.info("Loading embedding model: %s", self.model_name)
            self._model = SentenceTransformer(self.model_name, device=self.device)
        return self._model

    def _encode(self, text: str) -> list[float]:
        model = self._load_model()
        vector = model.encode([text.strip()], normalize_embeddings=True)[0]
        values = [float(value) for value in vector]
        if len(values) != self.dim:
            raise ProviderError(
                f"Embedding dimension mismatch. Expected {self.dim}, got {len(values)}",
                provider=self.model_name,
            )
        return values

    async def embed(self, text: str) -> list[float]:
        _require_text(text)
        return await asyncio.to_thread(self._encode, text)


class DisabledEmbeddingProvider:
    """Placeholder used when no embedding provider is configured."""

    def __init__(self, dim: int = 384) -> None:
        self.dim = dim
        self.model_name = "disabled"

    async def embed(self, text: str) -> list[float]:
        raise ProviderError("embedding provider is disabled", provider=self.model_name)


def build_embedding_provider(settings: Settings) -> EmbeddingProvider:
    mode = settings.embedding_provider
    if mode is ProviderMode.LIVE:
        return SentenceTransformerEmbeddingProvider(settings.embedding_model, settings.embedding_dim)
    if mode is ProviderMode.MOCK:
        logger.warning("Using mock embeddings; similarity scores are not semantically meaningful")
        return MockEmbeddingProvider(dim=settings.embedding_dim)
    return DisabledEmbeddingProvider(dim=settings.embedding_dim)


def _require_text(text: str) -> None:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("text to embed must be a non-empty string")


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "DisabledEmbeddingProvider",
    "EmbeddingBatch",
    "EmbeddingProvider",
    "MockEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "build_embedding_provider",
]
