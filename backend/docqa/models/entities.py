"""Internal dataclasses passed between retrieval stages."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from docqa.core.errors import ValidationError

if TYPE_CHECKING:
    from docqa.core.config import Settings

_IMMUTABLE_FIELDS = frozenset({"id", "content"})


@dataclass(slots=True)
class Chunk:
    id: str
    content: str
    source: str | None = None
    title: str | None = None
    section: str | None = None
    position: int | None = None
    embedding: list[float] | None = None
    similarity: float | None = None
    keyword_score: float | None = None
    mmr_score: float | None = None
    rerank_score: float | None = None
    rerank_rank: int | None = None
    original_rank: int | None = None
    rank_improvement: int | None = None
    rrf_score: float | None = None
    dense_rank: int | None = None
    sparse_rank: int | None = None
    retrieval_method: str = "vector"

    def enrich(self, **changes: Any) -> "Chunk":
        """Return a copy carrying new stage annotations; identity is fixed."""
        frozen = _IMMUTABLE_FIELDS.intersection(changes)
        if frozen:
            raise ValueError(f"Chunk fields {sorted(frozen)} cannot change during enrichment")
        return dataclasses.replace(self, **changes)

    def to_dict(self, include_embedding: bool = False) -> dict[str, Any]:
        payload = dataclasses.asdict(self)
        if not include_embedding:
            payload.pop("embedding", None)
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Chunk":
        known = {item.name for item in dataclasses.fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        if "content" not in values and "text" in data:
            values["content"] = data["text"]
        if "id" not in values or values["id"] is None:
            raise ValidationError("chunk record is missing an id")
        values["id"] = str(values["id"])
        values.setdefault("content", "")
        if values.get("embedding") is not None:
            values["embedding"] = [float(value) for value in values["embedding"]]
        return cls(**values)


@dataclass(frozen=True, slots=True)
class SearchFilters:
    source: str | None = None
    section: str | None = None

    def matches(self, chunk: Chunk) -> bool:
        if self.source is not None and chunk.source != self.source:
            return False
        if self.section is not None and chunk.section != self.section:
            return False
        return True

    @property
    def is_empty(self) -> bool:
        return self.source is None and self.section is None


@dataclass(slots=True)
class CandidateSet:
    """Chunks from one retrieval stage plus the query vector that produced them."""

    query_embedding: list[float]
    chunks: list[Chunk]

    def __len__(self) -> int:
        return len(self.chunks)


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    top_k: int = 50
    final_k: int = 10
    rerank_top_n: int = 5
    mmr_lambda: float = 0.7
    threshold: float = 0.3
    source: str | None = None
    section: str | None = None
    dense_weight: float = 0.7
    sparse_weight: float = 0.3
    use_reranking: bool = True

    @classmethod
    def from_settings(cls, settings: "Settings", **overrides: Any) -> "PipelineConfig":
        values: dict[str, Any] = {
            "top_k": settings.top_k,
            "final_k": settings.final_k,
            "rerank_top_n": settings.rerank_top_n,
            "mmr_lambda": settings.mmr_lambda,
            "threshold": settings.threshold,
            "dense_weight": settings.dense_weight,
            "sparse_weight": settings.sparse_weight,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def with_updates(self, **changes: Any) -> "PipelineConfig":
        return dataclasses.replace(self, **changes)

    @property
    def filters(self) -> SearchFilters:
        return SearchFilters(source=self.source, section=self.section)

    def validate(self) -> "PipelineConfig":
        if self.top_k < 1:
            raise ValidationError("top_k must be at least 1")
        if self.final_k < 0:
            raise ValidationError("final_k must be non-negative")
        if not 1 <= self.rerank_top_n <= 100:
            raise ValidationError("rerank_top_n must be between 1 and 100")
        if not 0.0 <= self.mmr_lambda <= 1.0:
            raise ValidationError("mmr_lambda must be between 0 and 1")
        if not 0.0 <= self.threshold <= 1.0:
            raise ValidationError("threshold must be between 0 and 1")
        return self

    def parameters(self) -> dict[str, Any]:
        return {
            "top_k": self.top_k,
            "final_k": self.final_k,
            "rerank_top_n": self.rerank_top_n,
            "mmr_lambda": self.mmr_lambda,
            "threshold": self.threshold,
            "source": self.source,
            "section": self.section,
        }


@dataclass(frozen=True, slots=True)
class DegradedStage:
    """An optional stage that was skipped; the request still succeeded."""

    stage: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"stage": self.stage, "reason": self.reason}


@dataclass(slots=True)
class RetrievalResult:
    query: str
    results: list[Chunk]
    metadata: dict[str, Any] = field(default_factory=dict)

    def record_degraded(self, stage: str, reason: str) -> None:
        self.metadata[f"{stage}_skipped"] = True
        self.metadata[f"{stage}_skip_reason"] = reason
        self.metadata.setdefault("degraded", []).append(DegradedStage(stage, reason).to_dict())

    @property
    def ids(self) -> list[str]:
        return [chunk.id for chunk in self.results]

    def to_dict(self, include_embeddings: bool = False) -> dict[str, Any]:
        return {
            "query": self.query,
            "results": [chunk.to_dict(include_embedding=include_embeddings) for chunk in self.results],
            "metadata": self.metadata,
        }


def dedupe_by_id(chunks: Sequence[Chunk]) -> list[Chunk]:
    """Drop repeated ids, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[Chunk] = []
    for chunk in chunks:
        if chunk.id in seen:
            continue
        seen.add(chunk.id)
        unique.append(chunk)
    return unique


__all__ = [
    "CandidateSet",
    "Chunk",
    "DegradedStage",
    "PipelineConfig",
    "RetrievalResult",
    "SearchFilters",
    "dedupe_by_id",
]
