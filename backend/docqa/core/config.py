"""Service settings, provider modes and resolved retrieval capabilities."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

from docqa.core.errors import ConfigurationError

ENV_PREFIX = "DOCQA_"
DEFAULT_CONFIG_PATH = Path("~/.config/docqa/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("embeddings", "provider"): "embedding_provider",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "timeout"): "embedding_timeout",
    ("embeddings", "retry_attempts"): "embedding_retry_attempts",
    ("embeddings", "retry_delay"): "embedding_retry_delay",
    ("reranking", "provider"): "rerank_provider",
    ("reranking", "model"): "rerank_model",
    ("reranking", "max_chunk_length"): "rerank_max_chunk_length",
    ("reranking", "retry_attempts"): "rerank_retry_attempts",
    ("reranking", "retry_delay"): "rerank_retry_delay",
    ("reranking", "batch_delay"): "rerank_batch_delay",
    ("reranking", "cost_per_search"): "rerank_cost_per_search",
    ("reranking", "timeout"): "rerank_timeout",
    ("retrieval", "top_k"): "top_k",
    ("retrieval", "final_k"): "final_k",
    ("retrieval", "rerank_top_n"): "rerank_top_n",
    ("retrieval", "mmr_lambda"): "mmr_lambda",
    ("retrieval", "threshold"): "threshold",
    ("retrieval", "search_timeout"): "search_timeout",
    ("hybrid", "dense_weight"): "dense_weight",
    ("hybrid", "sparse_weight"): "sparse_weight",
    ("hybrid", "rrf_k"): "rrf_k",
    ("hybrid", "keyword_search_enabled"): "keyword_search_enabled",
    ("storage", "corpus_path"): "corpus_path",
    ("server", "cors_origins"): "cors_origins",
}


class ProviderMode(str, Enum):
    """How an external collaborator is wired for this process."""

    DISABLED = "disabled"
    MOCK = "mock"
    LIVE = "live"


class Settings(BaseModel):
    """Retrieval service settings; see ``from_yaml`` for how sources are layered."""

    embedding_provider: ProviderMode = ProviderMode.MOCK
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dim: int = Field(default=384, ge=1)
    embedding_timeout: float = 30.0
    embedding_retry_attempts: int = Field(default=3, ge=1)
    embedding_retry_delay: float = Field(default=1.0, ge=0.0)

    rerank_provider: ProviderMode = ProviderMode.MOCK
    rerank_model: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"
    rerank_max_chunk_length: int = Field(default=4096, ge=1)
    rerank_retry_attempts: int = Field(default=3, ge=1)
    rerank_retry_delay: float = Field(default=1.0, ge=0.0)
    rerank_batch_delay: float = Field(default=0.1, ge=0.0)
    rerank_cost_per_search: float = 0.001
    rerank_timeout: float = 30.0

    top_k: int = 50
    final_k: int = 10
    rerank_top_n: int = 5
    mmr_lambda: float = 0.7
    threshold: float = 0.3
    search_timeout: float = 30.0

    dense_weight: float = 0.7
    sparse_weight: float = 0.3
    rrf_k: int = 60
    keyword_search_enabled: bool = True

    max_benchmark_configs: int = 5
    corpus_path: Path | None = None
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("corpus_path", mode="before")
    @classmethod
    def _expand_corpus_path(cls, value: Any) -> Path | None:
        if value is None or value == "":
            return None
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("corpus_path must be a path or string")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("embedding_provider", "rerank_provider", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Build settings from an optional YAML file, then ``DOCQA_*`` env vars.

        The file is ``path``, else ``DOCQA_CONFIG``, else the default location
        when it exists. Env vars always win over file values.
        """
        values: dict[str, Any] = {}
        config_path = _locate_config(path)
        if config_path is not None and config_path.is_file():
            values.update(_settings_from_document(_read_document(config_path)))
        values.update(_settings_from_env(os.environ))
        return cls(**values)


@dataclass(frozen=True, slots=True)
class RetrievalCapabilities:
    """Provider wiring resolved once at startup and passed to orchestrators."""

    embedding: ProviderMode
    reranking: ProviderMode
    keyword_search: bool

    @property
    def reranking_enabled(self) -> bool:
        return self.reranking is not ProviderMode.DISABLED

    @property
    def uses_mock_embeddings(self) -> bool:
        return self.embedding is ProviderMode.MOCK


def resolve_capabilities(settings: Settings) -> RetrievalCapabilities:
    return RetrievalCapabilities(
        embedding=settings.embedding_provider,
        reranking=settings.rerank_provider,
        keyword_search=settings.keyword_search_enabled,
    )


def _locate_config(path: Path | None) -> Path | None:
    if path is None:
        override = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if not override:
            default = DEFAULT_CONFIG_PATH.expanduser()
            return default if default.exists() else None
        path = Path(override)
    return path.expanduser()


def _read_document(config_path: Path) -> Mapping[str, Any]:
    document = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if document is None:
        return {}
    if not isinstance(document, Mapping):
        raise ConfigurationError(f"{config_path} must contain a mapping at the top level")
    return document


def _settings_from_document(document: Mapping[str, Any]) -> dict[str, Any]:
    """Walk nested sections; known paths map through ``_YAML_KEY_MAP``, bare field names pass through."""
    values: dict[str, Any] = {}
    pending: list[tuple[tuple[str, ...], Mapping[str, Any]]] = [((), document)]
    while pending:
        section_path, section = pending.pop()
        for key, value in section.items():
            key_path = section_path + (key,)
            if isinstance(value, Mapping):
                pending.append((key_path, value))
                continue
            target = _YAML_KEY_MAP.get(key_path) or (key if key in Settings.model_fields else None)
            if target is not None:
                values[target] = value
    return values


def _settings_from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    prefix_len = len(ENV_PREFIX)
    return {
        name[prefix_len:].lower(): value
        for name, value in environ.items()
        if name.startswith(ENV_PREFIX) and name[prefix_len:].lower() in Settings.model_fields
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_yaml()


__all__ = [
    "ProviderMode",
    "RetrievalCapabilities",
    "Settings",
    "get_settings",
    "resolve_capabilities",
]
