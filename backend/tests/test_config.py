"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from docqa.core.config import ProviderMode, Settings, get_settings, resolve_capabilities
from docqa.core.errors import ConfigurationError, ValidationError
from docqa.models.entities import PipelineConfig


def test_defaults() -> None:
    settings = Settings()
    assert settings.top_k == 50
    assert settings.final_k == 10
    assert settings.rerank_top_n == 5
    assert settings.mmr_lambda == 0.7
    assert settings.threshold == 0.3
    assert settings.rrf_k == 60
    assert settings.embedding_provider is ProviderMode.MOCK


def test_yaml_and_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "retrieval:\n"
        "  top_k: 20\n"
        "  mmr_lambda: 0.5\n"
        "reranking:\n"
        "  provider: DISABLED\n"
        "hybrid:\n"
        "  keyword_search_enabled: false\n"
        "storage:\n"
        "  corpus_path: ~/corpus.json\n"
    )
    monkeypatch.setenv("DOCQA_FINAL_K", "7")

    settings = Settings.from_yaml(config_file)

    assert settings.top_k == 20
    assert settings.mmr_lambda == 0.5
    assert settings.final_k == 7
    assert settings.rerank_provider is ProviderMode.DISABLED
    assert settings.keyword_search_enabled is False
    assert settings.corpus_path == Path("~/corpus.json").expanduser()


def test_get_settings_reads_config_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_file = tmp_path / "docqa.yaml"
    config_file.write_text("retrieval:\n  threshold: 0.45\n")
    monkeypatch.setenv("DOCQA_CONFIG", str(config_file))
    get_settings.cache_clear()
    assert get_settings().threshold == 0.45
    get_settings.cache_clear()


def test_capabilities_follow_settings() -> None:
    capabilities = resolve_capabilities(Settings(rerank_provider="disabled", embedding_provider="live"))
    assert capabilities.reranking_enabled is False
    assert capabilities.uses_mock_embeddings is False
    assert resolve_capabilities(Settings()).reranking_enabled is True


def test_pipeline_config_ignores_missing_overrides() -> None:
    config = PipelineConfig.from_settings(Settings(final_k=8), final_k=None, mmr_lambda=0.2)
    assert config.final_k == 8
    assert config.mmr_lambda == 0.2
    assert config.filters.is_empty


@pytest.mark.parametrize(
    "overrides",
    [
        {"top_k": 0},
        {"final_k": -1},
        {"rerank_top_n": 0},
        {"rerank_top_n": 101},
        {"mmr_lambda": 1.1},
        {"threshold": -0.1},
    ],
)
def test_pipeline_config_validation(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        PipelineConfig(**overrides).validate()


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    config_file = tmp_path / "list.yaml"
    config_file.write_text("- top_k\n- 10\n")
    with pytest.raises(ConfigurationError):
        Settings.from_yaml(config_file)


def test_unknown_yaml_keys_are_ignored(tmp_path: Path) -> None:
    config_file = tmp_path / "extra.yaml"
    config_file.write_text("retrieval:\n  final_k: 4\n  unknown_knob: 1\nmisc:\n  colour: blue\n")
    settings = Settings.from_yaml(config_file)
    assert settings.final_k == 4


def test_cors_origins_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DOCQA_CORS_ORIGINS", "http://a.test, http://b.test,")
    assert Settings.from_yaml().cors_origins == ["http://a.test", "http://b.test"]
