"""Tests for the CLI entrypoint."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from docqa.cli import main as cli

runner = CliRunner()


class _FakeResponse:
    def __init__(self, payload: dict, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = json.dumps(payload)

    def json(self) -> dict:
        return self._payload


@pytest.fixture
def recorded(monkeypatch: pytest.MonkeyPatch) -> list[dict]:
    calls: list[dict] = []

    def fake_request(method: str, url: str, timeout: int, **kwargs) -> _FakeResponse:
        calls.append({"method": method, "url": url, **kwargs})
        if url.endswith("/retrieval/compare"):
            return _FakeResponse({"comparison": {"overlap_count": 2}})
        return _FakeResponse({"success": True, "results": []})

    monkeypatch.setattr(cli.requests, "request", fake_request)
    return calls


def test_host_resolution_order(monkeypatch: pytest.MonkeyPatch) -> None:
    assert cli._resolve_host("http://override:9000/") == "http://override:9000"
    monkeypatch.setenv("DOCQA_HOST", "http://env-host:8080/")
    assert cli._resolve_host(None) == "http://env-host:8080"
    monkeypatch.delenv("DOCQA_HOST")
    assert cli._resolve_host(None) == cli.DEFAULT_HOST


def test_query_posts_complete_pipeline(recorded: list[dict]) -> None:
    result = runner.invoke(cli.app, ["query", "what is mmr", "--k", "3", "--lambda", "0.5"])
    assert result.exit_code == 0
    assert recorded[0]["url"] == f"{cli.DEFAULT_HOST}/retrieval/complete"
    assert recorded[0]["json"] == {"query": "what is mmr", "final_k": 3, "mmr_lambda": 0.5}


def test_query_without_rerank_uses_mmr_route(recorded: list[dict]) -> None:
    result = runner.invoke(cli.app, ["query", "what is mmr", "--no-rerank", "--host", "http://other:1"])
    assert result.exit_code == 0
    assert recorded[0]["url"] == "http://other:1/retrieval/mmr"


def test_compare_prints_comparison(recorded: list[dict]) -> None:
    result = runner.invoke(cli.app, ["compare", "hybrid search"])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"overlap_count": 2}


def test_failed_request_exits_nonzero(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli.requests,
        "request",
        lambda method, url, timeout, **kwargs: _FakeResponse({"detail": "boom"}, status_code=502),
    )
    result = runner.invoke(cli.app, ["estimate-cost", "4"])
    assert result.exit_code == 1
