"""CLI entrypoint for the retrieval service."""

from __future__ import annotations

import json
import os
from typing import Optional

import requests
import typer

app = typer.Typer(name="docqa", help="Document retrieval command-line interface")

DEFAULT_HOST = "http://127.0.0.1:8000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("DOCQA_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _pipeline_payload(
    q: str,
    final_k: Optional[int],
    top_k: Optional[int],
    mmr_lambda: Optional[float],
    threshold: Optional[float],
    source: Optional[str],
) -> dict[str, object]:
    payload: dict[str, object] = {"query": q}
    for key, value in (
        ("final_k", final_k),
        ("top_k", top_k),
        ("mmr_lambda", mmr_lambda),
        ("threshold", threshold),
        ("source", source),
    ):
        if value is not None:
            payload[key] = value
    return payload


@app.command()
def query(
    q: str = typer.Argument(..., help="Query text"),
    final_k: Optional[int] = typer.Option(None, "--k", help="Number of results after MMR"),
    top_k: Optional[int] = typer.Option(None, "--top-k", help="Candidate pool size"),
    mmr_lambda: Optional[float] = typer.Option(None, "--lambda", help="Relevance/diversity balance"),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Minimum similarity"),
    source: Optional[str] = typer.Option(None, "--source", help="Restrict to one source"),
    rerank: bool = typer.Option(True, "--rerank/--no-rerank", help="Run the complete pipeline with reranking"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Retrieve chunks with MMR, optionally reranked."""
    payload = _pipeline_payload(q, final_k, top_k, mmr_lambda, threshold, source)
    path = "/retrieval/complete" if rerank else "/retrieval/mmr"
    resp = _request("POST", path, host=host, json=payload)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def hybrid(
    q: str = typer.Argument(..., help="Query text"),
    final_k: Optional[int] = typer.Option(None, "--k", help="Number of fused results"),
    dense_weight: Optional[float] = typer.Option(None, "--dense-weight", help="Weight of the dense ranking"),
    sparse_weight: Optional[float] = typer.Option(None, "--sparse-weight", help="Weight of the keyword ranking"),
    rerank: bool = typer.Option(False, "--rerank/--no-rerank", help="Rerank the fused results"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Fuse dense and keyword retrieval."""
    payload = _pipeline_payload(q, final_k, None, None, None, None)
    if dense_weight is not None:
        payload["dense_weight"] = dense_weight
    if sparse_weight is not None:
        payload["sparse_weight"] = sparse_weight
    path = "/retrieval/hybrid-rerank" if rerank else "/retrieval/hybrid"
    resp = _request("POST", path, host=host, json=payload)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def compare(
    q: str = typer.Argument(..., help="Query text"),
    reranking: bool = typer.Option(False, "--reranking", help="Compare with and without reranking instead"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Compare retrieval strategies side by side."""
    path = "/retrieval/compare-reranking" if reranking else "/retrieval/compare"
    resp = _request("POST", path, host=host, json={"query": q})
    typer.echo(json.dumps(resp.json()["comparison"], indent=2))


@app.command("estimate-cost")
def estimate_cost(
    chunk_count: int = typer.Argument(..., help="Number of chunks to rerank"),
    top_n: Optional[int] = typer.Option(None, "--top-n", help="Results kept after reranking"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Estimate the price of one rerank call."""
    payload: dict[str, object] = {"chunk_count": chunk_count}
    if top_n is not None:
        payload["top_n"] = top_n
    resp = _request("POST", "/reranking/estimate-cost", host=host, json=payload)
    typer.echo(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    app()
