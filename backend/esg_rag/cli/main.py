"""CLI entrypoint for the ESG RAG service."""

from __future__ import annotations

import json
import os
from typing import Optional

import requests
import typer

app = typer.Typer(name="esg-rag", help="ESG RAG processing and search command-line interface")

DEFAULT_HOST = "http://127.0.0.1:8000"
API_PREFIX = "/api/rag"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("ESGRAG_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{API_PREFIX}{path}"
    try:
        resp = requests.request(method, url, timeout=600, **kwargs)
    except requests.RequestException as exc:
        typer.echo(f"Request failed: {exc}", err=True)
        raise typer.Exit(code=1)
    if not resp.ok:
        try:
            payload = resp.json()
            detail = payload.get("message", payload) if isinstance(payload, dict) else payload
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo_data(resp: requests.Response) -> None:
    payload = resp.json()
    typer.echo(json.dumps(payload.get("data", payload), indent=2))


def _filter_body(
    region: Optional[str], organization: Optional[str], document_ids: Optional[list[str]]
) -> dict[str, object]:
    body: dict[str, object] = {}
    if region:
        body["region"] = region
    if organization:
        body["organization"] = organization
    if document_ids:
        body["documentIds"] = list(document_ids)
    return body


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    top_k: Optional[int] = typer.Option(None, "--top-k", min=1, max=50, help="Number of results to return"),
    min_similarity: Optional[float] = typer.Option(
        None, "--min-similarity", min=0.0, max=1.0, help="Drop results scoring below this"
    ),
    region: Optional[str] = typer.Option(None, "--region", help="Only chunks from this region"),
    organization: Optional[str] = typer.Option(None, "--organization", help="Only chunks of this organization"),
    document_id: Optional[list[str]] = typer.Option(None, "--document-id", help="Restrict to these document IDs"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Search indexed document chunks."""
    payload: dict[str, object] = {"query": query}
    if top_k is not None:
        payload["topK"] = top_k
    if min_similarity is not None:
        payload["minSimilarity"] = min_similarity
    filters = _filter_body(region, organization, document_id)
    if filters:
        payload["filters"] = filters
    _echo_data(_request("POST", "/search", host=host, json=payload))


@app.command()
def stats(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show index and processing statistics."""
    _echo_data(_request("GET", "/stats", host=host))


@app.command()
def process(
    wait: bool = typer.Option(False, "--wait", help="Queue behind a running job instead of failing"),
    region: Optional[str] = typer.Option(None, "--region", help="Only documents from this region"),
    organization: Optional[str] = typer.Option(None, "--organization", help="Only documents of this organization"),
    document_id: Optional[list[str]] = typer.Option(None, "--document-id", help="Restrict to these document IDs"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Chunk, embed and index pending documents."""
    body: dict[str, object] = {"wait": wait, **_filter_body(region, organization, document_id)}
    _echo_data(_request("POST", "/process", host=host, json=body))


@app.command()
def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Clear the vector index and every fingerprint."""
    if not yes:
        typer.confirm("Drop every indexed chunk?", abort=True)
    _echo_data(_request("DELETE", "/reset", host=host))


@app.command()
def cancel(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Cancel the running processing job."""
    _echo_data(_request("POST", "/process/cancel", host=host))


if __name__ == "__main__":
    app()
