"""CLI tests against a stubbed HTTP layer."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from esg_rag.cli import main as cli

from fakes import FakeResponse

runner = CliRunner()


@pytest.fixture
def sent(monkeypatch: pytest.MonkeyPatch) -> list[dict]:
    calls: list[dict] = []

    def fake_request(method: str, url: str, timeout: float, **kwargs) -> FakeResponse:
        calls.append({"method": method, "url": url, **kwargs})
        if url.endswith("/reset") and method == "DELETE" and not kwargs:
            return FakeResponse(payload={"success": True, "data": {"message": "reset complete"}})
        if url.endswith("/search") and kwargs["json"]["query"] == "busy":
            return FakeResponse(409, payload={"success": False, "error": "processing_in_progress", "message": "busy"})
        return FakeResponse(payload={"success": True, "data": {"ok": True}})

    monkeypatch.setattr(cli.requests, "request", fake_request)
    return calls


def test_search_sends_camel_case_options(sent: list[dict], monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ESGRAG_HOST", "http://rag.test/")
    result = runner.invoke(cli.app, ["search", "carbon emissions", "--top-k", "3", "--min-similarity", "0.7"])
    assert result.exit_code == 0, result.output
    assert sent[0]["url"] == "http://rag.test/api/rag/search"
    assert sent[0]["json"] == {"query": "carbon emissions", "topK": 3, "minSimilarity": 0.7}
    assert '"ok": true' in result.output


def test_process_builds_filter_body(sent: list[dict]) -> None:
    result = runner.invoke(
        cli.app, ["process", "--wait", "--region", "EU", "--document-id", "a", "--document-id", "b"]
    )
    assert result.exit_code == 0, result.output
    assert sent[0]["method"] == "POST"
    assert sent[0]["json"] == {"wait": True, "region": "EU", "documentIds": ["a", "b"]}


def test_reset_requires_confirmation(sent: list[dict]) -> None:
    aborted = runner.invoke(cli.app, ["reset"], input="n\n")
    assert aborted.exit_code != 0
    assert sent == []
    confirmed = runner.invoke(cli.app, ["reset", "--yes"])
    assert confirmed.exit_code == 0
    assert "reset complete" in confirmed.output


def test_error_envelope_exits_non_zero(sent: list[dict]) -> None:
    result = runner.invoke(cli.app, ["search", "busy"])
    assert result.exit_code == 1


def test_search_sends_filters(sent: list[dict]) -> None:
    result = runner.invoke(cli.app, ["search", "water", "--region", "US", "--organization", "Acme"])
    assert result.exit_code == 0, result.output
    assert sent[0]["json"] == {"query": "water", "filters": {"region": "US", "organization": "Acme"}}
