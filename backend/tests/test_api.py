"""API integration tests."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from esg_rag.api import dependencies as deps
from esg_rag.app import app
from esg_rag.core.config import Settings
from esg_rag.db.store import InMemoryDocumentStore
from esg_rag.ingest.processor import DocumentProcessor
from esg_rag.models.entities import Document

from fakes import NarrowProvider, ScriptedProvider

LONG_TEXT = "carbon " + " ".join(["measurement"] * 60)


@pytest.fixture
def processor(settings: Settings, esg_documents: list[Document]) -> DocumentProcessor:
    settings.chunk_max_tokens = 100
    documents = esg_documents + [Document(id="doc-long", text=LONG_TEXT, region="APAC")]
    processor = DocumentProcessor(settings, InMemoryDocumentStore(documents), provider=ScriptedProvider())
    deps._PROCESSOR = processor
    return processor


@pytest.fixture
def client(processor: DocumentProcessor) -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    resp = client.get("/api/rag/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_process_and_search_flow(client: TestClient) -> None:
    process_resp = client.post("/api/rag/process")
    assert process_resp.status_code == 200
    body = process_resp.json()
    assert body["success"] is True
    assert body["data"]["processed"] == 4
    assert body["data"]["chunksCreated"] == 4

    search_resp = client.post("/api/rag/search", json={"query": "carbon", "topK": 5, "minSimilarity": 0.5})
    assert search_resp.status_code == 200
    data = search_resp.json()["data"]
    assert data["query"] == "carbon"
    assert data["resultsCount"] == len(data["results"]) == 2
    assert {result["metadata"]["documentId"] for result in data["results"]} == {"doc-carbon", "doc-long"}
    long_hit = next(result for result in data["results"] if result["id"] == "doc-long_chunk_0")
    assert len(long_hit["content"]) == 503
    assert long_hit["content"].endswith("...")


def test_process_with_filters(client: TestClient) -> None:
    resp = client.post("/api/rag/process", json={"documentIds": ["doc-water"], "wait": True})
    assert resp.status_code == 200
    assert resp.json()["data"]["scanned"] == 1


def test_search_uses_configured_defaults(client: TestClient) -> None:
    client.post("/api/rag/process")
    resp = client.post("/api/rag/search", json={"query": "governance diversity"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["resultsCount"] == 1
    assert data["results"][0]["metadata"]["documentId"] == "doc-board"


@pytest.mark.parametrize(
    "payload",
    [{"query": ""}, {"query": "   "}, {"query": "carbon", "topK": 0}, {"query": "carbon", "topK": 51}, {"query": "carbon", "minSimilarity": 2}, {}],
)
def test_search_validation_envelope(client: TestClient, payload: dict) -> None:
    resp = client.post("/api/rag/search", json=payload)
    assert resp.status_code == 422
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "validation_error"
    assert body["message"]


def test_search_empty_index(client: TestClient) -> None:
    resp = client.post("/api/rag/search", json={"query": "carbon"})
    assert resp.status_code == 200
    assert resp.json()["data"] == {"query": "carbon", "resultsCount": 0, "results": []}


def test_process_in_progress_conflict(client: TestClient, processor: DocumentProcessor) -> None:
    processor._run_lock.acquire()
    try:
        resp = client.post("/api/rag/process")
        reset_resp = client.delete("/api/rag/reset")
    finally:
        processor._run_lock.release()
    assert resp.status_code == 409
    assert resp.json() == {
        "success": False,
        "error": "processing_in_progress",
        "message": "Document processing already in progress",
    }
    assert reset_resp.status_code == 409


def test_stats_and_reset(client: TestClient) -> None:
    client.post("/api/rag/process")
    stats = client.get("/api/rag/stats").json()["data"]
    assert stats["index"]["chunkCount"] == 4
    assert stats["documents"] == {"total": 4, "processed": 4, "fingerprinted": 4}
    assert stats["lastRun"]["processed"] == 4

    reset_resp = client.delete("/api/rag/reset")
    assert reset_resp.status_code == 200
    assert reset_resp.json() == {"success": True, "data": {"message": "reset complete"}}
    assert client.get("/api/rag/stats").json()["data"]["index"]["chunkCount"] == 0


def test_cancel_when_idle(client: TestClient) -> None:
    resp = client.post("/api/rag/process/cancel")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"cancelled": False}


def test_metrics_endpoint(client: TestClient) -> None:
    client.post("/api/rag/process")
    resp = client.get("/api/rag/metrics")
    assert resp.status_code == 200
    assert "esgrag_documents_total" in resp.text
    assert "esgrag_index_chunks" in resp.text


def test_search_with_filters(client: TestClient) -> None:
    client.post("/api/rag/process")
    resp = client.post(
        "/api/rag/search",
        json={"query": "carbon", "minSimilarity": 0.5, "filters": {"region": "APAC"}},
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [result["metadata"]["documentId"] for result in data["results"]] == ["doc-long"]


def test_search_dimension_mismatch_envelope(
    client: TestClient, processor: DocumentProcessor, settings: Settings
) -> None:
    client.post("/api/rag/process")
    deps._PROCESSOR = DocumentProcessor(
        settings, processor.store, provider=NarrowProvider(), vector_index=processor.vector_index
    )
    resp = client.post("/api/rag/search", json={"query": "carbon"})
    assert resp.status_code == 409
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "dimension_mismatch"
    assert "expects 4, got 3" in body["message"]


def test_shutdown_closes_store_database() -> None:
    processor = deps.get_processor()
    database = deps.get_database()
    assert processor.store.count_documents() == 0
    assert database._connection is not None

    deps.shutdown()
    assert database._connection is None
    assert deps._PROCESSOR is None
    assert deps._DOCUMENT_STORE is None
