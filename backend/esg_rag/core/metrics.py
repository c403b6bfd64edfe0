"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

DOCUMENTS_TOTAL = Counter(
    "esgrag_documents_total",
    "Documents seen by processing runs",
    labelnames=("status",),
    registry=REGISTRY,
)

CHUNKS_EMBEDDED = Counter(
    "esgrag_chunks_embedded_total",
    "Chunks embedded and inserted into the index",
    registry=REGISTRY,
)

EMBEDDING_RETRIES = Counter(
    "esgrag_embedding_retries_total",
    "Embedding batch retries after transient provider failures",
    registry=REGISTRY,
)

PROCESS_DURATION = Histogram(
    "esgrag_process_duration_seconds",
    "Duration of full processing runs",
    registry=REGISTRY,
)

SEARCH_LATENCY = Histogram(
    "esgrag_search_latency_seconds",
    "Latency of similarity searches",
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "esgrag_index_chunks",
    "Number of chunks stored in index",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "DOCUMENTS_TOTAL",
    "CHUNKS_EMBEDDED",
    "EMBEDDING_RETRIES",
    "PROCESS_DURATION",
    "SEARCH_LATENCY",
    "INDEX_SIZE",
    "metrics_response",
]
