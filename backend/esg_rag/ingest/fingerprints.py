"""Content fingerprints that gate incremental re-processing."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Mapping

from esg_rag.models.entities import Document
from esg_rag.utils.hashing import sha256_payload
from esg_rag.utils.text import normalize


@dataclass(frozen=True, slots=True)
class ProcessDecision:
    skip: bool
    fingerprint: str
    reason: str


def compute_fingerprint(document: Document, signature: Mapping[str, Any] | None = None) -> str:
    """Compute a stable hash over normalised text, source metadata and chunking settings."""
    return sha256_payload(
        {
            "text": normalize(document.text),
            "meta": document.source_metadata(),
            "chunking": dict(signature or {}),
        }
    )


class FingerprintStore:
    """In-memory fingerprints of the documents currently held by the vector index."""

    def __init__(self, signature: Mapping[str, Any] | None = None) -> None:
        self.signature = dict(signature or {})
        self._fingerprints: dict[str, str] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._fingerprints)

    def fingerprint(self, document: Document) -> str:
        return compute_fingerprint(document, self.signature)

    def get(self, document_id: str) -> str | None:
        with self._lock:
            return self._fingerprints.get(document_id)

    def should_process(self, document: Document, skip_existing: bool) -> ProcessDecision:
        digest = self.fingerprint(document)
        stored = self.get(document.id)
        if stored is None or not document.processed:
            return ProcessDecision(skip=False, fingerprint=digest, reason="new")
        if stored != digest:
            return ProcessDecision(skip=False, fingerprint=digest, reason="changed")
        if not skip_existing:
            return ProcessDecision(skip=False, fingerprint=digest, reason="forced")
        return ProcessDecision(skip=True, fingerprint=digest, reason="unchanged")

    def record(self, document_id: str, fingerprint: str) -> None:
        with self._lock:
            self._fingerprints[document_id] = fingerprint

    def forget(self, document_id: str) -> None:
        with self._lock:
            self._fingerprints.pop(document_id, None)

    def clear(self) -> None:
        with self._lock:
            self._fingerprints.clear()


__all__ = ["FingerprintStore", "ProcessDecision", "compute_fingerprint"]
