"""Document store boundary consumed by the processor."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Any, Mapping, Protocol, Sequence

from esg_rag.core.errors import DocumentStoreError
from esg_rag.models.entities import Document
from esg_rag.utils.time import now_ms


@dataclass(slots=True)
class DocumentFilter:
    region: str | None = None
    organization: str | None = None
    document_ids: Sequence[str] | None = None

    def matches(self, document: Document) -> bool:
        return self.matches_metadata(
            {"documentId": document.id, "region": document.region, "organization": document.organization}
        )

    def matches_metadata(self, metadata: Mapping[str, Any]) -> bool:
        """Apply the filter to resolved chunk metadata (``documentId``, ``region``, ``organization``)."""
        if self.region is not None and metadata.get("region") != self.region:
            return False
        if self.organization is not None and metadata.get("organization") != self.organization:
            return False
        if self.document_ids is not None and metadata.get("documentId") not in self.document_ids:
            return False
        return True


class DocumentStore(Protocol):
    def list_documents(self, filters: DocumentFilter | None = None) -> list[Document]: ...

    def update_document_status(self, document_id: str, fingerprint: str | None, processed: bool) -> None: ...

    def upsert_document(self, document: Document) -> Document: ...

    def get_document(self, document_id: str) -> Document | None: ...

    def count_documents(self) -> int: ...

    def count_processed(self) -> int: ...


class InMemoryDocumentStore:
    """Dictionary-backed store used for tests and offline runs."""

    def __init__(self, documents: Sequence[Document] = ()) -> None:
        self._documents: dict[str, Document] = {}
        self._lock = threading.Lock()
        for document in documents:
            self.upsert_document(document)

    def list_documents(self, filters: DocumentFilter | None = None) -> list[Document]:
        with self._lock:
            documents = [replace(document) for document in self._documents.values()]
        if filters is None:
            return documents
        return [document for document in documents if filters.matches(document)]

    def update_document_status(self, document_id: str, fingerprint: str | None, processed: bool) -> None:
        with self._lock:
            document = self._documents.get(document_id)
            if document is None:
                raise DocumentStoreError(f"Document {document_id} not found")
            document.fingerprint = fingerprint
            document.processed = processed
            document.updated_at = now_ms()

    def upsert_document(self, document: Document) -> Document:
        """Insert or replace a document, keeping its original creation time."""
        now = now_ms()
        with self._lock:
            existing = self._documents.get(document.id)
            stored = replace(document)
            stored.created_at = existing.created_at if existing else (document.created_at or now)
            stored.updated_at = now
            self._documents[document.id] = stored
            return replace(stored)

    def get_document(self, document_id: str) -> Document | None:
        with self._lock:
            document = self._documents.get(document_id)
            return replace(document) if document else None

    def count_documents(self) -> int:
        with self._lock:
            return len(self._documents)

    def count_processed(self) -> int:
        with self._lock:
            return sum(1 for document in self._documents.values() if document.processed)


__all__ = ["DocumentFilter", "DocumentStore", "InMemoryDocumentStore"]
