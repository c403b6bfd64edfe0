"""Internal dataclasses representing documents and indexed chunks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class Document:
    """A document as handed over by the external document store."""

    id: str
    text: str
    filename: str | None = None
    region: str | None = None
    organization: str | None = None
    document_type: str | None = None
    fingerprint: str | None = None
    processed: bool = False
    created_at: int | None = None
    updated_at: int | None = None

    def source_metadata(self) -> dict[str, Any]:
        """Document-level metadata copied onto every chunk."""
        return {
            "documentId": self.id,
            "filename": self.filename,
            "region": self.region,
            "organization": self.organization,
            "documentType": self.document_type,
        }


@dataclass(frozen=True, slots=True)
class Chunk:
    """An embedded span of a document. Never mutated once built."""

    id: str
    document_id: str
    index: int
    text: str
    token_count: int
    start_char: int
    end_char: int
    vector: tuple[float, ...]
    page_number: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    document_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def dimension(self) -> int:
        return len(self.vector)


__all__ = ["Document", "Chunk"]
