"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from esg_rag.db.store import DocumentFilter
from esg_rag.retrieval.search import SearchResult
from esg_rag.utils.text import truncate

CONTENT_PREVIEW_CHARS = 500


class DocumentFilterFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    region: str | None = None
    organization: str | None = None
    document_ids: list[str] | None = Field(default=None, alias="documentIds")

    def document_filter(self) -> DocumentFilter | None:
        if self.region is None and self.organization is None and self.document_ids is None:
            return None
        return DocumentFilter(region=self.region, organization=self.organization, document_ids=self.document_ids)


class SearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(min_length=1, max_length=1000)
    top_k: int | None = Field(default=None, ge=1, le=50, alias="topK")
    min_similarity: float | None = Field(default=None, ge=0.0, le=1.0, alias="minSimilarity")
    filters: DocumentFilterFields | None = None


class ProcessRequest(DocumentFilterFields):
    wait: bool = Field(default=False, description="Queue behind a running job instead of failing")


class SearchHit(BaseModel):
    id: str
    content: str
    similarity: float
    metadata: dict[str, Any]

    @classmethod
    def from_result(cls, result: SearchResult) -> "SearchHit":
        return cls(
            id=result.id,
            content=truncate(result.content, CONTENT_PREVIEW_CHARS),
            similarity=result.similarity,
            metadata=result.metadata,
        )


class SearchData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str
    results_count: int = Field(alias="resultsCount")
    results: list[SearchHit]


class SearchResponse(BaseModel):
    success: Literal[True] = True
    data: SearchData


class ProcessingStatsData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scanned: int
    skipped: int
    processed: int
    failed: int
    chunks_created: int = Field(alias="chunksCreated")
    embeddings_generated: int = Field(alias="embeddingsGenerated")
    elapsed_ms: int = Field(alias="elapsedMs")
    cancelled: bool
    errors: list[str]


class ProcessResponse(BaseModel):
    success: Literal[True] = True
    data: ProcessingStatsData


class StatsResponse(BaseModel):
    success: Literal[True] = True
    data: dict[str, Any]


class MessageData(BaseModel):
    message: str


class MessageResponse(BaseModel):
    success: Literal[True] = True
    data: MessageData


class CancelData(BaseModel):
    cancelled: bool


class CancelResponse(BaseModel):
    success: Literal[True] = True
    data: CancelData


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str
    message: str


__all__ = [
    "CONTENT_PREVIEW_CHARS",
    "DocumentFilterFields",
    "SearchRequest",
    "ProcessRequest",
    "SearchHit",
    "SearchData",
    "SearchResponse",
    "ProcessingStatsData",
    "ProcessResponse",
    "StatsResponse",
    "MessageData",
    "MessageResponse",
    "CancelData",
    "CancelResponse",
    "ErrorResponse",
]
