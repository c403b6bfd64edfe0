"""Search API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from esg_rag.api.dependencies import get_processor
from esg_rag.ingest.processor import DocumentProcessor
from esg_rag.models.dto import SearchData, SearchHit, SearchRequest, SearchResponse

router = APIRouter()


@router.post("/search", response_model=SearchResponse, summary="Similarity search over indexed chunks")
def search(
    request: SearchRequest,
    processor: DocumentProcessor = Depends(get_processor),
) -> SearchResponse:
    results = processor.search(
        request.query,
        top_k=request.top_k,
        min_similarity=request.min_similarity,
        filters=request.filters.document_filter() if request.filters else None,
    )
    hits = [SearchHit.from_result(result) for result in results]
    return SearchResponse(data=SearchData(query=request.query, results_count=len(hits), results=hits))


__all__ = ["router"]
