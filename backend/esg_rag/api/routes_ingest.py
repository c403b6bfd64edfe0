"""Processing API routes."""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends

from esg_rag.api.dependencies import get_processor
from esg_rag.ingest.processor import DocumentProcessor
from esg_rag.models.dto import CancelData, CancelResponse, ProcessingStatsData, ProcessRequest, ProcessResponse

router = APIRouter()


@router.post("/process", response_model=ProcessResponse, summary="Chunk, embed and index pending documents")
def process_documents(
    request: ProcessRequest | None = Body(default=None),
    processor: DocumentProcessor = Depends(get_processor),
) -> ProcessResponse:
    request = request or ProcessRequest()
    stats = processor.process_all_documents(filters=request.document_filter(), wait=request.wait)
    return ProcessResponse(data=ProcessingStatsData(**stats.to_dict()))


@router.post("/process/cancel", response_model=CancelResponse, summary="Cancel the running processing job")
def cancel_processing(processor: DocumentProcessor = Depends(get_processor)) -> CancelResponse:
    return CancelResponse(data=CancelData(cancelled=processor.cancel()))


__all__ = ["router"]
