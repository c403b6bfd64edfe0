"""Administrative routes: stats, reset and metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from esg_rag.api.dependencies import get_processor
from esg_rag.core.metrics import metrics_response
from esg_rag.ingest.processor import DocumentProcessor
from esg_rag.models.dto import MessageData, MessageResponse, StatsResponse

router = APIRouter()


@router.get("/stats", response_model=StatsResponse, summary="Index and processing statistics")
def get_stats(processor: DocumentProcessor = Depends(get_processor)) -> StatsResponse:
    return StatsResponse(data=processor.get_stats())


@router.delete("/reset", response_model=MessageResponse, summary="Clear the vector index and fingerprints")
def reset_index(processor: DocumentProcessor = Depends(get_processor)) -> MessageResponse:
    processor.reset()
    return MessageResponse(data=MessageData(message="reset complete"))


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
