"""FastAPI application setup for the ESG RAG service."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from esg_rag.api.dependencies import get_app_settings, get_processor, shutdown
from esg_rag.api.routes_admin import router as admin_router
from esg_rag.api.routes_ingest import router as ingest_router
from esg_rag.api.routes_query import router as query_router
from esg_rag.core.errors import (
    ConfigurationError,
    DimensionMismatchError,
    DocumentStoreError,
    ProcessingInProgressError,
    ProviderError,
    RagError,
    ValidationError,
)
from esg_rag.core.logging import configure_logging, get_logger
from esg_rag.models.dto import ErrorResponse

configure_logging()
logger = get_logger(__name__)

API_PREFIX = "/api/rag"

_STATUS_CODES: tuple[tuple[type[RagError], int], ...] = (
    (ValidationError, 422),
    (ProcessingInProgressError, 409),
    (DimensionMismatchError, 409),
    (ConfigurationError, 500),
    (ProviderError, 502),
    (DocumentStoreError, 502),
)

app = FastAPI(
    title="ESG RAG",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(query_router, prefix=API_PREFIX, tags=["search"])
app.include_router(ingest_router, prefix=API_PREFIX, tags=["process"])
app.include_router(admin_router, prefix=API_PREFIX, tags=["admin"])


def status_for(exc: RagError) -> int:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _error_response(status_code: int, kind: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=kind, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(RagError)
async def handle_rag_error(request: Request, exc: RagError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return _error_response(status_code, exc.error_kind, str(exc))


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return _error_response(422, ValidationError.error_kind, "; ".join(problems) or "Invalid request")


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    get_app_settings()
    get_processor()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    shutdown()


@app.get(f"{API_PREFIX}/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
