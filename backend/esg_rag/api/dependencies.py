"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from esg_rag.core.config import Settings, get_settings
from esg_rag.core.logging import get_logger
from esg_rag.db.sqlite import SQLiteDatabase, SQLiteDocumentStore
from esg_rag.ingest.embeddings import EmbeddingProvider, build_provider
from esg_rag.ingest.processor import DocumentProcessor
from esg_rag.retrieval import VectorIndex

logger = get_logger(__name__)

_DB: SQLiteDatabase | None = None
_DOCUMENT_STORE: SQLiteDocumentStore | None = None
_PROVIDER: EmbeddingProvider | None = None
_VECTOR_INDEX: VectorIndex | None = None
_PROCESSOR: DocumentProcessor | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        _DB = SQLiteDatabase(settings.db_path)
    return _DB


def get_document_store() -> SQLiteDocumentStore:
    global _DOCUMENT_STORE
    if _DOCUMENT_STORE is None:
        _DOCUMENT_STORE = SQLiteDocumentStore(get_database())
    return _DOCUMENT_STORE


def get_embedding_provider() -> EmbeddingProvider:
    global _PROVIDER
    if _PROVIDER is None:
        _PROVIDER = build_provider(get_app_settings())
    return _PROVIDER


def get_vector_index() -> VectorIndex:
    global _VECTOR_INDEX
    if _VECTOR_INDEX is None:
        _VECTOR_INDEX = VectorIndex(dimension=get_embedding_provider().dimension)
    return _VECTOR_INDEX


def get_processor() -> DocumentProcessor:
    global _PROCESSOR
    if _PROCESSOR is None:
        _PROCESSOR = DocumentProcessor(
            settings=get_app_settings(),
            document_store=get_document_store(),
            provider=get_embedding_provider(),
            vector_index=get_vector_index(),
        )
    return _PROCESSOR


def shutdown() -> None:
    """Cancel any running job and release the provider and database."""
    global _DB, _DOCUMENT_STORE, _PROVIDER, _VECTOR_INDEX, _PROCESSOR
    if _PROCESSOR is not None:
        _PROCESSOR.cancel()
    if _PROVIDER is not None:
        _PROVIDER.close()
    if _DOCUMENT_STORE is not None:
        _DOCUMENT_STORE.close()
    elif _DB is not None:
        _DB.close()
    _DB = None
    _DOCUMENT_STORE = None
    _PROVIDER = None
    _VECTOR_INDEX = None
    _PROCESSOR = None
    logger.info("Released processor resources")


__all__ = [
    "get_app_settings",
    "get_database",
    "get_document_store",
    "get_embedding_provider",
    "get_vector_index",
    "get_processor",
    "shutdown",
]
