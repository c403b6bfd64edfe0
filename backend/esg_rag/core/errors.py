"""Error taxonomy for the ingestion and retrieval core."""

from __future__ import annotations


class RagError(Exception):
    """Base class for errors surfaced by the RAG core."""

    error_kind = "rag_error"


class ConfigurationError(RagError):
    """Invalid chunking, provider, or processor configuration."""

    error_kind = "configuration_error"


class ProviderError(RagError):
    """Embedding provider call failed."""

    error_kind = "provider_error"


class TransientProviderError(ProviderError):
    """Rate limit, timeout, or server-side failure worth retrying."""

    error_kind = "transient_provider_error"

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class PermanentProviderError(ProviderError):
    """Bad request or authentication failure; retrying will not help."""

    error_kind = "permanent_provider_error"


class DimensionMismatchError(RagError):
    """Embedding dimension disagrees with the vectors already indexed."""

    error_kind = "dimension_mismatch"

    def __init__(self, expected: int, actual: int, detail: str | None = None) -> None:
        message = f"Vector dimension mismatch: index expects {expected}, got {actual}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class ValidationError(RagError):
    """Malformed request parameters rejected before touching the pipeline."""

    error_kind = "validation_error"


class ProcessingInProgressError(RagError):
    """Another processing or reset run holds the processor."""

    error_kind = "processing_in_progress"


class ProcessingCancelled(RagError):
    """The running job was cancelled while a document was in flight."""

    error_kind = "cancelled"


class DocumentProcessingError(RagError):
    """A single document could not be chunked or embedded."""

    error_kind = "document_failed"

    def __init__(self, document_id: str, message: str) -> None:
        super().__init__(message)
        self.document_id = document_id


class DocumentStoreError(RagError):
    """The external document store rejected a read or write."""

    error_kind = "document_store_error"


__all__ = [
    "RagError",
    "ConfigurationError",
    "ProviderError",
    "TransientProviderError",
    "PermanentProviderError",
    "DimensionMismatchError",
    "ValidationError",
    "ProcessingInProgressError",
    "ProcessingCancelled",
    "DocumentProcessingError",
    "DocumentStoreError",
]
