"""Document processing orchestration."""

from __future__ import annotations

import threading
import time
from typing import Any

from esg_rag.core.config import Settings
from esg_rag.core.errors import (
    DimensionMismatchError,
    DocumentProcessingError,
    DocumentStoreError,
    ProcessingCancelled,
    ProcessingInProgressError,
    ProviderError,
    ValidationError,
)
from esg_rag.core.logging import get_logger, log_context
from esg_rag.core.metrics import CHUNKS_EMBEDDED, DOCUMENTS_TOTAL, INDEX_SIZE, PROCESS_DURATION, SEARCH_LATENCY
from esg_rag.db.store import DocumentFilter, DocumentStore
from esg_rag.ingest.batching import BatchOrchestrator
from esg_rag.ingest.chunker import Chunker, build_chunks
from esg_rag.ingest.embeddings import DIMENSION_PROBE_TEXT, EmbeddingProvider, build_provider
from esg_rag.ingest.fingerprints import FingerprintStore
from esg_rag.ingest.types import ProcessingStats
from esg_rag.models.entities import Document
from esg_rag.retrieval.search import SearchResult, rank_chunks, resolve_metadata
from esg_rag.retrieval.vector_index import VectorIndex
from esg_rag.utils.ids import new_id

logger = get_logger(__name__)

MAX_QUERY_CHARS = 1000


class DocumentProcessor:
    """Coordinate chunking, embeddings, the vector index, and fingerprints.

    ``process_all_documents`` and ``reset`` are the only mutators and share one
    lock; ``search`` and ``get_stats`` read index snapshots without it.
    """

    def __init__(
        self,
        settings: Settings,
        document_store: DocumentStore,
        provider: EmbeddingProvider | None = None,
        vector_index: VectorIndex | None = None,
        fingerprints: FingerprintStore | None = None,
    ) -> None:
        self.settings = settings
        self.store = document_store
        self.chunker = Chunker(
            max_tokens=settings.chunk_max_tokens,
            overlap_tokens=settings.chunk_overlap_tokens,
            preserve_paragraphs=settings.chunk_preserve_paragraphs,
            token_unit=settings.chunk_token_unit,
        )
        self.provider = provider or build_provider(settings)
        self.orchestrator = BatchOrchestrator(
            self.provider,
            batch_size=settings.batch_size,
            max_concurrency=settings.max_concurrency,
            max_attempts=settings.max_attempts,
            backoff_base=settings.backoff_base,
            backoff_max=settings.backoff_max,
        )
        self.vector_index = vector_index if vector_index is not None else VectorIndex()
        self.fingerprints = fingerprints or FingerprintStore(self.chunker.signature)
        self._run_lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._stats_lock = threading.Lock()
        self._last_run: ProcessingStats | None = None
        self._totals = ProcessingStats()

    @property
    def is_processing(self) -> bool:
        return self._run_lock.locked()

    def process_all_documents(
        self,
        filters: DocumentFilter | None = None,
        wait: bool = False,
    ) -> ProcessingStats:
        """Index every document whose fingerprint demands it.

        With ``wait`` a call queues behind a running job; otherwise it is
        rejected with :class:`ProcessingInProgressError`.
        """
        if not self._run_lock.acquire(blocking=wait):
            raise ProcessingInProgressError("Document processing already in progress")
        self._cancel_event.clear()
        try:
            with log_context(run_id=new_id("run")):
                return self._run(filters)
        finally:
            self._cancel_event.clear()
            self._run_lock.release()

    def cancel(self) -> bool:
        """Ask the running job to stop; False when nothing is running."""
        if not self._run_lock.locked():
            return False
        self._cancel_event.set()
        logger.info("Cancellation requested for processing run")
        return True

    def search(
        self,
        query: str,
        top_k: int | None = None,
        min_similarity: float | None = None,
        filters: DocumentFilter | None = None,
    ) -> list[SearchResult]:
        """Rank indexed chunks against ``query``, optionally restricted by ``filters``."""
        top_k = self.settings.search_top_k if top_k is None else top_k
        min_similarity = self.settings.search_min_similarity if min_similarity is None else min_similarity
        _validate_search(query, top_k, min_similarity)

        start_time = time.perf_counter()
        snapshot = self.vector_index.all_vectors()
        if filters is not None:
            snapshot = tuple(chunk for chunk in snapshot if filters.matches_metadata(resolve_metadata(chunk)))
        if not snapshot:
            return []
        outcome = self.orchestrator.embed_all([query])[0]
        if not outcome.ok:
            raise ProviderError(f"Query embedding failed: {outcome.error}")
        expected = snapshot[0].dimension
        if len(outcome.vector) != expected:
            raise DimensionMismatchError(expected, len(outcome.vector), detail="query embedding")
        results = rank_chunks(outcome.vector, snapshot, top_k=top_k, min_similarity=min_similarity)

        duration = time.perf_counter() - start_time
        SEARCH_LATENCY.observe(duration)
        logger.info(
            "Search returned %s of %s chunks",
            len(results),
            len(snapshot),
            extra={"ctx_top_k": top_k, "ctx_min_similarity": min_similarity},
        )
        return results

    def get_stats(self) -> dict[str, Any]:
        index_stats = self.vector_index.stats()
        with self._stats_lock:
            last_run = self._last_run.to_dict() if self._last_run else None
            totals = self._totals.to_dict()
        return {
            "index": index_stats.to_dict(),
            "documents": {
                "total": self.store.count_documents(),
                "processed": self.store.count_processed(),
                "fingerprinted": len(self.fingerprints),
            },
            "embedding": {
                "model": self.provider.name,
                "dimension": index_stats.dimension or self.provider.dimension,
            },
            "lastRun": last_run,
            "totals": totals,
            "processing": self.is_processing,
        }

    def reset(self, wait: bool = False) -> None:
        """Drop every indexed chunk and fingerprint so the next run starts fresh."""
        if not self._run_lock.acquire(blocking=wait):
            raise ProcessingInProgressError("Cannot reset while document processing is in progress")
        try:
            logger.info("Resetting vector index and fingerprints")
            self.vector_index.reset()
            self.fingerprints.clear()
            for document in self.store.list_documents():
                if document.processed or document.fingerprint:
                    self.store.update_document_status(document.id, fingerprint=None, processed=False)
            with self._stats_lock:
                self._last_run = None
                self._totals = ProcessingStats()
            INDEX_SIZE.set(0)
        finally:
            self._run_lock.release()

    def close(self) -> None:
        self.provider.close()

    # Internal helpers -------------------------------------------------

    def _run(self, filters: DocumentFilter | None) -> ProcessingStats:
        stats = ProcessingStats()
        start_time = time.perf_counter()
        dimension = self._discover_dimension()
        if dimension is not None:
            self.vector_index.ensure_dimension(dimension)
        documents = self.store.list_documents(filters)
        logger.info("Processing run started for %s documents", len(documents))

        for document in documents:
            if self._cancel_event.is_set():
                stats.cancelled = True
                break
            stats.scanned += 1
            decision = self.fingerprints.should_process(document, self.settings.skip_existing)
            if decision.skip:
                stats.skipped += 1
                DOCUMENTS_TOTAL.labels(status="skipped").inc()
                logger.debug("Skipping unchanged document %s", document.id)
                continue
            try:
                chunk_count = self._process_document(document, decision.fingerprint, stats)
            except ProcessingCancelled:
                stats.cancelled = True
                logger.info("Discarded in-flight document %s after cancellation", document.id)
                break
            except (DocumentProcessingError, DocumentStoreError) as exc:
                stats.failed += 1
                stats.errors.append(f"{document.filename or document.id}: {exc}")
                DOCUMENTS_TOTAL.labels(status="failed").inc()
                logger.warning(
                    "Failed to process document %s: %s",
                    document.id,
                    exc,
                    extra={"ctx_document_id": document.id},
                )
                continue
            stats.processed += 1
            stats.chunks_created += chunk_count
            DOCUMENTS_TOTAL.labels(status="processed").inc()

        duration = time.perf_counter() - start_time
        stats.elapsed_ms = int(duration * 1000)
        with self._stats_lock:
            self._last_run = stats
            self._totals.merge(stats)
        PROCESS_DURATION.observe(duration)
        INDEX_SIZE.set(self.vector_index.size)
        logger.info(
            "Processing run finished",
            extra={
                "ctx_scanned": stats.scanned,
                "ctx_processed": stats.processed,
                "ctx_skipped": stats.skipped,
                "ctx_failed": stats.failed,
                "ctx_chunks": stats.chunks_created,
                "ctx_cancelled": stats.cancelled,
            },
        )
        return stats

    def _discover_dimension(self) -> int | None:
        """Provider vector size, probed through the retrying orchestrator when unknown."""
        if self.provider.dimension is not None:
            return self.provider.dimension
        outcome = self.orchestrator.embed_all([DIMENSION_PROBE_TEXT], self._cancel_event)[0]
        if not outcome.ok:
            logger.warning("Dimension probe failed, the first indexed document fixes it: %s", outcome.error)
            return None
        logger.info("Probed embedding dimension %s for %s", len(outcome.vector), self.provider.name)
        return len(outcome.vector)

    def _process_document(self, document: Document, fingerprint: str, stats: ProcessingStats) -> int:
        spans = self.chunker.chunk(document.text)
        outcomes = self.orchestrator.embed_all([span.text for span in spans], self._cancel_event)
        stats.embeddings_generated += sum(1 for outcome in outcomes if outcome.ok)
        if self._cancel_event.is_set():
            raise ProcessingCancelled(f"Cancelled while processing {document.id}")

        failures = [outcome for outcome in outcomes if not outcome.ok]
        if failures:
            raise DocumentProcessingError(
                document.id,
                f"{len(failures)} of {len(outcomes)} chunks failed to embed: {failures[0].error}",
            )

        chunks = build_chunks(document, spans, [outcome.vector for outcome in outcomes], self.provider.name)
        self.vector_index.insert(document.id, chunks)
        self.store.update_document_status(document.id, fingerprint=fingerprint, processed=True)
        self.fingerprints.record(document.id, fingerprint)
        CHUNKS_EMBEDDED.inc(len(chunks))
        logger.info(
            "Indexed document %s",
            document.filename or document.id,
            extra={"ctx_document_id": document.id, "ctx_chunks": len(chunks)},
        )
        return len(chunks)


def _validate_search(query: str, top_k: int, min_similarity: float) -> None:
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("query must be a non-empty string")
    if len(query) > MAX_QUERY_CHARS:
        raise ValidationError(f"query must be at most {MAX_QUERY_CHARS} characters")
    if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k < 1:
        raise ValidationError(f"topK must be an integer >= 1, got {top_k!r}")
    if isinstance(min_similarity, bool) or not isinstance(min_similarity, (int, float)):
        raise ValidationError(f"minSimilarity must be a number, got {min_similarity!r}")
    if not 0.0 <= float(min_similarity) <= 1.0:
        raise ValidationError(f"minSimilarity must be between 0 and 1, got {min_similarity}")


__all__ = ["DocumentProcessor", "MAX_QUERY_CHARS"]
