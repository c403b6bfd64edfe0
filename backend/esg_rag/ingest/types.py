"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class ChunkSpan:
    """Chunk produced by the chunker prior to embedding."""

    text: str
    start_char: int
    end_char: int
    token_count: int


@dataclass(slots=True)
class ProcessingStats:
    """Aggregated statistics for one processing run."""

    scanned: int = 0
    skipped: int = 0
    processed: int = 0
    failed: int = 0
    chunks_created: int = 0
    embeddings_generated: int = 0
    elapsed_ms: int = 0
    cancelled: bool = False
    errors: list[str] = field(default_factory=list)

    def merge(self, other: "ProcessingStats") -> None:
        """Fold another run's counters into this cumulative view."""
        self.scanned += other.scanned
        self.skipped += other.skipped
        self.processed += other.processed
        self.failed += other.failed
        self.chunks_created += other.chunks_created
        self.embeddings_generated += other.embeddings_generated
        self.elapsed_ms += other.elapsed_ms

    def to_dict(self) -> dict[str, object]:
        return {
            "scanned": self.scanned,
            "skipped": self.skipped,
            "processed": self.processed,
            "failed": self.failed,
            "chunksCreated": self.chunks_created,
            "embeddingsGenerated": self.embeddings_generated,
            "elapsedMs": self.elapsed_ms,
            "cancelled": self.cancelled,
            "errors": list(self.errors),
        }


__all__ = ["ChunkSpan", "ProcessingStats"]
