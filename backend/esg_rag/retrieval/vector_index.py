"""Vector index abstraction."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from itertools import chain
from typing import Sequence

from esg_rag.core.errors import DimensionMismatchError
from esg_rag.models.entities import Chunk


@dataclass(frozen=True, slots=True)
class IndexStats:
    document_count: int
    chunk_count: int
    dimension: int | None

    def to_dict(self) -> dict[str, int | None]:
        return {
            "documentCount": self.document_count,
            "chunkCount": self.chunk_count,
            "dimension": self.dimension,
        }


class VectorIndex:
    """In-memory chunk store scanned linearly by similarity search.

    Each document's chunks are swapped in as one tuple under a lock, so a
    snapshot holds either all of a document's chunks or none of them.
    """

    def __init__(self, dimension: int | None = None) -> None:
        self._configured_dim = dimension
        self.dimension = dimension
        self._documents: dict[str, tuple[Chunk, ...]] = {}
        self._chunk_count = 0
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        return self._chunk_count

    def ensure_dimension(self, dimension: int) -> None:
        """Fail when vectors of ``dimension`` cannot live in this index."""
        with self._lock:
            if self.dimension is not None and self.dimension != dimension:
                raise DimensionMismatchError(self.dimension, dimension, detail="reset required")

    def insert(self, document_id: str, chunks: Sequence[Chunk]) -> None:
        """Replace every chunk of ``document_id``; an empty sequence removes them."""
        frozen = tuple(chunks)
        with self._lock:
            dim = self.dimension
            for chunk in frozen:
                if chunk.document_id != document_id:
                    raise ValueError(f"Chunk {chunk.id} does not belong to document {document_id}")
                if dim is None:
                    dim = chunk.dimension
                elif chunk.dimension != dim:
                    raise DimensionMismatchError(dim, chunk.dimension, detail=f"chunk {chunk.id}")
            previous = self._documents.pop(document_id, ())
            self._chunk_count -= len(previous)
            if frozen:
                self._documents[document_id] = frozen
                self._chunk_count += len(frozen)
            self.dimension = dim

    def all_vectors(self) -> tuple[Chunk, ...]:
        """Immutable snapshot of every chunk, in insertion order."""
        with self._lock:
            return tuple(chain.from_iterable(self._documents.values()))

    def reset(self) -> None:
        with self._lock:
            self._documents = {}
            self._chunk_count = 0
            self.dimension = self._configured_dim

    def stats(self) -> IndexStats:
        with self._lock:
            return IndexStats(
                document_count=len(self._documents),
                chunk_count=self._chunk_count,
                dimension=self.dimension,
            )


__all__ = ["VectorIndex", "IndexStats"]
