"""Similarity ranking over index snapshots."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Sequence

from esg_rag.core.errors import DimensionMismatchError
from esg_rag.models.entities import Chunk


@dataclass(frozen=True, slots=True)
class SearchResult:
    id: str
    content: str
    similarity: float
    metadata: dict[str, Any] = field(default_factory=dict)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Normalised dot product; zero-norm vectors score 0."""
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def resolve_metadata(chunk: Chunk) -> dict[str, Any]:
    """Merge document-level then chunk-level metadata; chunk-level wins."""
    merged = {key: value for key, value in chunk.document_metadata.items() if value is not None}
    merged.update({key: value for key, value in chunk.metadata.items() if value is not None})
    merged["documentId"] = chunk.document_id
    return merged


def rank_chunks(
    query_vector: Sequence[float],
    chunks: Sequence[Chunk],
    top_k: int,
    min_similarity: float,
) -> list[SearchResult]:
    """Score every chunk, drop those below ``min_similarity``, keep the best ``top_k``.

    ``sorted`` is stable, so equal scores keep the snapshot's insertion order.
    """
    if not chunks:
        return []
    scored: list[tuple[Chunk, float]] = []
    for chunk in chunks:
        score = cosine_similarity(query_vector, chunk.vector)
        if score >= min_similarity:
            scored.append((chunk, score))
    scored = sorted(scored, key=lambda item: item[1], reverse=True)
    return [
        SearchResult(
            id=chunk.id,
            content=chunk.text,
            similarity=score,
            metadata=resolve_metadata(chunk),
        )
        for chunk, score in scored[:top_k]
    ]


__all__ = ["SearchResult", "cosine_similarity", "resolve_metadata", "rank_chunks"]
