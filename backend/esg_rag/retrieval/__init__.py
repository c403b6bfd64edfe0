"""Retrieval components."""

from .vector_index import IndexStats, VectorIndex
from .search import SearchResult, cosine_similarity, rank_chunks, resolve_metadata

__all__ = [
    "VectorIndex",
    "IndexStats",
    "SearchResult",
    "cosine_similarity",
    "rank_chunks",
    "resolve_metadata",
]
