"""Batch vector search: FAISS index, HTTP service, and clients."""

from __future__ import annotations

from entitylens.vector_search.client import (
    LocalSearcher,
    Searcher,
    VectorSearchClient,
    VectorServiceError,
)
from entitylens.vector_search.index import IndexNotLoadedError, VectorIndex

__all__ = [
    "IndexNotLoadedError",
    "LocalSearcher",
    "Searcher",
    "VectorIndex",
    "VectorSearchClient",
    "VectorServiceError",
]
