"""Vector index backends."""

from .vector_index import (
    IndexInfo,
    InMemoryVectorIndex,
    QdrantVectorIndex,
    SearchResult,
    VectorIndex,
    VectorPoint,
)

__all__ = [
    "VectorIndex",
    "VectorPoint",
    "SearchResult",
    "IndexInfo",
    "QdrantVectorIndex",
    "InMemoryVectorIndex",
]
