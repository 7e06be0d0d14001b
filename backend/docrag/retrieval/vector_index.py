"""Vector index abstraction."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

from qdrant_client import QdrantClient, models

from docrag.core.config import VectorDimensionError
from docrag.core.logging import get_logger

logger = get_logger(__name__)

PAYLOAD_INDEX_FIELDS = ("source_file", "doc_category")

PayloadFilter = Mapping[str, Any]


@dataclass(slots=True)
class VectorPoint:
    id: str
    vector: list[float]
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class SearchResult:
    chunk_id: str
    score: float
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class IndexInfo:
    points_count: int
    vector_size: int | None
    distance: str | None


class VectorIndex(Protocol):
    """Collection-scoped contract the ingestion orchestrator relies on.

    Filters are flat ``{payload_field: value}`` mappings; every pair must match.
    """

    def exists(self) -> bool: ...

    def ensure_schema(self, dimension: int) -> None: ...

    def drop(self) -> None: ...

    def upsert(self, points: Sequence[VectorPoint]) -> None: ...

    def delete_by_filter(self, payload_filter: PayloadFilter) -> None: ...

    def count(self, payload_filter: PayloadFilter | None = None) -> int: ...

    def search(
        self, vector: Sequence[float], top_k: int = 6, payload_filter: PayloadFilter | None = None
    ) -> list[SearchResult]: ...

    def scroll(self, limit: int = 5) -> list[VectorPoint]: ...

    def info(self) -> IndexInfo | None: ...

    def health(self) -> bool: ...


def source_file_filter(file_path: str) -> dict[str, str]:
    return {"source_file": file_path}


def point_uuid(chunk_id: str) -> str:
    """Render a chunk id as the UUID string Qdrant expects for point ids."""
    try:
        return str(uuid.UUID(hex=chunk_id))
    except ValueError:
        return str(uuid.uuid5(uuid.NAMESPACE_URL, chunk_id))


class QdrantVectorIndex:
    """VectorIndex backed by one Qdrant collection."""

    def __init__(self, client: QdrantClient, collection: str) -> None:
        self.client = client
        self.collection = collection

    @classmethod
    def connect(cls, url: str, collection: str, api_key: str | None = None) -> "QdrantVectorIndex":
        if url == ":memory:":
            client = QdrantClient(location=":memory:")
        else:
            client = QdrantClient(url=url, api_key=api_key or None)
        logger.info("Qdrant client initialized", extra={"ctx_url": url, "ctx_collection": collection})
        return cls(client, collection)

    def exists(self) -> bool:
        collections = self.client.get_collections().collections
        return any(item.name == self.collection for item in collections)

    def ensure_schema(self, dimension: int) -> None:
        if self.exists():
            info = self.info()
            if info is not None and info.vector_size is not None and info.vector_size != dimension:
                raise VectorDimensionError(
                    f"Collection {self.collection} stores {info.vector_size}-dimensional vectors, "
                    f"configured vector_dim is {dimension}"
                )
            logger.debug("Collection already exists", extra={"ctx_collection": self.collection})
            return

        logger.info("Creating Qdrant collection", extra={"ctx_collection": self.collection, "ctx_dim": dimension})
        self.client.create_collection(
            collection_name=self.collection,
            vectors_config=models.VectorParams(size=dimension, distance=models.Distance.COSINE),
        )
        for field_name in PAYLOAD_INDEX_FIELDS:
            self.client.create_payload_index(
                collection_name=self.collection,
                field_name=field_name,
                field_schema=models.PayloadSchemaType.KEYWORD,
            )
        logger.info("Collection created with indexes", extra={"ctx_collection": self.collection})

    def drop(self) -> None:
        self.client.delete_collection(collection_name=self.collection)

    def upsert(self, points: Sequence[VectorPoint]) -> None:
        if not points:
            return
        self.client.upsert(
            collection_name=self.collection,
            points=[
                models.PointStruct(id=point_uuid(point.id), vector=list(point.vector), payload=point.payload)
                for point in points
            ],
            wait=True,
        )

    def delete_by_filter(self, payload_filter: PayloadFilter) -> None:
        self.client.delete(
            collection_name=self.collection,
            points_selector=models.FilterSelector(filter=_to_qdrant_filter(payload_filter)),
            wait=True,
        )

    def count(self, payload_filter: PayloadFilter | None = None) -> int:
        result = self.client.count(
            collection_name=self.collection,
            count_filter=_to_qdrant_filter(payload_filter) if payload_filter else None,
            exact=True,
        )
        return int(result.count)

    def search(
        self, vector: Sequence[float], top_k: int = 6, payload_filter: PayloadFilter | None = None
    ) -> list[SearchResult]:
        response = self.client.query_points(
            collection_name=self.collection,
            query=list(vector),
            limit=top_k,
            query_filter=_to_qdrant_filter(payload_filter) if payload_filter else None,
            with_payload=True,
        )
        results: list[SearchResult] = []
        for point in response.points:
            payload = dict(point.payload or {})
            results.append(SearchResult(chunk_id=str(payload.get("chunk_id", point.id)), score=point.score, payload=payload))
        return results

    def scroll(self, limit: int = 5) -> list[VectorPoint]:
        records, _ = self.client.scroll(
            collection_name=self.collection,
            limit=limit,
            with_payload=True,
            with_vectors=True,
        )
        points: list[VectorPoint] = []
        for record in records:
            vector = record.vector if isinstance(record.vector, list) else []
            points.append(VectorPoint(id=str(record.id), vector=list(vector), payload=dict(record.payload or {})))
        return points

    def info(self) -> IndexInfo | None:
        if not self.exists():
            return None
        collection = self.client.get_collection(collection_name=self.collection)
        vectors = collection.config.params.vectors
        distance = getattr(vectors, "distance", None)
        return IndexInfo(
            points_count=int(collection.points_count or 0),
            vector_size=getattr(vectors, "size", None),
            distance=getattr(distance, "value", distance),
        )

    def health(self) -> bool:
        try:
            self.client.get_collections()
        except Exception as exc:  # noqa: BLE001
            logger.error("Qdrant health check failed: %s", exc)
            return False
        return True


class InMemoryVectorIndex:
    """Process-local VectorIndex using cosine similarity; nothing is persisted."""

    def __init__(self) -> None:
        self.dim: int | None = None
        self._points: dict[str, VectorPoint] = {}

    @property
    def size(self) -> int:
        return len(self._points)

    def exists(self) -> bool:
        return self.dim is not None

    def ensure_schema(self, dimension: int) -> None:
        if self.dim is not None and self.dim != dimension:
            raise VectorDimensionError(f"Index stores {self.dim}-dimensional vectors, configured vector_dim is {dimension}")
        self.dim = dimension

    def drop(self) -> None:
        self.dim = None
        self._points = {}

    def upsert(self, points: Sequence[VectorPoint]) -> None:
        self._require_collection()
        for point in points:
            if len(point.vector) != self.dim:
                raise VectorDimensionError("Vector dimension mismatch")
        for point in points:
            self._points[point.id] = VectorPoint(id=point.id, vector=list(point.vector), payload=dict(point.payload))

    def delete_by_filter(self, payload_filter: PayloadFilter) -> None:
        self._require_collection()
        self._points = {pid: point for pid, point in self._points.items() if not _matches(point.payload, payload_filter)}

    def count(self, payload_filter: PayloadFilter | None = None) -> int:
        self._require_collection()
        if not payload_filter:
            return len(self._points)
        return sum(1 for point in self._points.values() if _matches(point.payload, payload_filter))

    def search(
        self, vector: Sequence[float], top_k: int = 6, payload_filter: PayloadFilter | None = None
    ) -> list[SearchResult]:
        self._require_collection()
        if len(vector) != self.dim:
            raise VectorDimensionError("Query vector dimension mismatch")
        scores = [
            (point, _cosine(point.vector, vector))
            for point in self._points.values()
            if not payload_filter or _matches(point.payload, payload_filter)
        ]
        scores.sort(key=lambda item: item[1], reverse=True)
        return [
            SearchResult(chunk_id=str(point.payload.get("chunk_id", point.id)), score=score, payload=dict(point.payload))
            for point, score in scores[:top_k]
        ]

    def scroll(self, limit: int = 5) -> list[VectorPoint]:
        self._require_collection()
        return list(self._points.values())[:limit]

    def info(self) -> IndexInfo | None:
        if self.dim is None:
            return None
        return IndexInfo(points_count=len(self._points), vector_size=self.dim, distance="Cosine")

    def health(self) -> bool:
        return True

    def _require_collection(self) -> None:
        if self.dim is None:
            raise RuntimeError("Collection does not exist; call ensure_schema first")


def _to_qdrant_filter(payload_filter: PayloadFilter) -> models.Filter:
    return models.Filter(
        must=[
            models.FieldCondition(key=key, match=models.MatchValue(value=value))
            for key, value in payload_filter.items()
        ]
    )


def _matches(payload: Mapping[str, Any], payload_filter: PayloadFilter) -> bool:
    return all(payload.get(key) == value for key, value in payload_filter.items())


def _cosine(a: Sequence[float], b: Sequence[float]) -> float:
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return sum(x * y for x, y in zip(a, b)) / (norm_a * norm_b)


__all__ = [
    "VectorIndex",
    "VectorPoint",
    "SearchResult",
    "IndexInfo",
    "QdrantVectorIndex",
    "InMemoryVectorIndex",
    "PAYLOAD_INDEX_FIELDS",
    "source_file_filter",
    "point_uuid",
]
