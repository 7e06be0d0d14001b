"""Tests for vector index backends."""

import uuid

import pytest
from qdrant_client import QdrantClient

from docrag.core.config import VectorDimensionError
from docrag.retrieval.vector_index import (
    InMemoryVectorIndex,
    QdrantVectorIndex,
    VectorPoint,
    point_uuid,
    source_file_filter,
)


def _points() -> list[VectorPoint]:
    return [
        VectorPoint(
            id=uuid.uuid4().hex,
            vector=[1.0, 0.0, 0.0],
            payload={"source_file": "a.md", "doc_category": "guide", "chunk_id": "a0"},
        ),
        VectorPoint(
            id=uuid.uuid4().hex,
            vector=[0.9, 0.1, 0.0],
            payload={"source_file": "a.md", "doc_category": "guide", "chunk_id": "a1"},
        ),
        VectorPoint(
            id=uuid.uuid4().hex,
            vector=[0.0, 1.0, 0.0],
            payload={"source_file": "b.md", "doc_category": "api", "chunk_id": "b0"},
        ),
    ]


@pytest.fixture(params=["memory", "qdrant"])
def index(request):
    if request.param == "memory":
        return InMemoryVectorIndex()
    return QdrantVectorIndex(QdrantClient(location=":memory:"), "docs-test")


def test_schema_lifecycle(index) -> None:
    assert not index.exists()
    assert index.info() is None
    index.ensure_schema(3)
    index.ensure_schema(3)
    assert index.exists()
    info = index.info()
    assert info.points_count == 0
    assert info.vector_size == 3
    with pytest.raises(VectorDimensionError):
        index.ensure_schema(4)
    index.drop()
    assert not index.exists()


def test_upsert_search_and_filter(index) -> None:
    index.ensure_schema(3)
    index.upsert(_points())
    assert index.count() == 3
    results = index.search([1.0, 0.0, 0.0], top_k=2)
    assert [hit.chunk_id for hit in results] == ["a0", "a1"]
    filtered = index.search([1.0, 0.0, 0.0], top_k=5, payload_filter={"doc_category": "api"})
    assert [hit.chunk_id for hit in filtered] == ["b0"]


def test_upsert_same_id_overwrites(index) -> None:
    index.ensure_schema(3)
    point = _points()[0]
    index.upsert([point])
    index.upsert([VectorPoint(id=point.id, vector=point.vector, payload={**point.payload, "chunk_id": "new"})])
    assert index.count() == 1
    assert index.search([1.0, 0.0, 0.0], top_k=1)[0].chunk_id == "new"


def test_delete_by_source_file(index) -> None:
    index.ensure_schema(3)
    index.upsert(_points())
    index.delete_by_filter(source_file_filter("a.md"))
    assert index.count() == 1
    assert index.count(source_file_filter("a.md")) == 0
    assert index.count(source_file_filter("b.md")) == 1


def test_scroll_returns_payload_and_vectors(index) -> None:
    index.ensure_schema(3)
    index.upsert(_points())
    points = index.scroll(limit=2)
    assert len(points) == 2
    assert all(len(point.vector) == 3 for point in points)
    assert all("source_file" in point.payload for point in points)


def test_health(index) -> None:
    assert index.health() is True


def test_point_uuid() -> None:
    hex_id = uuid.uuid4().hex
    assert point_uuid(hex_id) == str(uuid.UUID(hex=hex_id))
    assert point_uuid("not-hex") == point_uuid("not-hex")
