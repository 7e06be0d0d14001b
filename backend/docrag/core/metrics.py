"""Prometheus metrics instrumentation."""

from __future__ import annotations

from pathlib import Path

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, write_to_textfile

REGISTRY = CollectorRegistry()

INGEST_RUNS = Counter(
    "docrag_ingest_runs_total",
    "Ingestion runs by mode and final status",
    labelnames=("mode", "status"),
    registry=REGISTRY,
)

INGEST_DURATION = Histogram(
    "docrag_ingest_duration_seconds",
    "Ingestion run duration",
    labelnames=("mode",),
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800),
    registry=REGISTRY,
)

INGEST_FILES = Counter(
    "docrag_ingest_files_total",
    "Files handled by ingestion runs",
    labelnames=("mode", "outcome"),
    registry=REGISTRY,
)

INGEST_CHUNKS = Counter(
    "docrag_ingest_chunks_total",
    "Chunks written to or removed from the vector index",
    labelnames=("mode", "operation"),
    registry=REGISTRY,
)

EMBEDDING_RETRIES = Counter(
    "docrag_embedding_retries_total",
    "Embedding batch retries after a provider failure",
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "docrag_index_points",
    "Number of points stored in the vector index",
    registry=REGISTRY,
)


def write_metrics(path: Path) -> None:
    """Write the registry in the node-exporter textfile format."""
    path.parent.mkdir(parents=True, exist_ok=True)
    write_to_textfile(str(path), REGISTRY)


__all__ = [
    "REGISTRY",
    "INGEST_RUNS",
    "INGEST_DURATION",
    "INGEST_FILES",
    "INGEST_CHUNKS",
    "EMBEDDING_RETRIES",
    "INDEX_SIZE",
    "write_metrics",
]
