"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


@dataclass(slots=True)
class DocumentRecord:
    """A documentation file as read from disk, front matter already stripped."""

    file_path: str
    absolute_path: Path
    content: str
    title: str
    category: str
    url_path: str
    last_modified: datetime
    description: str | None = None


@dataclass(slots=True)
class ScanResult:
    """Documents read from a tree plus the files that could not be read."""

    documents: list[DocumentRecord] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def file_paths(self) -> set[str]:
        return {doc.file_path for doc in self.documents}


@dataclass(frozen=True, slots=True)
class ChunkMetadata:
    source_file: str
    doc_title: str
    section_title: str
    doc_category: str
    url_path: str
    chunk_index: int
    content_hash: str
    last_modified: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "source_file": self.source_file,
            "doc_title": self.doc_title,
            "section_title": self.section_title,
            "doc_category": self.doc_category,
            "url_path": self.url_path,
            "chunk_index": self.chunk_index,
            "content_hash": self.content_hash,
            "last_modified": self.last_modified,
        }


@dataclass(frozen=True, slots=True)
class Chunk:
    """Retrieval-sized passage of one document, enriched with its titles."""

    id: str
    content: str
    token_count: int
    metadata: ChunkMetadata


@dataclass(frozen=True, slots=True)
class EmbeddedChunk:
    chunk: Chunk
    vector: list[float]

    @property
    def id(self) -> str:
        return self.chunk.id

    @property
    def source_file(self) -> str:
        return self.chunk.metadata.source_file

    def payload(self) -> dict[str, Any]:
        payload = self.chunk.metadata.to_payload()
        payload["chunk_id"] = self.chunk.id
        payload["content"] = self.chunk.content
        return payload


@dataclass(frozen=True, slots=True)
class FileState:
    """Ledger row for one source file."""

    file_path: str
    content_hash: str
    last_ingested_at: datetime
    chunk_ids: tuple[str, ...]

    @property
    def chunk_count(self) -> int:
        return len(self.chunk_ids)


@dataclass(slots=True)
class IngestResult:
    """Aggregated counters and error messages of one ingestion run."""

    files_scanned: int = 0
    files_updated: int = 0
    files_deleted: int = 0
    chunks_upserted: int = 0
    chunks_deleted: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "files_scanned": self.files_scanned,
            "files_updated": self.files_updated,
            "files_deleted": self.files_deleted,
            "chunks_upserted": self.chunks_upserted,
            "chunks_deleted": self.chunks_deleted,
            "errors": list(self.errors),
        }


__all__ = [
    "DocumentRecord",
    "ScanResult",
    "ChunkMetadata",
    "Chunk",
    "EmbeddedChunk",
    "FileState",
    "IngestResult",
]
