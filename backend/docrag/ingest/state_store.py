"""Durable per-file ingestion ledger."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Sequence

from docrag.core.logging import get_logger
from docrag.db.sqlite import SQLiteDatabase
from docrag.ingest.types import FileState
from docrag.utils.time import isoformat_utc, utc_now

logger = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS ingested_files (
  file_path TEXT PRIMARY KEY,
  content_hash TEXT NOT NULL,
  last_ingested TEXT NOT NULL,
  chunk_count INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS chunk_ids (
  id TEXT PRIMARY KEY,
  file_path TEXT NOT NULL,
  ordinal INTEGER NOT NULL,
  FOREIGN KEY (file_path) REFERENCES ingested_files(file_path) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_chunk_file_path ON chunk_ids(file_path);
"""


class StateStore:
    """Ledger of source files, their last-seen content hash and owned chunk ids.

    Every mutating call commits before returning, so an acknowledged change
    survives a crash.
    """

    def __init__(self, database: SQLiteDatabase) -> None:
        self.db = database

    @classmethod
    def at_path(cls, path: Path) -> "StateStore":
        return cls(SQLiteDatabase(path))

    def open(self) -> None:
        self.db.connect()
        self.db.ensure_schema(SCHEMA_SQL)
        self.db.commit()
        logger.info("State store initialized", extra={"ctx_db_path": str(self.db.db_path)})

    def close(self) -> None:
        self.db.commit()
        self.db.close()

    def __enter__(self) -> "StateStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get(self, file_path: str) -> FileState | None:
        row = self.db.execute(
            "SELECT file_path, content_hash, last_ingested FROM ingested_files WHERE file_path = ?",
            [file_path],
        ).fetchone()
        if row is None:
            return None
        return self._to_state(row["file_path"], row["content_hash"], row["last_ingested"])

    def get_all(self) -> list[FileState]:
        rows = self.db.query("SELECT file_path, content_hash, last_ingested FROM ingested_files ORDER BY file_path")
        return [self._to_state(row["file_path"], row["content_hash"], row["last_ingested"]) for row in rows]

    def chunk_ids_for(self, file_path: str) -> list[str]:
        rows = self.db.query("SELECT id FROM chunk_ids WHERE file_path = ? ORDER BY ordinal", [file_path])
        return [row["id"] for row in rows]

    def upsert(self, file_path: str, content_hash: str, chunk_ids: Sequence[str]) -> FileState:
        """Replace the hash and chunk-id set of one file in a single transaction."""
        now = utc_now()
        ids = list(dict.fromkeys(chunk_ids))
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM chunk_ids WHERE file_path = ?", [file_path])
            cursor.execute(
                """
                INSERT INTO ingested_files (file_path, content_hash, last_ingested, chunk_count)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(file_path) DO UPDATE SET
                  content_hash = excluded.content_hash,
                  last_ingested = excluded.last_ingested,
                  chunk_count = excluded.chunk_count
                """,
                [file_path, content_hash, isoformat_utc(now), len(ids)],
            )
            cursor.executemany(
                "INSERT OR REPLACE INTO chunk_ids (id, file_path, ordinal) VALUES (?, ?, ?)",
                [(chunk_id, file_path, ordinal) for ordinal, chunk_id in enumerate(ids)],
            )
        return FileState(file_path=file_path, content_hash=content_hash, last_ingested_at=now, chunk_ids=tuple(ids))

    def delete(self, file_path: str) -> list[str]:
        """Remove a file's state and return the chunk ids it owned."""
        chunk_ids = self.chunk_ids_for(file_path)
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM ingested_files WHERE file_path = ?", [file_path])
        return chunk_ids

    def clear_all(self) -> None:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM chunk_ids")
            cursor.execute("DELETE FROM ingested_files")
        logger.info("Cleared all ingestion state")

    def counts(self) -> tuple[int, int]:
        """Return ``(files, chunk_ids)`` row counts."""
        files = self.db.scalar("SELECT COUNT(*) FROM ingested_files")
        chunks = self.db.scalar("SELECT COUNT(*) FROM chunk_ids")
        return int(files), int(chunks)

    def _to_state(self, file_path: str, content_hash: str, last_ingested: str) -> FileState:
        return FileState(
            file_path=file_path,
            content_hash=content_hash,
            last_ingested_at=datetime.fromisoformat(last_ingested.replace("Z", "+00:00")),
            chunk_ids=tuple(self.chunk_ids_for(file_path)),
        )


__all__ = ["StateStore", "SCHEMA_SQL"]
