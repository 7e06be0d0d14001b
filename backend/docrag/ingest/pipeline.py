"""Ingest pipeline orchestration."""

from __future__ import annotations

import time
from collections import defaultdict
from typing import Callable, Sequence

from docrag.core.logging import get_logger
from docrag.core.metrics import INDEX_SIZE, INGEST_CHUNKS, INGEST_DURATION, INGEST_FILES, INGEST_RUNS
from docrag.ingest.chunker import Chunker
from docrag.ingest.embeddings import EmbeddingClient
from docrag.ingest.reader import ContentReader
from docrag.ingest.state_store import StateStore
from docrag.ingest.types import Chunk, DocumentRecord, EmbeddedChunk, FileState, IngestResult, ScanResult
from docrag.retrieval.vector_index import VectorIndex, VectorPoint, source_file_filter
from docrag.utils.hashing import sha256_text

logger = get_logger(__name__)


class IngestError(RuntimeError):
    """An ingestion run aborted; ``result`` holds the counters accumulated so far."""

    def __init__(self, message: str, result: IngestResult) -> None:
        super().__init__(message)
        self.result = result


def content_hash_of(doc: DocumentRecord) -> str:
    return sha256_text(doc.content)


class IngestOrchestrator:
    """Keep the vector index and the ledger in sync with the docs tree.

    ``ingest_incremental`` re-processes only files whose body hash changed and
    removes files that disappeared; ``ingest_full`` drops everything and
    rebuilds from scratch. Per-file failures are recorded in the result and
    the run continues; setup and embedding failures abort with ``IngestError``.
    """

    def __init__(
        self,
        *,
        reader: ContentReader,
        chunker: Chunker,
        embedder: EmbeddingClient,
        vector_index: VectorIndex,
        state_store: StateStore,
        vector_dim: int,
        upsert_batch_size: int = 100,
    ) -> None:
        if upsert_batch_size <= 0:
            raise ValueError("upsert_batch_size must be > 0")
        self.reader = reader
        self.chunker = chunker
        self.embedder = embedder
        self.vector_index = vector_index
        self.state_store = state_store
        self.vector_dim = vector_dim
        self.upsert_batch_size = upsert_batch_size

    def ingest_incremental(self) -> IngestResult:
        return self._run("incremental", self._incremental)

    def ingest_full(self) -> IngestResult:
        return self._run("full", self._full)

    # Run modes ---------------------------------------------------------

    def _incremental(self, result: IngestResult) -> None:
        self.state_store.open()
        self.vector_index.ensure_schema(self.vector_dim)

        scan = self._scan(result)
        present = scan.file_paths | set(scan.failures)

        for state in self.state_store.get_all():
            if state.file_path not in present:
                self._delete_file(state, result)

        changed: list[tuple[DocumentRecord, str, list[Chunk]]] = []
        for doc in scan.documents:
            content_hash = content_hash_of(doc)
            state = self.state_store.get(doc.file_path)
            if state is not None and state.content_hash == content_hash:
                logger.debug("File unchanged, skipping %s", doc.file_path, extra={"ctx_file": doc.file_path})
                continue
            logger.info(
                "%s %s",
                "File changed, re-indexing" if state else "New file, indexing",
                doc.file_path,
                extra={"ctx_file": doc.file_path, "ctx_is_new": state is None},
            )
            changed.append((doc, content_hash, self.chunker.chunk_document(doc)))

        if not changed:
            logger.info("No changes detected, nothing to embed")
            return

        queued = [chunk for _, _, chunks in changed for chunk in chunks]
        embedded = self.embedder.embed_chunks(queued, on_progress=_log_progress("Embedding progress"))

        by_file: dict[str, list[EmbeddedChunk]] = defaultdict(list)
        for item in embedded:
            by_file[item.source_file].append(item)

        for doc, content_hash, _ in changed:
            self._replace_file(doc.file_path, content_hash, by_file.get(doc.file_path, []), result)

        self._update_index_metric()

    def _full(self, result: IngestResult) -> None:
        self.state_store.open()

        info = self.vector_index.info()
        if info is not None:
            result.chunks_deleted = info.points_count
            logger.info("Deleting existing collection (%s points)", info.points_count)
            self.vector_index.drop()

        self.state_store.clear_all()
        self.vector_index.ensure_schema(self.vector_dim)

        scan = self._scan(result)
        all_chunks = self.chunker.chunk_documents(scan.documents)
        chunk_ids_by_file: dict[str, list[str]] = defaultdict(list)
        for chunk in all_chunks:
            chunk_ids_by_file[chunk.metadata.source_file].append(chunk.id)

        embedded = self.embedder.embed_chunks(all_chunks, on_progress=_log_progress("Embedding progress"))

        for start in range(0, len(embedded), self.upsert_batch_size):
            batch = embedded[start : start + self.upsert_batch_size]
            self.vector_index.upsert(_to_points(batch))
            result.chunks_upserted += len(batch)
            logger.debug("Upsert progress %s/%s", result.chunks_upserted, len(embedded))

        for doc in scan.documents:
            try:
                self.state_store.upsert(doc.file_path, content_hash_of(doc), chunk_ids_by_file.get(doc.file_path, []))
                result.files_updated += 1
            except Exception as exc:
                logger.exception("Failed to record state for %s", doc.file_path, extra={"ctx_file": doc.file_path})
                result.errors.append(f"Failed to record state for {doc.file_path}: {exc}")

        self._update_index_metric()

    # Internal helpers -------------------------------------------------

    def _run(self, mode: str, body: Callable[[IngestResult], None]) -> IngestResult:
        result = IngestResult()
        status = "failed"
        started = time.perf_counter()
        # Per-file errors only; the abort message is not a file outcome.
        file_failures = 0
        try:
            body(result)
            file_failures = len(result.errors)
            status = "completed" if result.ok else "partial"
            logger.info("%s ingestion complete", mode.capitalize(), extra={"ctx_result": result.to_dict()})
            return result
        except Exception as exc:
            file_failures = len(result.errors)
            logger.exception("%s ingestion aborted: %s", mode.capitalize(), exc)
            result.errors.append(f"Ingestion aborted: {exc}")
            raise IngestError(str(exc), result) from exc
        finally:
            self.state_store.close()
            INGEST_RUNS.labels(mode=mode, status=status).inc()
            INGEST_DURATION.labels(mode=mode).observe(time.perf_counter() - started)
            INGEST_FILES.labels(mode=mode, outcome="updated").inc(result.files_updated)
            INGEST_FILES.labels(mode=mode, outcome="deleted").inc(result.files_deleted)
            INGEST_FILES.labels(mode=mode, outcome="failed").inc(file_failures)
            INGEST_CHUNKS.labels(mode=mode, operation="upserted").inc(result.chunks_upserted)
            INGEST_CHUNKS.labels(mode=mode, operation="deleted").inc(result.chunks_deleted)

    def _scan(self, result: IngestResult) -> ScanResult:
        scan = self.reader.scan()
        result.files_scanned = len(scan.documents)
        for file_path, message in scan.failures.items():
            result.errors.append(f"Failed to read {file_path}: {message}")
        return scan

    def _delete_file(self, state: FileState, result: IngestResult) -> None:
        logger.info("Deleting removed file from index: %s", state.file_path, extra={"ctx_file": state.file_path})
        try:
            self.vector_index.delete_by_filter(source_file_filter(state.file_path))
            chunk_ids = self.state_store.delete(state.file_path)
        except Exception as exc:
            logger.exception("Delete failed for %s", state.file_path, extra={"ctx_file": state.file_path})
            result.errors.append(f"Failed to delete {state.file_path}: {exc}")
            return
        result.files_deleted += 1
        result.chunks_deleted += len(chunk_ids)

    def _replace_file(
        self,
        file_path: str,
        content_hash: str,
        embedded: Sequence[EmbeddedChunk],
        result: IngestResult,
    ) -> None:
        try:
            old_state = self.state_store.get(file_path)
            if old_state is not None:
                self.vector_index.delete_by_filter(source_file_filter(file_path))
                result.chunks_deleted += old_state.chunk_count
            self.vector_index.upsert(_to_points(embedded))
            self.state_store.upsert(file_path, content_hash, [item.id for item in embedded])
        except Exception as exc:
            logger.exception("Upsert failed for %s", file_path, extra={"ctx_file": file_path})
            result.errors.append(f"Failed to upsert {file_path}: {exc}")
            return
        result.files_updated += 1
        result.chunks_upserted += len(embedded)
        logger.info("File indexed successfully: %s (%s chunks)", file_path, len(embedded), extra={"ctx_file": file_path})

    def _update_index_metric(self) -> None:
        try:
            info = self.vector_index.info()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not read index size: %s", exc)
            return
        INDEX_SIZE.set(info.points_count if info else 0)


def _to_points(embedded: Sequence[EmbeddedChunk]) -> list[VectorPoint]:
    return [VectorPoint(id=item.id, vector=item.vector, payload=item.payload()) for item in embedded]


def _log_progress(message: str) -> Callable[[int, int], None]:
    def _report(done: int, total: int) -> None:
        logger.debug("%s %s/%s", message, done, total, extra={"ctx_done": done, "ctx_total": total})

    return _report


__all__ = ["IngestOrchestrator", "IngestError", "content_hash_of"]
