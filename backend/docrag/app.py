"""Wiring of ingestion collaborators from settings."""

from __future__ import annotations

from docrag.core.config import Settings
from docrag.ingest.chunker import Chunker, ChunkerOptions, TiktokenCounter
from docrag.ingest.embeddings import EmbeddingClient, EmbeddingProvider, HashedEmbeddingProvider, OpenAIEmbeddingProvider
from docrag.ingest.pipeline import IngestOrchestrator
from docrag.ingest.reader import ContentReader
from docrag.ingest.state_store import StateStore
from docrag.retrieval.vector_index import QdrantVectorIndex, VectorIndex


def build_reader(settings: Settings) -> ContentReader:
    return ContentReader(
        settings.docs_path,
        extensions=settings.doc_extensions,
        ignore_patterns=settings.ignore_patterns,
    )


def build_chunker(settings: Settings) -> Chunker:
    options = ChunkerOptions(
        target_tokens=settings.chunk_target_tokens,
        max_tokens=settings.chunk_max_tokens,
        overlap_lines=settings.chunk_overlap_lines,
    )
    return Chunker(options, counter=TiktokenCounter(settings.tokenizer_encoding))


def build_embedding_provider(settings: Settings) -> EmbeddingProvider:
    if settings.embedding_provider == "hashed":
        return HashedEmbeddingProvider(dim=settings.vector_dim)
    return OpenAIEmbeddingProvider(
        base_url=settings.embedding_base_url,
        model=settings.embedding_model,
        api_key=settings.embedding_api_key,
        timeout_seconds=settings.embedding_timeout,
    )


def build_embedder(settings: Settings, provider: EmbeddingProvider | None = None) -> EmbeddingClient:
    return EmbeddingClient(
        provider or build_embedding_provider(settings),
        batch_size=settings.embedding_batch_size,
        max_attempts=settings.embedding_max_attempts,
        retry_delay=settings.embedding_retry_delay,
        batch_delay=settings.embedding_batch_delay,
        dimension=settings.vector_dim,
    )


def build_vector_index(settings: Settings) -> QdrantVectorIndex:
    return QdrantVectorIndex.connect(
        settings.qdrant_url,
        settings.qdrant_collection,
        api_key=settings.qdrant_api_key,
    )


def build_orchestrator(
    settings: Settings,
    *,
    vector_index: VectorIndex | None = None,
    embedder: EmbeddingClient | None = None,
) -> IngestOrchestrator:
    """Build an orchestrator; explicit collaborators override the configured ones."""
    return IngestOrchestrator(
        reader=build_reader(settings),
        chunker=build_chunker(settings),
        embedder=embedder or build_embedder(settings),
        vector_index=vector_index or build_vector_index(settings),
        state_store=StateStore.at_path(settings.state_db_path),
        vector_dim=settings.vector_dim,
        upsert_batch_size=settings.upsert_batch_size,
    )


__all__ = [
    "build_reader",
    "build_chunker",
    "build_embedding_provider",
    "build_embedder",
    "build_vector_index",
    "build_orchestrator",
]
