"""Embedding providers and the batching, retrying embedding client."""

from __future__ import annotations

import hashlib
import math
import re
import time
from typing import Callable, Protocol, Sequence

import requests

from docrag.core.config import ConfigurationError, VectorDimensionError
from docrag.core.logging import get_logger
from docrag.core.metrics import EMBEDDING_RETRIES
from docrag.ingest.types import Chunk, EmbeddedChunk

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")
_RETRYABLE_STATUS = {408, 429}

ProgressCallback = Callable[[int, int], None]


class EmbeddingProviderError(RuntimeError):
    """The embedding provider failed to return vectors for a batch."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class EmbeddingProvider(Protocol):
    def embed_texts(self, texts: list[str]) -> list[list[float]]: ...


class OpenAIEmbeddingProvider:
    """Client for an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        api_key: str | None,
        timeout_seconds: float = 60.0,
    ) -> None:
        if not api_key:
            raise ConfigurationError("embedding_api_key is required for the openai embedding provider")
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._session: requests.Session | None = None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            session = requests.Session()
            session.headers.update({"Authorization": f"Bearer {self._api_key}"})
            self._session = session
            logger.info("Embedding client initialized", extra={"ctx_model": self._model, "ctx_base_url": self._base_url})
        return self._session

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        try:
            response = self.session.post(
                f"{self._base_url}/embeddings",
                json={"model": self._model, "input": texts},
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            raise EmbeddingProviderError(str(exc)) from exc

        if response.status_code >= 400:
            retryable = response.status_code in _RETRYABLE_STATUS or response.status_code >= 500
            raise EmbeddingProviderError(
                f"Embedding request failed ({response.status_code}): {response.text[:200]}",
                retryable=retryable,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise EmbeddingProviderError("Invalid embeddings payload: not JSON") from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise EmbeddingProviderError("Invalid embeddings payload: missing data")

        ordered = sorted(data, key=lambda item: item.get("index", 0) if isinstance(item, dict) else 0)
        vectors: list[list[float]] = []
        for item in ordered:
            embedding = item.get("embedding") if isinstance(item, dict) else None
            if not isinstance(embedding, list) or not embedding:
                raise EmbeddingProviderError("Invalid embeddings payload: missing embedding vector")
            vectors.append([float(value) for value in embedding])
        return vectors


class HashedEmbeddingProvider:
    """Deterministic offline embeddings: hashed bag of words, L2-normalised."""

    def __init__(self, dim: int = 384) -> None:
        if dim <= 0:
            raise ConfigurationError("embedding dimension must be > 0")
        self.dim = dim

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self.dim
            for token in _TOKEN_RE.findall(text.lower()):
                vector[_hash_token(token, self.dim)] += 1.0
            _normalize(vector)
            vectors.append(vector)
        return vectors


class EmbeddingClient:
    """Embed ordered texts in bounded batches with retry and backoff.

    Output order matches input order. A batch that still fails after
    ``max_attempts`` raises to the caller; nothing is skipped.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        batch_size: int = 50,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        batch_delay: float = 0.1,
        dimension: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        if max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        self.provider = provider
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.batch_delay = batch_delay
        self.dimension = dimension
        self._sleep = sleep

    def embed(self, texts: Sequence[str], on_progress: ProgressCallback | None = None) -> list[list[float]]:
        texts = list(texts)
        total_batches = math.ceil(len(texts) / self.batch_size)
        if total_batches:
            logger.info("Embedding %s texts in %s batches", len(texts), total_batches)

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            batch_number = start // self.batch_size + 1
            logger.debug("Embedding batch %s/%s", batch_number, total_batches, extra={"ctx_batch": batch_number})
            vectors.extend(self._embed_batch_with_retry(batch, batch_number))
            done = start + len(batch)
            if on_progress is not None:
                on_progress(done, len(texts))
            if done < len(texts) and self.batch_delay > 0:
                self._sleep(self.batch_delay)
        return vectors

    def embed_chunks(self, chunks: Sequence[Chunk], on_progress: ProgressCallback | None = None) -> list[EmbeddedChunk]:
        vectors = self.embed([chunk.content for chunk in chunks], on_progress=on_progress)
        embedded = [EmbeddedChunk(chunk=chunk, vector=vector) for chunk, vector in zip(chunks, vectors)]
        logger.info("Embedded %s chunks", len(embedded))
        return embedded

    def _embed_batch_with_retry(self, batch: list[str], batch_number: int) -> list[list[float]]:
        attempt = 1
        while True:
            try:
                vectors = self.provider.embed_texts(batch)
                if len(vectors) != len(batch):
                    raise EmbeddingProviderError(
                        f"Invalid embeddings payload: expected {len(batch)} vectors, got {len(vectors)}"
                    )
                break
            except EmbeddingProviderError as exc:
                if not exc.retryable or attempt >= self.max_attempts:
                    logger.error(
                        "Failed to embed batch %s after %s attempts: %s",
                        batch_number,
                        attempt,
                        exc,
                        extra={"ctx_batch": batch_number, "ctx_attempt": attempt},
                    )
                    raise
                delay = self.retry_delay * (2 ** (attempt - 1))
                logger.warning(
                    "Embedding failed, retrying in %.2fs: %s",
                    delay,
                    exc,
                    extra={"ctx_batch": batch_number, "ctx_attempt": attempt},
                )
                EMBEDDING_RETRIES.inc()
                self._sleep(delay)
                attempt += 1

        if self.dimension is not None:
            for vector in vectors:
                if len(vector) != self.dimension:
                    raise VectorDimensionError(
                        f"Embedding provider returned {len(vector)}-dimensional vectors, "
                        f"configured vector_dim is {self.dimension}"
                    )
        return vectors


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "EmbeddingProvider",
    "EmbeddingProviderError",
    "VectorDimensionError",
    "OpenAIEmbeddingProvider",
    "HashedEmbeddingProvider",
    "EmbeddingClient",
]
