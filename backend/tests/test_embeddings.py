"""Tests for embedding providers and the embedding client."""

import pytest
import requests

from conftest import FlakyProvider
from docrag.core.config import ConfigurationError, VectorDimensionError
from docrag.ingest.embeddings import (
    EmbeddingClient,
    EmbeddingProviderError,
    HashedEmbeddingProvider,
    OpenAIEmbeddingProvider,
)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _client(provider, **kwargs) -> tuple[EmbeddingClient, list[float]]:
    sleeps: list[float] = []
    kwargs.setdefault("retry_delay", 1.0)
    kwargs.setdefault("batch_delay", 0.0)
    return EmbeddingClient(provider, sleep=sleeps.append, **kwargs), sleeps


def test_hashed_provider_is_normalised() -> None:
    provider = HashedEmbeddingProvider(dim=32)
    vectors = provider.embed_texts(["hello", "world", ""])
    assert len(vectors) == 3
    assert all(len(vec) == 32 for vec in vectors)
    assert abs(sum(value * value for value in vectors[0]) - 1.0) < 1e-6
    assert vectors[2] == [0.0] * 32
    assert provider.embed_texts(["hello"])[0] == vectors[0]


def test_batches_preserve_order() -> None:
    provider = FlakyProvider(dim=8)
    client, sleeps = _client(provider, batch_size=2, batch_delay=0.5)
    texts = [f"text {idx}" for idx in range(5)]
    progress: list[tuple[int, int]] = []
    vectors = client.embed(texts, on_progress=lambda done, total: progress.append((done, total)))
    assert [len(call) for call in provider.calls] == [2, 2, 1]
    assert vectors == HashedEmbeddingProvider(dim=8).embed_texts(texts)
    assert progress == [(2, 5), (4, 5), (5, 5)]
    assert sleeps == [0.5, 0.5]


def test_retries_with_exponential_backoff() -> None:
    provider = FlakyProvider(fail_times=2)
    client, sleeps = _client(provider, max_attempts=3, retry_delay=1.0)
    vectors = client.embed(["a", "b"])
    assert len(vectors) == 2
    assert sleeps == [1.0, 2.0]
    assert len(provider.calls) == 3


def test_exhausted_retries_raise() -> None:
    provider = FlakyProvider(fail_times=5)
    client, sleeps = _client(provider, max_attempts=3)
    with pytest.raises(EmbeddingProviderError):
        client.embed(["a"])
    assert len(provider.calls) == 3
    assert sleeps == [1.0, 2.0]


def test_non_retryable_error_fails_fast() -> None:
    provider = FlakyProvider(fail_times=1, retryable=False)
    client, sleeps = _client(provider, max_attempts=3)
    with pytest.raises(EmbeddingProviderError):
        client.embed(["a"])
    assert len(provider.calls) == 1
    assert sleeps == []


def test_count_mismatch_is_an_error() -> None:
    class ShortProvider:
        def embed_texts(self, texts):
            return [[1.0, 0.0]]

    client, _ = _client(ShortProvider(), max_attempts=1)
    with pytest.raises(EmbeddingProviderError):
        client.embed(["a", "b"])


def test_dimension_mismatch_raises() -> None:
    client, _ = _client(FlakyProvider(dim=8), dimension=16)
    with pytest.raises(VectorDimensionError):
        client.embed(["a"])


def test_embed_chunks_pairs_vectors(make_doc) -> None:
    from conftest import WordCounter
    from docrag.ingest.chunker import Chunker

    chunks = Chunker(counter=WordCounter()).chunk_document(make_doc(content="# A\n\none\n\n# B\n\ntwo"))
    client, _ = _client(FlakyProvider(dim=8))
    embedded = client.embed_chunks(chunks)
    assert [item.id for item in embedded] == [chunk.id for chunk in chunks]
    payload = embedded[0].payload()
    assert payload["chunk_id"] == chunks[0].id
    assert payload["content"] == chunks[0].content
    assert payload["source_file"] == "guide/intro.md"


def test_empty_input_makes_no_calls() -> None:
    provider = FlakyProvider()
    client, _ = _client(provider)
    assert client.embed([]) == []
    assert provider.calls == []


def test_openai_provider_requires_key() -> None:
    with pytest.raises(ConfigurationError):
        OpenAIEmbeddingProvider(base_url="https://api.example.com/v1", model="m", api_key=None)


def test_openai_provider_request_and_ordering(monkeypatch: pytest.MonkeyPatch) -> None:
    provider = OpenAIEmbeddingProvider(base_url="https://api.example.com/v1/", model="embed-1", api_key="sk-test")
    captured = {}

    def fake_post(url, json, timeout):
        captured.update(url=url, json=json, timeout=timeout)
        return FakeResponse(
            payload={"data": [{"index": 1, "embedding": [0.0, 1.0]}, {"index": 0, "embedding": [1.0, 0.0]}]}
        )

    monkeypatch.setattr(provider.session, "post", fake_post)
    vectors = provider.embed_texts(["first", "second"])
    assert vectors == [[1.0, 0.0], [0.0, 1.0]]
    assert captured["url"] == "https://api.example.com/v1/embeddings"
    assert captured["json"] == {"model": "embed-1", "input": ["first", "second"]}
    assert provider.session.headers["Authorization"] == "Bearer sk-test"


@pytest.mark.parametrize(("status", "retryable"), [(400, False), (401, False), (429, True), (503, True)])
def test_openai_provider_http_errors(monkeypatch: pytest.MonkeyPatch, status: int, retryable: bool) -> None:
    provider = OpenAIEmbeddingProvider(base_url="https://api.example.com/v1", model="m", api_key="k")
    monkeypatch.setattr(provider.session, "post", lambda *args, **kwargs: FakeResponse(status_code=status, text="boom"))
    with pytest.raises(EmbeddingProviderError) as excinfo:
        provider.embed_texts(["x"])
    assert excinfo.value.retryable is retryable


def test_openai_provider_network_error_is_retryable(monkeypatch: pytest.MonkeyPatch) -> None:
    provider = OpenAIEmbeddingProvider(base_url="https://api.example.com/v1", model="m", api_key="k")

    def fail(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(provider.session, "post", fail)
    with pytest.raises(EmbeddingProviderError) as excinfo:
        provider.embed_texts(["x"])
    assert excinfo.value.retryable is True


def test_openai_provider_malformed_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    provider = OpenAIEmbeddingProvider(base_url="https://api.example.com/v1", model="m", api_key="k")
    monkeypatch.setattr(provider.session, "post", lambda *args, **kwargs: FakeResponse(payload={"nope": 1}))
    with pytest.raises(EmbeddingProviderError):
        provider.embed_texts(["x"])
