"""Test fixtures for docrag."""

from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from docrag.ingest.embeddings import EmbeddingProviderError, HashedEmbeddingProvider  # noqa: E402
from docrag.ingest.types import DocumentRecord  # noqa: E402


class WordCounter:
    """Whitespace token counter; keeps tests independent of tokenizer downloads."""

    def __init__(self, encoding_name: str = "words") -> None:
        self.encoding_name = encoding_name

    def count(self, text: str) -> int:
        return len(text.split())


class FlakyProvider:
    """Hashed provider that fails on demand.

    ``fail_times`` failures are raised before succeeding; ``fail_on`` fails
    every batch containing that substring.
    """

    def __init__(self, dim: int = 16, fail_times: int = 0, retryable: bool = True, fail_on: str | None = None) -> None:
        self.inner = HashedEmbeddingProvider(dim=dim)
        self.fail_times = fail_times
        self.retryable = retryable
        self.fail_on = fail_on
        self.calls: list[list[str]] = []

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_on is not None and any(self.fail_on in text for text in texts):
            raise EmbeddingProviderError("provider rejected batch", retryable=self.retryable)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise EmbeddingProviderError("provider unavailable", retryable=self.retryable)
        return self.inner.embed_texts(texts)


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset cached settings and DOCRAG_ environment between tests."""
    from docrag.core.config import get_settings

    for key in list(os.environ):
        if key.startswith("DOCRAG_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DOCRAG_CONFIG", str(tmp_path / "missing-config.yaml"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def word_counter() -> WordCounter:
    return WordCounter()


@pytest.fixture
def make_doc():
    def _make(file_path: str = "guide/intro.md", content: str = "", title: str = "Guide") -> DocumentRecord:
        return DocumentRecord(
            file_path=file_path,
            absolute_path=Path("/docs") / file_path,
            content=content,
            title=title,
            category=file_path.split("/")[0] if "/" in file_path else "root",
            url_path="/" + file_path.rsplit(".", 1)[0],
            last_modified=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

    return _make


@pytest.fixture
def docs_root(tmp_path: Path) -> Path:
    root = tmp_path / "docs"
    (root / "getting-started").mkdir(parents=True)
    (root / "features").mkdir()
    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / "index.mdx").write_text(
        "---\ntitle: Welcome\n---\nWelcome to the docs.\n\n## Install\n\nRun the installer.\n",
        encoding="utf-8",
    )
    (root / "getting-started" / "setup.md").write_text(
        "# Setup\n\nConfigure the tool.\n\n## Options\n\nPick an option.\n",
        encoding="utf-8",
    )
    (root / "features" / "checkpoints.md").write_text(
        "---\nsidebar_label: Checkpoints\n---\n# Saving state\n\nCheckpoints store progress.\n",
        encoding="utf-8",
    )
    (root / "features" / "_draft.md").write_text("# Draft\n\nNot published.\n", encoding="utf-8")
    (root / "features" / "notes.txt").write_text("plain text", encoding="utf-8")
    (root / "node_modules" / "pkg" / "README.md").write_text("# Vendored\n", encoding="utf-8")
    return root
