"""Tests for settings loading."""

from pathlib import Path

import pytest

from docrag.core.config import ConfigurationError, Settings, get_settings


def test_defaults() -> None:
    settings = Settings.from_yaml()
    assert settings.docs_path == Path("docs")
    assert settings.doc_extensions == [".md", ".mdx"]
    assert settings.chunk_target_tokens == 500
    assert settings.chunk_max_tokens == 700
    assert settings.chunk_overlap_lines == 3
    assert settings.embedding_batch_size == 50
    assert settings.embedding_max_attempts == 3
    assert settings.vector_dim == 3072
    assert settings.qdrant_collection == "docs"


def test_yaml_sections_are_flattened(tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "docs:\n"
        "  path: /srv/docs\n"
        "  extensions: [md, MDX]\n"
        "chunking:\n"
        "  target_tokens: 200\n"
        "  max_tokens: 300\n"
        "embeddings:\n"
        "  provider: hashed\n"
        "  dimension: 64\n"
        "qdrant:\n"
        "  collection: handbook\n"
        "logging:\n"
        "  level: debug\n",
        encoding="utf-8",
    )
    settings = Settings.from_yaml(config)
    assert settings.docs_path == Path("/srv/docs")
    assert settings.doc_extensions == [".md", ".mdx"]
    assert settings.chunk_target_tokens == 200
    assert settings.chunk_max_tokens == 300
    assert settings.embedding_provider == "hashed"
    assert settings.vector_dim == 64
    assert settings.qdrant_collection == "handbook"
    assert settings.log_level == "DEBUG"


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("qdrant:\n  collection: from-file\n", encoding="utf-8")
    monkeypatch.setenv("DOCRAG_QDRANT_COLLECTION", "from-env")
    monkeypatch.setenv("DOCRAG_IGNORE_PATTERNS", "drafts, _*")
    settings = Settings.from_yaml(config)
    assert settings.qdrant_collection == "from-env"
    assert settings.ignore_patterns == ["drafts", "_*"]


def test_config_path_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "other.yaml"
    config.write_text("storage:\n  state_db_path: " + str(tmp_path / "state.db") + "\n", encoding="utf-8")
    monkeypatch.setenv("DOCRAG_CONFIG", str(config))
    assert get_settings().state_db_path == tmp_path / "state.db"


def test_max_below_target_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DOCRAG_CHUNK_TARGET_TOKENS", "800")
    with pytest.raises(ConfigurationError):
        Settings.from_yaml()


def test_unknown_provider_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DOCRAG_EMBEDDING_PROVIDER", "mystery")
    with pytest.raises(ConfigurationError):
        Settings.from_yaml()


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        Settings.from_yaml(config)
