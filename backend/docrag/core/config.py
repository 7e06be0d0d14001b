"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

ENV_PREFIX = "DOCRAG_"
DEFAULT_CONFIG_PATH = Path("~/.config/docrag/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("docs", "path"): "docs_path",
    ("docs", "extensions"): "doc_extensions",
    ("docs", "ignore"): "ignore_patterns",
    ("storage", "state_db_path"): "state_db_path",
    ("chunking", "target_tokens"): "chunk_target_tokens",
    ("chunking", "max_tokens"): "chunk_max_tokens",
    ("chunking", "overlap_lines"): "chunk_overlap_lines",
    ("chunking", "encoding"): "tokenizer_encoding",
    ("embeddings", "provider"): "embedding_provider",
    ("embeddings", "base_url"): "embedding_base_url",
    ("embeddings", "api_key"): "embedding_api_key",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "batch_size"): "embedding_batch_size",
    ("embeddings", "max_attempts"): "embedding_max_attempts",
    ("embeddings", "retry_delay"): "embedding_retry_delay",
    ("embeddings", "batch_delay"): "embedding_batch_delay",
    ("embeddings", "timeout"): "embedding_timeout",
    ("embeddings", "dimension"): "vector_dim",
    ("qdrant", "url"): "qdrant_url",
    ("qdrant", "api_key"): "qdrant_api_key",
    ("qdrant", "collection"): "qdrant_collection",
    ("qdrant", "upsert_batch_size"): "upsert_batch_size",
    ("logging", "level"): "log_level",
    ("logging", "json"): "log_json",
    ("metrics", "textfile"): "metrics_textfile",
}


class ConfigurationError(ValueError):
    """Raised when settings are invalid or inconsistent with a live service."""


class VectorDimensionError(ConfigurationError):
    """A vector dimension differs from the configured one."""


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    docs_path: Path = Path("docs")
    doc_extensions: list[str] = Field(default_factory=lambda: [".md", ".mdx"])
    ignore_patterns: list[str] = Field(default_factory=lambda: [".git", "node_modules", ".DS_Store", "_*"])

    state_db_path: Path = Path("./data/ingestion-state.db")

    chunk_target_tokens: int = Field(default=500, gt=0)
    chunk_max_tokens: int = Field(default=700, gt=0)
    chunk_overlap_lines: int = Field(default=3, ge=0)
    tokenizer_encoding: str = "cl100k_base"

    embedding_provider: Literal["openai", "hashed"] = "openai"
    embedding_base_url: str = "https://api.openai.com/v1"
    embedding_api_key: str | None = None
    embedding_model: str = "text-embedding-3-large"
    embedding_batch_size: int = Field(default=50, gt=0)
    embedding_max_attempts: int = Field(default=3, gt=0)
    embedding_retry_delay: float = Field(default=1.0, ge=0)
    embedding_batch_delay: float = Field(default=0.1, ge=0)
    embedding_timeout: float = Field(default=60.0, gt=0)
    vector_dim: int = Field(default=3072, gt=0)

    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str | None = None
    qdrant_collection: str = "docs"
    upsert_batch_size: int = Field(default=100, gt=0)

    log_level: str = "INFO"
    log_json: bool = True
    metrics_textfile: Path | None = None

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("docs_path", "state_db_path", "metrics_textfile", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path | None:
        if value is None or value == "":
            return None
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("path settings must be a path or string")

    @field_validator("doc_extensions", "ignore_patterns", mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("doc_extensions")
    @classmethod
    def _dotted_extensions(cls, value: list[str]) -> list[str]:
        return [ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in value]

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_chunk_budget(self) -> "Settings":
        if self.chunk_max_tokens < self.chunk_target_tokens:
            raise ValueError("chunk_max_tokens must be >= chunk_target_tokens")
        return self

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            if not isinstance(raw, Mapping):
                raise ConfigurationError(f"Config file {config_path} must contain a mapping")
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        mapped_key = _YAML_KEY_MAP.get(next_prefix)
        if mapped_key:
            flat[mapped_key] = value
        elif isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        elif key in Settings.model_fields:
            flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with DOCRAG_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor."""
    return Settings.from_yaml()


__all__ = ["ConfigurationError", "VectorDimensionError", "Settings", "get_settings"]
