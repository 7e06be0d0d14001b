"""Logging utilities for docrag."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson

from docrag.utils.time import from_timestamp, isoformat_utc

_DEFAULT_LEVEL = os.environ.get("DOCRAG_LOG_LEVEL", "INFO")
_CONTEXT_PREFIX = "ctx_"

# Transport loggers of requests and qdrant-client log every call at INFO/DEBUG.
_NOISY_LOGGERS = ("urllib3", "httpx", "httpcore")


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {key: value for key, value in record.__dict__.items() if key.startswith(_CONTEXT_PREFIX)}


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Extra attributes whose name starts with ``ctx_`` are copied into the
    payload, so call sites pass structured context as
    ``logger.info("...", extra={"ctx_file": path})``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": isoformat_utc(from_timestamp(record.created)),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        payload.update(_context(record))
        return orjson.dumps(payload, default=str).decode("utf-8")


class ConsoleFormatter(logging.Formatter):
    """Human-readable lines with ``ctx_`` extras appended as ``key=value``."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if not context:
            return line
        pairs = " ".join(f"{key[len(_CONTEXT_PREFIX):]}={value}" for key, value in context.items())
        first, sep, rest = line.partition("\n")
        return f"{first} [{pairs}]{sep}{rest}"


def configure_logging(level: str | int = _DEFAULT_LEVEL, use_json: bool = True) -> None:
    """Install a single stdout handler on the root logger."""
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if use_json else ConsoleFormatter())
    root.handlers = [handler]
    quiet = logging.DEBUG if root.level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)


def get_logger(name: str = "docrag") -> logging.Logger:
    """Return a named logger, configuring the root logger on first use."""
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "ConsoleFormatter", "configure_logging", "get_logger"]
