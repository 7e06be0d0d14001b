"""Tests for log formatting."""

import logging
import sys

import orjson

from docrag.core.logging import ConsoleFormatter, JsonFormatter


def test_json_formatter_copies_context_fields() -> None:
    record = logging.LogRecord("docrag.test", logging.INFO, __file__, 1, "Indexed %s", ("a.md",), None)
    record.ctx_file = "a.md"
    record.unrelated = "dropped"
    payload = orjson.loads(JsonFormatter().format(record))
    assert payload["message"] == "Indexed a.md"
    assert payload["level"] == "INFO"
    assert payload["ctx_file"] == "a.md"
    assert "unrelated" not in payload


def test_json_formatter_includes_exception() -> None:
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord("docrag.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
    payload = orjson.loads(JsonFormatter().format(record))
    assert "ValueError: boom" in payload["exc_info"]


def test_json_formatter_timestamp_is_utc() -> None:
    record = logging.LogRecord("docrag.test", logging.INFO, __file__, 1, "msg", (), None)
    record.created = 0.0
    payload = orjson.loads(JsonFormatter().format(record))
    assert payload["timestamp"] == "1970-01-01T00:00:00.000Z"


def test_console_formatter_appends_context() -> None:
    record = logging.LogRecord("docrag.test", logging.WARNING, __file__, 1, "Retrying", (), None)
    record.ctx_batch = 3
    line = ConsoleFormatter().format(record)
    assert "WARNING docrag.test: Retrying" in line
    assert line.endswith("[batch=3]")
