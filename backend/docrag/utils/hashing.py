"""Hashing utilities."""

from __future__ import annotations

import hashlib


def sha256_bytes(data: bytes) -> str:
    """Return hex digest for bytes input."""
    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, length: int | None = None) -> str:
    """Return the hex digest of UTF-8 text, optionally truncated."""
    digest = sha256_bytes(text.encode("utf-8"))
    return digest[:length] if length else digest
