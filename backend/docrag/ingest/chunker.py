"""Chunking utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Protocol

import tiktoken

from docrag.core.logging import get_logger
from docrag.ingest.types import Chunk, ChunkMetadata, DocumentRecord
from docrag.utils.hashing import sha256_text
from docrag.utils.time import isoformat_utc

logger = get_logger(__name__)

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")

INTRODUCTION = "Introduction"
CHUNK_ID_LENGTH = 32
CONTENT_HASH_LENGTH = 16


class TokenCounter(Protocol):
    def count(self, text: str) -> int: ...


class TiktokenCounter:
    """Subword token counter backed by a tiktoken encoding, built on first use."""

    def __init__(self, encoding_name: str = "cl100k_base") -> None:
        self.encoding_name = encoding_name
        self._encoding: tiktoken.Encoding | None = None

    @property
    def encoding(self) -> tiktoken.Encoding:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
        return self._encoding

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoding.encode(text, disallowed_special=()))


@dataclass(slots=True)
class ChunkerOptions:
    target_tokens: int = 500
    max_tokens: int = 700
    overlap_lines: int = 3

    def __post_init__(self) -> None:
        if self.target_tokens <= 0 or self.max_tokens <= 0:
            raise ValueError("token budgets must be > 0")
        if self.max_tokens < self.target_tokens:
            raise ValueError("max_tokens must be >= target_tokens")
        if self.overlap_lines < 0:
            raise ValueError("overlap_lines must be >= 0")


@dataclass(slots=True)
class Section:
    title: str
    level: int
    lines: list[str] = field(default_factory=list)

    @property
    def body(self) -> str:
        return "\n".join(self.lines)


def extract_sections(content: str) -> list[Section]:
    """Split markdown into heading-delimited sections.

    Text before the first heading belongs to a level-0 ``Introduction``
    section. Sections whose body is blank are dropped.
    """
    sections: list[Section] = []
    current = Section(title=INTRODUCTION, level=0)
    for line in content.replace("\r\n", "\n").split("\n"):
        match = _HEADING_RE.match(line)
        if match:
            sections.append(current)
            current = Section(title=match.group(2).strip(), level=len(match.group(1)))
        else:
            current.lines.append(line)
    sections.append(current)
    return [section for section in sections if section.body.strip()]


class Chunker:
    """Deterministic decomposition of documents into overlapping, token-bounded chunks."""

    def __init__(self, options: ChunkerOptions | None = None, counter: TokenCounter | None = None) -> None:
        self.options = options or ChunkerOptions()
        self.counter = counter or TiktokenCounter()

    def split_section(self, section: Section) -> list[str]:
        """Return the raw (un-enriched) chunk texts of one section.

        Sizes are measured on the joined buffer text, newlines included, so
        the emitted chunk is exactly what was counted.
        """
        opts = self.options
        chunks: list[str] = []
        buffer: list[str] = []

        for line in section.lines:
            if _has_text(buffer) and self._measure(buffer + [line]) > opts.max_tokens:
                chunks.append(_join(buffer))
                buffer = self._overlap_seed(buffer, line)
            buffer.append(line)

            # Prefer closing at a paragraph break once the target is reached.
            if not line.strip() and _has_text(buffer) and self._measure(buffer) >= opts.target_tokens:
                chunks.append(_join(buffer))
                buffer = []

        if _has_text(buffer):
            chunks.append(_join(buffer))
        return chunks

    def chunk_document(self, doc: DocumentRecord) -> list[Chunk]:
        chunks: list[Chunk] = []
        ordinal = 0
        last_modified = isoformat_utc(doc.last_modified)

        for section in extract_sections(doc.content):
            for raw in self.split_section(section):
                content_hash = sha256_text(raw, CONTENT_HASH_LENGTH)
                enriched = f"# {doc.title}\n\n## {section.title}\n\n{raw}"
                chunks.append(
                    Chunk(
                        id=chunk_id(doc.file_path, section.title, ordinal, content_hash),
                        content=enriched,
                        token_count=self.counter.count(enriched),
                        metadata=ChunkMetadata(
                            source_file=doc.file_path,
                            doc_title=doc.title,
                            section_title=section.title,
                            doc_category=doc.category,
                            url_path=doc.url_path,
                            chunk_index=ordinal,
                            content_hash=content_hash,
                            last_modified=last_modified,
                        ),
                    )
                )
                ordinal += 1

        logger.debug("Chunked %s into %s chunks", doc.file_path, len(chunks), extra={"ctx_file": doc.file_path})
        return chunks

    def chunk_documents(self, docs: Iterable[DocumentRecord]) -> list[Chunk]:
        all_chunks: list[Chunk] = []
        count = 0
        for doc in docs:
            all_chunks.extend(self.chunk_document(doc))
            count += 1
        logger.info("Chunked %s documents into %s chunks", count, len(all_chunks))
        return all_chunks

    def _measure(self, lines: list[str]) -> int:
        return self.counter.count(_join(lines))

    def _overlap_seed(self, closed: list[str], incoming: str) -> list[str]:
        if self.options.overlap_lines <= 0:
            return []
        seed = list(closed[-self.options.overlap_lines :])
        while seed and self._measure(seed + [incoming]) > self.options.max_tokens:
            seed.pop(0)
        return seed


def chunk_id(source_file: str, section_title: str, ordinal: int, content_hash: str) -> str:
    return sha256_text(f"{source_file}::{section_title}::{ordinal}::{content_hash}", CHUNK_ID_LENGTH)


def _has_text(lines: list[str]) -> bool:
    return any(line.strip() for line in lines)


def _join(lines: list[str]) -> str:
    return "\n".join(lines).strip()


__all__ = [
    "TokenCounter",
    "TiktokenCounter",
    "ChunkerOptions",
    "Section",
    "Chunker",
    "extract_sections",
    "chunk_id",
    "INTRODUCTION",
]
