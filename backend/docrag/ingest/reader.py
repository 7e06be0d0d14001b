"""Documentation tree reader."""

from __future__ import annotations

import fnmatch
import os
import re
from pathlib import Path, PurePosixPath
from typing import Any, Iterator, Sequence

import yaml
from markdown_it import MarkdownIt

from docrag.core.logging import get_logger
from docrag.ingest.types import DocumentRecord, ScanResult
from docrag.utils.time import from_timestamp

logger = get_logger(__name__)

_MD = MarkdownIt()

_FRONT_MATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(.*?)(?:\r?\n)?^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)
_DOC_SUFFIX_RE = re.compile(r"\.mdx?$")

DEFAULT_EXTENSIONS = (".md", ".mdx")
DEFAULT_IGNORE_PATTERNS = (".git", "node_modules", ".DS_Store", "_*")
ROOT_CATEGORY = "root"
UNTITLED = "Untitled"


class ContentReader:
    """Walk a documentation root and produce one DocumentRecord per file."""

    def __init__(
        self,
        root: Path,
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
        ignore_patterns: Sequence[str] = DEFAULT_IGNORE_PATTERNS,
    ) -> None:
        self.root = root.expanduser()
        self.extensions = tuple(ext.lower() for ext in extensions)
        self.ignore_patterns = tuple(ignore_patterns)

    def walk(self) -> Iterator[tuple[Path, str]]:
        """Lazily yield ``(absolute_path, relative_posix_path)`` for every document file.

        Ignored directories are pruned before descending. Entries are visited
        in sorted order so repeated walks of an unchanged tree agree.
        """
        if not self.root.exists():
            raise FileNotFoundError(f"Docs directory not found: {self.root}")
        if not self.root.is_dir():
            raise NotADirectoryError(f"Docs path is not a directory: {self.root}")

        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(name for name in dirnames if not self._is_ignored(name))
            for name in sorted(filenames):
                if self._is_ignored(name) or not name.lower().endswith(self.extensions):
                    continue
                absolute = Path(dirpath) / name
                yield absolute, absolute.relative_to(self.root).as_posix()

    def read(self, absolute_path: Path, relative_path: str) -> DocumentRecord:
        """Read one file. Raises OSError/UnicodeDecodeError when unreadable."""
        raw = absolute_path.read_bytes()
        text = raw.decode("utf-8-sig")
        stats = absolute_path.stat()
        front_matter, body = split_front_matter(text, source=relative_path)
        return DocumentRecord(
            file_path=relative_path,
            absolute_path=absolute_path,
            content=body,
            title=pick_title(front_matter, body),
            description=_as_text(front_matter.get("description")),
            category=category_for(relative_path),
            url_path=url_path_for(relative_path),
            last_modified=from_timestamp(stats.st_mtime),
        )

    def scan(self) -> ScanResult:
        """Read every document under the root, collecting per-file failures."""
        logger.info("Reading docs from %s", self.root, extra={"ctx_docs_path": str(self.root)})
        result = ScanResult()
        for absolute, relative in self.walk():
            try:
                result.documents.append(self.read(absolute, relative))
            except (OSError, UnicodeDecodeError) as exc:
                logger.error("Failed to read doc file %s: %s", relative, exc, extra={"ctx_file": relative})
                result.failures[relative] = str(exc)
        logger.info(
            "Read %s doc files (%s unreadable)",
            len(result.documents),
            len(result.failures),
            extra={"ctx_count": len(result.documents)},
        )
        return result

    def _is_ignored(self, name: str) -> bool:
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self.ignore_patterns)


def split_front_matter(text: str, source: str | None = None) -> tuple[dict[str, Any], str]:
    """Separate a leading ``---`` YAML block from the markdown body."""
    match = _FRONT_MATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        front_matter = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        logger.warning("Ignoring invalid front matter in %s: %s", source, exc, extra={"ctx_file": source})
        return {}, text
    if not isinstance(front_matter, dict):
        logger.warning("Ignoring non-mapping front matter in %s", source, extra={"ctx_file": source})
        return {}, text
    return front_matter, text[match.end() :]


def pick_title(front_matter: dict[str, Any], body: str) -> str:
    return (
        _as_text(front_matter.get("title"))
        or _as_text(front_matter.get("sidebar_label"))
        or first_heading(body)
        or UNTITLED
    )


def first_heading(body: str) -> str | None:
    """Return the text of the first level-1 heading, if any."""
    tokens = _MD.parse(body)
    for idx, token in enumerate(tokens[:-1]):
        if token.type == "heading_open" and token.tag == "h1":
            content = tokens[idx + 1].content.strip()
            if content:
                return content
    return None


def category_for(relative_path: str) -> str:
    parts = PurePosixPath(relative_path).parts
    return parts[0] if len(parts) > 1 else ROOT_CATEGORY


def url_path_for(relative_path: str) -> str:
    """``features/checkpoints.md`` -> ``/features/checkpoints``; ``index.mdx`` -> ``/``."""
    url_path = _DOC_SUFFIX_RE.sub("", relative_path.replace("\\", "/"))
    if not url_path.startswith("/"):
        url_path = "/" + url_path
    if url_path.endswith("/index"):
        url_path = url_path[: -len("/index")]
    return url_path or "/"


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


__all__ = [
    "ContentReader",
    "split_front_matter",
    "pick_title",
    "first_heading",
    "category_for",
    "url_path_for",
    "ROOT_CATEGORY",
    "UNTITLED",
]
