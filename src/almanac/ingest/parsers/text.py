"""Plain text and source code parser."""

from __future__ import annotations

from pathlib import Path

from almanac.errors import ParseFailure
from almanac.ingest.parsers.base import ParsedDocument

_LANGUAGES: dict[str, str] = {
    "rs": "rust",
    "py": "python",
    "js": "javascript",
    "ts": "typescript",
    "go": "go",
    "c": "c",
    "cpp": "cpp",
    "h": "cpp",
    "java": "java",
    "rb": "ruby",
    "sh": "shell",
    "bash": "shell",
    "zsh": "shell",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "toml": "toml",
    "html": "html",
    "css": "css",
    "sql": "sql",
}


def read_text(path: Path) -> str:
    """Read *path* as UTF-8, replacing undecodable bytes.

    Raises:
        ParseFailure: If the file cannot be read.
    """
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ParseFailure(path, str(exc)) from exc


def parse_text(path: Path) -> ParsedDocument:
    content = read_text(path)
    ext = path.suffix.lower().lstrip(".")
    language = _LANGUAGES.get(ext)

    metadata: dict = {
        "format": "code" if language else "text",
        "line_count": len(content.splitlines()),
    }
    if language:
        metadata["language"] = language
    return ParsedDocument(text=content, title=path.stem, metadata=metadata)
