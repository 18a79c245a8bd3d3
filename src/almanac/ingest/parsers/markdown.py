"""Markdown note parser: front matter, title, links and heading cleanup."""

from __future__ import annotations

import re
from pathlib import Path

import yaml

from almanac.errors import ParseFailure
from almanac.ingest.parsers.base import ParsedDocument
from almanac.ingest.parsers.text import read_text

# Leading "---" block terminated by a line holding only "---" (or "...").
_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n(?:---|\.\.\.)[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t]*#*[ \t]*$", re.MULTILINE)
_LINK_RE = re.compile(r"(!?)\[([^\]]*)\]\(\s*<?([^)\s>]+)>?(?:\s+\"[^\"]*\")?\s*\)")


def split_frontmatter(content: str, path: Path | str = "") -> tuple[dict, str]:
    """Return ``(frontmatter, body)``; frontmatter is {} when absent.

    Raises:
        ParseFailure: If the front matter block is not valid YAML.
    """
    match = _FRONTMATTER_RE.match(content)
    if not match:
        return {}, content
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        raise ParseFailure(path, f"invalid front matter: {exc}") from exc
    if not isinstance(data, dict):
        data = {}
    return data, content[match.end() :]


def parse_markdown(path: Path) -> ParsedDocument:
    content = read_text(path)
    frontmatter, body = split_frontmatter(content, path)

    links: list[str] = []

    def _replace_link(match: re.Match) -> str:
        links.append(match.group(3))
        return match.group(2)

    text = _LINK_RE.sub(_replace_link, body)

    title: str | None = None
    for heading in _HEADING_RE.finditer(text):
        if len(heading.group(1)) == 1:
            title = heading.group(2).strip()
            break
    text = _HEADING_RE.sub(lambda m: m.group(2), text)

    fm_title = frontmatter.get("title")
    if fm_title:
        title = str(fm_title)

    metadata: dict = {
        "format": "markdown",
        "links": links,
        "original_length": len(content),
    }
    if frontmatter:
        metadata["frontmatter"] = _json_safe(frontmatter)

    return ParsedDocument(text=text.strip(), title=title or path.stem, metadata=metadata)


def _json_safe(value: object) -> object:
    """YAML may yield dates and other non-JSON scalars; stringify them."""
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
