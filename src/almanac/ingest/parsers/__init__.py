"""Content-type parsers and the dispatch used by the ingestion pipeline."""

from __future__ import annotations

from pathlib import Path

from almanac.db.models import ItemType
from almanac.errors import UnsupportedType
from almanac.ingest.parsers.base import ParsedDocument, TranscriptSegment
from almanac.ingest.parsers.markdown import parse_markdown
from almanac.ingest.parsers.media import parse_audio, parse_image, parse_video
from almanac.ingest.parsers.pdf import parse_pdf
from almanac.ingest.parsers.text import parse_text

_MARKDOWN_EXTENSIONS = {".md", ".markdown"}
DEFAULT_TRANSCRIPTION_MODEL = "openai/whisper-1"


def parse(
    path: Path,
    item_type: ItemType,
    transcription_model: str = DEFAULT_TRANSCRIPTION_MODEL,
) -> ParsedDocument:
    """Extract text, title and metadata from *path* according to *item_type*.

    Raises:
        ParseFailure: If extraction fails.
        UnsupportedType: For types that are never parsed from files (bookmarks).
    """
    if item_type is ItemType.NOTE:
        if path.suffix.lower() in _MARKDOWN_EXTENSIONS:
            return parse_markdown(path)
        return parse_text(path)
    if item_type is ItemType.CODE:
        return parse_text(path)
    if item_type is ItemType.DOCUMENT:
        return parse_pdf(path)
    if item_type is ItemType.AUDIO:
        return parse_audio(path, transcription_model)
    if item_type is ItemType.VIDEO:
        return parse_video(path, transcription_model)
    if item_type is ItemType.IMAGE:
        return parse_image(path)
    raise UnsupportedType(item_type.value)


__all__ = [
    "ParsedDocument",
    "TranscriptSegment",
    "parse",
    "parse_audio",
    "parse_image",
    "parse_markdown",
    "parse_pdf",
    "parse_text",
    "parse_video",
]
