"""PDF parser: page-based text extraction via pypdf."""

from __future__ import annotations

from pathlib import Path

import pypdf

from almanac.errors import ParseFailure
from almanac.ingest.parsers.base import ParsedDocument


def parse_pdf(path: Path) -> ParsedDocument:
    """Extract all page text from the PDF at *path*.

    Pages that yield no text (scanned images, etc.) are skipped.
    """
    try:
        reader = pypdf.PdfReader(path)
        parts: list[str] = []
        for page in reader.pages:
            page_text = (page.extract_text() or "").strip()
            if page_text:
                parts.append(page_text)
        info = reader.metadata
        page_count = len(reader.pages)
    except (pypdf.errors.PyPdfError, OSError, ValueError) as exc:
        raise ParseFailure(path, str(exc)) from exc

    title = (info.title or "").strip() if info else ""
    metadata: dict = {"format": "pdf", "page_count": page_count}
    if info and info.author:
        metadata["author"] = info.author
    return ParsedDocument(text="\n\n".join(parts), title=title or path.stem, metadata=metadata)
