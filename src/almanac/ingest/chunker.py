"""Overlapping character-budget chunker for plain text and transcripts.

Text is accumulated paragraph by paragraph into a running buffer. When the
next unit does not fit, the buffer is flushed as a chunk and the next buffer
starts with the trailing ``chunk_overlap`` characters of the flushed chunk.
Paragraphs larger than the budget are fed sentence by sentence; text with no
sentence boundaries at all falls back to a fixed character window.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from almanac.db.models import Chunk

_PARAGRAPH_SEP = "\n\n"
_SENTENCE_SEP = " "
_SEGMENT_SEP = " "

_PARAGRAPH_SPLIT_RE = re.compile(r"\n[ \t]*\n")
# Terminal punctuation followed by whitespace or end of text.
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s|$)")


@dataclass
class ChunkConfig:
    """Character budgets for the chunker.

    Chunks shorter than ``min_chunk_size`` are merged into the following
    text rather than emitted, except for the first and last chunk of an item.
    """

    chunk_size: int = 1000
    chunk_overlap: int = 100
    min_chunk_size: int = 100

    def __post_init__(self) -> None:
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError("chunk_overlap must be in [0, chunk_size)")
        if not 0 <= self.min_chunk_size <= self.chunk_size:
            raise ValueError("min_chunk_size must be in [0, chunk_size]")


def split_paragraphs(text: str) -> list[str]:
    """Split on blank lines, dropping empty paragraphs."""
    return [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text) if p.strip()]


def split_sentences(text: str) -> list[str]:
    """Split after ``.``, ``!`` or ``?`` when followed by whitespace or the end."""
    sentences: list[str] = []
    start = 0
    for match in _SENTENCE_END_RE.finditer(text):
        sentence = text[start : match.end()].strip()
        if sentence:
            sentences.append(sentence)
        start = match.end()
    tail = text[start:].strip()
    if tail:
        sentences.append(tail)
    return sentences


class _Buffer:
    """Running accumulation state shared by the text and transcript paths.

    ``fresh`` is False while the buffer holds only the overlap carried over
    from the previous chunk; such a buffer is never emitted on its own.
    """

    def __init__(self, config: ChunkConfig) -> None:
        self.config = config
        self.text = ""
        self.fresh = False
        self.start: float | None = None
        self.end: float | None = None
        self.emitted: list[tuple[str, float | None, float | None]] = []

    def candidate(self, unit: str, sep: str) -> str:
        return f"{self.text}{sep}{unit}" if self.text else unit

    def fits(self, candidate: str) -> bool:
        return len(candidate) <= self.config.chunk_size

    def can_flush(self) -> bool:
        if not self.fresh:
            return False
        return len(self.text.strip()) >= self.config.min_chunk_size or not self.emitted

    def set(self, text: str) -> None:
        self.text = text
        self.fresh = True

    def emit(self, text: str, *, strip: bool = True) -> None:
        content = text.strip() if strip else text
        if content:
            self.emitted.append((content, self.start, self.end))
        overlap = self.config.chunk_overlap
        self.text = content[-overlap:] if overlap and content else ""
        self.fresh = False
        self.start = None
        self.end = None

    def flush(self) -> None:
        self.emit(self.text)

    def finish(self) -> list[tuple[str, float | None, float | None]]:
        if self.fresh and self.text.strip():
            self.flush()
        return self.emitted


class Chunker:
    """Split text (or timed transcript segments) into ordered chunks.

    Chunks are returned with ``chunk_index`` 0..n-1 and owned by the
    ``item_id`` passed in; ids are generated per chunk.
    """

    def __init__(self, config: ChunkConfig | None = None) -> None:
        self.config = config or ChunkConfig()

    # ------------------------------------------------------------------
    # Plain text
    # ------------------------------------------------------------------

    def chunk_text(self, text: str, item_id: str = "") -> list[Chunk]:
        text = text.strip()
        if not text:
            return []
        if len(text) <= self.config.chunk_size:
            return [Chunk(item_id=item_id, chunk_index=0, content=text)]

        buf = _Buffer(self.config)
        for paragraph in split_paragraphs(text):
            self._add_paragraph(buf, paragraph)
        return _to_chunks(item_id, buf.finish())

    def _add_paragraph(self, buf: _Buffer, paragraph: str) -> None:
        if len(paragraph) <= self.config.chunk_size:
            self._add_unit(buf, paragraph, _PARAGRAPH_SEP)
            return

        sentences = split_sentences(paragraph)
        if len(sentences) < 2:
            self._window_split(buf, buf.candidate(paragraph, _PARAGRAPH_SEP))
            return
        for i, sentence in enumerate(sentences):
            self._add_unit(buf, sentence, _PARAGRAPH_SEP if i == 0 else _SENTENCE_SEP)

    def _add_unit(self, buf: _Buffer, unit: str, sep: str) -> None:
        candidate = buf.candidate(unit, sep)
        if buf.fits(candidate):
            buf.set(candidate)
            return
        if len(unit) > self.config.chunk_size:
            self._window_split(buf, candidate)
            return
        if buf.can_flush():
            buf.flush()
            candidate = buf.candidate(unit, sep)
        # Either it fits after the flush, or the short buffer absorbs the unit.
        buf.set(candidate)

    def _window_split(self, buf: _Buffer, text: str) -> None:
        """Hard split into fixed windows; the last window stays buffered.

        Windows are emitted at full width, surrounding whitespace included, so
        none falls under the minimum.
        """
        size = self.config.chunk_size
        step = size - self.config.chunk_overlap
        windows: list[str] = []
        pos = 0
        while True:
            window = text[pos : pos + size]
            if window.strip():
                windows.append(window)
            if pos + size >= len(text):
                break
            pos += step
        if not windows:
            return
        for window in windows[:-1]:
            buf.emit(window, strip=False)
        buf.set(windows[-1])

    # ------------------------------------------------------------------
    # Timed transcripts
    # ------------------------------------------------------------------

    def chunk_transcript(
        self,
        segments: Sequence[tuple[str, float, float]],
        item_id: str = "",
    ) -> list[Chunk]:
        """Chunk ``(text, start, end)`` segments, keeping time offsets.

        A chunk starts at its first new segment's start time: text carried
        over as overlap is not reflected in the start offset.
        """
        buf = _Buffer(self.config)
        for text, start, end in segments:
            text = text.strip()
            if not text:
                continue
            candidate = buf.candidate(text, _SEGMENT_SEP)
            if not buf.fits(candidate) and buf.can_flush():
                buf.flush()
                candidate = buf.candidate(text, _SEGMENT_SEP)
            buf.set(candidate)
            if buf.start is None:
                buf.start = start
            buf.end = end
        return _to_chunks(item_id, buf.finish())


def _to_chunks(
    item_id: str, emitted: list[tuple[str, float | None, float | None]]
) -> list[Chunk]:
    return [
        Chunk(item_id=item_id, chunk_index=i, content=content, start_time=start, end_time=end)
        for i, (content, start, end) in enumerate(emitted)
    ]
