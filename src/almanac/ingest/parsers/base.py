"""Parser result types shared by every content-type parser."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple


class TranscriptSegment(NamedTuple):
    """A timed slice of a transcript (offsets in seconds)."""

    text: str
    start: float
    end: float


@dataclass
class ParsedDocument:
    """Text extracted from a source file, ready for chunking.

    ``segments`` is only populated for time-coded media (audio/video).
    """

    text: str
    title: str | None = None
    metadata: dict = field(default_factory=dict)
    segments: list[TranscriptSegment] = field(default_factory=list)

    @property
    def is_transcript(self) -> bool:
        return bool(self.segments)
