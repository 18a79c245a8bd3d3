"""Domain models for the Almanac database layer."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> str:
    """ISO-8601 UTC timestamp with microseconds (sortable as text)."""
    return datetime.now(timezone.utc).isoformat()


class ItemType(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    NOTE = "note"
    BOOKMARK = "bookmark"
    CODE = "code"
    IMAGE = "image"

    @classmethod
    def from_extension(cls, ext: str) -> ItemType | None:
        """Map a file extension (with or without the dot) to an item type."""
        return _EXTENSION_TYPES.get(ext.lower().lstrip("."))


_EXTENSION_TYPES: dict[str, ItemType] = {
    **dict.fromkeys(("mp4", "mov", "mkv", "webm", "avi", "m4v"), ItemType.VIDEO),
    **dict.fromkeys(("mp3", "wav", "m4a", "flac", "ogg", "aac"), ItemType.AUDIO),
    **dict.fromkeys(("pdf",), ItemType.DOCUMENT),
    **dict.fromkeys(("md", "markdown", "txt", "org"), ItemType.NOTE),
    **dict.fromkeys(
        (
            "rs", "py", "js", "ts", "go", "c", "cpp", "h", "java", "rb", "sh", "zsh",
            "bash", "json", "yaml", "yml", "toml", "html", "css", "sql",
        ),
        ItemType.CODE,
    ),
    **dict.fromkeys(("png", "jpg", "jpeg", "gif", "webp", "svg", "bmp"), ItemType.IMAGE),
}

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(_EXTENSION_TYPES)


class QueueStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Item:
    item_type: ItemType
    title: str
    source_path: str | None = None
    content_hash: str | None = None
    summary: str | None = None
    metadata: dict = field(default_factory=dict)
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)
    processed_at: str | None = None


@dataclass
class Chunk:
    item_id: str
    chunk_index: int
    content: str
    start_time: float | None = None
    end_time: float | None = None
    id: str = field(default_factory=new_id)

    @property
    def has_timestamps(self) -> bool:
        return self.start_time is not None and self.end_time is not None


@dataclass
class Embedding:
    chunk_id: str
    vector: list[float]
    model: str

    @property
    def dimensions(self) -> int:
        return len(self.vector)


@dataclass
class Tag:
    name: str
    color: str | None = None
    id: str = field(default_factory=new_id)


@dataclass
class QueueEntry:
    source_path: str
    item_type: ItemType
    priority: int = 0
    status: QueueStatus = QueueStatus.PENDING
    attempts: int = 0
    error: str | None = None
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)
    started_at: str | None = None
    completed_at: str | None = None
