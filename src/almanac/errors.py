"""Almanac exception taxonomy.

Library code raises these; the CLI turns them into actionable messages
(see ``almanac.cli.errors``). Every error derives from ``AlmanacError`` so
callers can catch the whole family in one clause.
"""

from __future__ import annotations

from pathlib import Path


class AlmanacError(Exception):
    """Base class for all Almanac errors."""


# ---------------------------------------------------------------------------
# Missing resources
# ---------------------------------------------------------------------------


class NotFound(AlmanacError):
    """A path, item, or queue entry does not exist."""


class FileNotFound(NotFound):
    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        super().__init__(f"File not found: {self.path}")


class ItemNotFound(NotFound):
    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class QueueEntryNotFound(NotFound):
    def __init__(self, entry_id: str) -> None:
        self.entry_id = entry_id
        super().__init__(f"Queue entry not found: {entry_id}")


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


class UnsupportedType(AlmanacError):
    def __init__(self, extension: str) -> None:
        self.extension = extension or "unknown"
        super().__init__(f"Unsupported file type: {self.extension!r}")


class AlreadyQueued(AlmanacError):
    def __init__(self, path: Path | str) -> None:
        self.path = str(path)
        super().__init__(f"Already queued: {self.path}")


class InvalidTransition(AlmanacError):
    """A queue entry was asked to move to a status its current status forbids."""

    def __init__(self, entry_id: str, status: str, target: str) -> None:
        self.entry_id = entry_id
        self.status = status
        self.target = target
        super().__init__(
            f"Queue entry {entry_id} is '{status}' and cannot move to '{target}'"
        )


class ParseFailure(AlmanacError):
    def __init__(self, path: Path | str, message: str) -> None:
        self.path = str(path)
        self.message = message
        super().__init__(f"Parse error for {self.path}: {message}")


class EmbeddingFailure(AlmanacError):
    def __init__(self, model: str, message: str) -> None:
        self.model = model
        self.message = message
        super().__init__(f"Embedding failed with model '{model}': {message}")


class GenerationFailure(AlmanacError):
    def __init__(self, model: str, message: str) -> None:
        self.model = model
        self.message = message
        super().__init__(f"Generation failed with model '{model}': {message}")


class StorageFailure(AlmanacError):
    """Wraps a ``sqlite3.Error`` raised by the persistence layer."""
