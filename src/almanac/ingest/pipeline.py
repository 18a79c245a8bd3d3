"""Ingestion pipeline: hash → dedupe → parse → chunk → store → enrich.

Also stores directly captured text (``capture``) and drains the processing
queue (``process_next`` / ``process_all``).
"""

from __future__ import annotations

import hashlib
import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from almanac.db.models import Chunk, Item, ItemType, QueueEntry, utc_now
from almanac.db.queue import QueueStore
from almanac.db.repository import Repository
from almanac.errors import (
    AlmanacError,
    FileNotFound,
    ParseFailure,
    StorageFailure,
    UnsupportedType,
)
from almanac.ingest.chunker import Chunker
from almanac.ingest.embedding_writer import EmbeddingWriter
from almanac.ingest.enrich import Enricher
from almanac.ingest.parsers import DEFAULT_TRANSCRIPTION_MODEL, parse

logger = logging.getLogger(__name__)

_HASH_BLOCK = 64 * 1024
_TITLE_CHARS = 50


@dataclass
class IngestOutcome:
    """Result of ingesting one file or one captured text.

    Attributes:
        item: The stored item (existing one when content was unchanged).
        chunks: The item's chunks in read order.
        was_update: True when an existing item at the same path was replaced.
        unchanged: True when identical content was already stored.
        warnings: Best-effort steps that did not succeed (enrichment, embedding).
    """

    item: Item
    chunks: list[Chunk]
    was_update: bool
    unchanged: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass
class BatchResult:
    """Outcomes of a multi-file run; failures map source path → error message."""

    outcomes: list[IngestOutcome] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)


def classify(path: Path) -> ItemType:
    """Map *path*'s extension to an item type.

    Raises:
        UnsupportedType: If the extension is not recognised.
    """
    item_type = ItemType.from_extension(path.suffix)
    if item_type is None:
        raise UnsupportedType(path.suffix.lstrip("."))
    return item_type


def hash_file(path: Path) -> str:
    """SHA-256 hex digest of the file's raw bytes."""
    digest = hashlib.sha256()
    try:
        with open(path, "rb") as fh:
            for block in iter(lambda: fh.read(_HASH_BLOCK), b""):
                digest.update(block)
    except OSError as exc:
        raise ParseFailure(path, str(exc)) from exc
    return digest.hexdigest()


def capture_title(text: str) -> str:
    """First line of *text*, cut to 50 characters with a trailing ellipsis."""
    first = " ".join(text.strip().splitlines()[0].split()) if text.strip() else ""
    if len(first) > _TITLE_CHARS:
        return first[:_TITLE_CHARS].rstrip() + "..."
    return first


def _canonical(path: Path | str) -> Path:
    candidate = Path(path).expanduser()
    if not candidate.exists():
        raise FileNotFound(candidate)
    return candidate.resolve()


class Ingestor:
    """Turn files into stored items and chunks.

    Args:
        repo: Open Repository instance.
        queue: Queue store on the same connection (created if omitted).
        chunker: Chunker to use (default configuration if omitted).
        enricher: Optional summary/tag generator, run best effort.
        embedding_writer: Optional writer that embeds new chunks right away.
        transcription_model: LiteLLM model for audio/video transcription.
    """

    def __init__(
        self,
        repo: Repository,
        queue: QueueStore | None = None,
        *,
        chunker: Chunker | None = None,
        enricher: Enricher | None = None,
        embedding_writer: EmbeddingWriter | None = None,
        transcription_model: str = DEFAULT_TRANSCRIPTION_MODEL,
    ) -> None:
        self._repo = repo
        self._queue = queue or QueueStore(repo.conn)
        self._chunker = chunker or Chunker()
        self._enricher = enricher
        self._embedding_writer = embedding_writer
        self._transcription_model = transcription_model

    @property
    def queue(self) -> QueueStore:
        return self._queue

    # ------------------------------------------------------------------
    # Direct ingestion
    # ------------------------------------------------------------------

    def ingest(
        self,
        path: Path | str,
        *,
        item_type: ItemType | None = None,
        enrich: bool = True,
    ) -> IngestOutcome:
        """Ingest one file.

        Raises:
            FileNotFound: If *path* does not exist.
            UnsupportedType: If the extension is unknown and no type was given.
            ParseFailure: If text extraction fails.
            StorageFailure: If the database rejects the write.
        """
        path = _canonical(path)
        if not path.is_file():
            raise ParseFailure(path, "not a regular file")
        item_type = item_type or classify(path)
        content_hash = hash_file(path)

        try:
            existing = self._repo.find_item_by_hash(content_hash)
            if existing is not None:
                logger.debug("Unchanged content for %s (item %s)", path, existing.id)
                return IngestOutcome(
                    item=existing,
                    chunks=self._repo.get_chunks_by_item(existing.id),
                    was_update=False,
                    unchanged=True,
                )
            previous = self._repo.find_item_by_path(str(path))
        except sqlite3.Error as exc:
            raise StorageFailure(str(exc)) from exc

        doc = parse(path, item_type, self._transcription_model)
        title = doc.title or path.stem

        if previous is not None:
            logger.debug("Content changed for %s; updating item %s", path, previous.id)
            item = previous
            item.item_type = item_type
            item.title = title
            item.content_hash = content_hash
            item.summary = None
            item.metadata = doc.metadata
            item.processed_at = utc_now()
        else:
            item = Item(
                item_type=item_type,
                title=title,
                source_path=str(path),
                content_hash=content_hash,
                metadata=doc.metadata,
                processed_at=utc_now(),
            )

        if doc.is_transcript:
            chunks = self._chunker.chunk_transcript(doc.segments, item.id)
        else:
            chunks = self._chunker.chunk_text(doc.text, item.id)

        try:
            self._repo.save_ingested(item, chunks, is_new=previous is None)
        except sqlite3.Error as exc:
            raise StorageFailure(str(exc)) from exc

        logger.info(
            "%s %s: %d chunk(s)", "Updated" if previous else "Ingested", path.name, len(chunks)
        )
        outcome = IngestOutcome(item=item, chunks=chunks, was_update=previous is not None)
        self._post_process(outcome, doc.text, enrich)
        return outcome

    def capture(
        self,
        text: str,
        *,
        title: str | None = None,
        tags: Sequence[str] = (),
        item_type: ItemType = ItemType.NOTE,
        enrich: bool = True,
    ) -> IngestOutcome:
        """Store typed text as an item of its own, with no source file.

        The title defaults to the first line of *text*. Bookmarks whose text
        starts with a URL record it under ``metadata["url"]``.

        Raises:
            AlmanacError: If *text* is blank.
            StorageFailure: If the database rejects the write.
        """
        text = text.strip()
        if not text:
            raise AlmanacError("Nothing to capture: the text is empty")

        captured_at = utc_now()
        metadata: dict = {"source": "capture", "captured_at": captured_at}
        if item_type is ItemType.BOOKMARK:
            first = text.split()[0]
            if first.startswith(("http://", "https://")):
                metadata["url"] = first
        item = Item(
            item_type=item_type,
            title=(title or "").strip() or capture_title(text),
            metadata=metadata,
            created_at=captured_at,
            processed_at=captured_at,
        )
        chunks = self._chunker.chunk_text(text, item.id)

        try:
            self._repo.save_ingested(item, chunks, is_new=True)
            for name in dict.fromkeys(t.strip().lower() for t in tags):
                if name:
                    self._repo.tag_item(item.id, name)
        except sqlite3.Error as exc:
            raise StorageFailure(str(exc)) from exc

        logger.info("Captured %s %r: %d chunk(s)", item_type.value, item.title, len(chunks))
        outcome = IngestOutcome(item=item, chunks=chunks, was_update=False)
        self._post_process(outcome, text, enrich)
        return outcome

    def _post_process(self, outcome: IngestOutcome, text: str, enrich: bool) -> None:
        """Best-effort enrichment and embedding; problems become warnings."""
        if enrich and self._enricher is not None:
            outcome.warnings.extend(self._enricher.enrich(outcome.item, text))
        if self._embedding_writer is not None and outcome.chunks:
            report = self._embedding_writer.embed_chunks(outcome.chunks)
            if report.failed:
                outcome.warnings.append(
                    f"{report.failed} chunk(s) could not be embedded; run 'almanac embed' later"
                )

    def ingest_directory(
        self,
        directory: Path | str,
        *,
        item_type: ItemType | None = None,
        enrich: bool = True,
    ) -> BatchResult:
        """Ingest every supported, non-hidden file under *directory*.

        Per-file errors are logged and collected, never raised.
        """
        root = _canonical(directory)
        result = BatchResult()
        for path in sorted(root.rglob("*")):
            rel = path.relative_to(root)
            if any(part.startswith(".") for part in rel.parts) or not path.is_file():
                continue
            detected = ItemType.from_extension(path.suffix)
            if detected is None or (item_type is not None and detected is not item_type):
                continue
            try:
                result.outcomes.append(self.ingest(path, item_type=detected, enrich=enrich))
            except AlmanacError as exc:
                logger.warning("Failed to ingest %s: %s", path, exc)
                result.failures[str(path)] = str(exc)
        return result

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def queue_file(self, path: Path | str, priority: int = 0) -> QueueEntry:
        """Validate *path* and add it to the processing queue.

        Raises:
            FileNotFound, UnsupportedType, AlreadyQueued.
        """
        path = _canonical(path)
        return self._queue.enqueue(str(path), classify(path), priority)

    def process_next(self, *, enrich: bool = True) -> IngestOutcome | None:
        """Ingest the next queued file. Returns None when the queue is empty.

        A failure is recorded on the entry and then re-raised.
        """
        entry = self._queue.dequeue()
        if entry is None:
            return None
        return self._process(entry, enrich)

    def process_all(self, *, enrich: bool = True) -> BatchResult:
        """Drain the queue, continuing past failed entries."""
        result = BatchResult()
        while (entry := self._queue.dequeue()) is not None:
            try:
                result.outcomes.append(self._process(entry, enrich))
            except AlmanacError as exc:
                result.failures[entry.source_path] = str(exc)
        return result

    def _process(self, entry: QueueEntry, enrich: bool) -> IngestOutcome:
        logger.info("Processing queued %s (attempt %d)", entry.source_path, entry.attempts)
        try:
            outcome = self.ingest(entry.source_path, item_type=entry.item_type, enrich=enrich)
        except Exception as exc:
            self._queue.fail(entry.id, str(exc))
            raise
        self._queue.complete(entry.id)
        return outcome
