"""Durable processing queue backed by the ``queue`` table.

Status flow: pending -> processing -> done | failed, and failed -> pending on
an explicit retry. A source path may have at most one pending or processing
entry at a time (enforced by the ``idx_queue_active_path`` partial index).
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager

from almanac.db.models import ItemType, QueueEntry, QueueStatus, utc_now
from almanac.errors import (
    AlreadyQueued,
    InvalidTransition,
    QueueEntryNotFound,
    StorageFailure,
)

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, source_path, item_type, status, priority, attempts, error, "
    "created_at, started_at, completed_at"
)
# rowid breaks ties between entries created within the same microsecond.
_DEQUEUE_ORDER = "priority DESC, created_at ASC, rowid ASC"


@contextmanager
def _storage_errors() -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        raise StorageFailure(str(exc)) from exc


class QueueStore:
    """Enqueue, atomically dequeue and transition queue entries.

    Each concurrent drainer must own its own connection; the dequeue
    transition takes SQLite's write lock up front so two drainers can never
    claim the same entry.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Enqueue / dequeue
    # ------------------------------------------------------------------

    def enqueue(self, source_path: str, item_type: ItemType, priority: int = 0) -> QueueEntry:
        """Add a pending entry for *source_path*.

        Raises:
            AlreadyQueued: If the path already has a pending or processing entry.
        """
        entry = QueueEntry(source_path=source_path, item_type=item_type, priority=priority)
        try:
            with self._conn:
                self._conn.execute(
                    f"INSERT INTO queue ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        entry.id,
                        entry.source_path,
                        entry.item_type.value,
                        entry.status.value,
                        entry.priority,
                        entry.attempts,
                        entry.error,
                        entry.created_at,
                        entry.started_at,
                        entry.completed_at,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise AlreadyQueued(source_path) from exc
        except sqlite3.Error as exc:
            raise StorageFailure(str(exc)) from exc
        logger.debug("Queued %s (priority %d)", source_path, priority)
        return entry

    def dequeue(self) -> QueueEntry | None:
        """Claim the highest-priority, oldest pending entry.

        The claimed entry is returned already in ``processing`` state with its
        attempt count incremented. Returns None when nothing is pending.

        Raises:
            StorageFailure: If the connection already has an open transaction;
                the claim must run in a transaction of its own.
        """
        if self._conn.in_transaction:
            raise StorageFailure(
                "dequeue called inside an open transaction; commit or roll back first"
            )
        with _storage_errors():
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                row = self._conn.execute(
                    f"SELECT {_COLUMNS} FROM queue WHERE status = ? "
                    f"ORDER BY {_DEQUEUE_ORDER} LIMIT 1",
                    (QueueStatus.PENDING.value,),
                ).fetchone()
                if row is None:
                    self._conn.commit()
                    return None
                self._conn.execute(
                    """
                    UPDATE queue SET status = ?, attempts = attempts + 1, started_at = ?
                    WHERE id = ?
                    """,
                    (QueueStatus.PROCESSING.value, utc_now(), row["id"]),
                )
                self._conn.commit()
            except BaseException:
                self._conn.rollback()
                raise
        return self._require(row["id"])

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def complete(self, entry_id: str) -> QueueEntry:
        """Mark a processing entry as done."""
        self._transition(
            entry_id,
            expected=QueueStatus.PROCESSING,
            target=QueueStatus.DONE,
            sql="UPDATE queue SET status = ?, error = NULL, completed_at = ? WHERE id = ?",
            params=(QueueStatus.DONE.value, utc_now(), entry_id),
        )
        return self._require(entry_id)

    def fail(self, entry_id: str, message: str) -> QueueEntry:
        """Mark a processing entry as failed, keeping *message* for inspection."""
        self._transition(
            entry_id,
            expected=QueueStatus.PROCESSING,
            target=QueueStatus.FAILED,
            sql="UPDATE queue SET status = ?, error = ?, completed_at = ? WHERE id = ?",
            params=(QueueStatus.FAILED.value, message, utc_now(), entry_id),
        )
        logger.warning("Queue entry %s failed: %s", entry_id, message)
        return self._require(entry_id)

    def retry(self, entry_id: str) -> QueueEntry:
        """Put a failed entry back to pending, clearing its error and timestamps.

        Raises:
            AlreadyQueued: If the same path was re-enqueued while this entry
                sat in ``failed``.
        """
        entry = self._require(entry_id)
        if entry.status is not QueueStatus.FAILED:
            raise InvalidTransition(entry_id, entry.status.value, QueueStatus.PENDING.value)
        try:
            with self._conn:
                self._conn.execute(
                    """
                    UPDATE queue SET status = ?, error = NULL, started_at = NULL,
                                     completed_at = NULL
                    WHERE id = ? AND status = ?
                    """,
                    (QueueStatus.PENDING.value, entry_id, QueueStatus.FAILED.value),
                )
        except sqlite3.IntegrityError as exc:
            raise AlreadyQueued(entry.source_path) from exc
        except sqlite3.Error as exc:
            raise StorageFailure(str(exc)) from exc
        return self._require(entry_id)

    # ------------------------------------------------------------------
    # Inspection / administration
    # ------------------------------------------------------------------

    def get(self, entry_id: str) -> QueueEntry | None:
        with _storage_errors():
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM queue WHERE id = ?", (entry_id,)
            ).fetchone()
        return _row_to_queue_entry(row) if row else None

    def find(self, prefix: str) -> QueueEntry:
        """Resolve a full or abbreviated entry id.

        Raises:
            QueueEntryNotFound: If no entry, or more than one entry, matches.
        """
        with _storage_errors():
            rows = self._conn.execute(
                f"SELECT {_COLUMNS} FROM queue WHERE id LIKE ? || '%' LIMIT 2", (prefix,)
            ).fetchall()
        if len(rows) != 1:
            raise QueueEntryNotFound(prefix)
        return _row_to_queue_entry(rows[0])

    def list(self, status: QueueStatus | None = None) -> list[QueueEntry]:
        """Return entries by priority (highest first), then age (oldest first)."""
        sql = f"SELECT {_COLUMNS} FROM queue"
        params: tuple = ()
        if status is not None:
            sql += " WHERE status = ?"
            params = (status.value,)
        sql += f" ORDER BY {_DEQUEUE_ORDER}"
        with _storage_errors():
            rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_queue_entry(r) for r in rows]

    def counts(self) -> dict[QueueStatus, int]:
        """Number of entries per status (every status present, zero if none)."""
        result = {status: 0 for status in QueueStatus}
        with _storage_errors():
            rows = self._conn.execute(
                "SELECT status, COUNT(*) AS n FROM queue GROUP BY status"
            ).fetchall()
        for row in rows:
            result[QueueStatus(row["status"])] = row["n"]
        return result

    def clear_completed(self) -> int:
        return self._clear(QueueStatus.DONE)

    def clear_failed(self) -> int:
        return self._clear(QueueStatus.FAILED)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, entry_id: str) -> QueueEntry:
        entry = self.get(entry_id)
        if entry is None:
            raise QueueEntryNotFound(entry_id)
        return entry

    def _transition(
        self,
        entry_id: str,
        *,
        expected: QueueStatus,
        target: QueueStatus,
        sql: str,
        params: tuple,
    ) -> None:
        with _storage_errors():
            with self._conn:
                cur = self._conn.execute(f"{sql} AND status = ?", (*params, expected.value))
        if cur.rowcount == 0:
            entry = self._require(entry_id)
            raise InvalidTransition(entry_id, entry.status.value, target.value)

    def _clear(self, status: QueueStatus) -> int:
        with _storage_errors():
            with self._conn:
                cur = self._conn.execute("DELETE FROM queue WHERE status = ?", (status.value,))
        return cur.rowcount


def _row_to_queue_entry(row: sqlite3.Row) -> QueueEntry:
    return QueueEntry(
        id=row["id"],
        source_path=row["source_path"],
        item_type=ItemType(row["item_type"]),
        status=QueueStatus(row["status"]),
        priority=row["priority"],
        attempts=row["attempts"],
        error=row["error"],
        created_at=row["created_at"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
    )
