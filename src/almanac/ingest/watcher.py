"""Debounced directory watching via watchdog.

Raw filesystem notifications are coalesced per path; a path is reported by
``FileWatcher.poll()`` only after it has been quiet for the debounce window,
so a large copy produces one event rather than one per write.
"""

from __future__ import annotations

import fnmatch
import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from almanac.db.models import ItemType

logger = logging.getLogger(__name__)

CHANGED = "changed"
DELETED = "deleted"


@dataclass(frozen=True)
class WatchEvent:
    kind: str  # "changed" | "deleted"
    path: Path
    item_type: ItemType


def is_ignored(path: Path, patterns: Iterable[str]) -> bool:
    """True for hidden files or names/paths matching any glob in *patterns*."""
    if path.name.startswith("."):
        return True
    full = str(path)
    return any(
        fnmatch.fnmatch(path.name, pattern) or fnmatch.fnmatch(full, pattern)
        for pattern in patterns
    )


def scan_directory(directory: Path, ignore_patterns: Iterable[str] = ()) -> list[Path]:
    """List existing supported files under *directory* (recursive, sorted)."""
    patterns = list(ignore_patterns)
    found: list[Path] = []
    for path in sorted(directory.rglob("*")):
        rel = path.relative_to(directory)
        if any(part.startswith(".") for part in rel.parts[:-1]):
            continue
        if not path.is_file() or is_ignored(path, patterns):
            continue
        if ItemType.from_extension(path.suffix) is not None:
            found.append(path)
    return found


class _DebounceHandler(FileSystemEventHandler):
    """Collect watchdog events into ``pending`` as path -> (last_seen, kind)."""

    def __init__(self, watcher: FileWatcher) -> None:
        super().__init__()
        self._watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.record(event.src_path, CHANGED)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.record(event.src_path, CHANGED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.record(event.src_path, DELETED)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.record(event.src_path, DELETED)
            self._watcher.record(event.dest_path, CHANGED)


class FileWatcher:
    """Watch directories recursively and surface debounced change events.

    Args:
        directories: Directories to watch; missing ones are skipped with a warning.
        ignore_patterns: Glob patterns matched against file name and full path.
        debounce_seconds: Quiet period required before a path is reported.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        directories: Iterable[Path | str],
        ignore_patterns: Iterable[str] = (),
        debounce_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.directories = [Path(d).expanduser() for d in directories]
        self.ignore_patterns = list(ignore_patterns)
        self.debounce_seconds = debounce_seconds
        self._clock = clock
        self._pending: dict[Path, tuple[float, str]] = {}
        self._lock = threading.Lock()
        self._handler = _DebounceHandler(self)
        self._observer: Observer | None = None

    @property
    def watched(self) -> list[Path]:
        return [d for d in self.directories if d.is_dir()]

    def start(self) -> None:
        observer = Observer()
        for directory in self.directories:
            if not directory.is_dir():
                logger.warning("Watch directory does not exist, skipping: %s", directory)
                continue
            observer.schedule(self._handler, str(directory), recursive=True)
            logger.info("Watching %s", directory)
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    def __enter__(self) -> FileWatcher:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()

    def record(self, raw_path: str | bytes, kind: str) -> None:
        """Note a raw notification for *raw_path*; later notifications win."""
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode(errors="replace")
        path = Path(raw_path)
        if is_ignored(path, self.ignore_patterns):
            return
        if ItemType.from_extension(path.suffix) is None:
            return
        with self._lock:
            self._pending[path] = (self._clock(), kind)

    def poll(self) -> list[WatchEvent]:
        """Return events whose path has been quiet for the debounce window."""
        now = self._clock()
        ready: list[WatchEvent] = []
        with self._lock:
            for path, (seen, kind) in list(self._pending.items()):
                if now - seen < self.debounce_seconds:
                    continue
                del self._pending[path]
                item_type = ItemType.from_extension(path.suffix)
                if item_type is not None:
                    ready.append(WatchEvent(kind=kind, path=path, item_type=item_type))
        return sorted(ready, key=lambda e: str(e.path))

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)
