"""almanac watch: queue files as they appear in watched directories."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Annotated

import typer

from almanac.cli.common import build_ingestor, console, get_state, open_db
from almanac.cli.errors import err_for
from almanac.db.repository import Repository
from almanac.errors import AlmanacError, AlreadyQueued
from almanac.ingest.pipeline import Ingestor
from almanac.ingest.watcher import DELETED, FileWatcher, WatchEvent, scan_directory

_POLL_SECONDS = 1.0


def watch_cmd(
    ctx: typer.Context,
    directories: Annotated[
        list[Path] | None,
        typer.Argument(help="Directories to watch (default: watch.directories)."),
    ] = None,
    process: Annotated[
        bool,
        typer.Option("--process", help="Ingest queued files as soon as they are queued."),
    ] = False,
    scan: Annotated[
        bool,
        typer.Option("--scan", help="Queue files already present before watching."),
    ] = False,
) -> None:
    """Watch directories and queue new or changed files."""
    state = get_state(ctx)
    cfg = state.config.watch
    targets = list(directories or []) or [Path(d) for d in cfg.directories]
    if not targets:
        console.print(
            "[red]Error:[/] No directories to watch.\n"
            "  Pass directories as arguments or add them to almanac.yaml:\n"
            "    watch:\n"
            "      directories: [~/notes]"
        )
        raise typer.Exit(1)

    conn = open_db(state.db_path, must_exist=False)
    ingestor = build_ingestor(Repository(conn), state.config)
    watcher = FileWatcher(targets, cfg.ignore_patterns, cfg.debounce_seconds)

    try:
        if scan:
            for directory in watcher.watched:
                for path in scan_directory(directory, cfg.ignore_patterns):
                    _queue(ingestor, path)
            if process:
                _drain(ingestor)

        with watcher:
            dirs = ", ".join(str(d) for d in watcher.watched) or "(none)"
            console.print(f"[bold]Watching[/] {dirs}  [dim](Ctrl+C to stop)[/]")
            while True:
                time.sleep(_POLL_SECONDS)
                handle_events(ingestor, watcher.poll(), process=process)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped watching.[/]")
    finally:
        conn.close()


def handle_events(ingestor: Ingestor, events: list[WatchEvent], *, process: bool) -> int:
    """Queue changed files from *events*; returns how many were queued."""
    queued = 0
    for event in events:
        if event.kind == DELETED:
            console.print(f"  [dim]- {event.path} removed (stored item kept)[/]")
            continue
        if not event.path.exists():
            continue
        queued += _queue(ingestor, event.path)
    if process and queued:
        _drain(ingestor)
    return queued


def _queue(ingestor: Ingestor, path: Path) -> int:
    try:
        ingestor.queue_file(path)
    except AlreadyQueued:
        return 0
    except AlmanacError as exc:
        console.print(err_for(exc))
        return 0
    console.print(f"  [green]+[/] Queued {path}")
    return 1


def _drain(ingestor: Ingestor) -> None:
    result = ingestor.process_all()
    for outcome in result.outcomes:
        console.print(f"  [green]✓[/] {outcome.item.title}: {len(outcome.chunks)} chunks")
    for source, message in result.failures.items():
        console.print(f"  [red]✗[/] {source}: {message}")
