"""almanac ingest: add files or directories to the knowledge base.

Files are ingested immediately, or queued with ``--queue`` for a later
``almanac queue process``. Directories are expanded recursively.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from almanac.cli.common import build_ingestor, console, get_state, open_db
from almanac.cli.errors import err_for, warn
from almanac.db.models import ItemType
from almanac.db.repository import Repository
from almanac.errors import AlmanacError
from almanac.ingest.pipeline import IngestOutcome, Ingestor
from almanac.ingest.watcher import scan_directory


def ingest_cmd(
    ctx: typer.Context,
    paths: Annotated[
        list[Path],
        typer.Argument(help="Files or directories to ingest."),
    ],
    queue: Annotated[
        bool,
        typer.Option("--queue", "-q", help="Queue for background processing instead."),
    ] = False,
    priority: Annotated[
        int,
        typer.Option("--priority", "-p", help="Queue priority (higher runs first)."),
    ] = 0,
    item_type: Annotated[
        ItemType | None,
        typer.Option("--type", "-t", case_sensitive=False, help="Only ingest this content type."),
    ] = None,
    no_enrich: Annotated[
        bool,
        typer.Option("--no-enrich", help="Skip LLM summary and tag generation."),
    ] = False,
) -> None:
    """Ingest one or more files into the knowledge base."""
    state = get_state(ctx)
    conn = open_db(state.db_path, must_exist=False)
    repo = Repository(conn)
    ingestor = build_ingestor(repo, state.config, enrich=not no_enrich)

    failed = 0
    try:
        for path in paths:
            if queue:
                failed += _queue_path(ingestor, path, priority, state.config.watch.ignore_patterns)
            elif path.is_dir():
                failed += _ingest_directory(ingestor, path, item_type, not no_enrich)
            else:
                failed += _ingest_file(ingestor, path, item_type, not no_enrich)
    finally:
        conn.close()

    if failed:
        raise typer.Exit(1)


# ------------------------------------------------------------------
# Immediate ingestion
# ------------------------------------------------------------------


def _ingest_file(
    ingestor: Ingestor, path: Path, item_type: ItemType | None, enrich: bool
) -> int:
    console.print(f"\n[bold]→ {path}[/]")
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    ) as prog:
        prog.add_task("Ingesting…", total=None)
        try:
            outcome = ingestor.ingest(path, item_type=item_type, enrich=enrich)
        except AlmanacError as exc:
            console.print(err_for(exc))
            return 1
    _report(outcome)
    return 0


def _ingest_directory(
    ingestor: Ingestor, directory: Path, item_type: ItemType | None, enrich: bool
) -> int:
    console.print(f"\n[bold]→ {directory}/[/]")
    try:
        result = ingestor.ingest_directory(directory, item_type=item_type, enrich=enrich)
    except AlmanacError as exc:
        console.print(err_for(exc))
        return 1
    if not result.outcomes and not result.failures:
        console.print("  [yellow]No supported files found.[/]")
    for outcome in result.outcomes:
        _report(outcome)
    for source, message in result.failures.items():
        console.print(f"  [red]✗[/] {source}: {message}")
    return len(result.failures)


def _report(outcome: IngestOutcome) -> None:
    n = len(outcome.chunks)
    title = outcome.item.title
    if outcome.unchanged:
        console.print(f"  [dim]↷ Unchanged: {title} ({n} chunks already stored)[/]")
    elif outcome.was_update:
        console.print(f"  [yellow]↻[/] Updated {title}: {n} chunks")
    else:
        console.print(f"  [green]✓[/] {title}: {n} chunks")
    for message in outcome.warnings:
        console.print(warn(message))


# ------------------------------------------------------------------
# Queueing
# ------------------------------------------------------------------


def _queue_path(ingestor: Ingestor, path: Path, priority: int, ignore: list[str]) -> int:
    files = scan_directory(path, ignore) if path.is_dir() else [path]
    failed = 0
    for file in files:
        try:
            entry = ingestor.queue_file(file, priority)
        except AlmanacError as exc:
            console.print(err_for(exc))
            failed += 1
            continue
        console.print(f"  [green]✓[/] Queued {entry.source_path} [dim]({entry.id[:8]})[/]")
    return failed
