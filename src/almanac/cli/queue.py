"""almanac queue: inspect and drain the processing queue."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.table import Table

from almanac.cli.common import build_ingestor, console, exit_with, get_state, open_db
from almanac.db.models import QueueStatus
from almanac.db.queue import QueueStore
from almanac.db.repository import Repository
from almanac.errors import AlmanacError

queue_app = typer.Typer(help="Inspect and process the ingestion queue.", no_args_is_help=True)

_STATUS_STYLE = {
    QueueStatus.PENDING: "cyan",
    QueueStatus.PROCESSING: "yellow",
    QueueStatus.DONE: "green",
    QueueStatus.FAILED: "red",
}


@queue_app.command("list")
def list_cmd(
    ctx: typer.Context,
    status: Annotated[
        QueueStatus | None,
        typer.Option("--status", "-s", case_sensitive=False, help="Only show this status."),
    ] = None,
) -> None:
    """List queue entries, highest priority first."""
    conn = open_db(get_state(ctx).db_path)
    try:
        entries = QueueStore(conn).list(status)
    except AlmanacError as exc:
        exit_with(exc)
    finally:
        conn.close()

    if not entries:
        console.print("[dim]Queue is empty.[/]")
        return

    table = Table(box=None, padding=(0, 1))
    table.add_column("ID", style="dim")
    table.add_column("Status")
    table.add_column("Pri", justify="right")
    table.add_column("Tries", justify="right")
    table.add_column("Path")
    table.add_column("Error", style="red")
    for e in entries:
        style = _STATUS_STYLE[e.status]
        table.add_row(
            e.id[:8],
            f"[{style}]{e.status.value}[/]",
            str(e.priority),
            str(e.attempts),
            e.source_path,
            e.error or "",
        )
    console.print(table)


@queue_app.command("process")
def process_cmd(
    ctx: typer.Context,
    no_enrich: Annotated[
        bool,
        typer.Option("--no-enrich", help="Skip LLM summary and tag generation."),
    ] = False,
) -> None:
    """Ingest every pending entry; failures stay in the queue as 'failed'."""
    state = get_state(ctx)
    conn = open_db(state.db_path)
    try:
        ingestor = build_ingestor(Repository(conn), state.config, enrich=not no_enrich)
        result = ingestor.process_all(enrich=not no_enrich)
    finally:
        conn.close()

    for outcome in result.outcomes:
        console.print(f"  [green]✓[/] {outcome.item.title}: {len(outcome.chunks)} chunks")
    for source, message in result.failures.items():
        console.print(f"  [red]✗[/] {source}: {message}")
    console.print(
        f"\nProcessed [bold]{len(result.outcomes)}[/], failed [bold]{len(result.failures)}[/]."
    )
    if result.failures:
        console.print("  Retry with:  almanac queue retry <ID>")
        raise typer.Exit(1)


@queue_app.command("retry")
def retry_cmd(
    ctx: typer.Context,
    entry_id: Annotated[str, typer.Argument(help="Queue entry id (or unique prefix).")],
) -> None:
    """Move a failed entry back to pending."""
    conn = open_db(get_state(ctx).db_path)
    try:
        store = QueueStore(conn)
        entry = store.retry(store.find(entry_id).id)
    except AlmanacError as exc:
        exit_with(exc)
    finally:
        conn.close()
    console.print(f"[green]✓[/] {entry.source_path} is pending again.")


@queue_app.command("clear")
def clear_cmd(
    ctx: typer.Context,
    failed: Annotated[
        bool,
        typer.Option("--failed", help="Remove failed entries instead of completed ones."),
    ] = False,
) -> None:
    """Delete completed (or failed) entries."""
    conn = open_db(get_state(ctx).db_path)
    try:
        store = QueueStore(conn)
        removed = store.clear_failed() if failed else store.clear_completed()
    except AlmanacError as exc:
        exit_with(exc)
    finally:
        conn.close()
    label = "failed" if failed else "completed"
    console.print(f"[green]✓[/] Removed {removed} {label} entr{'y' if removed == 1 else 'ies'}.")
