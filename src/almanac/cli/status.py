"""almanac status: knowledge base, embedding and queue overview."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.panel import Panel
from rich.table import Table

from almanac.cli.common import console, get_state, open_db
from almanac.config import AlmanacConfig
from almanac.db.models import QueueStatus
from almanac.db.queue import QueueStore
from almanac.db.repository import Repository


def status_cmd(ctx: typer.Context) -> None:
    """Show database, embedding and queue status."""
    state = get_state(ctx)
    db = state.db_path

    if not db.exists():
        console.print(
            Panel(
                f"Database:  {db}\n"
                "[yellow]No database found.[/]\n"
                "  Run:  almanac init",
                title="[bold]Almanac[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db)
    try:
        repo = Repository(conn)
        _show_knowledge_panel(db, repo, state.config)
        _show_queue_panel(QueueStore(conn))
    finally:
        conn.close()
    _show_watch_panel(state.config)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_knowledge_panel(db: Path, repo: Repository, cfg: AlmanacConfig) -> None:
    size_mb = db.stat().st_size / (1024 * 1024)
    by_type = repo.count_items_by_type()
    embedded, total_chunks = repo.embedding_stats()

    lines = [
        f"Database:  {db} ({size_mb:.1f} MB)",
        f"Items: [bold]{sum(by_type.values())}[/]  |  "
        f"Chunks: [bold]{total_chunks:,}[/]  |  "
        f"Embedded: [bold]{embedded:,}[/]",
    ]
    for item_type, n in by_type.items():
        lines.append(f"  {item_type.value:<9} {n}")
    if total_chunks and embedded < total_chunks:
        lines.append(
            f"[yellow]{total_chunks - embedded} chunk(s) without embeddings[/]: "
            "run:  almanac embed --all"
        )
    lines.append(f"[dim]Embedding model: {cfg.embedding.model}[/]")
    console.print(Panel("\n".join(lines), title="[bold]Knowledge Base[/]", expand=False))


def _show_queue_panel(store: QueueStore) -> None:
    counts = store.counts()
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Status", style="bold")
    table.add_column("Count", justify="right")
    for status in QueueStatus:
        table.add_row(status.value, str(counts[status]))
    console.print(Panel(table, title="[bold]Queue[/]", expand=False))


def _show_watch_panel(cfg: AlmanacConfig) -> None:
    if not cfg.watch.directories:
        return
    lines = []
    for d in cfg.watch.directories:
        mark = "[green]✓[/]" if Path(d).expanduser().is_dir() else "[yellow]✗ missing[/]"
        lines.append(f"{d} {mark}")
    console.print(Panel("\n".join(lines), title="[bold]Watched Directories[/]", expand=False))
