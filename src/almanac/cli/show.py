"""almanac show / recent: inspect stored items.

Usage:
  almanac recent --limit 20 --type note
  almanac show 3f9a1c2e
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from almanac.cli.common import console, exit_with, fmt_time, get_state, open_db
from almanac.db.models import Chunk, Item, ItemType
from almanac.db.repository import Repository
from almanac.errors import AlmanacError

_PREVIEW_CHUNKS = 3
_PREVIEW_CHARS = 200
_SOURCE_CHARS = 60


def show_cmd(
    ctx: typer.Context,
    item_id: Annotated[str, typer.Argument(help="Item id or unique id prefix.")],
) -> None:
    """Show one item: details, tags, summary and a content preview."""
    state = get_state(ctx)
    conn = open_db(state.db_path)
    repo = Repository(conn)
    try:
        item = repo.get_item_by_prefix(item_id)
        tags = [t.name for t in repo.get_item_tags(item.id)]
        chunks = repo.get_chunks_by_item(item.id)
    except AlmanacError as exc:
        exit_with(exc)
    finally:
        conn.close()

    _show_details(item, tags)
    if item.summary:
        console.print(Panel(escape(item.summary), title="[bold]Summary[/]", expand=False))
    _show_preview(chunks)
    if item.metadata:
        console.print("\n[bold]Metadata[/]")
        console.print_json(data=item.metadata)


def recent_cmd(
    ctx: typer.Context,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=1, help="Maximum items to list."),
    ] = 10,
    item_type: Annotated[
        ItemType | None,
        typer.Option("--type", "-t", case_sensitive=False, help="Only list this content type."),
    ] = None,
) -> None:
    """List the most recently added items."""
    state = get_state(ctx)
    conn = open_db(state.db_path)
    repo = Repository(conn)
    try:
        items = repo.list_items(item_type, limit)
        counts = {item.id: repo.count_chunks_by_item(item.id) for item in items}
    finally:
        conn.close()

    if not items:
        console.print("[dim]No items found.[/] Run:  almanac ingest <path>")
        return

    table = Table(box=None, padding=(0, 1), show_header=True)
    table.add_column("ID", style="bold")
    table.add_column("Type")
    table.add_column("Title")
    table.add_column("Chunks", justify="right")
    table.add_column("Added")
    table.add_column("Source", style="dim")
    for item in items:
        table.add_row(
            item.id[:8],
            item.item_type.value,
            escape(item.title),
            str(counts[item.id]),
            _fmt_date(item.created_at),
            escape(_truncate(item.source_path or "captured", _SOURCE_CHARS)),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _show_details(item: Item, tags: list[str]) -> None:
    lines = [
        f"ID:        {item.id}",
        f"Type:      {item.item_type.value}",
        f"Added:     {_fmt_date(item.created_at)}",
    ]
    if item.processed_at:
        lines.append(f"Processed: {_fmt_date(item.processed_at)}")
    if item.source_path:
        lines.append(f"Source:    {escape(item.source_path)}")
    if item.content_hash:
        lines.append(f"Hash:      {item.content_hash[:16]}")
    tag_text = escape(", ".join(tags)) if tags else "[dim]none[/]"
    lines.append(f"Tags:      {tag_text}")
    console.print(Panel("\n".join(lines), title=f"[bold]{escape(item.title)}[/]", expand=False))


def _show_preview(chunks: list[Chunk]) -> None:
    if not chunks:
        console.print("[dim]No content stored for this item.[/]")
        return
    console.print(f"\n[bold]Content[/] [dim]({len(chunks)} chunk(s))[/]")
    for chunk in chunks[:_PREVIEW_CHUNKS]:
        prefix = ""
        if chunk.has_timestamps:
            prefix = f"[dim][{fmt_time(chunk.start_time)} - {fmt_time(chunk.end_time)}][/] "
        text = escape(_truncate(chunk.content, _PREVIEW_CHARS))
        console.print(f"  {prefix}{text}", highlight=False)
    if len(chunks) > _PREVIEW_CHUNKS:
        console.print(f"  [dim]... and {len(chunks) - _PREVIEW_CHUNKS} more chunk(s)[/]")


def _fmt_date(iso: str) -> str:
    return iso[:16].replace("T", " ")


def _truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    return text[:limit] + "…" if len(text) > limit else text
