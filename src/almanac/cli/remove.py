"""almanac remove: delete an item and all its data from the knowledge base.

Removes the item record together with its chunks, FTS index rows,
embeddings and tag links.

Usage:
  almanac remove 3f9a1c2e
  almanac remove 3f9a1c2e --yes
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.markup import escape

from almanac.cli.common import console, exit_with, get_state, open_db
from almanac.db.repository import Repository
from almanac.errors import AlmanacError


def remove_cmd(
    ctx: typer.Context,
    item_id: Annotated[str, typer.Argument(help="Item id or unique id prefix.")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove an item and all its data from the knowledge base."""
    state = get_state(ctx)
    conn = open_db(state.db_path)
    repo = Repository(conn)

    try:
        item = repo.get_item_by_prefix(item_id)
        chunk_count = repo.count_chunks_by_item(item.id)

        console.print(f"\nRemove item: [bold]{escape(item.title)}[/] [dim]({item.id[:8]})[/]")
        console.print(f"  Type: {item.item_type.value}  |  Chunks: {chunk_count}")

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        repo.delete_item(item.id)
        console.print(f"\n[green]✓[/] Removed: {escape(item.title)}")
        console.print(f"  {chunk_count} chunk(s) and their embeddings deleted")
    except AlmanacError as exc:
        exit_with(exc)
    finally:
        conn.close()
