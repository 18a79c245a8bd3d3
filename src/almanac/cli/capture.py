"""almanac capture: store a quick thought or bookmark without a file.

Usage:
  almanac capture "Try the sourdough recipe with rye" -t baking
  almanac capture --bookmark "https://example.com/article Great read on indexing"
"""

from __future__ import annotations

from typing import Annotated

import typer

from almanac.cli.common import build_ingestor, console, exit_with, get_state, open_db
from almanac.cli.errors import warn
from almanac.db.models import ItemType
from almanac.db.repository import Repository
from almanac.errors import AlmanacError


def capture_cmd(
    ctx: typer.Context,
    text: Annotated[str, typer.Argument(help="The text to store.")],
    title: Annotated[
        str | None,
        typer.Option("--title", help="Title (defaults to the first line of the text)."),
    ] = None,
    tags: Annotated[
        list[str] | None,
        typer.Option("--tag", "-t", help="Tag to attach; repeatable."),
    ] = None,
    bookmark: Annotated[
        bool,
        typer.Option("--bookmark", "-b", help="Store as a bookmark instead of a note."),
    ] = False,
    no_enrich: Annotated[
        bool,
        typer.Option("--no-enrich", help="Skip LLM summary and tag generation."),
    ] = False,
) -> None:
    """Capture a thought or bookmark straight into the knowledge base."""
    state = get_state(ctx)
    conn = open_db(state.db_path, must_exist=False)
    repo = Repository(conn)
    ingestor = build_ingestor(repo, state.config, enrich=not no_enrich)

    try:
        outcome = ingestor.capture(
            text,
            title=title,
            tags=tags or (),
            item_type=ItemType.BOOKMARK if bookmark else ItemType.NOTE,
            enrich=not no_enrich,
        )
        item_tags = [t.name for t in repo.get_item_tags(outcome.item.id)]
    except AlmanacError as exc:
        exit_with(exc)
    finally:
        conn.close()

    item = outcome.item
    console.print(f"[green]✓[/] Captured {item.item_type.value}")
    console.print(f"  ID:    {item.id[:8]}")
    console.print(f"  Title: {item.title}")
    if item_tags:
        console.print(f"  Tags:  {', '.join(item_tags)}")
    for message in outcome.warnings:
        console.print(warn(message))
    console.print(f"\n[dim]Run:  almanac show {item.id[:8]}  to view it.[/]")
