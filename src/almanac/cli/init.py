"""almanac init: create the global config and the knowledge base."""

from __future__ import annotations

import typer

from almanac.cli.common import console, get_state, open_db
from almanac.config import ensure_global_config


def init_cmd(ctx: typer.Context) -> None:
    """Create ~/.almanac/config.yaml (if missing) and initialise the database."""
    state = get_state(ctx)
    config_path = ensure_global_config()
    console.print(f"[green]✓[/] Config:   {config_path}")

    existed = state.db_path.exists()
    conn = open_db(state.db_path, must_exist=False)
    conn.close()
    verb = "Found" if existed else "Created"
    console.print(f"[green]✓[/] {verb} database: {state.db_path}")

    console.print(
        "\nNext steps:\n"
        "  almanac ingest <path>     Add notes, documents or media\n"
        "  almanac capture <text>    Store a quick thought\n"
        "  almanac embed --all       Generate embeddings for semantic search\n"
        "  almanac search <query>    Search your knowledge base\n"
        "  almanac ask <question>    Get an answer drawn from your notes"
    )
