"""almanac search: hybrid (vector + BM25) search over stored chunks."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.table import Table

from almanac.cli.common import console, fmt_time, get_state, open_db
from almanac.db.repository import Repository
from almanac.rag.retriever import RetrieverConfig, SimilarityResult, retrieve

_SNIPPET_CHARS = 160


def search_cmd(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Search query.")],
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, help="Maximum results."),
    ] = None,
    weight: Annotated[
        float | None,
        typer.Option("--weight", "-w", min=0.0, max=1.0, help="Vector weight (0 = lexical only)."),
    ] = None,
    lexical: Annotated[
        bool,
        typer.Option("--lexical", "-l", help="BM25 only; skip the embedding call."),
    ] = False,
) -> None:
    """Search the knowledge base."""
    state = get_state(ctx)
    cfg = state.config
    config = RetrieverConfig(
        embedding_model=cfg.embedding.model,
        limit=limit or cfg.retrieval.limit,
        vector_weight=cfg.retrieval.vector_weight if weight is None else weight,
        min_similarity=cfg.retrieval.min_similarity,
        lexical_only=lexical,
    )

    conn = open_db(state.db_path)
    try:
        results = retrieve(query, Repository(conn), config)
    finally:
        conn.close()

    if not results:
        console.print(f"[dim]No results for '{query}'.[/]")
        return
    _print_results(results)


def _print_results(results: list[SimilarityResult]) -> None:
    table = Table(box=None, padding=(0, 1), show_header=True)
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Item")
    table.add_column("Text")
    for r in results:
        snippet = " ".join(r.chunk.content.split())
        if len(snippet) > _SNIPPET_CHARS:
            snippet = snippet[:_SNIPPET_CHARS] + "…"
        where = r.item_title
        if r.chunk.has_timestamps:
            where += f" [dim]@{fmt_time(r.chunk.start_time)}[/]"
        table.add_row(f"{r.score:.3f}", where, snippet)
    console.print(table)
