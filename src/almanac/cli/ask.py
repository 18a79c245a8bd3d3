"""almanac ask: answer a question from the knowledge base.

Retrieves the best-matching chunks and has the generation model answer
from them, listing the sources it was given.
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel

from almanac.cli.common import console, exit_with, get_state, open_db
from almanac.cli.errors import err_no_api_key
from almanac.db.repository import Repository
from almanac.errors import AlmanacError
from almanac.rag.answer import Answer, AnswerConfig, answer
from almanac.rag.llm_client import provider_of, validate_api_key
from almanac.rag.retriever import RetrieverConfig


def ask_cmd(
    ctx: typer.Context,
    question: Annotated[str, typer.Argument(help="Question to answer.")],
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=1, help="Chunks of context to give the model."),
    ] = 5,
    lexical: Annotated[
        bool,
        typer.Option("--lexical", "-l", help="Retrieve with BM25 only; skip the embedding call."),
    ] = False,
    sources: Annotated[
        bool,
        typer.Option("--sources/--no-sources", help="List the chunks the answer drew on."),
    ] = True,
) -> None:
    """Ask a question and get an answer grounded in your notes."""
    state = get_state(ctx)
    cfg = state.config
    model = cfg.generation.model
    try:
        validate_api_key(model)
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(model)))
        raise typer.Exit(1)

    retriever_config = RetrieverConfig(
        embedding_model=cfg.embedding.model,
        vector_weight=cfg.retrieval.vector_weight,
        min_similarity=cfg.retrieval.min_similarity,
        lexical_only=lexical,
    )
    config = AnswerConfig(generation_model=model, max_context=limit)

    conn = open_db(state.db_path)
    try:
        with console.status("[dim]Thinking…[/]"):
            result = answer(question, Repository(conn), retriever_config, config)
    except AlmanacError as exc:
        exit_with(exc)
    finally:
        conn.close()

    if not result.sources:
        console.print(f"[yellow]No relevant content found for '{escape(question)}'.[/]")
        console.print("  Try rephrasing, or add material with:  almanac ingest <path>")
        return
    console.print(Panel(escape(result.text), title="[bold]Answer[/]", expand=False))
    if sources:
        _print_sources(result)


def _print_sources(result: Answer) -> None:
    console.print("\n[bold]Sources[/]")
    for i, src in enumerate(result.sources, start=1):
        ref = escape(f"[{src.item_id[:8]}]")
        console.print(f"  {i}. {escape(src.item_title)} [dim]{ref} score {src.score:.3f}[/]")
