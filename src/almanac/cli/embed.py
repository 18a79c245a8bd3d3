"""almanac embed: generate vectors for chunks that have none."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from almanac.cli.common import console, exit_with, get_state, open_db
from almanac.cli.errors import err_no_api_key, warn
from almanac.db.repository import Repository
from almanac.errors import AlmanacError
from almanac.ingest.embedding_writer import EmbeddingWriter, EmbedReport
from almanac.rag.llm_client import provider_of, validate_api_key


def embed_cmd(
    ctx: typer.Context,
    all_: Annotated[
        bool,
        typer.Option("--all", "-a", help="Embed every chunk that has no embedding."),
    ] = False,
    item: Annotated[
        str | None,
        typer.Option("--item", "-i", help="Embed one item's chunks (id or unique prefix)."),
    ] = None,
    batch_size: Annotated[
        int | None,
        typer.Option("--batch-size", "-b", min=1, help="Chunks per progress step."),
    ] = None,
) -> None:
    """Embed chunks with the configured embedding model."""
    state = get_state(ctx)
    cfg = state.config
    if all_ or item is not None:
        _require_api_key(cfg.embedding.model)
    conn = open_db(state.db_path)
    repo = Repository(conn)
    writer = EmbeddingWriter(repo, cfg.embedding.model, batch_size or cfg.embedding.batch_size)

    try:
        if item is not None:
            target = repo.get_item_by_prefix(item)
            console.print(f"[bold]→ {target.title}[/] [dim]({target.id[:8]})[/]")
            report = writer.embed_item(target.id)
        elif all_:
            report = _embed_all(repo, writer)
        else:
            _show_stats(repo, cfg.embedding.model)
            return
    except AlmanacError as exc:
        exit_with(exc)
    finally:
        conn.close()

    _print_report(report)
    if report.failures:
        raise typer.Exit(1)


def _require_api_key(model: str) -> None:
    try:
        validate_api_key(model)
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(model)))
        raise typer.Exit(1)


def _embed_all(repo: Repository, writer: EmbeddingWriter) -> EmbedReport:
    embedded, total = repo.embedding_stats()
    missing = total - embedded
    if missing == 0:
        console.print("[green]✓[/] All chunks already have embeddings.")
        return EmbedReport()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
    ) as prog:
        task = prog.add_task(f"Embedding with {writer.model}…", total=missing)
        return writer.embed_pending(on_progress=lambda n: prog.advance(task, n))


def _show_stats(repo: Repository, model: str) -> None:
    embedded, total = repo.embedding_stats()
    pct = (embedded / total * 100) if total else 0.0
    console.print(f"Embedding model: [bold]{model}[/]")
    console.print(f"Chunks embedded: [bold]{embedded}[/] / {total} ({pct:.0f}%)")
    if embedded < total:
        console.print("\n  almanac embed --all        Embed all unembedded chunks")
        console.print("  almanac embed --item <ID>  Embed chunks for a specific item")


def _print_report(report: EmbedReport) -> None:
    if report.embedded:
        console.print(f"[green]✓[/] Embedded {report.embedded} chunk(s).")
    for item_id, messages in report.failures.items():
        console.print(f"[red]✗[/] Item {item_id[:8]}: {len(messages)} chunk(s) failed")
        for message in messages[:3]:
            console.print(warn(message))
