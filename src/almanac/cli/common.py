"""Shared CLI plumbing: invocation state, DB opening, pipeline wiring."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console

from almanac.cli.errors import err_for, err_no_db
from almanac.config import AlmanacConfig
from almanac.db.connection import Database
from almanac.db.repository import Repository
from almanac.db.schema import initialize
from almanac.errors import AlmanacError
from almanac.ingest.chunker import Chunker
from almanac.ingest.embedding_writer import EmbeddingWriter
from almanac.ingest.enrich import Enricher
from almanac.ingest.pipeline import Ingestor

console = Console()


@dataclass
class CliState:
    """Per-invocation settings resolved by the root callback."""

    config: AlmanacConfig
    db_path: Path


def get_state(ctx: typer.Context) -> CliState:
    state = ctx.find_object(CliState)
    if state is None:
        config = AlmanacConfig()
        state = CliState(config=config, db_path=config.database.resolved_path)
    return state


def open_db(db_path: Path, *, must_exist: bool = True) -> sqlite3.Connection:
    """Open (or create) the knowledge base and run migrations."""
    if must_exist and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def build_ingestor(
    repo: Repository,
    config: AlmanacConfig,
    *,
    enrich: bool = True,
) -> Ingestor:
    """Wire an Ingestor from configuration."""
    enricher = None
    if enrich and (config.generation.generate_summary or config.generation.auto_tag):
        enricher = Enricher(
            repo,
            config.generation.model,
            generate_summary=config.generation.generate_summary,
            auto_tag=config.generation.auto_tag,
        )
    writer = None
    if config.embedding.embed_on_ingest:
        writer = EmbeddingWriter(repo, config.embedding.model, config.embedding.batch_size)
    return Ingestor(
        repo,
        chunker=Chunker(config.chunking),
        enricher=enricher,
        embedding_writer=writer,
        transcription_model=config.transcription.model,
    )


def exit_with(exc: AlmanacError) -> NoReturn:
    console.print(err_for(exc))
    raise typer.Exit(1)


def fmt_time(seconds: float | None) -> str:
    """Render a media offset as ``MM:SS``."""
    total = int(seconds or 0)
    return f"{total // 60:02d}:{total % 60:02d}"
