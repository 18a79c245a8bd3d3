"""Almanac CLI entry point."""

from __future__ import annotations

import importlib.metadata
from pathlib import Path
from typing import Annotated

import typer

from almanac.cli.ask import ask_cmd
from almanac.cli.capture import capture_cmd
from almanac.cli.common import CliState, console
from almanac.cli.embed import embed_cmd
from almanac.cli.errors import err_config
from almanac.cli.ingest import ingest_cmd
from almanac.cli.init import init_cmd
from almanac.cli.queue import queue_app
from almanac.cli.remove import remove_cmd
from almanac.cli.search import search_cmd
from almanac.cli.show import recent_cmd, show_cmd
from almanac.cli.status import status_cmd
from almanac.cli.watch import watch_cmd
from almanac.config import ConfigError, load_config
from almanac.log import setup_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("almanac")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"almanac {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="almanac",
    help=(
        "Almanac: personal knowledge base.\n\n"
        "  almanac ingest   Add notes, documents and media.\n"
        "  almanac capture  Store a quick thought or bookmark.\n"
        "  almanac search   Hybrid (semantic + keyword) search.\n"
        "  almanac ask      Answer a question from your notes."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge base (overrides config)."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Almanac: personal knowledge base."""
    setup_logging(verbose)
    try:
        config = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    db_path = db.expanduser() if db is not None else config.database.resolved_path
    ctx.obj = CliState(config=config, db_path=db_path)


app.command("init")(init_cmd)
app.command("ingest")(ingest_cmd)
app.command("capture")(capture_cmd)
app.command("embed")(embed_cmd)
app.command("search")(search_cmd)
app.command("ask")(ask_cmd)
app.command("show")(show_cmd)
app.command("recent")(recent_cmd)
app.command("remove")(remove_cmd)
app.command("watch")(watch_cmd)
app.command("status")(status_cmd)
app.add_typer(queue_app, name="queue")


@app.command("version")
def version_cmd() -> None:
    """Show the installed Almanac version."""
    typer.echo(f"almanac {_installed_version()}")


if __name__ == "__main__":
    app()
