"""Almanac rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from almanac.cli.errors import err_for
    console.print(err_for(exc))
    raise typer.Exit(1)
"""

from __future__ import annotations

from almanac.db.models import SUPPORTED_EXTENSIONS
from almanac.errors import (
    AlmanacError,
    AlreadyQueued,
    EmbeddingFailure,
    FileNotFound,
    GenerationFailure,
    InvalidTransition,
    ItemNotFound,
    ParseFailure,
    QueueEntryNotFound,
    StorageFailure,
    UnsupportedType,
)
from almanac.rag.llm_client import api_key_env


def err_no_api_key(provider: str) -> str:
    """No API key exported for a hosted *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = api_key_env(provider) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str) -> str:
    """Knowledge base file does not exist yet."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  almanac init"
    )


def err_config(message: str) -> str:
    """Config file could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix almanac.yaml or ~/.almanac/config.yaml and try again."
    )


def err_file_not_found(path: str) -> str:
    return (
        f"[red]Error:[/] File not found: '{path}'\n"
        "  Check the path (relative paths are resolved from the current directory)."
    )


def err_unsupported_type(extension: str) -> str:
    supported = ", ".join(sorted(SUPPORTED_EXTENSIONS))
    return (
        f"[red]Error:[/] Unsupported file type: '{extension}'\n"
        f"  Supported extensions: {supported}"
    )


def err_already_queued(path: str) -> str:
    return (
        f"[yellow]Already queued:[/] '{path}' is waiting or being processed.\n"
        "  Run:  almanac queue list"
    )


def err_invalid_transition(exc: InvalidTransition) -> str:
    hint = (
        "  Only failed entries can be retried. Run:  almanac queue list --status failed"
        if exc.target == "pending"
        else "  Run:  almanac queue list"
    )
    return f"[red]Error:[/] {exc}\n{hint}"


def err_not_found(kind: str, ident: str, hint_cmd: str) -> str:
    return (
        f"[red]Error:[/] No {kind} matches '{ident}' (or the prefix is ambiguous).\n"
        f"  Run:  {hint_cmd}  to see valid ids."
    )


def err_parse(path: str, message: str) -> str:
    return (
        f"[red]Error:[/] Could not extract text from '{path}'.\n"
        f"  {message}"
    )


def err_embedding(model: str, message: str) -> str:
    hint = (
        "  Is the Ollama server running?  Run:  ollama serve"
        if model.startswith("ollama")
        else "  Check the embedding.model setting and your provider API key."
    )
    return (
        f"[red]Error:[/] Embedding with '{model}' failed: {message}\n"
        f"{hint}"
    )


def err_generation(model: str, message: str) -> str:
    hint = (
        "  Is the Ollama server running?  Run:  ollama serve"
        if model.startswith("ollama")
        else "  Check the generation.model setting and your provider API key."
    )
    return (
        f"[red]Error:[/] Generation with '{model}' failed: {message}\n"
        f"{hint}"
    )


def err_storage(message: str) -> str:
    return (
        f"[red]Error:[/] Database error: {message}\n"
        "  Another almanac process may hold the lock. Retry, or check the database path."
    )


def err_for(exc: AlmanacError) -> str:
    """Render any library error as an actionable message."""
    if isinstance(exc, FileNotFound):
        return err_file_not_found(str(exc.path))
    if isinstance(exc, UnsupportedType):
        return err_unsupported_type(exc.extension)
    if isinstance(exc, AlreadyQueued):
        return err_already_queued(exc.path)
    if isinstance(exc, InvalidTransition):
        return err_invalid_transition(exc)
    if isinstance(exc, ItemNotFound):
        return err_not_found("item", exc.item_id, "almanac recent")
    if isinstance(exc, QueueEntryNotFound):
        return err_not_found("queue entry", exc.entry_id, "almanac queue list")
    if isinstance(exc, ParseFailure):
        return err_parse(exc.path, exc.message)
    if isinstance(exc, EmbeddingFailure):
        return err_embedding(exc.model, exc.message)
    if isinstance(exc, GenerationFailure):
        return err_generation(exc.model, exc.message)
    if isinstance(exc, StorageFailure):
        return err_storage(str(exc))
    return f"[red]Error:[/] {exc}"


def warn(message: str) -> str:
    return f"  [yellow]⚠[/] {message}"
