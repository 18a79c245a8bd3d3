"""Tests for `almanac capture`."""

from __future__ import annotations

from typer.testing import CliRunner

from almanac.cli.main import app
from almanac.db.connection import Database
from almanac.db.models import ItemType
from almanac.db.repository import Repository

runner = CliRunner()


def test_capture_note_creates_database(cli_env):
    result = runner.invoke(
        app, ["--db", str(cli_env), "capture", "Buy more coffee filters", "-t", "errands"]
    )

    assert result.exit_code == 0, result.output
    assert "Captured note" in result.output
    assert "Buy more coffee filters" in result.output
    assert "errands" in result.output
    with Database(cli_env) as conn:
        repo = Repository(conn)
        (item,) = repo.list_items()
        assert item.item_type is ItemType.NOTE
        assert item.source_path is None
        assert [t.name for t in repo.get_item_tags(item.id)] == ["errands"]
    assert f"almanac show {item.id[:8]}" in result.output


def test_capture_bookmark_with_title(cli_env):
    result = runner.invoke(
        app,
        [
            "--db", str(cli_env), "capture", "--bookmark", "--title", "Indexing notes",
            "https://example.com/fts Notes on FTS5 ranking",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Captured bookmark" in result.output
    with Database(cli_env) as conn:
        (item,) = Repository(conn).list_items(ItemType.BOOKMARK)
    assert item.title == "Indexing notes"
    assert item.metadata["url"] == "https://example.com/fts"


def test_capture_blank_text_fails(cli_env):
    result = runner.invoke(app, ["--db", str(cli_env), "capture", "   "])
    assert result.exit_code == 1
    assert "empty" in result.output


def test_captured_note_is_found_by_search(cli_env):
    runner.invoke(app, ["--db", str(cli_env), "capture", "Kayak rental opens in April"])
    result = runner.invoke(app, ["--db", str(cli_env), "search", "--lexical", "kayak"])
    assert result.exit_code == 0, result.output
    assert "Kayak rental opens in April" in result.output
