"""Tests for `almanac ingest`."""

from __future__ import annotations

from typer.testing import CliRunner

from almanac.cli.main import app
from almanac.db.connection import Database
from almanac.db.models import ItemType, QueueStatus
from almanac.db.queue import QueueStore
from almanac.db.repository import Repository

runner = CliRunner()


def _note(tmp_path, name="groceries.md", text="# Groceries\n\nMilk and bread.\n"):
    f = tmp_path / "notes" / name
    f.parent.mkdir(parents=True, exist_ok=True)
    f.write_text(text)
    return f


def test_ingest_file(cli_env, tmp_path):
    f = _note(tmp_path)
    result = runner.invoke(app, ["--db", str(cli_env), "ingest", str(f)])

    assert result.exit_code == 0, result.output
    assert "Groceries" in result.output
    with Database(cli_env) as conn:
        repo = Repository(conn)
        assert repo.count_items() == 1
        assert repo.list_items()[0].title == "Groceries"


def test_ingest_same_file_twice_reports_unchanged(cli_env, tmp_path):
    f = _note(tmp_path)
    runner.invoke(app, ["--db", str(cli_env), "ingest", str(f)])
    result = runner.invoke(app, ["--db", str(cli_env), "ingest", str(f)])
    assert result.exit_code == 0
    assert "Unchanged" in result.output


def test_ingest_changed_file_reports_update(cli_env, tmp_path):
    f = _note(tmp_path)
    runner.invoke(app, ["--db", str(cli_env), "ingest", str(f)])
    f.write_text("# Groceries\n\nEggs.\n")
    result = runner.invoke(app, ["--db", str(cli_env), "ingest", str(f)])
    assert result.exit_code == 0
    assert "Updated" in result.output


def test_ingest_missing_file(cli_env, tmp_path):
    result = runner.invoke(app, ["--db", str(cli_env), "ingest", str(tmp_path / "nope.md")])
    assert result.exit_code == 1
    assert "File not found" in result.output


def test_ingest_unsupported_type(cli_env, tmp_path):
    f = _note(tmp_path, "data.xyz", "x")
    result = runner.invoke(app, ["--db", str(cli_env), "ingest", str(f)])
    assert result.exit_code == 1
    assert "Unsupported file type" in result.output


def test_ingest_directory_with_type_filter(cli_env, tmp_path):
    _note(tmp_path, "a.md", "# A\n\nalpha")
    _note(tmp_path, "tool.py", "print('x')\n")
    result = runner.invoke(
        app, ["--db", str(cli_env), "ingest", str(tmp_path / "notes"), "--type", "code"]
    )
    assert result.exit_code == 0, result.output
    with Database(cli_env) as conn:
        items = Repository(conn).list_items()
    assert [i.item_type for i in items] == [ItemType.CODE]


def test_ingest_queue_option(cli_env, tmp_path):
    _note(tmp_path, "a.md", "# A\n\nalpha")
    _note(tmp_path, "b.md", "# B\n\nbeta")
    result = runner.invoke(
        app,
        ["--db", str(cli_env), "ingest", "--queue", "--priority", "4", str(tmp_path / "notes")],
    )
    assert result.exit_code == 0, result.output
    assert "Queued" in result.output
    with Database(cli_env) as conn:
        entries = QueueStore(conn).list()
        assert Repository(conn).count_items() == 0
    assert len(entries) == 2
    assert all(e.status is QueueStatus.PENDING and e.priority == 4 for e in entries)


def test_ingest_queue_twice_fails(cli_env, tmp_path):
    f = _note(tmp_path)
    runner.invoke(app, ["--db", str(cli_env), "ingest", "--queue", str(f)])
    result = runner.invoke(app, ["--db", str(cli_env), "ingest", "--queue", str(f)])
    assert result.exit_code == 1
    assert "Already queued" in result.output
