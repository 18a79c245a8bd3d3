"""Tests for `almanac status`."""

from __future__ import annotations

import yaml
from typer.testing import CliRunner

from almanac.cli.main import app

runner = CliRunner()


def test_status_without_database(cli_env):
    result = runner.invoke(app, ["--db", str(cli_env), "status"])
    assert result.exit_code == 0
    assert "No database found" in result.output
    assert "almanac init" in result.output
    assert not cli_env.exists()


def test_status_empty_database(cli_env):
    runner.invoke(app, ["--db", str(cli_env), "init"])
    result = runner.invoke(app, ["--db", str(cli_env), "status"])
    assert result.exit_code == 0, result.output
    assert "Knowledge Base" in result.output
    assert "Queue" in result.output
    assert "Watched Directories" not in result.output


def test_status_after_ingest(cli_env, tmp_path):
    f = tmp_path / "notes" / "a.md"
    f.parent.mkdir()
    f.write_text("# A\n\nalpha beta gamma\n")
    runner.invoke(app, ["--db", str(cli_env), "ingest", str(f)])

    result = runner.invoke(app, ["--db", str(cli_env), "status"])

    assert result.exit_code == 0, result.output
    assert "Items:" in result.output
    assert "note" in result.output
    assert "without embeddings" in result.output
    assert "almanac embed --all" in result.output


def test_status_shows_watch_directories(cli_env, tmp_path):
    (tmp_path / "inbox").mkdir()
    (tmp_path / "almanac.yaml").write_text(
        yaml.safe_dump({"watch": {"directories": [str(tmp_path / "inbox"), "/no/such/dir"]}})
    )
    runner.invoke(app, ["--db", str(cli_env), "init"])
    result = runner.invoke(app, ["--db", str(cli_env), "status"])
    assert result.exit_code == 0
    assert "Watched Directories" in result.output
    assert "missing" in result.output
