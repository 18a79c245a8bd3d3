"""Shared pytest fixtures."""

from __future__ import annotations

import pytest
import yaml

from almanac.db.connection import Database
from almanac.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / "almanac.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Isolate CLI runs: private global config, cwd in tmp_path, no LLM enrichment.

    Returns the database path to pass via ``--db``.
    """
    import almanac.cli.common as common
    import almanac.config as config

    monkeypatch.setattr(config, "_GLOBAL_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    for var in ("ALMANAC_DB", "ALMANAC_GENERATION_MODEL", "ALMANAC_EMBEDDING_MODEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "almanac.yaml").write_text(
        yaml.safe_dump({"generation": {"generate_summary": False, "auto_tag": False}})
    )
    monkeypatch.setattr(common.console, "width", 200)
    return tmp_path / "kb" / "almanac.db"
