"""Tests for the layered configuration loader."""

from __future__ import annotations

import stat
import warnings

import pytest
import yaml

from almanac.config import (
    AlmanacConfig,
    ConfigError,
    ensure_global_config,
    load_config,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("ALMANAC_DB", "ALMANAC_GENERATION_MODEL", "ALMANAC_EMBEDDING_MODEL"):
        monkeypatch.delenv(var, raising=False)


def _write(path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data))


# ------------------------------------------------------------------
# Defaults
# ------------------------------------------------------------------


def test_defaults_when_no_files(tmp_path):
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    assert isinstance(cfg, AlmanacConfig)
    assert cfg.embedding.model == "ollama/nomic-embed-text"
    assert cfg.generation.model == "ollama/llama3.1"
    assert cfg.chunking.chunk_size == 1000
    assert cfg.chunking.chunk_overlap == 100
    assert cfg.retrieval.vector_weight == 0.7
    assert cfg.watch.debounce_seconds == 5.0
    assert cfg.database.resolved_path.name == "almanac.db"


# ------------------------------------------------------------------
# Layering
# ------------------------------------------------------------------


def test_global_config_applied(tmp_path):
    global_path = tmp_path / "global" / "config.yaml"
    _write(global_path, {"embedding": {"model": "openai/text-embedding-3-small"}})
    cfg = load_config(project_dir=tmp_path, global_config_path=global_path)
    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.embedding.batch_size == 64


def test_project_config_overrides_global(tmp_path):
    global_path = tmp_path / "global" / "config.yaml"
    _write(global_path, {"generation": {"model": "ollama/llama3.1", "auto_tag": False}})
    _write(tmp_path / "almanac.yaml", {"generation": {"model": "openai/gpt-4o-mini"}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_path)
    assert cfg.generation.model == "openai/gpt-4o-mini"
    assert cfg.generation.auto_tag is False


def test_env_overrides_files(tmp_path, monkeypatch):
    _write(tmp_path / "almanac.yaml", {"database": {"path": "/from/file.db"}})
    monkeypatch.setenv("ALMANAC_DB", "/from/env.db")
    monkeypatch.setenv("ALMANAC_EMBEDDING_MODEL", "voyage/voyage-3")
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    assert cfg.database.path == "/from/env.db"
    assert cfg.embedding.model == "voyage/voyage-3"


def test_chunking_and_watch_sections(tmp_path):
    _write(
        tmp_path / "almanac.yaml",
        {
            "chunking": {"chunk_size": 500, "chunk_overlap": 50, "min_chunk_size": 20},
            "watch": {"directories": ["~/notes"], "ignore_patterns": ["*.bak"]},
        },
    )
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    assert (cfg.chunking.chunk_size, cfg.chunking.chunk_overlap) == (500, 50)
    assert cfg.watch.directories == ["~/notes"]
    assert cfg.watch.ignore_patterns == ["*.bak"]


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


def test_api_key_in_global_config_rejected(tmp_path):
    global_path = tmp_path / "config.yaml"
    _write(global_path, {"embedding": {"api_key": "sk-secret"}})
    with pytest.raises(ConfigError, match="embedding.api_key"):
        load_config(project_dir=tmp_path, global_config_path=global_path)


def test_max_tokens_is_not_mistaken_for_a_secret(tmp_path):
    global_path = tmp_path / "config.yaml"
    _write(global_path, {"generation": {"max_tokens": 200}})
    load_config(project_dir=tmp_path, global_config_path=global_path)


def test_unknown_section_warns(tmp_path):
    _write(tmp_path / "almanac.yaml", {"telemetry": {"enabled": True}})
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    assert any("telemetry" in str(w.message) for w in caught)


def test_invalid_chunking_rejected(tmp_path):
    _write(tmp_path / "almanac.yaml", {"chunking": {"chunk_size": 100, "chunk_overlap": 200}})
    with pytest.raises(ConfigError, match="chunking"):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")


def test_vector_weight_out_of_range_rejected(tmp_path):
    _write(tmp_path / "almanac.yaml", {"retrieval": {"vector_weight": 1.5}})
    with pytest.raises(ConfigError, match="vector_weight"):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")


def test_non_mapping_file_rejected(tmp_path):
    (tmp_path / "almanac.yaml").write_text("- just\n- a list\n")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")


def test_invalid_yaml_rejected(tmp_path):
    (tmp_path / "almanac.yaml").write_text("embedding: [unclosed\n")
    with pytest.raises(ConfigError, match="not valid YAML"):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")


# ------------------------------------------------------------------
# ensure_global_config
# ------------------------------------------------------------------


def test_ensure_global_config_creates_private_file(tmp_path):
    target = tmp_path / "home" / ".almanac" / "config.yaml"
    path = ensure_global_config(target)

    assert path == target
    assert stat.S_IMODE(target.stat().st_mode) == 0o600
    assert stat.S_IMODE(target.parent.stat().st_mode) == 0o700
    cfg = load_config(project_dir=tmp_path, global_config_path=target)
    assert cfg.embedding.model == "ollama/nomic-embed-text"


def test_ensure_global_config_writes_every_section(tmp_path):
    target = tmp_path / "config.yaml"
    ensure_global_config(target)
    text = target.read_text()
    assert text.startswith("# Almanac global configuration.")
    for section in ("database:", "embedding:", "chunking:", "watch:", "retrieval:"):
        assert section in text


def test_ensure_global_config_keeps_existing(tmp_path):
    target = tmp_path / "config.yaml"
    target.write_text("embedding:\n  model: custom/model\n")
    ensure_global_config(target)
    assert "custom/model" in target.read_text()


def test_section_must_be_mapping(tmp_path):
    _write(tmp_path / "almanac.yaml", {"embedding": "ollama/nomic-embed-text"})
    with pytest.raises(ConfigError, match="'embedding' must be a mapping"):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")


def test_bad_scalar_type_rejected(tmp_path):
    _write(tmp_path / "almanac.yaml", {"retrieval": {"limit": "many"}})
    with pytest.raises(ConfigError, match="retrieval"):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")


def test_empty_section_keeps_defaults(tmp_path):
    (tmp_path / "almanac.yaml").write_text("watch:\n")
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    assert cfg.watch.debounce_seconds == 5.0
