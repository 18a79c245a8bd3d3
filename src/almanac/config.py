"""Almanac configuration loader.

Priority (high → low):
  1. CLI flags           (handled at the call site)
  2. Environment variables  (ALMANAC_DB, ALMANAC_EMBEDDING_MODEL, ALMANAC_GENERATION_MODEL)
  3. Per-project almanac.yaml  (in the working directory)
  4. Global ~/.almanac/config.yaml  (no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Iterator

import yaml

from almanac.ingest.chunker import ChunkConfig

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".almanac"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "almanac.yaml"

# Fields that suggest an API key are forbidden in global config.
# Does NOT match legitimate config keys like max_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

# Known top-level sections. Unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    [
        "database",
        "embedding",
        "generation",
        "transcription",
        "chunking",
        "watch",
        "retrieval",
    ]
)

_DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = ("*.tmp", "*.temp", ".DS_Store", "._*", "*.part")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """Knowledge base location (almanac.yaml: database:)."""

    path: str = "~/.almanac/almanac.db"

    @property
    def resolved_path(self) -> Path:
        return Path(self.path).expanduser()


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (almanac.yaml: embedding:)."""

    model: str = "ollama/nomic-embed-text"
    embed_on_ingest: bool = False
    batch_size: int = 64


@dataclass
class GenerationCfg:
    """LLM enrichment configuration (almanac.yaml: generation:)."""

    model: str = "ollama/llama3.1"
    generate_summary: bool = True
    auto_tag: bool = True


@dataclass
class TranscriptionCfg:
    """Speech-to-text configuration (almanac.yaml: transcription:)."""

    model: str = "openai/whisper-1"


@dataclass
class WatchCfg:
    """Directory watching configuration (almanac.yaml: watch:)."""

    directories: list[str] = field(default_factory=list)
    ignore_patterns: list[str] = field(default_factory=lambda: list(_DEFAULT_IGNORE_PATTERNS))
    debounce_seconds: float = 5.0


@dataclass
class RetrievalCfg:
    """Search configuration (almanac.yaml: retrieval:)."""

    limit: int = 10
    vector_weight: float = 0.7
    min_similarity: float = 0.3


@dataclass
class AlmanacConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    transcription: TranscriptionCfg = field(default_factory=TranscriptionCfg)
    chunking: ChunkConfig = field(default_factory=ChunkConfig)
    watch: WatchCfg = field(default_factory=WatchCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)


# ---------------------------------------------------------------------------
# Reading layers
# ---------------------------------------------------------------------------


def _dotted_keys(obj: Any, prefix: str = "") -> Iterator[tuple[str, str]]:
    """Yield ``(key, dotted.path)`` for every mapping key nested in *obj*."""
    if not isinstance(obj, dict):
        return
    for key, value in obj.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        yield str(key), dotted
        yield from _dotted_keys(value, dotted)


def _read_layer(path: Path, *, forbid_secrets: bool = False) -> dict[str, Any]:
    """Load one YAML layer, rejecting secrets and flagging unknown sections."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file '{path}' is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")

    if forbid_secrets:
        for key, dotted in _dotted_keys(data):
            if _API_KEY_RE.search(key):
                raise ConfigError(
                    f"Global config '{path}' contains a forbidden key '{dotted}'.\n"
                    f"  API keys must be set via environment variables, not config files.\n"
                    f"  Remove '{dotted}' from {path.name} and use:\n"
                    f"    export {key.upper().replace('-', '_')}=<value>"
                )

    for section in sorted(set(data) - _KNOWN_SECTIONS):
        warnings.warn(
            f"Unknown config key '{section}' in '{path}' (ignored).",
            UserWarning,
            stacklevel=3,
        )
    return data


def _overlay(lower: dict[str, Any], upper: dict[str, Any]) -> dict[str, Any]:
    """Section-wise overlay: keys in *upper* replace keys in *lower*."""
    merged = {**lower}
    for name, section in upper.items():
        if isinstance(section, dict) and isinstance(merged.get(name), dict):
            merged[name] = _overlay(merged[name], section)
        else:
            merged[name] = section
    return merged


# ---------------------------------------------------------------------------
# Building the config object
# ---------------------------------------------------------------------------


def _coerce(default: Any, value: Any) -> Any:
    """Convert a YAML scalar or list to the type of the field's default."""
    if isinstance(default, list):
        return [value] if isinstance(value, str) else [str(v) for v in value]
    return type(default)(value)


def _section(current: Any, raw: Any, name: str) -> Any:
    """Return a copy of dataclass *current* with the keys of *raw* applied.

    Keys the dataclass does not define are ignored.
    """
    if raw is None:
        return current
    if not isinstance(raw, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping.")
    try:
        changes = {
            f.name: _coerce(getattr(current, f.name), raw[f.name])
            for f in fields(current)
            if f.name in raw
        }
        return replace(current, **changes)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name} configuration: {exc}") from exc


def _build(data: dict[str, Any]) -> AlmanacConfig:
    cfg = AlmanacConfig()
    for f in fields(cfg):
        if f.name in data:
            setattr(cfg, f.name, _section(getattr(cfg, f.name), data[f.name], f.name))

    if not 0.0 <= cfg.retrieval.vector_weight <= 1.0:
        raise ConfigError("retrieval.vector_weight must be between 0.0 and 1.0")
    return cfg


_ENV_OVERRIDES: tuple[tuple[str, str, str], ...] = (
    ("ALMANAC_DB", "database", "path"),
    ("ALMANAC_EMBEDDING_MODEL", "embedding", "model"),
    ("ALMANAC_GENERATION_MODEL", "generation", "model"),
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> AlmanacConfig:
    """Load and return a merged *AlmanacConfig*.

    Layers apply in order: global file, then ``almanac.yaml`` in
    *project_dir* (default: CWD), then ``ALMANAC_*`` environment variables.
    CLI flag overrides are the caller's job.

    Args:
        project_dir: Directory to search for *almanac.yaml*.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If a file is not a YAML mapping, the global config
            contains API-key-like fields, or a value is out of range.
    """
    global_path = global_config_path or _GLOBAL_CONFIG_PATH
    project_path = (project_dir or Path.cwd()) / _PROJECT_CONFIG_NAME

    data: dict[str, Any] = {}
    if global_path.exists():
        data = _read_layer(global_path, forbid_secrets=True)
    if project_path.exists():
        data = _overlay(data, _read_layer(project_path))

    cfg = _build(data)
    for var, section, key in _ENV_OVERRIDES:
        if value := os.environ.get(var):
            setattr(getattr(cfg, section), key, value)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Write a default ``~/.almanac/config.yaml`` unless one already exists.

    The directory is created 0o700 and the file 0o600.

    Returns:
        Path to the global config file.
    """
    target = global_config_path or _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    if target.exists():
        return target

    defaults = asdict(AlmanacConfig())
    header = (
        "# Almanac global configuration.\n"
        "# NEVER store API keys here. Use environment variables:\n"
        "#   export OPENAI_API_KEY=sk-...\n\n"
    )
    target.write_text(header + yaml.safe_dump(defaults, sort_keys=False), encoding="utf-8")
    target.chmod(0o600)
    return target
