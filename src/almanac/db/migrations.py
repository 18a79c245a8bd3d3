"""Forward-only migration runner for the Almanac schema."""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS items (
    id              TEXT PRIMARY KEY,
    item_type       TEXT NOT NULL,
    title           TEXT NOT NULL,
    source_path     TEXT,
    content_hash    TEXT,
    summary         TEXT,
    created_at      TEXT NOT NULL,
    processed_at    TEXT,
    metadata        TEXT NOT NULL DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_items_type ON items(item_type);
CREATE INDEX IF NOT EXISTS idx_items_created ON items(created_at);
CREATE INDEX IF NOT EXISTS idx_items_source ON items(source_path);
CREATE INDEX IF NOT EXISTS idx_items_hash ON items(content_hash);
CREATE UNIQUE INDEX IF NOT EXISTS idx_items_source_hash ON items(source_path, content_hash);

CREATE TABLE IF NOT EXISTS chunks (
    id              TEXT PRIMARY KEY,
    item_id         TEXT NOT NULL REFERENCES items(id) ON DELETE CASCADE,
    chunk_index     INTEGER NOT NULL,
    content         TEXT NOT NULL,
    start_time      REAL,
    end_time        REAL,
    CHECK ((start_time IS NULL) = (end_time IS NULL))
);

CREATE INDEX IF NOT EXISTS idx_chunks_item ON chunks(item_id, chunk_index);

CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(content, tokenize='porter unicode61');

CREATE TABLE IF NOT EXISTS embeddings (
    chunk_id        TEXT PRIMARY KEY REFERENCES chunks(id) ON DELETE CASCADE,
    vector          BLOB NOT NULL,
    model           TEXT NOT NULL,
    dimensions      INTEGER NOT NULL,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS tags (
    id              TEXT PRIMARY KEY,
    name            TEXT NOT NULL UNIQUE,
    color           TEXT
);

CREATE TABLE IF NOT EXISTS item_tags (
    item_id         TEXT NOT NULL REFERENCES items(id) ON DELETE CASCADE,
    tag_id          TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (item_id, tag_id)
);

CREATE TABLE IF NOT EXISTS queue (
    id              TEXT PRIMARY KEY,
    source_path     TEXT NOT NULL,
    item_type       TEXT NOT NULL,
    status          TEXT NOT NULL DEFAULT 'pending',
    priority        INTEGER NOT NULL DEFAULT 0,
    attempts        INTEGER NOT NULL DEFAULT 0,
    error           TEXT,
    created_at      TEXT NOT NULL,
    started_at      TEXT,
    completed_at    TEXT
);

CREATE INDEX IF NOT EXISTS idx_queue_status ON queue(status, priority DESC, created_at);

-- At most one in-flight entry per path.
CREATE UNIQUE INDEX IF NOT EXISTS idx_queue_active_path
    ON queue(source_path) WHERE status IN ('pending', 'processing');
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            logger.info("Applying schema migration v%d", version)
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
