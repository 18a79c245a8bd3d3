"""Repository pattern for all Almanac database operations.

Single interface for: items, chunks, FTS5 search, embeddings, tags.
The queue lives in its own store (``almanac.db.queue``).
"""

from __future__ import annotations

import json
import re
import sqlite3
from collections.abc import Iterator, Sequence

from almanac.db.models import Chunk, Embedding, Item, ItemType, Tag
from almanac.db.vectors import decode_vector, encode_vector
from almanac.errors import ItemNotFound

_ITEM_COLUMNS = (
    "id, item_type, title, source_path, content_hash, summary, created_at, processed_at, metadata"
)
_CHUNK_COLUMNS = "id, item_id, chunk_index, content, start_time, end_time"


class Repository:
    """Data access layer for items, chunks, embeddings and tags.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see almanac.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def add_item(self, item: Item) -> None:
        """Insert a new item record."""
        with self._conn:
            self._insert_item(item)

    def update_item(self, item: Item) -> None:
        """Overwrite the mutable fields of an existing item, keeping its id."""
        with self._conn:
            self._update_item(item)

    def get_item(self, item_id: str) -> Item | None:
        row = self._conn.execute(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE id = ?", (item_id,)
        ).fetchone()
        return _row_to_item(row) if row else None

    def get_item_by_prefix(self, prefix: str) -> Item:
        """Resolve a full or abbreviated item id.

        Raises:
            ItemNotFound: If no item, or more than one item, matches *prefix*.
        """
        rows = self._conn.execute(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE id LIKE ? || '%' LIMIT 2",
            (prefix,),
        ).fetchall()
        if len(rows) != 1:
            raise ItemNotFound(prefix)
        return _row_to_item(rows[0])

    def find_item_by_path(self, source_path: str) -> Item | None:
        row = self._conn.execute(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE source_path = ?", (source_path,)
        ).fetchone()
        return _row_to_item(row) if row else None

    def find_item_by_hash(self, content_hash: str) -> Item | None:
        row = self._conn.execute(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE content_hash = ? ORDER BY created_at LIMIT 1",
            (content_hash,),
        ).fetchone()
        return _row_to_item(row) if row else None

    def list_items(
        self, item_type: ItemType | None = None, limit: int | None = None
    ) -> list[Item]:
        """Return items newest first, optionally filtered by type."""
        sql = f"SELECT {_ITEM_COLUMNS} FROM items"
        params: list = []
        if item_type is not None:
            sql += " WHERE item_type = ?"
            params.append(item_type.value)
        sql += " ORDER BY created_at DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [_row_to_item(r) for r in self._conn.execute(sql, params).fetchall()]

    def count_items(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM items").fetchone()[0]

    def count_items_by_type(self) -> dict[ItemType, int]:
        rows = self._conn.execute(
            "SELECT item_type, COUNT(*) AS n FROM items GROUP BY item_type ORDER BY item_type"
        ).fetchall()
        return {ItemType(r["item_type"]): r["n"] for r in rows}

    def delete_item(self, item_id: str) -> None:
        """Delete an item with its chunks, FTS rows, embeddings and tag links."""
        with self._conn:
            self._delete_chunks(item_id)
            self._conn.execute("DELETE FROM items WHERE id = ?", (item_id,))

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunks(self, chunks: Sequence[Chunk]) -> None:
        """Insert a batch of chunks (and their FTS rows) in one transaction."""
        with self._conn:
            self._insert_chunks(chunks)

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        row = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id = ?", (chunk_id,)
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def get_chunks_by_item(self, item_id: str) -> list[Chunk]:
        """Return an item's chunks in read order."""
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE item_id = ? ORDER BY chunk_index",
            (item_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks_by_item(self, item_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE item_id = ?", (item_id,)
        ).fetchone()[0]

    def delete_chunks_by_item(self, item_id: str) -> None:
        """Delete chunks + FTS entries for an item; embeddings follow by cascade."""
        with self._conn:
            self._delete_chunks(item_id)

    def save_ingested(self, item: Item, chunks: Sequence[Chunk], *, is_new: bool) -> None:
        """Persist an (re-)ingested item and replace its chunk set atomically.

        Either the item row, the deletion of its previous chunks and the new
        chunk batch all land, or none of them do.
        """
        with self._conn:
            if is_new:
                self._insert_item(item)
            else:
                self._update_item(item)
                self._delete_chunks(item.id)
            self._insert_chunks(chunks)

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def store_embedding(self, chunk_id: str, vector: Sequence[float], model: str) -> None:
        """Insert or replace the embedding for *chunk_id* (last write wins)."""
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO embeddings (chunk_id, vector, model, dimensions)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(chunk_id) DO UPDATE SET
                    vector = excluded.vector,
                    model = excluded.model,
                    dimensions = excluded.dimensions,
                    created_at = datetime('now')
                """,
                (chunk_id, encode_vector(vector), model, len(vector)),
            )

    def get_embedding(self, chunk_id: str) -> Embedding | None:
        row = self._conn.execute(
            "SELECT chunk_id, vector, model, dimensions FROM embeddings WHERE chunk_id = ?",
            (chunk_id,),
        ).fetchone()
        if row is None:
            return None
        return Embedding(
            chunk_id=row["chunk_id"],
            vector=decode_vector(row["vector"], row["dimensions"]),
            model=row["model"],
        )

    def get_unembedded_chunks(
        self, limit: int | None = None, item_id: str | None = None
    ) -> list[Chunk]:
        """Return chunks that have no embedding yet, in item/read order."""
        sql = """
            SELECT c.id, c.item_id, c.chunk_index, c.content, c.start_time, c.end_time
            FROM chunks c
            LEFT JOIN embeddings e ON e.chunk_id = c.id
            WHERE e.chunk_id IS NULL
        """
        params: list = []
        if item_id is not None:
            sql += " AND c.item_id = ?"
            params.append(item_id)
        sql += " ORDER BY c.item_id, c.chunk_index"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [_row_to_chunk(r) for r in self._conn.execute(sql, params).fetchall()]

    def embedding_stats(self) -> tuple[int, int]:
        """Return ``(embedded_chunks, total_chunks)``."""
        total = self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        embedded = self._conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()[0]
        return embedded, total

    def iter_embedded_chunks(self) -> Iterator[tuple[Chunk, str, list[float]]]:
        """Yield ``(chunk, item_title, vector)`` for every stored embedding."""
        cursor = self._conn.execute(
            """
            SELECT c.id, c.item_id, c.chunk_index, c.content, c.start_time, c.end_time,
                   e.vector, e.dimensions, i.title
            FROM embeddings e
            JOIN chunks c ON c.id = e.chunk_id
            JOIN items i ON i.id = c.item_id
            """
        )
        for row in cursor:
            yield _row_to_chunk(row), row["title"], decode_vector(row["vector"], row["dimensions"])

    # ------------------------------------------------------------------
    # FTS5 / BM25 search
    # ------------------------------------------------------------------

    def search_fts(self, query: str, limit: int = 10) -> list[tuple[Chunk, str, float]]:
        """BM25 full-text search. Returns (chunk, item_title, score) best-first.

        bm25() returns negative values; lower (more negative) = better match.
        The raw score is returned so callers can normalise it.
        """
        fts_query = _fts_query(query)
        if not fts_query:
            return []
        rows = self._conn.execute(
            """
            SELECT c.id, c.item_id, c.chunk_index, c.content, c.start_time, c.end_time,
                   i.title, bm25(chunks_fts) AS score
            FROM chunks_fts
            JOIN chunks c ON c.rowid = chunks_fts.rowid
            JOIN items i ON i.id = c.item_id
            WHERE chunks_fts MATCH ?
            ORDER BY score
            LIMIT ?
            """,
            (fts_query, limit),
        ).fetchall()
        return [(_row_to_chunk(r), r["title"], r["score"]) for r in rows]

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def tag_item(self, item_id: str, tag_name: str) -> Tag:
        """Attach *tag_name* to an item, creating the tag on first use."""
        tag = self.get_tag_by_name(tag_name)
        with self._conn:
            if tag is None:
                tag = Tag(name=tag_name)
                self._conn.execute(
                    "INSERT INTO tags (id, name, color) VALUES (?, ?, ?)",
                    (tag.id, tag.name, tag.color),
                )
            self._conn.execute(
                "INSERT OR IGNORE INTO item_tags (item_id, tag_id) VALUES (?, ?)",
                (item_id, tag.id),
            )
        return tag

    def get_tag_by_name(self, name: str) -> Tag | None:
        row = self._conn.execute(
            "SELECT id, name, color FROM tags WHERE name = ?", (name,)
        ).fetchone()
        return Tag(id=row["id"], name=row["name"], color=row["color"]) if row else None

    def get_item_tags(self, item_id: str) -> list[Tag]:
        rows = self._conn.execute(
            """
            SELECT t.id, t.name, t.color FROM tags t
            JOIN item_tags it ON it.tag_id = t.id
            WHERE it.item_id = ?
            ORDER BY t.name
            """,
            (item_id,),
        ).fetchall()
        return [Tag(id=r["id"], name=r["name"], color=r["color"]) for r in rows]

    # ------------------------------------------------------------------
    # Uncommitted building blocks (callers own the transaction)
    # ------------------------------------------------------------------

    def _insert_item(self, item: Item) -> None:
        self._conn.execute(
            f"INSERT INTO items ({_ITEM_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                item.id,
                item.item_type.value,
                item.title,
                item.source_path,
                item.content_hash,
                item.summary,
                item.created_at,
                item.processed_at,
                json.dumps(item.metadata),
            ),
        )

    def _update_item(self, item: Item) -> None:
        cur = self._conn.execute(
            """
            UPDATE items SET item_type = ?, title = ?, source_path = ?, content_hash = ?,
                             summary = ?, processed_at = ?, metadata = ?
            WHERE id = ?
            """,
            (
                item.item_type.value,
                item.title,
                item.source_path,
                item.content_hash,
                item.summary,
                item.processed_at,
                json.dumps(item.metadata),
                item.id,
            ),
        )
        if cur.rowcount == 0:
            raise ItemNotFound(item.id)

    def _insert_chunks(self, chunks: Sequence[Chunk]) -> None:
        for chunk in chunks:
            cur = self._conn.execute(
                f"INSERT INTO chunks ({_CHUNK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    chunk.id,
                    chunk.item_id,
                    chunk.chunk_index,
                    chunk.content,
                    chunk.start_time,
                    chunk.end_time,
                ),
            )
            # Keep FTS5 in sync with explicit rowid mapping
            self._conn.execute(
                "INSERT INTO chunks_fts(rowid, content) VALUES (?, ?)",
                (cur.lastrowid, chunk.content),
            )

    def _delete_chunks(self, item_id: str) -> None:
        rowids = [
            r[0]
            for r in self._conn.execute(
                "SELECT rowid FROM chunks WHERE item_id = ?", (item_id,)
            ).fetchall()
        ]
        if rowids:
            placeholders = ",".join("?" * len(rowids))
            self._conn.execute(
                f"DELETE FROM chunks_fts WHERE rowid IN ({placeholders})", rowids
            )
        self._conn.execute("DELETE FROM chunks WHERE item_id = ?", (item_id,))


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

_FTS_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def _fts_query(query: str) -> str:
    """Turn free text into an FTS5 query of quoted terms (implicit AND).

    FTS5 MATCH rejects punctuation and treats AND/OR/NOT as operators, so
    every term is quoted.
    """
    return " ".join(f'"{tok}"' for tok in _FTS_TOKEN_RE.findall(query))


def _row_to_item(row: sqlite3.Row) -> Item:
    return Item(
        id=row["id"],
        item_type=ItemType(row["item_type"]),
        title=row["title"],
        source_path=row["source_path"],
        content_hash=row["content_hash"],
        summary=row["summary"],
        created_at=row["created_at"],
        processed_at=row["processed_at"],
        metadata=json.loads(row["metadata"] or "{}"),
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        item_id=row["item_id"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        start_time=row["start_time"],
        end_time=row["end_time"],
    )
