"""Almanac database layer."""

from almanac.db.connection import Database
from almanac.db.migrations import MIGRATIONS, run_migrations
from almanac.db.queue import QueueStore
from almanac.db.repository import Repository
from almanac.db.schema import initialize
from almanac.db.vectors import decode_vector, encode_vector

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "QueueStore",
    "Repository",
    "decode_vector",
    "encode_vector",
]
