"""Almanac ingest pipeline: chunker, parsers, pipeline, enrichment, embeddings, watcher."""

from almanac.ingest.chunker import ChunkConfig, Chunker
from almanac.ingest.embedding_writer import EmbeddingWriter, EmbedReport
from almanac.ingest.enrich import Enricher
from almanac.ingest.parsers import ParsedDocument, TranscriptSegment, parse
from almanac.ingest.pipeline import BatchResult, IngestOutcome, Ingestor, classify, hash_file
from almanac.ingest.watcher import FileWatcher, WatchEvent, scan_directory

__all__ = [
    "BatchResult",
    "ChunkConfig",
    "Chunker",
    "EmbedReport",
    "EmbeddingWriter",
    "Enricher",
    "FileWatcher",
    "IngestOutcome",
    "Ingestor",
    "ParsedDocument",
    "TranscriptSegment",
    "WatchEvent",
    "classify",
    "hash_file",
    "parse",
    "scan_directory",
]
