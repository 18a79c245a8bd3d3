"""Embedding writer: embeds stored chunks that have no vector yet.

Each chunk is embedded on its own; a failing chunk is recorded against its
item and skipped, so the next run picks it up again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from almanac.db.models import Chunk
from almanac.db.repository import Repository
from almanac.errors import EmbeddingFailure
from almanac.rag import llm_client

logger = logging.getLogger(__name__)


@dataclass
class EmbedReport:
    """Outcome of an embedding run.

    Attributes:
        embedded: Number of chunks that received a vector.
        failures: Error messages keyed by item id.
    """

    embedded: int = 0
    failures: dict[str, list[str]] = field(default_factory=dict)

    @property
    def failed(self) -> int:
        return sum(len(messages) for messages in self.failures.values())


class EmbeddingWriter:
    """Embed chunks with LiteLLM and persist the vectors.

    Args:
        repo: Open Repository instance.
        model: LiteLLM embedding model string.
        batch_size: Chunks handled between progress callbacks.
    """

    def __init__(self, repo: Repository, model: str, batch_size: int = 64) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._repo = repo
        self._model = model
        self._batch_size = batch_size

    @property
    def model(self) -> str:
        return self._model

    def embed_pending(
        self,
        limit: int | None = None,
        on_progress: Callable[[int], None] | None = None,
    ) -> EmbedReport:
        """Embed every chunk lacking an embedding (at most *limit*)."""
        return self.embed_chunks(self._repo.get_unembedded_chunks(limit=limit), on_progress)

    def embed_item(self, item_id: str) -> EmbedReport:
        """Embed the missing chunks of one item."""
        return self.embed_chunks(self._repo.get_unembedded_chunks(item_id=item_id))

    def embed_chunks(
        self,
        chunks: Sequence[Chunk],
        on_progress: Callable[[int], None] | None = None,
    ) -> EmbedReport:
        report = EmbedReport()
        for start in range(0, len(chunks), self._batch_size):
            batch = chunks[start : start + self._batch_size]
            for chunk in batch:
                try:
                    vector = llm_client.embed(self._model, chunk.content)
                except EmbeddingFailure as exc:
                    logger.warning("Embedding failed for chunk %s: %s", chunk.id, exc.message)
                    report.failures.setdefault(chunk.item_id, []).append(
                        f"chunk {chunk.chunk_index}: {exc.message}"
                    )
                    continue
                self._repo.store_embedding(chunk.id, vector, self._model)
                report.embedded += 1
            if on_progress is not None:
                on_progress(len(batch))
        logger.info("Embedded %d chunk(s), %d failure(s)", report.embedded, report.failed)
        return report
