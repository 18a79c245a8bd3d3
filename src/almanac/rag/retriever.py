"""Hybrid retriever: brute-force cosine similarity + BM25 (FTS5), score-fused.

Fusion:
  score(c) = w * cosine(c) + (1 - w) * sigmoid(-bm25(c))
A chunk found by only one channel contributes 0 for the other term.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from almanac.db.models import Chunk
from almanac.db.repository import Repository
from almanac.errors import EmbeddingFailure
from almanac.rag import llm_client

logger = logging.getLogger(__name__)

# Candidates below this cosine similarity never enter hybrid fusion.
HYBRID_VECTOR_FLOOR = 0.1


@dataclass
class SimilarityResult:
    """A retrieved chunk with its score and owning item."""

    chunk: Chunk
    score: float
    item_id: str
    item_title: str


@dataclass
class RetrieverConfig:
    """Configuration for :func:`retrieve`.

    Attributes:
        embedding_model: LiteLLM embedding model used for the query vector.
        limit: Maximum number of results.
        vector_weight: Weight of the semantic score in [0, 1].
        min_similarity: Cosine floor for pure vector search.
        lexical_only: Skip the embedding call and rank by BM25 alone.
    """

    embedding_model: str = "ollama/nomic-embed-text"
    limit: int = 10
    vector_weight: float = 0.7
    min_similarity: float = 0.3
    lexical_only: bool = False


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*.

    Returns 0.0 for empty vectors, vectors of different length, or a zero norm.
    """
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def vector_search(
    repo: Repository,
    query_vector: Sequence[float],
    limit: int = 10,
    min_similarity: float = 0.0,
) -> list[SimilarityResult]:
    """Scan every stored embedding and return the closest chunks, best-first."""
    results: list[SimilarityResult] = []
    for chunk, title, vector in repo.iter_embedded_chunks():
        score = cosine_similarity(query_vector, vector)
        if score >= min_similarity:
            results.append(
                SimilarityResult(chunk=chunk, score=score, item_id=chunk.item_id, item_title=title)
            )
    results.sort(key=lambda r: r.score, reverse=True)
    return results[:limit]


def normalize_bm25(raw: float) -> float:
    """Map an FTS5 bm25() value (lower is better) into (0, 1), higher is better."""
    # 1 / (1 + exp(raw)) overflows only for huge positive raw scores.
    if raw > 700:
        return 0.0
    return 1.0 / (1.0 + math.exp(raw))


def lexical_search(repo: Repository, query: str, limit: int = 10) -> list[SimilarityResult]:
    """BM25 ranking with scores normalized into [0, 1]."""
    return [
        SimilarityResult(
            chunk=chunk, score=normalize_bm25(raw), item_id=chunk.item_id, item_title=title
        )
        for chunk, title, raw in repo.search_fts(query, limit=limit)
    ]


def hybrid_search(
    repo: Repository,
    query_text: str,
    query_vector: Sequence[float],
    limit: int = 10,
    vector_weight: float = 0.7,
) -> list[SimilarityResult]:
    """Fuse vector and lexical candidates (2 x limit each) into one ranking.

    Raises:
        ValueError: If *vector_weight* is outside [0, 1].
    """
    if not 0.0 <= vector_weight <= 1.0:
        raise ValueError("vector_weight must be in [0, 1]")

    candidates = limit * 2
    fused: dict[str, SimilarityResult] = {}

    for hit in vector_search(repo, query_vector, candidates, HYBRID_VECTOR_FLOOR):
        fused[hit.chunk.id] = SimilarityResult(
            chunk=hit.chunk,
            score=vector_weight * hit.score,
            item_id=hit.item_id,
            item_title=hit.item_title,
        )

    lexical_weight = 1.0 - vector_weight
    for hit in lexical_search(repo, query_text, candidates):
        existing = fused.get(hit.chunk.id)
        if existing is None:
            fused[hit.chunk.id] = SimilarityResult(
                chunk=hit.chunk,
                score=lexical_weight * hit.score,
                item_id=hit.item_id,
                item_title=hit.item_title,
            )
        else:
            existing.score += lexical_weight * hit.score

    results = sorted(fused.values(), key=lambda r: r.score, reverse=True)
    return results[:limit]


def retrieve(query: str, repo: Repository, config: RetrieverConfig) -> list[SimilarityResult]:
    """Embed *query* and run hybrid search; falls back to BM25 if embedding fails."""
    if config.lexical_only:
        return lexical_search(repo, query, config.limit)
    try:
        query_vector = llm_client.embed(config.embedding_model, query)
    except EmbeddingFailure as exc:
        logger.warning("Query embedding failed, using lexical search only: %s", exc)
        return lexical_search(repo, query, config.limit)
    return hybrid_search(repo, query, query_vector, config.limit, config.vector_weight)
