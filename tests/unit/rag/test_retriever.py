"""Tests for vector, lexical and hybrid retrieval."""

from __future__ import annotations

import math
from unittest.mock import patch

import pytest

from almanac.db.models import Chunk, Item, ItemType
from almanac.db.repository import Repository
from almanac.errors import EmbeddingFailure
from almanac.rag.retriever import (
    RetrieverConfig,
    cosine_similarity,
    hybrid_search,
    lexical_search,
    normalize_bm25,
    retrieve,
    vector_search,
)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


def _populate(repo: Repository, rows: list[tuple[str, list[float] | None]]) -> list[Chunk]:
    """Store one item whose chunks carry the given (content, vector) pairs."""
    item = Item(item_type=ItemType.NOTE, title="Fruit", source_path="/f.md", content_hash="h")
    chunks = [Chunk(item_id=item.id, chunk_index=i, content=c) for i, (c, _) in enumerate(rows)]
    repo.save_ingested(item, chunks, is_new=True)
    for chunk, (_, vector) in zip(chunks, rows):
        if vector is not None:
            repo.store_embedding(chunk.id, vector, "m")
    return chunks


@pytest.fixture
def fruit(repo):
    # apples: lexical hits c1 and c3; vector order c1 > c2, c3 below the floor.
    return _populate(
        repo,
        [
            ("alpha apples", [1.0, 0.0, 0.0]),
            ("beta bananas", [0.8, 0.6, 0.0]),
            ("gamma apples apples", [0.0, 0.0, 1.0]),
        ],
    )


# ------------------------------------------------------------------
# cosine_similarity
# ------------------------------------------------------------------


def test_cosine_identical_vectors():
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)


def test_cosine_orthogonal_and_opposite():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


@pytest.mark.parametrize(
    "a, b",
    [([], []), ([1.0], []), ([1.0, 0.0], [1.0]), ([0.0, 0.0], [1.0, 1.0])],
)
def test_cosine_degenerate_inputs_are_zero(a, b):
    assert cosine_similarity(a, b) == 0.0


# ------------------------------------------------------------------
# vector_search
# ------------------------------------------------------------------


def test_vector_search_threshold_and_limit(repo):
    chunks = _populate(repo, [("first", [1.0, 0.0, 0.0, 0.0]), ("second", [0.0, 1.0, 0.0, 0.0])])
    results = vector_search(repo, [1.0, 0.0, 0.0, 0.0], limit=1, min_similarity=0.5)

    assert len(results) == 1
    assert results[0].chunk.id == chunks[0].id
    assert results[0].score == pytest.approx(1.0)
    assert results[0].item_title == "Fruit"


def test_vector_search_orders_best_first(repo, fruit):
    results = vector_search(repo, [1.0, 0.0, 0.0])
    assert [r.chunk.id for r in results] == [fruit[0].id, fruit[1].id, fruit[2].id]
    assert [r.score for r in results] == pytest.approx([1.0, 0.8, 0.0])


def test_vector_search_without_embeddings(repo):
    _populate(repo, [("no vector", None)])
    assert vector_search(repo, [1.0, 0.0]) == []


# ------------------------------------------------------------------
# lexical_search
# ------------------------------------------------------------------


def test_normalize_bm25_monotonic():
    assert normalize_bm25(0.0) == pytest.approx(0.5)
    assert normalize_bm25(-10.0) > normalize_bm25(-1.0) > 0.5
    assert 0.0 <= normalize_bm25(1000.0) < 1e-9


def test_lexical_search_scores_in_unit_interval(repo, fruit):
    results = lexical_search(repo, "apples")
    assert {r.chunk.id for r in results} == {fruit[0].id, fruit[2].id}
    assert all(0.0 < r.score < 1.0 for r in results)
    assert results[0].score >= results[1].score


# ------------------------------------------------------------------
# hybrid_search
# ------------------------------------------------------------------


def test_hybrid_weight_one_is_vector_ranking(repo, fruit):
    hybrid = hybrid_search(repo, "apples", [1.0, 0.0, 0.0], vector_weight=1.0)
    vector = vector_search(repo, [1.0, 0.0, 0.0], min_similarity=0.1)

    assert [r.chunk.id for r in hybrid[: len(vector)]] == [r.chunk.id for r in vector]
    assert [r.score for r in hybrid[: len(vector)]] == pytest.approx([r.score for r in vector])
    assert all(r.score == 0.0 for r in hybrid[len(vector):])


def test_hybrid_weight_zero_is_lexical_ranking(repo, fruit):
    hybrid = hybrid_search(repo, "apples", [1.0, 0.0, 0.0], vector_weight=0.0)
    lexical = lexical_search(repo, "apples")

    scores = {r.chunk.id: r.score for r in hybrid}
    for hit in lexical:
        assert scores[hit.chunk.id] == pytest.approx(hit.score)
    assert [r.chunk.id for r in hybrid[: len(lexical)]] == [r.chunk.id for r in lexical]
    assert scores[fruit[1].id] == 0.0


def test_hybrid_fuses_both_channels(repo, fruit):
    lexical = {r.chunk.id: r.score for r in lexical_search(repo, "apples")}
    results = hybrid_search(repo, "apples", [1.0, 0.0, 0.0], vector_weight=0.5)
    scores = {r.chunk.id: r.score for r in results}

    assert scores[fruit[0].id] == pytest.approx(0.5 * 1.0 + 0.5 * lexical[fruit[0].id])
    assert scores[fruit[1].id] == pytest.approx(0.5 * 0.8)
    assert scores[fruit[2].id] == pytest.approx(0.5 * lexical[fruit[2].id])
    assert results[0].chunk.id == fruit[0].id
    assert [r.score for r in results] == sorted((r.score for r in results), reverse=True)


def test_hybrid_respects_limit(repo, fruit):
    assert len(hybrid_search(repo, "apples", [1.0, 0.0, 0.0], limit=1)) == 1


@pytest.mark.parametrize("weight", [-0.1, 1.5, math.nan])
def test_hybrid_rejects_bad_weight(repo, weight):
    with pytest.raises(ValueError):
        hybrid_search(repo, "apples", [1.0], vector_weight=weight)


# ------------------------------------------------------------------
# retrieve
# ------------------------------------------------------------------


def test_retrieve_embeds_query(repo, fruit):
    with patch("almanac.rag.retriever.llm_client.embed", return_value=[1.0, 0.0, 0.0]) as mock:
        results = retrieve("apples", repo, RetrieverConfig(embedding_model="m", limit=5))
    mock.assert_called_once_with("m", "apples")
    assert results[0].chunk.id == fruit[0].id


def test_retrieve_lexical_only_skips_embedding(repo, fruit):
    with patch("almanac.rag.retriever.llm_client.embed") as mock:
        results = retrieve("bananas", repo, RetrieverConfig(lexical_only=True))
    mock.assert_not_called()
    assert [r.chunk.id for r in results] == [fruit[1].id]


def test_retrieve_falls_back_to_lexical_on_embedding_failure(repo, fruit):
    with patch(
        "almanac.rag.retriever.llm_client.embed",
        side_effect=EmbeddingFailure("m", "connection refused"),
    ):
        results = retrieve("bananas", repo, RetrieverConfig(embedding_model="m"))
    assert [r.chunk.id for r in results] == [fruit[1].id]
