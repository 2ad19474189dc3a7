"""Tests for the in-memory embedding index."""

import math

import numpy as np
import pytest

from vecdex.errors import (
    InvalidEmbeddingError,
    LengthMismatchError,
    NotFoundError,
    SchemaMismatchError,
)
from vecdex.index import EmbeddingIndex, RecordSchema, SimilarityResult


@pytest.fixture
def index(config):
    return EmbeddingIndex(
        [
            {"id": 1, "embedding": [1, 0]},
            {"id": 2, "embedding": [0, 1]},
            {"id": 3, "embedding": [1, 1]},
        ],
        config=config,
    )


class TestRecordSchema:
    """Test structural validation of records."""

    def test_from_record(self):
        schema = RecordSchema.from_record({"id": 1, "embedding": [1.0]})
        assert schema.fields == frozenset({"id", "embedding"})

    def test_extra_fields_allowed(self):
        schema = RecordSchema(frozenset({"id", "embedding"}))
        schema.validate({"id": 1, "embedding": [1.0], "extra": "x"})

    def test_missing_fields_reported(self):
        schema = RecordSchema(frozenset({"id", "name", "embedding"}))
        with pytest.raises(SchemaMismatchError) as excinfo:
            schema.validate({"embedding": [1.0]})
        assert excinfo.value.missing == ["id", "name"]


class TestAdd:
    """Test validation and insertion."""

    def test_first_record_establishes_schema(self, config):
        index = EmbeddingIndex(config=config)
        index.add({"id": 1, "embedding": [1, 2]})
        assert index.schema == RecordSchema(frozenset({"id", "embedding"}))

    def test_extra_field_tolerated(self, config):
        index = EmbeddingIndex(config=config)
        index.add({"id": 1, "embedding": [1, 2]})
        index.add({"id": 2, "embedding": [1, 2], "extra": "x"})
        assert len(index) == 2

    def test_missing_embedding_raises(self, config):
        index = EmbeddingIndex(config=config)
        index.add({"id": 1, "embedding": [1, 2]})
        with pytest.raises(InvalidEmbeddingError):
            index.add({"id": 3})
        assert len(index) == 1

    def test_missing_schema_field_raises(self, config):
        index = EmbeddingIndex(config=config)
        index.add({"id": 1, "name": "a", "embedding": [1, 2]})
        with pytest.raises(SchemaMismatchError):
            index.add({"id": 2, "embedding": [1, 2]})

    @pytest.mark.parametrize("embedding", [
        [1.0, float("nan")],
        [1.0, math.inf],
        [1, "2"],
        [1, None],
        [True, False],
        "12",
        12,
        None,
        {"a": 1},
        np.array([[1.0, 2.0]]),
        np.array(["a", "b"]),
        np.array([1.0, np.nan]),
    ])
    def test_invalid_embeddings_rejected(self, config, embedding):
        index = EmbeddingIndex(config=config)
        with pytest.raises(InvalidEmbeddingError):
            index.add({"id": 1, "embedding": embedding})

    @pytest.mark.parametrize("embedding", [
        [1, 2.5, -3],
        (0.1, 0.2),
        np.array([0.5, 0.25], dtype=np.float32),
        [np.float64(1.0), np.int64(2)],
        [],
    ])
    def test_valid_embeddings_accepted(self, config, embedding):
        index = EmbeddingIndex(config=config)
        index.add({"id": 1, "embedding": embedding})
        assert len(index) == 1

    def test_initial_records_validated(self, config):
        with pytest.raises(InvalidEmbeddingError):
            EmbeddingIndex([{"id": 1, "embedding": [1]}, {"id": 2}], config=config)

    def test_explicit_schema_enforced_from_first_record(self, config):
        schema = RecordSchema(frozenset({"id", "label", "embedding"}))
        index = EmbeddingIndex(schema=schema, config=config)
        with pytest.raises(SchemaMismatchError):
            index.add({"id": 1, "embedding": [1.0]})

    def test_records_keep_insertion_order(self, index):
        assert [r["id"] for r in index.records] == [1, 2, 3]

    def test_add_then_get_returns_record(self, index):
        record = {"id": 4, "embedding": [0.5, 0.5]}
        index.add(record)
        assert index.get({"id": 4}) == record


class TestGet:
    """Test record lookup."""

    def test_get_first_match(self, config):
        index = EmbeddingIndex(
            [
                {"id": 1, "tag": "a", "embedding": [1]},
                {"id": 2, "tag": "a", "embedding": [2]},
            ],
            config=config,
        )
        assert index.get({"tag": "a"})["id"] == 1

    def test_get_all_pairs_must_match(self, index):
        assert index.get({"id": 1, "embedding": [0, 1]}) is None
        assert index.get({"id": 1, "embedding": [1, 0]})["id"] == 1

    def test_get_missing_returns_none(self, index):
        assert index.get({"id": 99}) is None

    def test_get_unknown_field_returns_none(self, index):
        assert index.get({"colour": "red"}) is None

    def test_empty_filter_matches_first(self, index):
        assert index.get({})["id"] == 1


class TestUpdate:
    """Test in-place replacement."""

    def test_update_preserves_position(self, index):
        index.update({"id": 2}, {"id": 20, "embedding": [0, 2]})
        assert [r["id"] for r in index.records] == [1, 20, 3]
        assert len(index) == 3

    def test_update_missing_raises(self, index):
        with pytest.raises(NotFoundError):
            index.update({"id": 99}, {"id": 99, "embedding": [0, 1]})

    def test_update_validates_new_record(self, index):
        with pytest.raises(InvalidEmbeddingError):
            index.update({"id": 2}, {"id": 2, "embedding": [float("nan"), 1]})
        with pytest.raises(SchemaMismatchError):
            index.update({"id": 2}, {"embedding": [0, 1]})
        assert index.get({"id": 2}) == {"id": 2, "embedding": [0, 1]}


class TestRemove:
    """Test removal, single and batch."""

    def test_remove_then_get_returns_none(self, index):
        index.remove({"id": 2})
        assert index.get({"id": 2}) is None
        assert [r["id"] for r in index.records] == [1, 3]

    def test_remove_missing_raises(self, index):
        with pytest.raises(NotFoundError) as excinfo:
            index.remove({"id": 99})
        assert excinfo.value.filter == {"id": 99}

    def test_not_found_is_lookup_error(self, index):
        with pytest.raises(LookupError):
            index.remove({"id": 99})

    def test_remove_only_first_match(self, config):
        index = EmbeddingIndex(
            [{"tag": "a", "embedding": [1]}, {"tag": "a", "embedding": [2]}],
            config=config,
        )
        index.remove({"tag": "a"})
        assert index.records == [{"tag": "a", "embedding": [2]}]

    def test_remove_batch_skips_unmatched(self, index):
        removed = index.remove_batch([{"id": 1}, {"id": 99}, {"id": 3}])
        assert removed == 2
        assert [r["id"] for r in index.records] == [2]

    def test_remove_batch_all_unmatched(self, index):
        assert index.remove_batch([{"id": 42}]) == 0
        assert len(index) == 3


class TestSearch:
    """Test exhaustive similarity ranking."""

    def test_top_two(self, index):
        results = index.search([1, 0], top_k=2)
        assert [r.record["id"] for r in results] == [1, 3]
        assert results[0].similarity == 1.0
        assert results[1].similarity == pytest.approx(0.707, abs=1e-3)

    def test_returns_similarity_results(self, index):
        results = index.search([1, 0])
        assert all(isinstance(r, SimilarityResult) for r in results)

    def test_default_top_k(self, config):
        records = [{"id": i, "embedding": [1, i]} for i in range(10)]
        index = EmbeddingIndex(records, config=config)
        assert len(index.search([1, 0])) == 3

    def test_sorted_non_increasing(self, config):
        rng = np.random.default_rng(7)
        records = [{"id": i, "embedding": rng.normal(size=4).tolist()} for i in range(25)]
        index = EmbeddingIndex(records, config=config)
        results = index.search(rng.normal(size=4).tolist(), top_k=10)
        scores = [r.similarity for r in results]
        assert scores == sorted(scores, reverse=True)
        assert len(results) == 10

    def test_top_k_larger_than_matches(self, index):
        assert len(index.search([1, 0], top_k=50)) == 3

    def test_top_k_zero(self, index):
        assert index.search([1, 0], top_k=0) == []

    def test_negative_top_k_raises(self, index):
        with pytest.raises(ValueError):
            index.search([1, 0], top_k=-1)

    def test_filter_restricts_candidates(self, config):
        index = EmbeddingIndex(
            [
                {"id": 1, "lang": "en", "embedding": [1, 0]},
                {"id": 2, "lang": "fr", "embedding": [1, 0]},
                {"id": 3, "lang": "en", "embedding": [0, 1]},
            ],
            config=config,
        )
        results = index.search([1, 0], top_k=5, filter={"lang": "en"})
        assert [r.record["id"] for r in results] == [1, 3]

    def test_equal_scores_keep_insertion_order(self, config):
        index = EmbeddingIndex(
            [
                {"id": "a", "embedding": [0, 1]},
                {"id": "b", "embedding": [2, 0]},
                {"id": "c", "embedding": [1, 0]},
            ],
            config=config,
        )
        results = index.search([1, 0], top_k=3)
        assert [r.record["id"] for r in results] == ["b", "c", "a"]

    def test_precision_override(self, index):
        results = index.search([1, 0], top_k=2, precision=2)
        assert results[1].similarity == 0.71

    def test_query_length_mismatch_raises(self, index):
        with pytest.raises(LengthMismatchError):
            index.search([1, 0, 0])

    @pytest.mark.parametrize("query", [
        [float("nan"), 1.0],
        [math.inf, 0.0],
        [1.0, "0"],
        np.array([np.nan, 1.0]),
        "10",
    ])
    def test_invalid_query_rejected(self, index, query):
        with pytest.raises(InvalidEmbeddingError):
            index.search(query, top_k=3)

    def test_empty_index(self, config):
        assert EmbeddingIndex(config=config).search([1, 0]) == []


class TestClearAndPrint:
    """Test clearing and the debug dump."""

    def test_clear_forgets_derived_schema(self, index):
        index.clear()
        assert len(index) == 0
        assert index.schema is None
        index.add({"other": True, "embedding": [1, 0]})

    def test_clear_keeps_explicit_schema(self, config):
        schema = RecordSchema(frozenset({"id", "embedding"}))
        index = EmbeddingIndex([{"id": 1, "embedding": [1]}], schema=schema, config=config)
        index.clear()
        assert index.schema == schema

    def test_print_index(self, index, capsys):
        index.print_index()
        out = capsys.readouterr().out
        assert out.startswith("Index Content:")
        assert "Item 3:" in out
