"""Tests for warehouse reads and writes.

All database interactions are mocked — no real PostgreSQL needed.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from entitylens.candidates import CandidatePair
from entitylens.scoring.scorer import ScoredPair
from entitylens.store import (
    ensure_schema,
    finish_run,
    get_run,
    insert_source_records,
    load_candidate_pairs,
    load_embeddings,
    load_source_records,
    start_run,
    write_candidate_pairs,
    write_embeddings,
    write_entity_clusters,
    write_final_matches,
    write_scored_pairs,
)


def _mock_conn() -> MagicMock:
    """Create a mock psycopg connection with cursor context manager."""
    conn = MagicMock()
    cursor = MagicMock()
    conn.cursor.return_value.__enter__ = MagicMock(return_value=cursor)
    conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    return conn


class TestSchema:
    def test_creates_all_tables(self):
        conn = _mock_conn()
        ensure_schema(conn)
        cursor = conn.cursor.return_value.__enter__.return_value
        sql = cursor.execute.call_args[0][0]
        for table in (
            "source_records",
            "record_embeddings",
            "candidate_pairs",
            "scored_pairs",
            "final_matches",
            "entity_clusters",
            "resolution_runs",
        ):
            assert f"CREATE TABLE IF NOT EXISTS {table}" in sql


class TestSourceRecords:
    def test_upserts_rows_in_field_order(self, records):
        conn = MagicMock()
        with patch("entitylens.store.execute_many") as mock_em:
            count = insert_source_records(conn, records[:2])
        assert count == 2
        sql, rows = mock_em.call_args[0][1], mock_em.call_args[0][2]
        assert "INSERT INTO source_records" in sql
        assert "ON CONFLICT (record_id) DO UPDATE" in sql
        assert rows[0][0] == "crm-001"
        assert rows[0][2] == "acme widgets"

    def test_load_restricted_to_ids(self):
        conn = MagicMock()
        row = {
            "record_id": "crm-001",
            "source": "crm",
            "name": "acme widgets",
            "address": None,
            "city": "london",
            "postal_code": None,
            "country": "GB",
            "phone": None,
            "email": None,
        }
        with patch("entitylens.store.execute_query", return_value=[row]) as mock_eq:
            loaded = load_source_records(conn, ["crm-001"])
        assert loaded["crm-001"].city == "london"
        assert "ANY(%s)" in mock_eq.call_args[0][1]
        assert mock_eq.call_args[0][2] == (["crm-001"],)


class TestEmbeddings:
    def test_write_converts_to_float_lists(self):
        conn = MagicMock()
        vectors = np.array([[0.5, 0.5], [1.0, 0.0]], dtype=np.float32)
        with patch("entitylens.store.execute_many") as mock_em:
            assert write_embeddings(conn, ["a", "b"], vectors) == 2
        rows = mock_em.call_args[0][2]
        assert rows == [("a", [0.5, 0.5]), ("b", [1.0, 0.0])]

    def test_write_length_mismatch(self):
        with pytest.raises(ValueError, match="ids for"):
            write_embeddings(MagicMock(), ["a"], np.zeros((2, 2)))

    def test_load_streams_chunks(self):
        chunks = iter(
            [
                [{"record_id": "a", "embedding": [1.0, 0.0]}],
                [{"record_id": "b", "embedding": [0.0, 1.0]}],
            ]
        )
        with patch("entitylens.store.stream_query", return_value=chunks):
            ids, matrix = load_embeddings(MagicMock())
        assert ids == ["a", "b"]
        assert matrix.dtype == np.float32
        np.testing.assert_array_equal(matrix, [[1.0, 0.0], [0.0, 1.0]])

    def test_load_empty(self):
        with patch("entitylens.store.stream_query", return_value=iter([])):
            ids, matrix = load_embeddings(MagicMock())
        assert ids == []
        assert matrix.shape == (0, 0)


class TestPairs:
    def test_candidate_pairs_written_with_batch(self):
        pairs = [CandidatePair.of("b", "a", 0.91)]
        with patch("entitylens.store.execute_many") as mock_em:
            write_candidate_pairs(MagicMock(), "run-1", 4, pairs)
        assert mock_em.call_args[0][2] == [("run-1", "a", "b", 0.91, 4)]
        assert "GREATEST" in mock_em.call_args[0][1]

    def test_candidate_pairs_loaded(self):
        rows = [{"left_id": "a", "right_id": "b", "similarity": 0.9}]
        with patch("entitylens.store.execute_query", return_value=rows):
            pairs = load_candidate_pairs(MagicMock(), "run-1")
        assert pairs == [CandidatePair("a", "b", 0.9)]

    def test_scored_pairs_store_features_as_json(self):
        scored = [ScoredPair("a", "b", 0.9, "match", {"postal_exact": None})]
        with patch("entitylens.store.execute_many") as mock_em:
            write_scored_pairs(MagicMock(), "run-1", scored)
        row = mock_em.call_args[0][2][0]
        assert json.loads(row[5]) == {"postal_exact": None}

    def test_only_matches_become_final(self):
        scored = [
            ScoredPair("a", "b", 0.95, "match"),
            ScoredPair("a", "c", 0.70, "review"),
            ScoredPair("c", "d", 0.10, "non_match"),
        ]
        with (
            patch("entitylens.store.execute_query"),
            patch("entitylens.store.execute_many") as mock_em,
        ):
            assert write_final_matches(MagicMock(), "run-1", scored) == 1
        assert mock_em.call_args[0][2] == [("run-1", "a", "b", 0.95)]

    def test_final_matches_replaced_not_merged(self):
        calls: list[tuple] = []
        with (
            patch(
                "entitylens.store.execute_query",
                side_effect=lambda conn, sql, params=(): calls.append(("delete", params)) or [],
            ),
            patch(
                "entitylens.store.execute_many",
                side_effect=lambda conn, sql, rows: calls.append(("insert", rows)) or len(rows),
            ),
        ):
            written = write_final_matches(
                MagicMock(), "run-1", [ScoredPair("a", "b", 0.5, "non_match")]
            )
        assert written == 0
        assert calls == [("delete", ("run-1",)), ("insert", [])]


class TestClustersAndRuns:
    def test_clusters_written_sorted(self):
        with patch("entitylens.store.execute_many") as mock_em:
            write_entity_clusters(MagicMock(), "run-1", {"b": "a", "a": "a"})
        assert mock_em.call_args[0][2] == [("run-1", "a", "a"), ("run-1", "b", "a")]

    def test_start_and_finish_run(self):
        started = datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc)
        with patch(
            "entitylens.store.execute_query", return_value=[{"started_at": started}]
        ) as mock_eq:
            assert start_run(MagicMock(), "run-1") == started
            finish_run(MagicMock(), "run-1", {"clusters": 3}, status="failed")
        start_sql = mock_eq.call_args_list[0][0][1]
        assert "INSERT INTO resolution_runs" in start_sql
        assert "RETURNING started_at" in start_sql
        finish_params = mock_eq.call_args_list[1][0][2]
        assert finish_params == ("failed", json.dumps({"clusters": 3}), "run-1")

    def test_get_run_missing(self):
        with patch("entitylens.store.execute_query", return_value=[]):
            assert get_run(MagicMock(), "nope") is None
