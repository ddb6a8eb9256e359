"""Warehouse reads and writes for every pipeline stage.

All writes are idempotent so a resumed run can replay a batch without
duplicating rows.  Most are upserts; final matches are replaced per run.
All database interaction uses raw SQL via psycopg3.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from collections.abc import Iterable, Sequence
from typing import Any

import numpy as np
import psycopg

from entitylens.candidates import CandidatePair
from entitylens.db import execute_many, execute_query, stream_query
from entitylens.preparation.records import RECORD_FIELDS, SourceRecord
from entitylens.scoring.scorer import MATCH, ScoredPair

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS source_records (
    record_id   text PRIMARY KEY,
    source      text NOT NULL,
    name        text NOT NULL,
    address     text,
    city        text,
    postal_code text,
    country     text,
    phone       text,
    email       text,
    updated_at  timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS record_embeddings (
    record_id  text PRIMARY KEY REFERENCES source_records (record_id),
    embedding  real[] NOT NULL,
    created_at timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS candidate_pairs (
    run_id     text NOT NULL,
    left_id    text NOT NULL,
    right_id   text NOT NULL,
    similarity real NOT NULL,
    batch_no   integer NOT NULL,
    PRIMARY KEY (run_id, left_id, right_id)
);

CREATE TABLE IF NOT EXISTS scored_pairs (
    run_id   text NOT NULL,
    left_id  text NOT NULL,
    right_id text NOT NULL,
    score    real NOT NULL,
    decision text NOT NULL,
    features jsonb NOT NULL,
    PRIMARY KEY (run_id, left_id, right_id)
);

CREATE TABLE IF NOT EXISTS final_matches (
    run_id   text NOT NULL,
    left_id  text NOT NULL,
    right_id text NOT NULL,
    score    real NOT NULL,
    PRIMARY KEY (run_id, left_id, right_id)
);

CREATE TABLE IF NOT EXISTS entity_clusters (
    run_id     text NOT NULL,
    record_id  text NOT NULL,
    cluster_id text NOT NULL,
    PRIMARY KEY (run_id, record_id)
);

CREATE TABLE IF NOT EXISTS resolution_runs (
    run_id      text PRIMARY KEY,
    started_at  timestamptz NOT NULL DEFAULT now(),
    finished_at timestamptz,
    status      text NOT NULL DEFAULT 'running',
    stats       jsonb
);
"""


def ensure_schema(conn: psycopg.Connection) -> None:
    """Create pipeline tables if they do not exist."""
    with conn.cursor() as cur:
        cur.execute(SCHEMA_SQL)


# ---------------------------------------------------------------------------
# Source records
# ---------------------------------------------------------------------------

def insert_source_records(conn: psycopg.Connection, records: Sequence[SourceRecord]) -> int:
    """Upsert normalised source records. Returns the number of rows sent."""
    columns = ", ".join(RECORD_FIELDS)
    placeholders = ", ".join(["%s"] * len(RECORD_FIELDS))
    updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in RECORD_FIELDS if c != "record_id")
    execute_many(
        conn,
        f"""
        INSERT INTO source_records ({columns})
        VALUES ({placeholders})
        ON CONFLICT (record_id) DO UPDATE SET {updates}, updated_at = now()
        """,
        [r.to_row() for r in records],
    )
    return len(records)


def load_source_records(
    conn: psycopg.Connection,
    record_ids: Iterable[str] | None = None,
) -> dict[str, SourceRecord]:
    """Load source records keyed by id, optionally restricted to *record_ids*."""
    columns = ", ".join(RECORD_FIELDS)
    if record_ids is None:
        rows = execute_query(conn, f"SELECT {columns} FROM source_records")
    else:
        rows = execute_query(
            conn,
            f"SELECT {columns} FROM source_records WHERE record_id = ANY(%s)",
            (list(record_ids),),
        )
    return {str(r["record_id"]): SourceRecord.from_row(r) for r in rows}


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------

def write_embeddings(
    conn: psycopg.Connection,
    ids: Sequence[str],
    vectors: np.ndarray,
) -> int:
    if len(ids) != len(vectors):
        msg = f"{len(ids)} ids for {len(vectors)} vectors"
        raise ValueError(msg)
    execute_many(
        conn,
        """
        INSERT INTO record_embeddings (record_id, embedding)
        VALUES (%s, %s)
        ON CONFLICT (record_id) DO UPDATE
            SET embedding = EXCLUDED.embedding, created_at = now()
        """,
        [(rid, [float(x) for x in vec]) for rid, vec in zip(ids, vectors)],
    )
    return len(ids)


def load_embeddings(
    conn: psycopg.Connection,
    *,
    chunk_size: int = 10_000,
) -> tuple[list[str], np.ndarray]:
    """Read every embedding ordered by record id.

    Returns an empty ``(0, 0)`` matrix when the table is empty.
    """
    ids: list[str] = []
    vectors: list[list[float]] = []
    for chunk in stream_query(
        conn,
        "SELECT record_id, embedding FROM record_embeddings ORDER BY record_id",
        chunk_size=chunk_size,
    ):
        for row in chunk:
            ids.append(str(row["record_id"]))
            vectors.append(row["embedding"])

    if not ids:
        return ids, np.zeros((0, 0), dtype=np.float32)
    return ids, np.asarray(vectors, dtype=np.float32)


# ---------------------------------------------------------------------------
# Pairs
# ---------------------------------------------------------------------------

def write_candidate_pairs(
    conn: psycopg.Connection,
    run_id: str,
    batch_no: int,
    pairs: Sequence[CandidatePair],
) -> int:
    """Upsert one batch of candidate pairs, keeping the highest similarity."""
    execute_many(
        conn,
        """
        INSERT INTO candidate_pairs (run_id, left_id, right_id, similarity, batch_no)
        VALUES (%s, %s, %s, %s, %s)
        ON CONFLICT (run_id, left_id, right_id) DO UPDATE
            SET similarity = GREATEST(candidate_pairs.similarity, EXCLUDED.similarity)
        """,
        [(run_id, p.left_id, p.right_id, p.similarity, batch_no) for p in pairs],
    )
    return len(pairs)


def load_candidate_pairs(conn: psycopg.Connection, run_id: str) -> list[CandidatePair]:
    rows = execute_query(
        conn,
        """
        SELECT left_id, right_id, similarity
        FROM candidate_pairs
        WHERE run_id = %s
        ORDER BY left_id, right_id
        """,
        (run_id,),
    )
    return [CandidatePair(r["left_id"], r["right_id"], float(r["similarity"])) for r in rows]


def write_scored_pairs(
    conn: psycopg.Connection,
    run_id: str,
    scored: Sequence[ScoredPair],
) -> int:
    execute_many(
        conn,
        """
        INSERT INTO scored_pairs (run_id, left_id, right_id, score, decision, features)
        VALUES (%s, %s, %s, %s, %s, %s::jsonb)
        ON CONFLICT (run_id, left_id, right_id) DO UPDATE
            SET score = EXCLUDED.score,
                decision = EXCLUDED.decision,
                features = EXCLUDED.features
        """,
        [
            (run_id, s.left_id, s.right_id, s.score, s.decision, json.dumps(s.features))
            for s in scored
        ],
    )
    return len(scored)


def write_final_matches(
    conn: psycopg.Connection,
    run_id: str,
    scored: Sequence[ScoredPair],
) -> int:
    """Replace the run's final matches with the pairs classified ``match``.

    Rows from an earlier scoring of the same run are deleted first, so a
    pair that no longer scores as a match cannot survive a rerun.  Returns
    how many matches were written.
    """
    matches = [s for s in scored if s.decision == MATCH]
    execute_query(conn, "DELETE FROM final_matches WHERE run_id = %s", (run_id,))
    execute_many(
        conn,
        """
        INSERT INTO final_matches (run_id, left_id, right_id, score)
        VALUES (%s, %s, %s, %s)
        """,
        [(run_id, s.left_id, s.right_id, s.score) for s in matches],
    )
    return len(matches)


def load_final_matches(conn: psycopg.Connection, run_id: str) -> list[tuple[str, str]]:
    rows = execute_query(
        conn,
        "SELECT left_id, right_id FROM final_matches WHERE run_id = %s",
        (run_id,),
    )
    return [(r["left_id"], r["right_id"]) for r in rows]


# ---------------------------------------------------------------------------
# Clusters
# ---------------------------------------------------------------------------

def write_entity_clusters(
    conn: psycopg.Connection,
    run_id: str,
    assignments: dict[str, str],
) -> int:
    execute_many(
        conn,
        """
        INSERT INTO entity_clusters (run_id, record_id, cluster_id)
        VALUES (%s, %s, %s)
        ON CONFLICT (run_id, record_id) DO UPDATE SET cluster_id = EXCLUDED.cluster_id
        """,
        [(run_id, rid, cid) for rid, cid in sorted(assignments.items())],
    )
    return len(assignments)


def load_entity_clusters(conn: psycopg.Connection, run_id: str) -> dict[str, str]:
    rows = execute_query(
        conn,
        "SELECT record_id, cluster_id FROM entity_clusters WHERE run_id = %s",
        (run_id,),
    )
    return {r["record_id"]: r["cluster_id"] for r in rows}


# ---------------------------------------------------------------------------
# Run bookkeeping
# ---------------------------------------------------------------------------

def new_run_id() -> str:
    return str(uuid.uuid4())


def start_run(conn: psycopg.Connection, run_id: str) -> datetime:
    """Register a run and return when it first started.

    Restarting an existing run id marks it running again but keeps the
    original ``started_at``.
    """
    rows = execute_query(
        conn,
        """
        INSERT INTO resolution_runs (run_id, status)
        VALUES (%s, 'running')
        ON CONFLICT (run_id) DO UPDATE SET status = 'running', finished_at = NULL
        RETURNING started_at
        """,
        (run_id,),
    )
    return rows[0]["started_at"]


def finish_run(
    conn: psycopg.Connection,
    run_id: str,
    stats: dict[str, Any],
    *,
    status: str = "succeeded",
) -> None:
    execute_query(
        conn,
        """
        UPDATE resolution_runs
        SET status = %s, finished_at = now(), stats = %s::jsonb
        WHERE run_id = %s
        """,
        (status, json.dumps(stats), run_id),
    )


def get_run(conn: psycopg.Connection, run_id: str) -> dict | None:
    rows = execute_query(
        conn,
        "SELECT * FROM resolution_runs WHERE run_id = %s",
        (run_id,),
    )
    return rows[0] if rows else None
