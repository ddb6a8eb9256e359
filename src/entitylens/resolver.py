"""Entity resolution orchestrator.

Runs the full pipeline against the warehouse:

  1. Preparation: normalise records, write them and their embeddings.
  2. Indexing: build a vector index from the stored embeddings.
  3. Candidate generation: batched nearest-neighbour search, checkpointed,
     with each batch's pairs persisted as soon as it completes.
  4. Scoring: feature comparison and weighted scoring of every candidate.
  5. Clustering: capped transitive closure over the final matches.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

import psycopg
import structlog

from entitylens import store
from entitylens.candidates import SearchCheckpoint, generate_candidate_pairs
from entitylens.clustering import build_clusters, cluster_sizes
from entitylens.config import Settings
from entitylens.preparation.blocking import build_blocks
from entitylens.preparation.embeddings import HashingEmbedder, embed_records
from entitylens.preparation.normalize import normalize_record
from entitylens.preparation.records import SourceRecord
from entitylens.scoring.scorer import score_pairs
from entitylens.vector_search.client import Searcher
from entitylens.vector_search.index import VectorIndex

logger = structlog.get_logger(__name__)


def embedder_from_settings(settings: Settings) -> HashingEmbedder:
    return HashingEmbedder(dim=settings.embedding_dim, ngram_sizes=settings.ngram_sizes)


def _seconds_since(started_at: datetime) -> float:
    return round((datetime.now(timezone.utc) - started_at).total_seconds(), 3)


# ---------------------------------------------------------------------------
# Preparation
# ---------------------------------------------------------------------------

def prepare_records(
    conn: psycopg.Connection,
    records: Sequence[SourceRecord],
    embedder: HashingEmbedder,
    *,
    batch_size: int = 10_000,
) -> dict[str, int]:
    """Normalise, store and embed *records*.

    Records are written in batches and committed after each one.

    Returns
    -------
    dict
        ``{"records": int, "embedded": int}``
    """
    written = 0
    embedded = 0
    for start in range(0, len(records), batch_size):
        batch = [normalize_record(r) for r in records[start : start + batch_size]]
        written += store.insert_source_records(conn, batch)
        ids, vectors = embed_records(batch, embedder, batch_size=batch_size)
        embedded += store.write_embeddings(conn, ids, vectors)
        conn.commit()
        logger.info("prepared_batch", start=start, size=len(batch))

    return {"records": written, "embedded": embedded}


# ---------------------------------------------------------------------------
# Indexing
# ---------------------------------------------------------------------------

def build_index_from_warehouse(
    conn: psycopg.Connection,
    settings: Settings,
    directory: Path | None = None,
) -> VectorIndex:
    """Build a vector index from ``record_embeddings`` and save it to *directory*.

    Raises:
        ValueError: If there are no embeddings to index.
    """
    ids, vectors = store.load_embeddings(conn)
    if not ids:
        msg = "record_embeddings is empty; run preparation first"
        raise ValueError(msg)

    index = VectorIndex(
        vectors.shape[1],
        settings.index_type,
        hnsw_m=settings.hnsw_m,
        ivf_nlist=settings.ivf_nlist,
        ivf_nprobe=settings.ivf_nprobe,
    )
    index.build(ids, vectors)
    index.save(directory or settings.index_dir)
    return index


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def run_resolution(
    conn: psycopg.Connection,
    searcher: Searcher,
    settings: Settings,
    *,
    run_id: str,
    checkpoint_path: Path | None = None,
    use_blocking: bool = False,
) -> dict[str, float | int | bool]:
    """Run candidate generation, scoring and clustering for one run.

    Re-running with the same *run_id* resumes after the last completed
    search batch.  Scoring and clustering always work from the full set of
    persisted candidate pairs for the run.  ``elapsed_seconds`` is measured
    from the run's first start, so it includes time spent before a resume.

    Returns
    -------
    dict
        Stage counts plus ``elapsed_seconds`` and ``converged``.
    """
    started_at = store.start_run(conn, run_id)
    conn.commit()

    try:
        ids, vectors = store.load_embeddings(conn)
        records = store.load_source_records(conn)
        blocks = build_blocks(records.values()) if use_blocking else None

        checkpoint = SearchCheckpoint(
            checkpoint_path or settings.checkpoint_dir / f"{run_id}.json",
            run_id,
        )

        def persist_batch(batch_no: int, pairs: list) -> None:
            store.write_candidate_pairs(conn, run_id, batch_no, pairs)
            conn.commit()

        generate_candidate_pairs(
            ids,
            vectors,
            searcher,
            k=settings.search_k,
            similarity_floor=settings.similarity_floor,
            batch_size=settings.search_batch_size,
            checkpoint=checkpoint,
            blocks=blocks,
            on_batch=persist_batch,
        )

        candidates = store.load_candidate_pairs(conn, run_id)
        scored = score_pairs(
            candidates,
            records,
            match_threshold=settings.match_threshold,
            review_threshold=settings.review_threshold,
        )
        store.write_scored_pairs(conn, run_id, scored)
        n_matches = store.write_final_matches(conn, run_id, scored)
        conn.commit()

        matches = store.load_final_matches(conn, run_id)
        clusters = build_clusters(records.keys(), matches, settings.max_cluster_depth)
        store.write_entity_clusters(conn, run_id, clusters.assignments)

        sizes = cluster_sizes(clusters.assignments)
        stats: dict[str, float | int | bool] = {
            "records": len(records),
            "embeddings": len(ids),
            "candidate_pairs": len(candidates),
            "scored_pairs": len(scored),
            "review_pairs": sum(1 for s in scored if s.decision == "review"),
            "final_matches": n_matches,
            "clusters": clusters.n_clusters,
            "multi_record_clusters": sum(1 for n in sizes.values() if n > 1),
            "largest_cluster": max(sizes.values(), default=0),
            "cluster_iterations": clusters.iterations,
            "converged": clusters.converged,
            "elapsed_seconds": _seconds_since(started_at),
        }
        store.finish_run(conn, run_id, stats)
        conn.commit()
    except Exception:
        conn.rollback()
        store.finish_run(
            conn,
            run_id,
            {"elapsed_seconds": _seconds_since(started_at)},
            status="failed",
        )
        conn.commit()
        logger.exception("resolution_run_failed", run_id=run_id)
        raise

    logger.info("resolution_run_complete", run_id=run_id, **stats)
    return stats
