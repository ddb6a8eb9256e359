"""Candidate pair generation via batched nearest-neighbour search.

Queries are issued in batches (50,000 records by default).  After each
batch the pairs are handed to ``on_batch`` for persistence and the batch
number is recorded in a JSON checkpoint, so a crashed run picks up at the
first unfinished batch.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import structlog

from entitylens.preparation.blocking import shares_block
from entitylens.vector_search.client import Searcher

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 50_000


@dataclass(frozen=True)
class CandidatePair:
    """An unordered pair of records, stored with ``left_id < right_id``."""

    left_id: str
    right_id: str
    similarity: float

    @classmethod
    def of(cls, a: str, b: str, similarity: float) -> CandidatePair:
        if a == b:
            msg = f"a record cannot pair with itself: {a!r}"
            raise ValueError(msg)
        left, right = (a, b) if a < b else (b, a)
        return cls(left, right, similarity)

    @property
    def key(self) -> tuple[str, str]:
        return (self.left_id, self.right_id)


# ---------------------------------------------------------------------------
# Checkpointing
# ---------------------------------------------------------------------------

class SearchCheckpoint:
    """Completed-batch bookkeeping persisted as JSON.

    A checkpoint file written for a different ``run_id`` is ignored, so
    stale files from earlier runs never cause batches to be skipped.  The
    file also records the batch layout (``batch_size`` and ``total_ids``)
    the batch numbers refer to; see :meth:`bind`.
    """

    def __init__(self, path: Path, run_id: str) -> None:
        self.path = path
        self.run_id = run_id
        self.batch_size: int | None = None
        self.total_ids: int | None = None
        self._completed: set[int] = set()
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if data.get("run_id") != self.run_id:
            logger.info("checkpoint_ignored", path=str(self.path), found_run=data.get("run_id"))
            return
        self.batch_size = data.get("batch_size")
        self.total_ids = data.get("total_ids")
        self._completed = {int(b) for b in data.get("completed_batches", [])}
        logger.info("checkpoint_resumed", path=str(self.path), completed=len(self._completed))

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(
            json.dumps(
                {
                    "run_id": self.run_id,
                    "batch_size": self.batch_size,
                    "total_ids": self.total_ids,
                    "completed_batches": sorted(self._completed),
                }
            ),
            encoding="utf-8",
        )
        tmp.replace(self.path)

    def bind(self, batch_size: int, total_ids: int) -> None:
        """Tie the checkpoint to a batch layout.

        Batch numbers only identify the same records when the batch size
        and number of query ids are unchanged.  If completed batches were
        recorded under a different layout they are discarded and every
        batch is searched again.
        """
        if self._completed and (self.batch_size, self.total_ids) != (batch_size, total_ids):
            logger.warning(
                "checkpoint_layout_changed",
                path=str(self.path),
                stored_batch_size=self.batch_size,
                stored_total_ids=self.total_ids,
                batch_size=batch_size,
                total_ids=total_ids,
                discarded=len(self._completed),
            )
            self._completed.clear()
        self.batch_size = batch_size
        self.total_ids = total_ids

    @property
    def completed_batches(self) -> frozenset[int]:
        return frozenset(self._completed)

    def is_done(self, batch_no: int) -> bool:
        return batch_no in self._completed

    def mark_done(self, batch_no: int) -> None:
        self._completed.add(batch_no)
        self._write()

    def reset(self) -> None:
        self._completed.clear()
        if self.path.exists():
            self.path.unlink()


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def _pairs_from_neighbors(
    query_ids: Sequence[str],
    neighbors: list[list[tuple[str, float]]],
    similarity_floor: float,
    blocks: dict[str, frozenset[str]] | None,
) -> dict[tuple[str, str], CandidatePair]:
    pairs: dict[tuple[str, str], CandidatePair] = {}
    for qid, row in zip(query_ids, neighbors):
        for nid, score in row:
            if nid == qid or score < similarity_floor:
                continue
            if blocks is not None and not shares_block(blocks, qid, nid):
                continue
            pair = CandidatePair.of(qid, nid, score)
            existing = pairs.get(pair.key)
            if existing is None or existing.similarity < score:
                pairs[pair.key] = pair
    return pairs


def generate_candidate_pairs(
    ids: Sequence[str],
    vectors: np.ndarray,
    searcher: Searcher,
    *,
    k: int = 10,
    similarity_floor: float = 0.75,
    batch_size: int = DEFAULT_BATCH_SIZE,
    checkpoint: SearchCheckpoint | None = None,
    blocks: dict[str, frozenset[str]] | None = None,
    on_batch: Callable[[int, list[CandidatePair]], None] | None = None,
) -> list[CandidatePair]:
    """Find candidate pairs for every record in *ids*.

    Parameters
    ----------
    ids, vectors:
        Query record ids and their embeddings (row-aligned).
    searcher:
        Anything with ``bulk_search(ids, vectors, k)`` (HTTP client or local).
    k:
        Neighbours requested per record.
    similarity_floor:
        Neighbours scoring below this cosine similarity are dropped.
    batch_size:
        Records per search batch.
    checkpoint:
        Completed batches are skipped and newly finished ones recorded.
        Batches recorded under a different ``batch_size`` or number of ids
        are searched again.
    blocks:
        ``record_id -> blocking keys``; when given, only pairs sharing a
        key are kept.
    on_batch:
        Called with ``(batch_no, pairs)`` after each batch, before the
        checkpoint advances.

    Returns
    -------
    list[CandidatePair]
        Deduplicated pairs from the batches processed in this call, sorted
        by ``(left_id, right_id)``.  Pairs from batches skipped via the
        checkpoint are not included.
    """
    if len(ids) != len(vectors):
        msg = f"{len(ids)} ids for {len(vectors)} vectors"
        raise ValueError(msg)
    if batch_size <= 0:
        msg = f"batch_size must be positive, got {batch_size}"
        raise ValueError(msg)

    if checkpoint is not None:
        checkpoint.bind(batch_size, len(ids))

    all_pairs: dict[tuple[str, str], CandidatePair] = {}
    n_batches = (len(ids) + batch_size - 1) // batch_size

    for batch_no in range(n_batches):
        if checkpoint is not None and checkpoint.is_done(batch_no):
            logger.info("batch_skipped", batch=batch_no, reason="checkpoint")
            continue

        start = batch_no * batch_size
        batch_ids = list(ids[start : start + batch_size])
        batch_vectors = vectors[start : start + batch_size]

        neighbors = searcher.bulk_search(batch_ids, batch_vectors, k)
        batch_pairs = _pairs_from_neighbors(batch_ids, neighbors, similarity_floor, blocks)

        if on_batch is not None:
            on_batch(batch_no, sorted(batch_pairs.values(), key=lambda p: p.key))
        if checkpoint is not None:
            checkpoint.mark_done(batch_no)

        for key, pair in batch_pairs.items():
            existing = all_pairs.get(key)
            if existing is None or existing.similarity < pair.similarity:
                all_pairs[key] = pair

        logger.info(
            "batch_searched",
            batch=batch_no,
            of=n_batches,
            queries=len(batch_ids),
            pairs=len(batch_pairs),
        )

    return sorted(all_pairs.values(), key=lambda p: p.key)
