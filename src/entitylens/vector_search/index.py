"""FAISS-backed inner-product index keyed by record id.

Vectors are L2-normalised on the way in, so inner-product scores are
cosine similarities in [-1, 1].  FAISS only knows row positions; the
record ids live in a parallel array that is saved next to the index.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

import faiss
import numpy as np
import structlog

logger = structlog.get_logger(__name__)

INDEX_TYPES = frozenset({"flat", "hnsw", "ivf"})

_INDEX_FILE = "index.faiss"
_IDS_FILE = "ids.npy"
_META_FILE = "meta.json"


class IndexNotLoadedError(RuntimeError):
    """Raised when searching before an index has been built or loaded."""


def _normalize_rows(vectors: np.ndarray) -> np.ndarray:
    matrix = np.ascontiguousarray(vectors, dtype=np.float32)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


class VectorIndex:
    """Approximate-nearest-neighbour index over record embeddings.

    Parameters
    ----------
    dim:
        Embedding dimensionality.
    index_type:
        ``flat`` (exact), ``hnsw`` (graph) or ``ivf`` (inverted lists).
    hnsw_m:
        Neighbours per HNSW node.
    ivf_nlist:
        Number of IVF lists; clamped to the number of vectors at build time.
    ivf_nprobe:
        Lists visited per IVF query.
    """

    def __init__(
        self,
        dim: int,
        index_type: str = "flat",
        *,
        hnsw_m: int = 32,
        ivf_nlist: int = 1024,
        ivf_nprobe: int = 16,
    ) -> None:
        if dim <= 0:
            msg = f"dim must be positive, got {dim}"
            raise ValueError(msg)
        if index_type not in INDEX_TYPES:
            msg = f"index_type must be one of {sorted(INDEX_TYPES)}, got {index_type!r}"
            raise ValueError(msg)
        self.dim = dim
        self.index_type = index_type
        self.hnsw_m = hnsw_m
        self.ivf_nlist = ivf_nlist
        self.ivf_nprobe = ivf_nprobe
        self._index: faiss.Index | None = None
        self._ids: np.ndarray = np.array([], dtype=object)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        return self._index is not None

    def __len__(self) -> int:
        return 0 if self._index is None else int(self._index.ntotal)

    @property
    def ids(self) -> list[str]:
        return [str(i) for i in self._ids]

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def _make_index(self, n_vectors: int) -> faiss.Index:
        if self.index_type == "hnsw":
            return faiss.IndexHNSWFlat(self.dim, self.hnsw_m, faiss.METRIC_INNER_PRODUCT)
        if self.index_type == "ivf":
            nlist = max(1, min(self.ivf_nlist, n_vectors))
            quantizer = faiss.IndexFlatIP(self.dim)
            index = faiss.IndexIVFFlat(quantizer, self.dim, nlist, faiss.METRIC_INNER_PRODUCT)
            index.nprobe = min(self.ivf_nprobe, nlist)
            return index
        return faiss.IndexFlatIP(self.dim)

    def build(self, ids: Sequence[str], vectors: np.ndarray) -> None:
        """Replace the index contents with *vectors*, keyed by *ids*."""
        if len(ids) == 0:
            msg = "cannot build an index from zero vectors"
            raise ValueError(msg)
        if vectors.ndim != 2 or vectors.shape[0] != len(ids):
            msg = f"expected ({len(ids)}, {self.dim}) vectors, got {vectors.shape}"
            raise ValueError(msg)
        if vectors.shape[1] != self.dim:
            msg = f"embedding dimension mismatch: index={self.dim}, vectors={vectors.shape[1]}"
            raise ValueError(msg)
        if len(set(ids)) != len(ids):
            msg = "record ids must be unique"
            raise ValueError(msg)

        matrix = _normalize_rows(vectors)
        index = self._make_index(len(ids))
        if not index.is_trained:
            index.train(matrix)
        index.add(matrix)

        self._index = index
        self._ids = np.array([str(i) for i in ids], dtype=object)
        logger.info("vector_index_built", size=len(ids), dim=self.dim, index_type=self.index_type)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, vectors: np.ndarray, k: int) -> list[list[tuple[str, float]]]:
        """Return the *k* nearest record ids and scores for each query row.

        Empty FAISS slots (``-1``) are dropped, so a row may hold fewer than
        *k* results when the index is small.
        """
        if self._index is None:
            raise IndexNotLoadedError("no vector index is loaded")
        if k <= 0:
            msg = f"k must be positive, got {k}"
            raise ValueError(msg)
        if vectors.ndim != 2 or vectors.shape[1] != self.dim:
            msg = f"embedding dimension mismatch: index={self.dim}, queries={vectors.shape}"
            raise ValueError(msg)
        if vectors.shape[0] == 0:
            return []

        k = min(k, len(self))
        scores, positions = self._index.search(_normalize_rows(vectors), k)

        results: list[list[tuple[str, float]]] = []
        for row_scores, row_positions in zip(scores, positions):
            row = [
                (str(self._ids[pos]), float(score))
                for score, pos in zip(row_scores, row_positions)
                if pos != -1
            ]
            results.append(row)
        return results

    def search_neighbors(
        self,
        query_ids: Sequence[str],
        vectors: np.ndarray,
        k: int,
    ) -> list[list[tuple[str, float]]]:
        """Like :meth:`search`, but drop each query's own id from its results.

        Searches ``k + 1`` deep so a query that finds itself still gets up
        to *k* other neighbours.
        """
        if len(query_ids) != vectors.shape[0]:
            msg = f"{len(query_ids)} query ids for {vectors.shape[0]} vectors"
            raise ValueError(msg)
        raw = self.search(vectors, k + 1)
        return [
            [(nid, score) for nid, score in row if nid != qid][:k]
            for qid, row in zip(query_ids, raw)
        ]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, directory: Path) -> Path:
        """Write the index, ids and metadata into *directory*."""
        if self._index is None:
            raise IndexNotLoadedError("no vector index to save")
        directory.mkdir(parents=True, exist_ok=True)
        faiss.write_index(self._index, str(directory / _INDEX_FILE))
        np.save(directory / _IDS_FILE, self._ids.astype(str))
        meta = {
            "dim": self.dim,
            "index_type": self.index_type,
            "hnsw_m": self.hnsw_m,
            "ivf_nlist": self.ivf_nlist,
            "ivf_nprobe": self.ivf_nprobe,
            "size": len(self),
        }
        (directory / _META_FILE).write_text(json.dumps(meta, indent=2), encoding="utf-8")
        logger.info("vector_index_saved", path=str(directory), size=len(self))
        return directory

    @classmethod
    def load(cls, directory: Path) -> VectorIndex:
        """Load an index previously written by :meth:`save`.

        Raises:
            FileNotFoundError: If any of the index files is missing.
        """
        for name in (_INDEX_FILE, _IDS_FILE, _META_FILE):
            if not (directory / name).exists():
                msg = f"missing {name} in {directory}"
                raise FileNotFoundError(msg)

        meta = json.loads((directory / _META_FILE).read_text(encoding="utf-8"))
        index = cls(
            meta["dim"],
            meta["index_type"],
            hnsw_m=meta.get("hnsw_m", 32),
            ivf_nlist=meta.get("ivf_nlist", 1024),
            ivf_nprobe=meta.get("ivf_nprobe", 16),
        )
        index._index = faiss.read_index(str(directory / _INDEX_FILE))
        if index.index_type == "ivf":
            faiss.extract_index_ivf(index._index).nprobe = index.ivf_nprobe
        index._ids = np.load(directory / _IDS_FILE, allow_pickle=False).astype(object)
        logger.info("vector_index_loaded", path=str(directory), size=len(index))
        return index
