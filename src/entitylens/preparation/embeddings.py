"""Character n-gram hashing embeddings for source records.

The embedder is deterministic across processes and machines (CRC32 rather
than Python's salted ``hash``), so vectors written to the warehouse in one
run stay comparable with vectors produced by a later run.
"""

from __future__ import annotations

import zlib
from collections.abc import Sequence

import numpy as np
import structlog

from entitylens.preparation.normalize import record_text
from entitylens.preparation.records import SourceRecord

logger = structlog.get_logger(__name__)


class HashingEmbedder:
    """Embed text as signed, hashed counts of padded character n-grams.

    Parameters
    ----------
    dim:
        Output dimensionality.
    ngram_sizes:
        Character n-gram lengths to extract (e.g. ``(2, 3)``).
    """

    def __init__(self, dim: int = 256, ngram_sizes: Sequence[int] = (2, 3)) -> None:
        if dim <= 0:
            msg = f"dim must be positive, got {dim}"
            raise ValueError(msg)
        if not ngram_sizes or any(n <= 0 for n in ngram_sizes):
            msg = f"ngram_sizes must be positive integers, got {ngram_sizes!r}"
            raise ValueError(msg)
        self.dim = dim
        self.ngram_sizes = tuple(ngram_sizes)

    def _ngrams(self, text: str) -> list[str]:
        grams: list[str] = []
        for token in text.split():
            padded = f"#{token}#"
            for n in self.ngram_sizes:
                if len(padded) < n:
                    continue
                grams.extend(padded[i : i + n] for i in range(len(padded) - n + 1))
        return grams

    def embed_one(self, text: str) -> np.ndarray:
        vec = np.zeros(self.dim, dtype=np.float32)
        for gram in self._ngrams(text.lower()):
            h = zlib.crc32(gram.encode("utf-8"))
            sign = 1.0 if (h >> 31) & 1 == 0 else -1.0
            vec[h % self.dim] += sign
        norm = float(np.linalg.norm(vec))
        if norm > 0:
            vec /= norm
        return vec

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        """Return an ``(n, dim)`` float32 matrix; empty text maps to zeros."""
        if not texts:
            return np.zeros((0, self.dim), dtype=np.float32)
        return np.vstack([self.embed_one(t or "") for t in texts])


def embed_records(
    records: Sequence[SourceRecord],
    embedder: HashingEmbedder,
    *,
    batch_size: int = 10_000,
) -> tuple[list[str], np.ndarray]:
    """Embed normalised records in batches.

    Returns
    -------
    tuple[list[str], np.ndarray]
        Record ids and the matching ``(n, dim)`` embedding matrix.
    """
    ids = [r.record_id for r in records]
    if not records:
        return ids, np.zeros((0, embedder.dim), dtype=np.float32)

    chunks: list[np.ndarray] = []
    for start in range(0, len(records), batch_size):
        batch = records[start : start + batch_size]
        chunks.append(embedder.embed([record_text(r) for r in batch]))
        logger.debug("embedded_batch", start=start, size=len(batch))

    return ids, np.vstack(chunks)
