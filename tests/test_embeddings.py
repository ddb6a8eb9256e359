"""Tests for the hashing embedder."""

from __future__ import annotations

import numpy as np
import pytest

from entitylens.preparation.embeddings import HashingEmbedder, embed_records


def _cos(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.dot(a, b))


class TestHashingEmbedder:
    def test_shape_and_dtype(self):
        emb = HashingEmbedder(dim=64)
        out = emb.embed(["acme widgets", "zenith logistics"])
        assert out.shape == (2, 64)
        assert out.dtype == np.float32

    def test_unit_norm(self):
        vec = HashingEmbedder(dim=128).embed_one("acme widgets")
        assert np.linalg.norm(vec) == pytest.approx(1.0, abs=1e-5)

    def test_empty_text_is_zero_vector(self):
        vec = HashingEmbedder(dim=32).embed_one("")
        assert not vec.any()

    def test_deterministic_across_instances(self):
        a = HashingEmbedder(dim=256).embed_one("brightwater dental")
        b = HashingEmbedder(dim=256).embed_one("brightwater dental")
        np.testing.assert_array_equal(a, b)

    def test_near_duplicates_are_closer_than_strangers(self):
        emb = HashingEmbedder(dim=512)
        base = emb.embed_one("acme widgets | 12 high st | london")
        near = emb.embed_one("acme widget | 12 high st | london")
        far = emb.embed_one("zenith logistics | 400 market ave | denver")
        assert _cos(base, near) > 0.8
        assert _cos(base, near) > _cos(base, far)

    def test_empty_batch(self):
        out = HashingEmbedder(dim=16).embed([])
        assert out.shape == (0, 16)

    def test_rejects_bad_dim(self):
        with pytest.raises(ValueError, match="dim"):
            HashingEmbedder(dim=0)

    def test_rejects_bad_ngrams(self):
        with pytest.raises(ValueError, match="ngram_sizes"):
            HashingEmbedder(dim=16, ngram_sizes=(0,))


class TestEmbedRecords:
    def test_ids_align_with_rows(self, records):
        ids, matrix = embed_records(records, HashingEmbedder(dim=64), batch_size=2)
        assert ids == [r.record_id for r in records]
        assert matrix.shape == (len(records), 64)

    def test_batching_does_not_change_vectors(self, records):
        emb = HashingEmbedder(dim=64)
        _, small = embed_records(records, emb, batch_size=1)
        _, large = embed_records(records, emb, batch_size=100)
        np.testing.assert_allclose(small, large)

    def test_no_records(self):
        ids, matrix = embed_records([], HashingEmbedder(dim=8))
        assert ids == []
        assert matrix.shape == (0, 8)
