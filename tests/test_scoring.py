"""Tests for pair features, weighted scoring and classification."""

from __future__ import annotations

import pytest

from entitylens.candidates import CandidatePair
from entitylens.preparation.records import SourceRecord
from entitylens.scoring.features import FEATURE_NAMES, compute_pair_features
from entitylens.scoring.scorer import (
    COUNTRY_MISMATCH_CAP,
    MATCH,
    NON_MATCH,
    REVIEW,
    classify,
    score_features,
    score_pairs,
)


def _rec(record_id: str, name: str, **kwargs) -> SourceRecord:
    return SourceRecord(record_id=record_id, source="test", name=name, **kwargs)


# =========================================================================
# Features
# =========================================================================


class TestComputePairFeatures:
    def test_all_feature_names_present(self, records):
        features = compute_pair_features(records[0], records[1], 0.97)
        assert set(features) == set(FEATURE_NAMES)

    def test_normalised_duplicates_score_high(self, records):
        features = compute_pair_features(records[0], records[1], 0.97)
        assert features["name_jaro_winkler"] == pytest.approx(1.0)
        assert features["name_token_set"] == pytest.approx(1.0)
        assert features["address_token_sort"] == pytest.approx(1.0)
        assert features["postal_exact"] == 1.0
        assert features["phone_exact"] == 1.0
        assert features["country_exact"] == 1.0

    def test_missing_fields_are_none_not_zero(self, records):
        # erp-101 has no email
        features = compute_pair_features(records[0], records[1], 0.97)
        assert features["email_exact"] is None

    def test_token_set_ignores_word_order(self):
        features = compute_pair_features(_rec("1", "widgets acme"), _rec("2", "acme widgets"))
        assert features["name_token_set"] == pytest.approx(1.0)
        assert features["name_jaro_winkler"] < 1.0

    def test_similarity_clipped(self):
        features = compute_pair_features(_rec("1", "a"), _rec("2", "b"), 1.2)
        assert features["embedding_similarity"] == 1.0
        features = compute_pair_features(_rec("1", "a"), _rec("2", "b"), -0.3)
        assert features["embedding_similarity"] == 0.0

    def test_no_similarity(self):
        features = compute_pair_features(_rec("1", "a"), _rec("2", "b"))
        assert features["embedding_similarity"] is None


# =========================================================================
# Scoring
# =========================================================================


class TestScoreFeatures:
    def test_weighted_mean_of_present_features(self):
        weights = {"x": 1.0, "y": 3.0}
        assert score_features({"x": 1.0, "y": 0.0}, weights) == pytest.approx(0.25)

    def test_missing_feature_not_penalised(self):
        weights = {"x": 1.0, "y": 3.0}
        assert score_features({"x": 1.0, "y": None}, weights) == pytest.approx(1.0)

    def test_no_features_scores_zero(self):
        assert score_features({"x": None}, {"x": 1.0}) == 0.0

    def test_country_mismatch_caps_score(self):
        features = {f: 1.0 for f in FEATURE_NAMES}
        features["country_exact"] = 0.0
        assert score_features(features) == COUNTRY_MISMATCH_CAP

    def test_deterministic(self, records):
        features = compute_pair_features(records[2], records[3], 0.9)
        assert score_features(features) == score_features(dict(features))


class TestClassify:
    @pytest.mark.parametrize(
        ("score", "expected"),
        [(0.9, MATCH), (0.85, MATCH), (0.7, REVIEW), (0.65, REVIEW), (0.2, NON_MATCH)],
    )
    def test_buckets(self, score, expected):
        assert classify(score, 0.85, 0.65) == expected

    def test_inverted_thresholds_rejected(self):
        with pytest.raises(ValueError, match="review_threshold"):
            classify(0.5, 0.6, 0.7)


class TestScorePairs:
    def test_duplicates_match_and_strangers_do_not(self, records):
        by_id = {r.record_id: r for r in records}
        pairs = [
            CandidatePair.of("crm-001", "erp-101", 0.97),
            CandidatePair.of("crm-002", "erp-102", 0.93),
            CandidatePair.of("crm-001", "web-900", 0.31),
        ]
        scored = {(s.left_id, s.right_id): s for s in score_pairs(pairs, by_id)}

        assert scored[("crm-001", "erp-101")].decision == MATCH
        assert scored[("crm-002", "erp-102")].decision == MATCH
        stranger = scored[("crm-001", "web-900")]
        assert stranger.decision == NON_MATCH
        assert stranger.score <= COUNTRY_MISMATCH_CAP

    def test_unknown_records_skipped(self, records):
        by_id = {r.record_id: r for r in records}
        pairs = [CandidatePair.of("crm-001", "ghost", 0.99)]
        assert score_pairs(pairs, by_id) == []

    def test_features_kept_on_result(self, records):
        by_id = {r.record_id: r for r in records}
        scored = score_pairs([CandidatePair.of("crm-002", "erp-102", 0.93)], by_id)
        assert scored[0].features["city_exact"] == 1.0
