"""Weighted match scoring and classification of candidate pairs.

Given identical inputs the score is deterministic.  Missing features are
excluded from both numerator and denominator rather than counted as 0.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import structlog

from entitylens.candidates import CandidatePair
from entitylens.preparation.records import SourceRecord
from entitylens.scoring.features import compute_pair_features

logger = structlog.get_logger(__name__)

DEFAULT_WEIGHTS: dict[str, float] = {
    "embedding_similarity": 2.0,
    "name_jaro_winkler": 2.0,
    "name_token_set": 2.0,
    "address_token_sort": 1.5,
    "city_exact": 0.5,
    "postal_exact": 1.0,
    "phone_exact": 1.5,
    "email_exact": 1.5,
    "country_exact": 0.5,
}

# Records in different countries can still look alike; never let them match.
COUNTRY_MISMATCH_CAP = 0.5

MATCH = "match"
REVIEW = "review"
NON_MATCH = "non_match"


@dataclass
class ScoredPair:
    left_id: str
    right_id: str
    score: float
    decision: str
    features: dict[str, float | None] = field(default_factory=dict)


def score_features(
    features: Mapping[str, float | None],
    weights: Mapping[str, float] | None = None,
) -> float:
    """Weighted mean of the non-missing features, in [0, 1].

    Returns 0.0 when no weighted feature is present.
    """
    weights = DEFAULT_WEIGHTS if weights is None else weights
    total = 0.0
    weight_sum = 0.0
    for name, weight in weights.items():
        value = features.get(name)
        if value is None or weight <= 0:
            continue
        total += weight * value
        weight_sum += weight

    if weight_sum == 0:
        return 0.0

    score = total / weight_sum
    if features.get("country_exact") == 0.0:
        score = min(score, COUNTRY_MISMATCH_CAP)
    return score


def classify(score: float, match_threshold: float, review_threshold: float) -> str:
    """Bucket a score into ``match`` / ``review`` / ``non_match``."""
    if review_threshold > match_threshold:
        msg = (
            f"review_threshold ({review_threshold}) must not exceed "
            f"match_threshold ({match_threshold})"
        )
        raise ValueError(msg)
    if score >= match_threshold:
        return MATCH
    if score >= review_threshold:
        return REVIEW
    return NON_MATCH


def score_pairs(
    pairs: Sequence[CandidatePair],
    records: Mapping[str, SourceRecord],
    *,
    match_threshold: float = 0.85,
    review_threshold: float = 0.65,
    weights: Mapping[str, float] | None = None,
) -> list[ScoredPair]:
    """Score every candidate pair whose records are both present in *records*.

    Pairs referencing unknown records are skipped and counted in the log.
    """
    scored: list[ScoredPair] = []
    missing = 0
    for pair in pairs:
        left = records.get(pair.left_id)
        right = records.get(pair.right_id)
        if left is None or right is None:
            missing += 1
            continue
        features = compute_pair_features(left, right, pair.similarity)
        score = score_features(features, weights)
        scored.append(
            ScoredPair(
                left_id=pair.left_id,
                right_id=pair.right_id,
                score=score,
                decision=classify(score, match_threshold, review_threshold),
                features=features,
            )
        )

    if missing:
        logger.warning("pairs_missing_records", skipped=missing)
    return scored
