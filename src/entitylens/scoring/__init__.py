"""Feature computation and weighted scoring of candidate pairs."""

from __future__ import annotations

from entitylens.scoring.features import FEATURE_NAMES, compute_pair_features
from entitylens.scoring.scorer import (
    DEFAULT_WEIGHTS,
    MATCH,
    NON_MATCH,
    REVIEW,
    ScoredPair,
    classify,
    score_features,
    score_pairs,
)

__all__ = [
    "DEFAULT_WEIGHTS",
    "FEATURE_NAMES",
    "MATCH",
    "NON_MATCH",
    "REVIEW",
    "ScoredPair",
    "classify",
    "compute_pair_features",
    "score_features",
    "score_pairs",
]
