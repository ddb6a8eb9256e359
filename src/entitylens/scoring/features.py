"""Pairwise comparison features for candidate pairs.

Each feature is a similarity in [0, 1], or ``None`` when either record is
missing the field.  Missing data must never be treated as a mismatch.
"""

from __future__ import annotations

from rapidfuzz import fuzz
from rapidfuzz.distance import JaroWinkler

from entitylens.preparation.records import SourceRecord

FEATURE_NAMES = (
    "embedding_similarity",
    "name_jaro_winkler",
    "name_token_set",
    "address_token_sort",
    "city_exact",
    "postal_exact",
    "phone_exact",
    "email_exact",
    "country_exact",
)


def _both(a: str | None, b: str | None) -> bool:
    return bool(a) and bool(b)


def _exact(a: str | None, b: str | None) -> float | None:
    if not _both(a, b):
        return None
    return 1.0 if a == b else 0.0


def name_jaro_winkler(a: str | None, b: str | None) -> float | None:
    if not _both(a, b):
        return None
    return float(JaroWinkler.similarity(a, b))


def name_token_set(a: str | None, b: str | None) -> float | None:
    """Token-set ratio: robust to word order and extra words ("acme uk" vs "acme")."""
    if not _both(a, b):
        return None
    return fuzz.token_set_ratio(a, b) / 100.0


def address_token_sort(a: str | None, b: str | None) -> float | None:
    if not _both(a, b):
        return None
    return fuzz.token_sort_ratio(a, b) / 100.0


def compute_pair_features(
    left: SourceRecord,
    right: SourceRecord,
    similarity: float | None = None,
) -> dict[str, float | None]:
    """Compute all comparison features for two normalised records.

    *similarity* is the embedding cosine from candidate generation; it is
    clipped into [0, 1].
    """
    embedding = None
    if similarity is not None:
        embedding = min(1.0, max(0.0, float(similarity)))

    return {
        "embedding_similarity": embedding,
        "name_jaro_winkler": name_jaro_winkler(left.name, right.name),
        "name_token_set": name_token_set(left.name, right.name),
        "address_token_sort": address_token_sort(left.address, right.address),
        "city_exact": _exact(left.city, right.city),
        "postal_exact": _exact(left.postal_code, right.postal_code),
        "phone_exact": _exact(left.phone, right.phone),
        "email_exact": _exact(left.email, right.email),
        "country_exact": _exact(left.country, right.country),
    }
