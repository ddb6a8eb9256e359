"""Coarse blocking keys that shrink the pairwise comparison space.

Two records are only compared when they share at least one key.  Keys are
built from already-normalised records.
"""

from __future__ import annotations

from collections.abc import Iterable

from entitylens.preparation.records import SourceRecord

_NAME_PREFIX_LEN = 3
_POSTAL_PREFIX_LEN = 3


def blocking_keys(record: SourceRecord) -> frozenset[str]:
    """Return the blocking keys for a normalised record.

    - ``n:<country>|<first 3 chars of name without spaces>``
    - ``p:<country>|<first 3 chars of postal code>`` (only with a postal code)
    """
    country = record.country or "*"
    keys: set[str] = set()

    compact_name = (record.name or "").replace(" ", "")
    if compact_name:
        keys.add(f"n:{country}|{compact_name[:_NAME_PREFIX_LEN]}")

    if record.postal_code:
        keys.add(f"p:{country}|{record.postal_code[:_POSTAL_PREFIX_LEN]}")

    return frozenset(keys)


def build_blocks(records: Iterable[SourceRecord]) -> dict[str, frozenset[str]]:
    """Map each record_id to its blocking keys."""
    return {r.record_id: blocking_keys(r) for r in records}


def shares_block(
    blocks: dict[str, frozenset[str]],
    left_id: str,
    right_id: str,
) -> bool:
    """True when both records are known and have a key in common."""
    left = blocks.get(left_id)
    right = blocks.get(right_id)
    if not left or not right:
        return False
    return not left.isdisjoint(right)
