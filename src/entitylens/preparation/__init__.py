"""Data preparation: normalisation, blocking keys, and embeddings."""

from __future__ import annotations

from entitylens.preparation.blocking import blocking_keys, build_blocks, shares_block
from entitylens.preparation.embeddings import HashingEmbedder, embed_records
from entitylens.preparation.ingest import read_records_csv
from entitylens.preparation.normalize import (
    normalize_address,
    normalize_email,
    normalize_name,
    normalize_phone,
    normalize_postal_code,
    normalize_record,
    record_text,
)
from entitylens.preparation.records import SourceRecord

__all__ = [
    "HashingEmbedder",
    "SourceRecord",
    "blocking_keys",
    "build_blocks",
    "embed_records",
    "normalize_address",
    "normalize_email",
    "normalize_name",
    "normalize_phone",
    "normalize_postal_code",
    "normalize_record",
    "read_records_csv",
    "record_text",
    "shares_block",
]
