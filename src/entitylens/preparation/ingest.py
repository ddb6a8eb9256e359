"""CSV import of raw source records.

Upstream extracts arrive as CSV files with inconsistent headers; this
module maps them onto ``SourceRecord`` fields.
"""

from __future__ import annotations

from pathlib import Path

import pandas as pd
import structlog

from entitylens.preparation.records import SourceRecord

logger = structlog.get_logger(__name__)

# Column aliases: source header (normalised) -> SourceRecord field
COLUMN_MAP: dict[str, str] = {
    "id": "record_id",
    "record_id": "record_id",
    "source_id": "record_id",
    "name": "name",
    "company_name": "name",
    "organisation_name": "name",
    "organization_name": "name",
    "address": "address",
    "street": "address",
    "address_line_1": "address",
    "city": "city",
    "town": "city",
    "postal_code": "postal_code",
    "postcode": "postal_code",
    "zip": "postal_code",
    "zip_code": "postal_code",
    "country": "country",
    "country_code": "country",
    "phone": "phone",
    "telephone": "phone",
    "email": "email",
    "source": "source",
}


def _read_csv_normalized(csv_path: Path) -> pd.DataFrame:
    """Read *csv_path* as strings and rename known header aliases."""
    df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
    df.columns = [c.strip().lower().replace(" ", "_") for c in df.columns]
    df = df.rename(columns={c: COLUMN_MAP[c] for c in df.columns if c in COLUMN_MAP})
    # Drop duplicate columns (keep first)
    return df.loc[:, ~df.columns.duplicated()]


def read_records_csv(csv_path: Path, source: str) -> tuple[list[SourceRecord], int]:
    """Load source records from a CSV file.

    Rows without an id or a name are skipped.  A ``source`` column in the
    file wins over the *source* argument.

    Returns
    -------
    tuple[list[SourceRecord], int]
        The parsed records and the number of skipped rows.
    """
    df = _read_csv_normalized(csv_path)
    missing = [c for c in ("record_id", "name") if c not in df.columns]
    if missing:
        msg = f"{csv_path} is missing required columns: {missing}"
        raise ValueError(msg)

    records: list[SourceRecord] = []
    skipped = 0
    for row in df.to_dict(orient="records"):
        row.setdefault("source", source)
        if not row.get("source"):
            row["source"] = source
        try:
            records.append(SourceRecord.from_row(row))
        except ValueError:
            skipped += 1

    logger.info("records_csv_read", path=str(csv_path), records=len(records), skipped=skipped)
    return records, skipped
