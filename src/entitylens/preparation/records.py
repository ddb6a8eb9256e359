"""Source record type shared by every pipeline stage."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

RECORD_FIELDS = (
    "record_id",
    "source",
    "name",
    "address",
    "city",
    "postal_code",
    "country",
    "phone",
    "email",
)


@dataclass(frozen=True)
class SourceRecord:
    """A single row from one of the upstream source systems."""

    record_id: str
    source: str
    name: str
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    country: str | None = None
    phone: str | None = None
    email: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> SourceRecord:
        """Build a record from a warehouse row or CSV dict, ignoring extra keys."""
        values = {}
        for field in RECORD_FIELDS:
            value = row.get(field)
            if isinstance(value, str):
                value = value.strip() or None
            values[field] = value
        if values["record_id"] is None or values["name"] is None:
            msg = f"record_id and name are required, got {row!r}"
            raise ValueError(msg)
        values["record_id"] = str(values["record_id"])
        values["source"] = values["source"] or "unknown"
        return cls(**values)

    def to_row(self) -> tuple:
        """Return the record as a tuple ordered like ``RECORD_FIELDS``."""
        data = asdict(self)
        return tuple(data[f] for f in RECORD_FIELDS)
