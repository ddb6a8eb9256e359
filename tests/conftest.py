"""Shared fixtures for entity resolution tests."""

from __future__ import annotations

import pytest

from entitylens.config import Settings
from entitylens.preparation.normalize import normalize_record
from entitylens.preparation.records import SourceRecord


@pytest.fixture()
def raw_records() -> list[SourceRecord]:
    """Five raw records: two Acme duplicates, two Zenith duplicates, one loner."""
    return [
        SourceRecord(
            record_id="crm-001",
            source="crm",
            name="Acme Widgets Ltd",
            address="12 High Street",
            city="London",
            postal_code="SW1A 1AA",
            country="GB",
            phone="+44 20 7946 0018",
            email="Sales@AcmeWidgets.co.uk",
        ),
        SourceRecord(
            record_id="erp-101",
            source="erp",
            name="ACME Widgets Limited",
            address="12 High St.",
            city="london",
            postal_code="sw1a1aa",
            country="gb",
            phone="020 7946 0018",
        ),
        SourceRecord(
            record_id="crm-002",
            source="crm",
            name="Zenith Logistics Inc.",
            address="400 Market Avenue",
            city="Denver",
            postal_code="80202",
            country="US",
        ),
        SourceRecord(
            record_id="erp-102",
            source="erp",
            name="Zenith Logistics",
            address="400 Market Ave",
            city="Denver",
            postal_code="80202",
            country="US",
        ),
        SourceRecord(
            record_id="web-900",
            source="web",
            name="Brightwater Dental Clinic",
            address="7 Rue de la Paix",
            city="Paris",
            postal_code="75002",
            country="FR",
        ),
    ]


@pytest.fixture()
def records(raw_records: list[SourceRecord]) -> list[SourceRecord]:
    """The raw records after normalisation."""
    return [normalize_record(r) for r in raw_records]


@pytest.fixture()
def settings(tmp_path) -> Settings:
    """Settings pointing all file output into a temp dir."""
    return Settings(
        database_url="postgresql://test",
        index_dir=tmp_path / "index",
        checkpoint_dir=tmp_path / "checkpoints",
        embedding_dim=512,
        search_k=4,
        similarity_floor=0.3,
        search_batch_size=2,
    )
