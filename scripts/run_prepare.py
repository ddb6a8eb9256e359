#!/usr/bin/env python3
"""CLI script to import source records from CSV, normalise and embed them."""

from __future__ import annotations

from pathlib import Path

import structlog
import typer

from entitylens.config import get_settings
from entitylens.db import get_connection
from entitylens.preparation.ingest import read_records_csv
from entitylens.resolver import embedder_from_settings, prepare_records
from entitylens.store import ensure_schema

logger = structlog.get_logger(__name__)
app = typer.Typer()


@app.command()
def main(
    csv_paths: list[Path] = typer.Argument(help="One or more source record CSV files"),
    source: str = typer.Option("csv", "--source", help="Source name when the CSV has none"),
    batch_size: int = typer.Option(10_000, help="Records per write/embedding batch"),
) -> None:
    """Load CSV records into the warehouse with their embeddings."""
    settings = get_settings()
    conn = get_connection(settings)
    embedder = embedder_from_settings(settings)

    try:
        ensure_schema(conn)
        conn.commit()
        for path in csv_paths:
            records, skipped = read_records_csv(path, source)
            stats = prepare_records(conn, records, embedder, batch_size=batch_size)
            logger.info("prepare_complete", path=str(path), skipped=skipped, **stats)
    finally:
        conn.close()


if __name__ == "__main__":
    app()
