#!/usr/bin/env python3
"""CLI script to build the vector index from stored embeddings."""

from __future__ import annotations

from pathlib import Path

import structlog
import typer

from entitylens.config import get_settings
from entitylens.db import get_connection
from entitylens.resolver import build_index_from_warehouse
from entitylens.vector_search.client import VectorSearchClient

logger = structlog.get_logger(__name__)
app = typer.Typer()


@app.command()
def main(
    output_dir: Path | None = typer.Option(
        None, "--output-dir", help="Where to save the index (default: EL_INDEX_DIR)"
    ),
    index_type: str | None = typer.Option(None, help="flat, hnsw or ivf"),
    reload_service: bool = typer.Option(
        False, "--reload-service", help="Ask the running vector service to load the new index"
    ),
) -> None:
    """Build, save and optionally hot-load a vector index."""
    settings = get_settings()
    if index_type:
        settings.index_type = index_type
    directory = output_dir or settings.index_dir
    conn = get_connection(settings)

    try:
        index = build_index_from_warehouse(conn, settings, directory)
        logger.info("index_build_complete", path=str(directory), size=len(index))
    finally:
        conn.close()

    if reload_service:
        with VectorSearchClient(
            settings.vector_service_url,
            timeout=settings.http_timeout,
            max_retries=settings.max_retries,
        ) as client:
            resp = client.load_index(str(directory.resolve()))
            logger.info("service_index_reloaded", **resp)


if __name__ == "__main__":
    app()
