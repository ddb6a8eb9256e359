#!/usr/bin/env python3
"""CLI script to run candidate generation, scoring and clustering."""

from __future__ import annotations

from pathlib import Path

import structlog
import typer

from entitylens.config import get_settings
from entitylens.db import get_connection
from entitylens.resolver import run_resolution
from entitylens.store import ensure_schema, new_run_id
from entitylens.vector_search.client import LocalSearcher, Searcher, VectorSearchClient
from entitylens.vector_search.index import VectorIndex

logger = structlog.get_logger(__name__)
app = typer.Typer()


@app.command()
def main(
    run_id: str | None = typer.Option(
        None, "--run-id", help="Resume an earlier run (default: start a new one)"
    ),
    local: bool = typer.Option(
        False, "--local", help="Search an in-process index instead of the HTTP service"
    ),
    blocking: bool = typer.Option(
        False, "--blocking", help="Only keep candidate pairs that share a blocking key"
    ),
    checkpoint: Path | None = typer.Option(None, help="Checkpoint file path"),
) -> None:
    """Resolve all prepared records into entity clusters."""
    settings = get_settings()
    run_id = run_id or new_run_id()
    client: VectorSearchClient | None = None
    conn = None

    try:
        if local:
            searcher: Searcher = LocalSearcher(VectorIndex.load(settings.index_dir))
        else:
            client = VectorSearchClient(
                settings.vector_service_url,
                timeout=settings.http_timeout,
                request_batch_size=settings.request_batch_size,
                max_retries=settings.max_retries,
            )
            health = client.health()
            if not health.get("index_loaded"):
                logger.error("vector_service_has_no_index", url=settings.vector_service_url)
                raise typer.Exit(code=1)
            searcher = client

        conn = get_connection(settings)
        ensure_schema(conn)
        conn.commit()
        logger.info("resolution_run_started", run_id=run_id, local=local)
        stats = run_resolution(
            conn,
            searcher,
            settings,
            run_id=run_id,
            checkpoint_path=checkpoint,
            use_blocking=blocking,
        )
        typer.echo(f"run_id={run_id} clusters={stats['clusters']} matches={stats['final_matches']}")
    finally:
        if conn is not None:
            conn.close()
        if client is not None:
            client.close()


if __name__ == "__main__":
    app()
