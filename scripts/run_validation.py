#!/usr/bin/env python3
"""CLI script to validate a resolution run against labelled pairs."""

from __future__ import annotations

from pathlib import Path

import structlog
import typer

from entitylens.config import get_settings
from entitylens.db import get_connection
from entitylens.store import get_run, load_entity_clusters
from entitylens.validation import (
    all_slas_met,
    compute_pairwise_metrics,
    evaluate_slas,
    generate_validation_report,
    read_ground_truth_csv,
)

logger = structlog.get_logger(__name__)
app = typer.Typer()


@app.command()
def main(
    run_id: str = typer.Argument(help="Resolution run to validate"),
    ground_truth: Path = typer.Argument(help="CSV of left_id,right_id,same_entity"),
) -> None:
    """Print precision/recall and SLA verdicts; exit 1 on an SLA breach."""
    settings = get_settings()
    conn = get_connection(settings)

    try:
        run = get_run(conn, run_id)
        if run is None:
            logger.error("run_not_found", run_id=run_id)
            raise typer.Exit(code=1)
        assignments = load_entity_clusters(conn, run_id)
    finally:
        conn.close()

    pairs = read_ground_truth_csv(ground_truth)
    metrics = compute_pairwise_metrics(assignments, pairs)
    elapsed = float((run.get("stats") or {}).get("elapsed_seconds", 0.0))
    slas = evaluate_slas(
        precision=metrics["precision"],
        recall=metrics["recall"],
        processing_seconds=elapsed,
    )
    typer.echo(generate_validation_report(metrics, slas))
    logger.info("validation_complete", run_id=run_id, **metrics)

    if not all_slas_met(slas):
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
