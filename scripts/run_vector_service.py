#!/usr/bin/env python3
"""CLI script to serve the batch vector search API with uvicorn."""

from __future__ import annotations

import typer
import uvicorn

from entitylens.config import get_settings

app = typer.Typer()


@app.command()
def main(
    host: str | None = typer.Option(None, help="Bind host (default: EL_SERVICE_HOST)"),
    port: int | None = typer.Option(None, help="Bind port (default: EL_SERVICE_PORT)"),
    workers: int = typer.Option(1, help="Number of uvicorn worker processes"),
) -> None:
    """Start the vector search service."""
    settings = get_settings()
    uvicorn.run(
        "entitylens.vector_search.service:app",
        host=host or settings.service_host,
        port=port or settings.service_port,
        workers=workers,
    )


if __name__ == "__main__":
    app()
