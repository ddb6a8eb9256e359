"""FastAPI batch vector search service.

Endpoints:
    GET  /health       → liveness plus index status
    POST /load_index   → load a saved index directory into memory
    POST /bulk_search  → k-nearest neighbours for a batch of query vectors

Usage:
    uvicorn entitylens.vector_search.service:app --host 0.0.0.0 --port 8080
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import numpy as np
import structlog
from fastapi import FastAPI, HTTPException, Request, status

from entitylens.config import Settings
from entitylens.vector_search.index import IndexNotLoadedError, VectorIndex
from entitylens.vector_search.models import (
    BulkSearchRequest,
    BulkSearchResponse,
    HealthResponse,
    LoadIndexRequest,
    LoadIndexResponse,
    Neighbor,
    QueryResult,
)

logger = structlog.get_logger(__name__)


def _error_detail(exc: Exception) -> dict[str, str]:
    return {"error": str(exc), "error_type": type(exc).__name__}


def _current_index(request: Request) -> VectorIndex:
    index: VectorIndex | None = request.app.state.index
    if index is None or not index.is_loaded:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=_error_detail(IndexNotLoadedError("no vector index is loaded")),
        )
    return index


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the service; an index already saved under ``settings.index_dir`` is loaded at startup."""
    if settings is None:
        from entitylens.config import get_settings
        settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.index = None
        if (settings.index_dir / "meta.json").exists():
            app.state.index = VectorIndex.load(settings.index_dir)
        logger.info(
            "vector_service_started",
            index_loaded=app.state.index is not None,
            index_dir=str(settings.index_dir),
        )
        yield
        logger.info("vector_service_stopped")

    app = FastAPI(
        title="entitylens vector search",
        description="Batch approximate-nearest-neighbour search over record embeddings",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.index = None

    @app.get("/health", response_model=HealthResponse)
    def health(request: Request) -> HealthResponse:
        index: VectorIndex | None = request.app.state.index
        if index is None or not index.is_loaded:
            return HealthResponse(index_loaded=False)
        return HealthResponse(index_loaded=True, index_size=len(index), dim=index.dim)

    @app.post("/load_index", response_model=LoadIndexResponse)
    def load_index(body: LoadIndexRequest, request: Request) -> LoadIndexResponse:
        try:
            index = VectorIndex.load(Path(body.path))
        except FileNotFoundError as exc:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail=_error_detail(exc)
            ) from exc
        except Exception as exc:
            logger.exception("load_index_failed", path=body.path)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=_error_detail(exc)
            ) from exc

        request.app.state.index = index
        return LoadIndexResponse(
            loaded=True, index_size=len(index), dim=index.dim, index_type=index.index_type
        )

    @app.post("/bulk_search", response_model=BulkSearchResponse)
    def bulk_search(body: BulkSearchRequest, request: Request) -> BulkSearchResponse:
        index = _current_index(request)
        started = time.perf_counter()

        if not body.ids:
            return BulkSearchResponse(results=[], k=body.k, elapsed_ms=0.0)
        if any(len(v) != index.dim for v in body.vectors):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=_error_detail(
                    ValueError(f"every vector must have dimension {index.dim}")
                ),
            )

        try:
            matrix = np.asarray(body.vectors, dtype=np.float32)
            neighbors = index.search_neighbors(body.ids, matrix, body.k)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=_error_detail(exc)
            ) from exc
        except Exception as exc:
            logger.exception("bulk_search_failed", queries=len(body.ids))
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=_error_detail(exc)
            ) from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("bulk_search", queries=len(body.ids), k=body.k, elapsed_ms=round(elapsed_ms, 1))
        return BulkSearchResponse(
            results=[
                QueryResult(id=qid, neighbors=[Neighbor(id=n, score=s) for n, s in row])
                for qid, row in zip(body.ids, neighbors)
            ],
            k=body.k,
            elapsed_ms=elapsed_ms,
        )

    return app


app = create_app()
