"""Clients for batch nearest-neighbour search.

``VectorSearchClient`` talks to the HTTP service; ``LocalSearcher`` runs
the same contract against an in-process index.  Candidate generation
accepts either.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Protocol

import httpx
import numpy as np
import structlog

from entitylens.vector_search.index import VectorIndex

logger = structlog.get_logger(__name__)

Neighbors = list[list[tuple[str, float]]]


class Searcher(Protocol):
    def bulk_search(self, ids: Sequence[str], vectors: np.ndarray, k: int) -> Neighbors: ...


class VectorServiceError(RuntimeError):
    """The vector search service failed after all retries."""


class LocalSearcher:
    """Search an in-process :class:`VectorIndex`."""

    def __init__(self, index: VectorIndex) -> None:
        self.index = index

    def bulk_search(self, ids: Sequence[str], vectors: np.ndarray, k: int) -> Neighbors:
        return self.index.search_neighbors(list(ids), vectors, k)


class VectorSearchClient:
    """HTTP client for the vector search service.

    Large query sets are split into requests of *request_batch_size*
    vectors.  Transport errors and 5xx responses are retried with linear
    backoff; 4xx responses fail immediately.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 120.0,
        request_batch_size: int = 5_000,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if request_batch_size <= 0:
            msg = f"request_batch_size must be positive, got {request_batch_size}"
            raise ValueError(msg)
        self.request_batch_size = request_batch_size
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> VectorSearchClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                resp = self._client.request(method, path, json=payload)
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code < 500:
                    raise VectorServiceError(
                        f"{method} {path} failed with {exc.response.status_code}: "
                        f"{exc.response.text}"
                    ) from exc
                last_error = exc
            except httpx.TransportError as exc:
                last_error = exc

            logger.warning(
                "vector_service_retry",
                path=path,
                attempt=attempt,
                max_retries=self.max_retries,
                error=str(last_error),
            )
            if attempt < self.max_retries:
                time.sleep(self.backoff_seconds * attempt)

        raise VectorServiceError(
            f"{method} {path} failed after {self.max_retries} attempts"
        ) from last_error

    def health(self) -> dict:
        return self._request("GET", "/health")

    def load_index(self, path: str) -> dict:
        """Ask the service to load the index saved at *path* (a path on the service host)."""
        return self._request("POST", "/load_index", {"path": path})

    def bulk_search(self, ids: Sequence[str], vectors: np.ndarray, k: int) -> Neighbors:
        """Return neighbours for every query, in query order.

        The service answers in request order, so results are matched to
        queries by position; repeated query ids each keep their own row.
        """
        if len(ids) != len(vectors):
            msg = f"{len(ids)} ids for {len(vectors)} vectors"
            raise ValueError(msg)

        results: Neighbors = []
        for start in range(0, len(ids), self.request_batch_size):
            chunk_ids = [str(i) for i in ids[start : start + self.request_batch_size]]
            chunk_vectors = np.asarray(vectors[start : start + self.request_batch_size])
            body = self._request(
                "POST",
                "/bulk_search",
                {"ids": chunk_ids, "vectors": chunk_vectors.tolist(), "k": k},
            )
            returned = body["results"]
            if len(returned) != len(chunk_ids):
                msg = f"expected {len(chunk_ids)} results from /bulk_search, got {len(returned)}"
                raise VectorServiceError(msg)
            for result in returned:
                results.append([(n["id"], float(n["score"])) for n in result["neighbors"]])
        return results
