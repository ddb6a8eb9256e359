"""Pydantic request/response models for the vector search service."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class HealthResponse(BaseModel):
    status: str = "ok"
    index_loaded: bool
    index_size: int = 0
    dim: int | None = None


class LoadIndexRequest(BaseModel):
    path: str = Field(..., min_length=1, description="Directory written by VectorIndex.save")


class LoadIndexResponse(BaseModel):
    loaded: bool
    index_size: int
    dim: int
    index_type: str


class BulkSearchRequest(BaseModel):
    """A batch of query vectors, each tagged with the record id it embeds.

    The query id is excluded from its own neighbour list.
    """

    ids: list[str]
    vectors: list[list[float]]
    k: int = Field(default=10, ge=1, le=1000)

    @model_validator(mode="after")
    def _check_lengths(self) -> BulkSearchRequest:
        if len(self.ids) != len(self.vectors):
            msg = f"ids ({len(self.ids)}) and vectors ({len(self.vectors)}) differ in length"
            raise ValueError(msg)
        return self


class Neighbor(BaseModel):
    id: str
    score: float


class QueryResult(BaseModel):
    id: str
    neighbors: list[Neighbor]


class BulkSearchResponse(BaseModel):
    results: list[QueryResult]
    k: int
    elapsed_ms: float
