"""Application settings loaded from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables prefixed with EL_."""

    # Warehouse
    database_url: str = ""

    # Vector search service
    vector_service_url: str = "http://127.0.0.1:8080"
    service_host: str = "0.0.0.0"
    service_port: int = 8080
    http_timeout: float = 120.0
    max_retries: int = 3
    request_batch_size: int = 5_000

    # Embeddings / index
    index_dir: Path = Path("data/index")
    checkpoint_dir: Path = Path("data/checkpoints")
    embedding_dim: int = 256
    ngram_sizes: tuple[int, ...] = (2, 3)
    index_type: str = "flat"
    hnsw_m: int = 32
    ivf_nlist: int = 1024
    ivf_nprobe: int = 16

    # Candidate generation
    search_k: int = 10
    similarity_floor: float = 0.75
    search_batch_size: int = 50_000

    # Scoring / clustering
    match_threshold: float = 0.85
    review_threshold: float = 0.65
    max_cluster_depth: int = 10

    model_config = {"env_file": ".env", "env_prefix": "EL_"}


def get_settings() -> Settings:
    """Return a Settings instance built from the current environment."""
    return Settings()
