"""PostgreSQL warehouse connection via psycopg3."""

from collections.abc import Iterator

import psycopg
from psycopg.rows import dict_row

from entitylens.config import Settings


def get_connection(settings: Settings | None = None) -> psycopg.Connection:
    """Open a synchronous connection to the warehouse with dict row factory."""
    if settings is None:
        from entitylens.config import get_settings
        settings = get_settings()

    if not settings.database_url:
        msg = "EL_DATABASE_URL is not set"
        raise ValueError(msg)

    return psycopg.connect(settings.database_url, row_factory=dict_row)


def execute_query(conn: psycopg.Connection, query: str, params: tuple = ()) -> list[dict]:
    """Execute a query and return all rows as dicts."""
    with conn.cursor() as cur:
        cur.execute(query, params)
        if cur.description:
            return cur.fetchall()
        return []


def execute_many(conn: psycopg.Connection, query: str, params_list: list[tuple]) -> int:
    """Execute a parameterised query for each set of params. Returns row count."""
    if not params_list:
        return 0
    with conn.cursor() as cur:
        cur.executemany(query, params_list)
        return cur.rowcount


def stream_query(
    conn: psycopg.Connection,
    query: str,
    params: tuple = (),
    *,
    chunk_size: int = 10_000,
) -> Iterator[list[dict]]:
    """Yield query results in chunks using a named (server-side) cursor.

    Keeps memory flat when reading the full embeddings table.
    """
    with conn.cursor(name="entitylens_stream") as cur:
        cur.execute(query, params)
        while True:
            rows = cur.fetchmany(chunk_size)
            if not rows:
                break
            yield rows
