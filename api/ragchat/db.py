# db.py: connection pool + app-level tables (app_users, app_datasets).
# datasets.py owns the per-dataset vector tables.

import logging
from contextlib import contextmanager
from typing import Iterable

from psycopg_pool import ConnectionPool

logger = logging.getLogger(__name__)

APP_SCHEMA = [
    "CREATE EXTENSION IF NOT EXISTS vector",
    """
    CREATE TABLE IF NOT EXISTS app_users (
        id SERIAL PRIMARY KEY,
        external_user_id TEXT NOT NULL UNIQUE,
        email TEXT,
        access_level TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS app_datasets (
        id SERIAL PRIMARY KEY,
        dataset_table_name TEXT NOT NULL UNIQUE,
        display_name TEXT,
        description TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
]


# to_vector_literal([0.123456789, -0.5]) -> "[0.123457,-0.500000]"
def to_vector_literal(vec: Iterable[float]) -> str:
    return "[" + ",".join(f"{x:.6f}" for x in vec) + "]"


class Database:
    """Owns the connection pool. Opened at app startup, closed at shutdown."""

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10):
        self.pool = ConnectionPool(dsn, min_size=min_size, max_size=max_size, open=False)

    def open(self):
        self.pool.open(wait=True)
        logger.info("Database pool opened.")

    def close(self):
        self.pool.close()
        logger.info("Database pool closed.")

    @contextmanager
    def connection(self):
        # commits on clean exit, rolls back on error
        with self.pool.connection() as conn:
            yield conn

    def ping(self):
        with self.connection() as conn:
            conn.execute("SELECT 1")

    def ensure_app_schema(self):
        with self.connection() as conn:
            for stmt in APP_SCHEMA:
                conn.execute(stmt)
        logger.info("Ensured app_users and app_datasets tables exist.")
