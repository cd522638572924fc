import hashlib
import logging
from typing import Dict, List, Optional

from psycopg import sql

from .db import Database, to_vector_literal
from .identifiers import DatasetName

logger = logging.getLogger(__name__)


def chunk_digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class DatasetStore:
    """One pgvector table per dataset, plus its row in app_datasets."""

    def __init__(self, db: Database, dimensions: int):
        self.db = db
        self.dimensions = dimensions

    def ensure_dataset(self, name: DatasetName, display_name: Optional[str] = None,
                       description: Optional[str] = None):
        name = DatasetName(name)
        create_table = sql.SQL("""
            CREATE TABLE IF NOT EXISTS {table} (
                id SERIAL PRIMARY KEY,
                text_chunk TEXT NOT NULL,
                chunk_sha256 CHAR(64) NOT NULL UNIQUE,
                embedding VECTOR({dim})
            )
        """).format(table=name.table, dim=sql.Literal(self.dimensions))
        create_index = sql.SQL(
            "CREATE INDEX IF NOT EXISTS {index} ON {table} USING hnsw (embedding vector_l2_ops)"
        ).format(index=name.hnsw_index, table=name.table)

        with self.db.connection() as conn:
            conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
            conn.execute(create_table)
            logger.info('Ensured table "%s" exists.', name)
            conn.execute(create_index)
            logger.info('Ensured HNSW index on table "%s" exists.', name)
            self._register(conn, name, display_name or name, description)

    def _register(self, conn, name: DatasetName, display_name: str, description: Optional[str]):
        conn.execute(
            """
            INSERT INTO app_datasets (dataset_table_name, display_name, description)
            VALUES (%s, %s, %s)
            ON CONFLICT (dataset_table_name) DO UPDATE
            SET updated_at = CURRENT_TIMESTAMP
            """,
            (str(name), display_name, description),
        )
        logger.info('Dataset "%s" registered/updated in app_datasets.', name)

    def list_datasets(self) -> List[Dict]:
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, dataset_table_name, display_name, description, created_at, updated_at
                FROM app_datasets
                ORDER BY display_name ASC, created_at DESC
                """
            ).fetchall()
        return [
            {"id": r[0], "dataset_table_name": r[1], "display_name": r[2],
             "description": r[3], "created_at": r[4], "updated_at": r[5]}
            for r in rows
        ]

    def store_chunk(self, name: DatasetName, text: str, embedding: List[float]) -> bool:
        """Insert one chunk. Returns False when the same text was already stored."""
        name = DatasetName(name)
        query = sql.SQL("""
            INSERT INTO {table} (text_chunk, chunk_sha256, embedding)
            VALUES (%s, %s, %s::vector)
            ON CONFLICT (chunk_sha256) DO NOTHING
        """).format(table=name.table)
        with self.db.connection() as conn:
            cur = conn.execute(query, (text, chunk_digest(text), to_vector_literal(embedding)))
            return cur.rowcount > 0

    # L2 distance `<->` matches the vector_l2_ops HNSW index
    def nearest_chunks(self, name: DatasetName, embedding: List[float], limit: int = 3,
                       max_distance: Optional[float] = None) -> List[str]:
        name = DatasetName(name)
        vec_literal = to_vector_literal(embedding)
        query = sql.SQL("""
            SELECT text_chunk, embedding <-> %(vec)s::vector AS distance
            FROM {table}
            ORDER BY embedding <-> %(vec)s::vector
            LIMIT %(limit)s
        """).format(table=name.table)
        with self.db.connection() as conn:
            rows = conn.execute(query, {"vec": vec_literal, "limit": limit}).fetchall()
        if max_distance is not None:
            rows = [r for r in rows if r[1] <= max_distance]
        return [r[0] for r in rows]
