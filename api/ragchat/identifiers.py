import re

from psycopg import sql

from .errors import InvalidDatasetName

DATASET_NAME_RE = re.compile(r"[a-zA-Z0-9_]+")
DATASET_NAME_MAX_LEN = 50


class DatasetName(str):
    """
    Technical name of a dataset; doubles as its table name.

    Only letters, digits and underscores, at most 50 chars. Every dynamic
    table or index reference is built from one of these.
    """

    def __new__(cls, value):
        if isinstance(value, DatasetName):
            return value
        if not isinstance(value, str) or not value.strip():
            raise InvalidDatasetName("Dataset name is required.")
        if not DATASET_NAME_RE.fullmatch(value) or len(value) > DATASET_NAME_MAX_LEN:
            raise InvalidDatasetName(
                "Invalid dataset name. Use only alphanumeric, underscores, max 50 chars.",
                details=value,
            )
        return super().__new__(cls, value)

    @property
    def table(self) -> sql.Identifier:
        return sql.Identifier(str(self))

    @property
    def hnsw_index(self) -> sql.Identifier:
        return sql.Identifier(f"idx_hnsw_{self}_embedding")
