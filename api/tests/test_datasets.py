import hashlib
from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest

from ragchat.datasets import DatasetStore, chunk_digest
from ragchat.db import to_vector_literal
from ragchat.errors import InvalidDatasetName


@pytest.fixture
def conn():
    return MagicMock()


@pytest.fixture
def store(conn):
    db = MagicMock()

    @contextmanager
    def connection():
        yield conn

    db.connection = connection
    return DatasetStore(db, dimensions=3)


def test_vector_literal():
    assert to_vector_literal([0.123456789, -0.5, 1]) == "[0.123457,-0.500000,1.000000]"


def test_chunk_digest():
    assert chunk_digest("hello") == hashlib.sha256(b"hello").hexdigest()


def test_store_chunk_reports_insert(store, conn):
    conn.execute.return_value.rowcount = 1
    assert store.store_chunk("docs", "hello", [1.0, 2.0, 3.0]) is True
    params = conn.execute.call_args.args[1]
    assert params == ("hello", chunk_digest("hello"), "[1.000000,2.000000,3.000000]")


def test_store_chunk_duplicate_is_ignored(store, conn):
    conn.execute.return_value.rowcount = 0
    assert store.store_chunk("docs", "hello", [1.0, 2.0, 3.0]) is False


def test_nearest_chunks_without_cutoff(store, conn):
    conn.execute.return_value.fetchall.return_value = [("near", 0.1), ("far", 0.9)]
    assert store.nearest_chunks("docs", [0.0, 0.0, 1.0], limit=2) == ["near", "far"]
    params = conn.execute.call_args.args[1]
    assert params == {"vec": "[0.000000,0.000000,1.000000]", "limit": 2}


def test_nearest_chunks_with_cutoff(store, conn):
    conn.execute.return_value.fetchall.return_value = [("near", 0.1), ("far", 0.9)]
    assert store.nearest_chunks("docs", [0.0, 0.0, 1.0], max_distance=0.5) == ["near"]


def test_list_datasets_maps_rows(store, conn):
    conn.execute.return_value.fetchall.return_value = [(1, "docs", "Docs", None, "t0", "t1")]
    assert store.list_datasets() == [{
        "id": 1, "dataset_table_name": "docs", "display_name": "Docs",
        "description": None, "created_at": "t0", "updated_at": "t1"}]


def test_ensure_dataset_registers_metadata(store, conn):
    store.ensure_dataset("docs")
    last = conn.execute.call_args
    assert "INSERT INTO app_datasets" in last.args[0]
    assert last.args[1] == ("docs", "docs", None)
    assert conn.execute.call_count == 4


def test_bad_name_never_reaches_database(store, conn):
    with pytest.raises(InvalidDatasetName):
        store.store_chunk("docs; DROP TABLE x", "hello", [1.0])
    conn.execute.assert_not_called()
