import pytest
from psycopg import sql

from ragchat.errors import InvalidDatasetName
from ragchat.identifiers import DatasetName


@pytest.mark.parametrize("value", ["docs", "Team_Docs_2024", "a" * 50, "_"])
def test_valid_names(value):
    name = DatasetName(value)
    assert name == value
    assert isinstance(name, str)


@pytest.mark.parametrize("value", [
    "a" * 51,
    "my-docs",
    "docs; DROP TABLE app_users",
    "name with space",
    "ünïcode",
    "docs\n",
    "\ndocs",
])
def test_invalid_names(value):
    with pytest.raises(InvalidDatasetName) as exc:
        DatasetName(value)
    assert exc.value.status_code == 400


@pytest.mark.parametrize("value", ["", "   ", None])
def test_missing_name(value):
    with pytest.raises(InvalidDatasetName, match="required"):
        DatasetName(value)


def test_invalid_name_is_a_value_error():
    with pytest.raises(ValueError):
        DatasetName("bad-name")


def test_wrapping_twice_returns_same_value():
    name = DatasetName("docs")
    assert DatasetName(name) is name


def test_identifiers():
    name = DatasetName("docs")
    assert name.table == sql.Identifier("docs")
    assert name.hnsw_index == sql.Identifier("idx_hnsw_docs_embedding")
