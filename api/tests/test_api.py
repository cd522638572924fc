import logging
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from ragchat.errors import CompletionError, EmbeddingError
from ragchat.llm import FALLBACK_ANSWER
from ragchat.main import Services, create_app
from ragchat.settings import Settings
from ragchat.users import AppUser

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)
ADMIN = {"X-User-Id": "user_admin", "X-User-Email": "admin@example.com"}
PENDING = {"X-User-Id": "user_new"}


def make_user(external_id, level):
    return AppUser(1, external_id, None, level, NOW, NOW)


@pytest.fixture
def services():
    users = MagicMock()
    users.get_or_create.side_effect = lambda uid, email=None: make_user(
        uid, "admin" if uid == "user_admin" else "pending_approval")
    datasets = MagicMock()
    datasets.store_chunk.return_value = True
    datasets.nearest_chunks.return_value = ["Paris is the capital of France."]
    embedder = MagicMock()
    embedder.embed.return_value = [0.1, 0.2]
    completer = MagicMock()
    completer.complete.return_value = "Paris."
    return Services(
        settings=Settings(chunk_size=10, retrieval_limit=3, allowed_access_levels=("admin",)),
        db=MagicMock(),
        users=users,
        datasets=datasets,
        embedder=embedder,
        completer=completer,
    )


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


def test_health(client, services):
    assert client.get("/health").json() == {"ok": True}
    services.db.ping.side_effect = RuntimeError("connection refused")
    assert client.get("/health").json() == {"ok": False, "error": "connection refused"}


def test_requires_user_header(client):
    resp = client.get("/api/datasets")
    assert resp.status_code == 401
    assert resp.json()["error"] == "Unauthorized. Please sign in."


def test_pending_user_is_denied(client, services):
    resp = client.get("/api/datasets", headers=PENDING)
    assert resp.status_code == 403
    services.users.get_or_create.assert_called_once_with("user_new", None)


def test_user_provisioning_failure(client, services):
    services.users.get_or_create.side_effect = RuntimeError("db down")
    resp = client.get("/api/datasets", headers=ADMIN)
    assert resp.status_code == 500
    assert resp.json()["error"] == "Error processing your user account."


def test_me_does_not_require_access(client):
    resp = client.get("/api/me", headers=PENDING)
    assert resp.status_code == 200
    assert resp.json()["accessLevel"] == "pending_approval"


def test_list_datasets(client, services):
    services.datasets.list_datasets.return_value = [
        {"id": 1, "dataset_table_name": "docs", "display_name": "docs",
         "description": None, "created_at": NOW, "updated_at": NOW}]
    resp = client.get("/api/datasets", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()[0]["dataset_table_name"] == "docs"


def test_import_text(client, services):
    resp = client.post("/api/import", headers=ADMIN,
                       data={"datasetName": "docs", "text": "aaaa\nbbbb\ncccc"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["dataset"] == "docs"
    assert body["chunksProcessedAndStored"] == 2
    assert body["chunksFailed"] == 0
    services.datasets.ensure_dataset.assert_called_once_with("docs")


def test_import_file(client, services):
    resp = client.post("/api/import", headers=ADMIN, data={"datasetName": "docs"},
                       files={"file": ("notes.md", b"hello", "text/markdown")})
    assert resp.status_code == 200
    services.datasets.store_chunk.assert_called_once_with("docs", "hello", [0.1, 0.2])


def test_import_rejects_unsupported_file(client):
    resp = client.post("/api/import", headers=ADMIN, data={"datasetName": "docs"},
                       files={"file": ("report.pdf", b"%PDF", "application/pdf")})
    assert resp.status_code == 400
    assert "Unsupported file type: pdf" in resp.json()["error"]


@pytest.mark.parametrize("form,error", [
    ({"text": "hello"}, "Dataset name is required."),
    ({"datasetName": "bad-name", "text": "hello"}, "Invalid dataset name"),
    ({"datasetName": "docs"}, "No file or text content provided."),
    ({"datasetName": "docs", "text": "   "}, "No file or text content provided."),
])
def test_import_validation(client, services, form, error):
    resp = client.post("/api/import", headers=ADMIN, data=form)
    assert resp.status_code == 400
    assert resp.json()["error"].startswith(error)
    services.datasets.ensure_dataset.assert_not_called()


def test_import_partial_failure(client, services):
    services.embedder.embed.side_effect = [EmbeddingError("boom"), [0.1, 0.2]]
    resp = client.post("/api/import", headers=ADMIN,
                       data={"datasetName": "docs", "text": "aaaa\nbbbb\ncccc"})
    assert resp.status_code == 200
    assert resp.json()["chunksProcessedAndStored"] == 1
    assert resp.json()["chunksFailed"] == 1


def test_import_total_failure(client, services):
    services.embedder.embed.side_effect = EmbeddingError("boom")
    resp = client.post("/api/import", headers=ADMIN, data={"datasetName": "docs", "text": "hello"})
    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to process and store any content."


def test_chat(client, services):
    resp = client.post("/api/chat", headers=ADMIN, json={
        "query": "What is the capital of France?",
        "datasetName": "docs",
        "history": [{"sender": "user", "text": "Hi"}],
    })
    assert resp.status_code == 200
    assert resp.json() == {"answer": "Paris.", "datasetUsed": "docs"}
    services.datasets.nearest_chunks.assert_called_once_with(
        "docs", [0.1, 0.2], limit=3, max_distance=None)
    prompt = services.completer.complete.call_args.args[0]
    assert "Paris is the capital of France." in prompt
    assert "User: Hi" in prompt


def test_chat_requires_query(client):
    resp = client.post("/api/chat", headers=ADMIN, json={"query": " ", "datasetName": "docs"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Query is required."


def test_chat_invalid_json(client):
    resp = client.post("/api/chat", headers={**ADMIN, "Content-Type": "application/json"},
                       content=b"{not json")
    assert resp.status_code == 400


def test_chat_embedding_failure(client, services):
    services.embedder.embed.side_effect = EmbeddingError("boom", details="quota")
    resp = client.post("/api/chat", headers=ADMIN, json={"query": "q", "datasetName": "docs"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to process query embedding.", "details": "quota"}


def test_chat_retrieval_failure(client, services):
    services.datasets.nearest_chunks.side_effect = RuntimeError("relation does not exist")
    resp = client.post("/api/chat", headers=ADMIN, json={"query": "q", "datasetName": "docs"})
    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to retrieve context from database."


def test_chat_completion_failure_uses_fallback_answer(client, services):
    services.completer.complete.side_effect = CompletionError("OpenAI API error.", details="503")
    resp = client.post("/api/chat", headers=ADMIN, json={"query": "q", "datasetName": "docs"})
    assert resp.status_code == 200
    assert resp.json()["answer"].startswith("Sorry, there was an error communicating with the AI.")


def test_chat_empty_completion(client, services):
    services.completer.complete.return_value = None
    resp = client.post("/api/chat", headers=ADMIN, json={"query": "q", "datasetName": "docs"})
    assert resp.json()["answer"] == FALLBACK_ANSWER


def test_import_rejects_dataset_name_with_trailing_newline(client, services):
    resp = client.post("/api/import", headers=ADMIN, data={"datasetName": "docs\n", "text": "hello"})
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Invalid dataset name")
    services.datasets.ensure_dataset.assert_not_called()


def test_chat_logs_query_length_not_text(client, caplog):
    with caplog.at_level(logging.DEBUG, logger="ragchat.main"):
        client.post("/api/chat", headers=ADMIN,
                    json={"query": "my secret question", "datasetName": "docs"})
    assert "query of 18 chars" in caplog.text
    assert "my secret question" not in caplog.text
