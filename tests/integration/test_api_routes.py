"""Integration tests for the HTTP API and the status WebSocket using TestClient.

The app is built by ``create_app`` with real components on a temporary
SQLite database and the offline hashing embedder.
"""

from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from tutorkb.config.settings import Settings
from tutorkb.main import create_app

_TERMINAL = {"completed", "failed"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fractions_text(length: int = 2400) -> str:
    words = "adding fractions needs a common denominator before the numerators".split()
    text = " ".join(words * (length // 40 + 2))[:length]
    return text[:-1] + "x" if text.endswith(" ") else text


def _wait_for_terminal(client: TestClient, item_id: str, timeout: float = 10.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"/api/v1/items/{item_id}/status").json()
        if body["status"] in _TERMINAL or time.monotonic() > deadline:
            return body
        time.sleep(0.05)


def _upload(client: TestClient, name: str, text: str, content_type: str = "text/plain", **form):
    return client.post(
        "/api/v1/documents",
        files={"file": (name, text.encode("utf-8"), content_type)},
        data=form,
    )


@pytest.fixture
def client(tmp_path):
    settings = Settings(
        _env_file=None,
        database_path=str(tmp_path / "api.db"),
        storage_dir=str(tmp_path / "uploads"),
        embedding_provider="hashing",
        embedding_dimension=64,
        max_upload_bytes=64 * 1024,
    )
    with TestClient(create_app(settings)) as test_client:
        yield test_client


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class TestDocumentUpload:
    def test_upload_is_accepted_and_ingested(self, client) -> None:
        response = _upload(client, "fractions.txt", _fractions_text(), title="Fractions review")

        assert response.status_code == 202
        body = response.json()
        assert body["kind"] == "document"
        assert body["title"] == "Fractions review"
        assert body["file_name"] == "fractions.txt"

        status = _wait_for_terminal(client, body["id"])
        assert status["status"] == "completed"
        assert status["chunk_count"] == 3

    def test_unsupported_type_is_415(self, client) -> None:
        response = client.post(
            "/api/v1/documents",
            files={"file": ("slides.pptx", b"PK\x03\x04", "application/vnd.ms-powerpoint")},
        )
        assert response.status_code == 415
        assert response.json()["error"] == "UnsupportedFormatError"

    def test_oversized_upload_is_413(self, client) -> None:
        response = _upload(client, "huge.txt", "x" * (64 * 1024 + 10))
        assert response.status_code == 413

    def test_blank_document_fails_with_empty_content(self, client) -> None:
        item_id = _upload(client, "blank.txt", "   \n ").json()["id"]
        status = _wait_for_terminal(client, item_id)
        assert status["status"] == "failed"
        assert status["error_kind"] == "EmptyContent"
        assert status["chunk_count"] == 0


class TestBulkUpload:
    def test_partial_report(self, client) -> None:
        files = [
            ("files", ("a.txt", _fractions_text(500).encode(), "text/plain")),
            ("files", ("b.xyz", b"???", "application/octet-stream")),
            ("files", ("c.md", _fractions_text(1500).encode(), "text/markdown")),
        ]
        response = client.post("/api/v1/documents/bulk", files=files)

        assert response.status_code == 200
        body = response.json()
        assert body["outcome"] == "partial"
        assert body["title"] == "Partial upload complete"
        assert body["attempted"] == ["a.txt", "b.xyz", "c.md"]
        assert [s["file_name"] for s in body["succeeded"]] == ["a.txt", "c.md"]
        assert body["failed"][0]["error_kind"] == "UnsupportedFormat"


class TestVideoSubmission:
    def test_caption_upload(self, client) -> None:
        srt = "1\n00:00:00,000 --> 00:00:03,000\nMultiply the numerators.\n"
        response = client.post(
            "/api/v1/videos",
            data={"title": "Multiplying fractions"},
            files={"caption": ("lesson.srt", srt.encode(), "application/x-subrip")},
        )

        assert response.status_code == 202
        body = response.json()
        assert body["kind"] == "video"
        assert body["caption_file_name"] == "lesson.srt"
        assert _wait_for_terminal(client, body["id"])["status"] == "completed"

    def test_url_or_caption_required(self, client) -> None:
        response = client.post("/api/v1/videos", data={"title": "Nothing"})
        assert response.status_code == 422

    def test_non_caption_file_is_415(self, client) -> None:
        response = client.post(
            "/api/v1/videos",
            data={"title": "Wrong file"},
            files={"caption": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 415

    def test_unsupported_platform_fails_at_ingestion(self, client) -> None:
        response = client.post(
            "/api/v1/videos",
            data={"title": "Vimeo lecture", "video_url": "https://vimeo.com/123456"},
        )
        assert response.status_code == 202
        assert response.json()["platform"] == "vimeo"

        status = _wait_for_terminal(client, response.json()["id"])
        assert status["status"] == "failed"
        assert status["error_kind"] == "TranscriptUnavailable"


# ---------------------------------------------------------------------------
# Items and admin operations
# ---------------------------------------------------------------------------


class TestItems:
    def test_list_recent_and_detail(self, client) -> None:
        first = _upload(client, "one.txt", _fractions_text(300)).json()["id"]
        second = _upload(client, "two.txt", _fractions_text(300)).json()["id"]
        _wait_for_terminal(client, first)
        _wait_for_terminal(client, second)

        listed = client.get("/api/v1/items", params={"kind": "document"}).json()
        assert listed["total"] == 2
        assert {i["id"] for i in listed["items"]} == {first, second}

        recent = client.get("/api/v1/items/recent", params={"limit": 1}).json()
        assert recent["total"] == 1

        detail = client.get(f"/api/v1/items/{first}").json()
        assert detail["title"] == "one"

        filtered = client.get("/api/v1/items", params={"status": "failed"}).json()
        assert filtered["total"] == 0

    def test_unknown_item_is_404(self, client) -> None:
        assert client.get("/api/v1/items/nope").status_code == 404
        response = client.get("/api/v1/items/nope/status")
        assert response.status_code == 404
        assert response.json()["error"] == "ItemNotFoundError"

    def test_reprocess_keeps_chunk_count(self, client) -> None:
        item_id = _upload(client, "f.txt", _fractions_text()).json()["id"]
        assert _wait_for_terminal(client, item_id)["chunk_count"] == 3

        response = client.post(f"/api/v1/items/{item_id}/reprocess")
        assert response.status_code == 202
        assert response.json()["action"] == "reprocess"

        status = _wait_for_terminal(client, item_id)
        assert status["status"] == "completed"
        assert status["chunk_count"] == 3
        assert client.get("/api/v1/corpus/stats").json()["total_chunks"] == 3

    def test_cancel_when_not_running_is_409(self, client) -> None:
        item_id = _upload(client, "f.txt", _fractions_text(300)).json()["id"]
        _wait_for_terminal(client, item_id)

        response = client.post(f"/api/v1/items/{item_id}/cancel", json={"reason": "too slow"})
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransitionError"

    def test_delete_removes_chunks(self, client) -> None:
        item_id = _upload(client, "f.txt", _fractions_text()).json()["id"]
        _wait_for_terminal(client, item_id)

        response = client.delete(f"/api/v1/items/{item_id}")
        assert response.status_code == 200
        assert client.get(f"/api/v1/items/{item_id}").status_code == 404
        assert client.get("/api/v1/corpus/stats").json()["total_chunks"] == 0


class TestTags:
    def test_tag_lifecycle(self, client) -> None:
        created = client.post("/api/v1/tags", json={"name": "Grade 5", "color": "#112233"})
        assert created.status_code == 201
        tag = created.json()

        duplicate = client.post("/api/v1/tags", json={"name": "Grade 5"})
        assert duplicate.status_code == 409

        item_id = _upload(client, "f.txt", _fractions_text(300)).json()["id"]
        tagged = client.put(f"/api/v1/items/{item_id}/tags", json={"tag_ids": [tag["id"]]})
        assert tagged.status_code == 200
        assert [t["name"] for t in tagged.json()] == ["Grade 5"]
        assert client.get(f"/api/v1/items/{item_id}").json()["tags"][0]["id"] == tag["id"]

        assert client.delete(f"/api/v1/tags/{tag['id']}").status_code == 204
        assert client.get("/api/v1/tags").json() == []
        assert client.delete(f"/api/v1/tags/{tag['id']}").status_code == 404


# ---------------------------------------------------------------------------
# Retrieval and system endpoints
# ---------------------------------------------------------------------------


class TestRetrieval:
    def test_retrieve_returns_context(self, client) -> None:
        item_id = _upload(client, "fractions.txt", _fractions_text(), title="Fractions").json()["id"]
        _wait_for_terminal(client, item_id)

        response = client.post(
            "/api/v1/retrieve",
            json={"query": "common denominator for adding fractions", "threshold": 0.1, "limit": 2},
        )

        assert response.status_code == 200
        body = response.json()
        assert 1 <= len(body["results"]) <= 2
        assert body["results"][0]["source_id"] == item_id
        assert body["context"].startswith("[Source: Fractions (document), chunk ")

    def test_empty_corpus_is_not_an_error(self, client) -> None:
        body = client.post("/api/v1/retrieve", json={"query": "anything"}).json()
        assert body["results"] == []
        assert body["context"] == ""

    def test_corpus_stats(self, client) -> None:
        item_id = _upload(client, "f.txt", _fractions_text()).json()["id"]
        _wait_for_terminal(client, item_id)

        stats = client.get("/api/v1/corpus/stats").json()
        assert stats["total_chunks"] == 3
        assert stats["total_sources"] == 1
        assert stats["chunks_by_kind"] == {"document": 3}
        assert stats["items_by_status"] == {"completed": 1}
        assert stats["embedding_dimension"] == 64

    def test_health(self, client) -> None:
        body = client.get("/api/v1/health").json()
        assert body["status"] == "healthy"
        assert body["providers"]["embedding_provider"] == "hashing_embedding"


class TestStatusWebSocket:
    def test_first_message_is_current_snapshot(self, client) -> None:
        item_id = _upload(client, "f.txt", _fractions_text(300)).json()["id"]
        _wait_for_terminal(client, item_id)

        with client.websocket_connect(f"/ws/items/{item_id}/status") as ws:
            message = ws.receive_json()

        assert message["item_id"] == item_id
        assert message["status"] == "completed"
        assert message["chunk_count"] == 1

    def test_unknown_item(self, client) -> None:
        with client.websocket_connect("/ws/items/missing/status") as ws:
            message = ws.receive_json()
        assert message["error"] == "ItemNotFoundError"
