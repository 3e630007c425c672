"""Integration tests for the knowledge base HTTP API."""
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from ragvault.core.config import settings

ACME = {"X-Auth-Subject": "user|alice", "X-Auth-Org-Id": "acme"}
OTHER = {"X-Auth-Subject": "user|bob", "X-Auth-Org-Id": "other"}


@pytest.fixture
def client(knowledge_base, monkeypatch) -> Generator[TestClient, None, None]:
    """FastAPI test client wired to the in-memory knowledge base, identity from gateway headers."""
    from ragvault.main import app

    monkeypatch.setattr(settings, "TRUST_GATEWAY_HEADERS", True)
    app.state.knowledge_base = knowledge_base

    yield TestClient(app)

    app.state.knowledge_base = None


def _upload(client: TestClient, headers: dict, name: str, content: bytes, **form):
    return client.post(
        "/api/kb/files",
        files={"file": (name, content, "application/octet-stream")},
        data=form,
        headers=headers,
    )


class TestAuthorization:
    def test_missing_identity(self, client):
        response = client.get("/api/kb/query", params={"q": "refund"})
        assert response.status_code == 401
        assert response.json() == {"code": "UNAUTHORIZED", "message": "Identity not found"}

    def test_identity_without_org(self, client, faq_bytes):
        response = _upload(client, {"X-Auth-Subject": "user|alice"}, "faq.txt", faq_bytes)
        assert response.status_code == 401
        assert response.json()["message"] == "Organization not found"

    def test_gateway_headers_ignored_unless_trusted(self, client, monkeypatch):
        monkeypatch.setattr(settings, "TRUST_GATEWAY_HEADERS", False)
        response = client.get("/api/kb/files", headers=ACME)
        assert response.status_code == 401


class TestUploadAndQueryScenario:
    def test_full_lifecycle(self, client, faq_bytes, shipping_bytes):
        # New upload
        first = _upload(client, ACME, "faq.txt", faq_bytes, category="support")
        assert first.status_code == 201
        body = first.json()
        assert body["created"] is True
        acme_entry = body["entryId"]

        # The returned URL serves the original bytes to the owning tenant only
        blob = client.get(body["url"], headers=ACME)
        assert blob.status_code == 200
        assert blob.content == faq_bytes
        assert client.get(body["url"], headers=OTHER).status_code == 404
        assert client.get(body["url"]).status_code == 401

        # Identical re-upload
        again = _upload(client, ACME, "faq.txt", faq_bytes)
        assert again.status_code == 200
        assert again.json()["created"] is False
        assert again.json()["entryId"] == acme_entry

        # Same bytes, other tenant
        theirs = _upload(client, OTHER, "faq.txt", faq_bytes)
        assert theirs.status_code == 201
        other_entry = theirs.json()["entryId"]
        assert other_entry != acme_entry

        unrelated = _upload(client, ACME, "shipping.txt", shipping_bytes)
        assert unrelated.status_code == 201

        # Query ranks the relevant acme entry first and never shows the other tenant
        response = client.get("/api/kb/query", params={"q": "refund policy", "k": 5}, headers=ACME)
        assert response.status_code == 200
        results = response.json()["results"]
        assert results[0]["entryId"] == acme_entry
        assert results[0]["category"] == "support"
        assert "refund" in results[0]["snippet"].lower()
        assert other_entry not in {r["entryId"] for r in results}

        # Other tenant cannot delete it
        denied = client.delete(f"/api/kb/files/{acme_entry}", headers=OTHER)
        assert denied.status_code == 401
        assert client.get(f"/api/kb/files/{acme_entry}", headers=ACME).status_code == 200

        # Owner deletes it
        deleted = client.delete(f"/api/kb/files/{acme_entry}", headers=ACME)
        assert deleted.status_code == 204
        assert client.get(body["url"], headers=ACME).status_code == 404

        response = client.get("/api/kb/query", params={"q": "refund policy", "k": 5}, headers=ACME)
        assert acme_entry not in {r["entryId"] for r in response.json()["results"]}

        missing = client.get(f"/api/kb/files/{acme_entry}", headers=ACME)
        assert missing.status_code == 404


class TestUploadValidation:
    def test_blank_document_rejected(self, client):
        response = _upload(client, ACME, "blank.txt", b"   \n  ")
        assert response.status_code == 415
        assert response.json()["code"] == "UNSUPPORTED_FORMAT"

    def test_binary_document_rejected(self, client):
        response = _upload(client, ACME, "archive.bin", b"\x00\x01\x02\x03")
        assert response.status_code == 415

    def test_too_large(self, client, monkeypatch):
        monkeypatch.setattr(settings, "MAX_UPLOAD_MB", 0)
        response = _upload(client, ACME, "faq.txt", b"some text")
        assert response.status_code == 413
        assert response.json()["code"] == "PAYLOAD_TOO_LARGE"

    def test_declared_mime_type(self, client):
        response = _upload(client, ACME, "page", b"<html><body><p>Hello</p></body></html>", mime_type="text/html")
        assert response.status_code == 201

        entry = client.get(f"/api/kb/files/{response.json()['entryId']}", headers=ACME).json()
        assert entry["mimeType"] == "text/html"
        assert entry["metadata"]["uploadedBy"] == "acme"


class TestListing:
    def test_list_files(self, client, faq_bytes, shipping_bytes):
        _upload(client, ACME, "faq.txt", faq_bytes, category="support")
        _upload(client, ACME, "shipping.txt", shipping_bytes, category="logistics")
        _upload(client, OTHER, "faq.txt", faq_bytes)

        response = client.get("/api/kb/files", headers=ACME)
        assert response.status_code == 200
        assert {e["key"] for e in response.json()["entries"]} == {"faq.txt", "shipping.txt"}

        filtered = client.get("/api/kb/files", params={"category": "logistics"}, headers=ACME)
        assert [e["key"] for e in filtered.json()["entries"]] == ["shipping.txt"]

    def test_query_validation(self, client):
        response = client.get("/api/kb/query", params={"q": "refund", "k": 0}, headers=ACME)
        assert response.status_code == 422


class TestHealth:
    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json()["services"]["qdrant"] == "healthy"
