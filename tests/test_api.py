"""
Tests for Publication Backend API endpoints.

Tests cover:
- Health check
- Bearer-token authentication
- Upload (created, overwritten, superseded, validation)
- Public publication links
- Status and audit log introspection
- Response headers added by middleware
"""

from io import BytesIO

import pytest
from fastapi.testclient import TestClient

from publication_backend.configuration import load_settings
from publication_backend.exceptions import StorageError
from publication_backend.main import create_app


def upload(client, headers, file_id, document_id, data, content_type="application/pdf", **extra):
    return client.post(
        "/api/upload",
        files={"file": ("form.pdf", BytesIO(data), content_type)},
        data={"file_id": file_id, "document_id": document_id, **extra},
        headers=headers,
    )


class TestHealthCheck:
    """Tests for the /healthz endpoint."""

    def test_health_check_returns_ok(self, client):
        """Health check should return status ok."""
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_security_headers_present(self, client):
        response = client.get("/healthz")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "SAMEORIGIN"


class TestAuthentication:
    """Tests for the bearer-token dependency."""

    def test_upload_without_header(self, client, sample_pdf):
        response = upload(client, {}, "f1", "d1", sample_pdf)
        assert response.status_code == 401
        assert response.json()["detail"] == "Missing or invalid authorization header"

    def test_upload_with_wrong_scheme(self, client, sample_pdf):
        response = upload(client, {"Authorization": "Basic abc"}, "f1", "d1", sample_pdf)
        assert response.status_code == 401

    def test_upload_with_wrong_token(self, client, sample_pdf):
        response = upload(client, {"Authorization": "Bearer nope"}, "f1", "d1", sample_pdf)
        assert response.status_code == 403

    def test_rejected_when_no_token_configured(self, settings_overrides, auth_headers):
        settings = load_settings({**settings_overrides, "auth": {"token": None}})
        client = TestClient(create_app(settings))
        response = client.get("/api/logs", headers=auth_headers)
        assert response.status_code == 403

    def test_public_link_needs_no_token(self, client):
        assert client.get("/publications/anything").status_code == 404


class TestUpload:
    """Tests for POST /api/upload."""

    def test_first_upload_created(self, client, auth_headers, sample_pdf):
        response = upload(client, auth_headers, "f1", "d1", sample_pdf)

        assert response.status_code == 200
        data = response.json()
        assert data["outcome"] == "created"
        assert data["message"] == "file saved (pending QR)"
        assert data["file_id"] == "f1"
        assert data["link"] == "http://testserver/publications/f1"
        assert data["status"] == "pending"
        assert data["file_type"] == "actual"

    def test_reupload_overwrites_with_same_link(self, client, auth_headers, sample_pdf, stamped_pdf):
        first = upload(client, auth_headers, "f1", "d1", sample_pdf).json()
        second = upload(client, auth_headers, "f1", "d1", stamped_pdf).json()

        assert second["outcome"] == "overwritten"
        assert second["message"] == "file overwritten"
        assert second["status"] == "fulfilled"
        assert second["link"] == first["link"]
        assert client.get("/publications/f1").content == stamped_pdf

    def test_new_file_id_supersedes(self, client, auth_headers, sample_pdf):
        upload(client, auth_headers, "f1", "d1", sample_pdf)
        response = upload(client, auth_headers, "f2", "d1", sample_pdf)

        assert response.json()["outcome"] == "superseded"
        assert client.get("/publications/f1").status_code == 410
        assert client.get("/publications/f2").status_code == 200

    def test_configured_base_url_used_for_link(self, settings_overrides, auth_headers, sample_pdf):
        settings = load_settings({**settings_overrides, "links": {"public_base_url": "https://forms.example.com"}})
        client = TestClient(create_app(settings))
        response = upload(client, auth_headers, "f1", "d1", sample_pdf)
        assert response.json()["link"] == "https://forms.example.com/publications/f1"

    def test_mime_type_field_is_stored(self, client, auth_headers, sample_pdf):
        upload(client, auth_headers, "f1", "d1", sample_pdf, mime_type="application/x-pdf")

        response = client.get("/api/status/f1", headers=auth_headers)
        assert response.json()["mime_type"] == "application/x-pdf"

    @pytest.mark.parametrize("file_id, document_id", [("", "d1"), ("f1", "")])
    def test_missing_identifiers(self, client, auth_headers, sample_pdf, file_id, document_id):
        response = upload(client, auth_headers, file_id, document_id, sample_pdf)
        assert response.status_code == 400
        assert "required" in response.json()["detail"]

    def test_missing_file(self, client, auth_headers):
        response = client.post(
            "/api/upload",
            data={"file_id": "f1", "document_id": "d1"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_empty_file_is_invalid_request(self, client, auth_headers):
        response = upload(client, auth_headers, "f1", "d1", b"")
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_unsafe_file_id_is_invalid_request(self, client, auth_headers, sample_pdf):
        response = upload(client, auth_headers, "..", "d1", sample_pdf)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_non_pdf_rejected(self, client, auth_headers):
        response = upload(client, auth_headers, "f1", "d1", b"not a pdf", content_type="text/plain")
        assert response.status_code == 415
        assert "PDF" in response.json()["detail"]

    def test_file_too_large(self, settings_overrides, auth_headers, sample_pdf):
        settings = load_settings({**settings_overrides, "upload": {"max_file_size": 16}})
        client = TestClient(create_app(settings))
        response = upload(client, auth_headers, "f1", "d1", sample_pdf)
        assert response.status_code == 413

    def test_storage_failure_is_reported(self, app, client, auth_headers, sample_pdf, monkeypatch):
        def broken_transaction():
            raise StorageError("disk I/O error")

        monkeypatch.setattr(app.state.lifecycle.store, "transaction", broken_transaction)

        response = upload(client, auth_headers, "f1", "d1", sample_pdf)
        assert response.status_code == 500
        assert response.json() == {"error": "storage_error", "detail": "disk I/O error"}


class TestPublications:
    """Tests for GET /publications/{file_id}."""

    def test_serves_content_with_mime_type(self, client, auth_headers, sample_pdf):
        upload(client, auth_headers, "f1", "d1", sample_pdf)

        response = client.get("/publications/f1")

        assert response.status_code == 200
        assert response.content == sample_pdf
        assert response.headers["content-type"] == "application/pdf"

    def test_unknown_publication(self, client):
        response = client.get("/publications/missing")
        assert response.status_code == 404
        assert response.text == "Printable form not found"

    def test_missing_content_answers_gone(self, client, auth_headers, content_root, sample_pdf):
        upload(client, auth_headers, "f1", "d1", sample_pdf)
        (content_root / "f1.pdf").unlink()

        first = client.get("/publications/f1")
        second = client.get("/publications/f1")

        assert first.status_code == 410
        assert first.text == "The printed form is not relevant"
        assert second.status_code == 410
        status = client.get("/api/status/f1", headers=auth_headers).json()
        assert status["file_type"] == "deleted"


class TestIntrospection:
    """Tests for /api/status and /api/logs."""

    def test_status_returns_row(self, client, auth_headers, sample_pdf):
        upload(client, auth_headers, "f1", "d1", sample_pdf)

        response = client.get("/api/status/f1", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["file_id"] == "f1"
        assert data["document_id"] == "d1"
        assert data["file_type"] == "actual"
        assert data["status"] == "pending"
        assert "date_of_creation" in data

    def test_status_not_found(self, client, auth_headers):
        response = client.get("/api/status/missing", headers=auth_headers)
        assert response.status_code == 404

    def test_status_requires_token(self, client):
        assert client.get("/api/status/f1").status_code == 401

    def test_logs_list_uploads_and_views(self, client, auth_headers, sample_pdf):
        upload(client, auth_headers, "f1", "d1", sample_pdf)
        client.get("/publications/f1", headers={"User-Agent": "pytest-browser"})

        response = client.get("/api/logs", headers=auth_headers)

        assert response.status_code == 200
        entries = response.json()
        assert [entry["action_type"] for entry in entries] == ["view", "upload"]
        assert entries[0]["user_agent"] == "pytest-browser"
        assert entries[0]["file_id"] == "f1"

    def test_document_history(self, client, auth_headers, sample_pdf):
        upload(client, auth_headers, "f1", "d1", sample_pdf)
        upload(client, auth_headers, "f2", "d1", sample_pdf)

        response = client.get("/api/documents/d1", headers=auth_headers)

        assert response.status_code == 200
        assert [(p["file_id"], p["file_type"]) for p in response.json()] == [("f2", "actual"), ("f1", "deleted")]

    def test_document_history_not_found(self, client, auth_headers):
        response = client.get("/api/documents/missing", headers=auth_headers)
        assert response.status_code == 404

    def test_document_history_requires_token(self, client):
        assert client.get("/api/documents/d1").status_code == 401
