"""Tests for the upload API router."""

from __future__ import annotations

import re
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from s3upload.api.v1.deps import _cached_upload_service, get_upload_service
from s3upload.app.services.upload_service import UploadService
from s3upload.common.config import Settings, get_settings
from s3upload.main import create_app
from tests.services.mock_storage import MockStorageClient

FILES_DIR = Path(__file__).resolve().parent.parent / "files"


@pytest.fixture
def mock_storage():
    return MockStorageClient()


@pytest.fixture
def settings():
    return Settings(
        S3_BUCKET="test-bucket",
        S3_ACCESS_KEY_ID="test-key",
        S3_SECRET_ACCESS_KEY="test-secret",
        UPLOAD_KEY_PREFIX="incoming/",
        UPLOAD_MAX_FILES=2,
    )


@pytest.fixture
def client(mock_storage, settings):
    app = create_app()
    service = UploadService(storage_client=mock_storage, settings=settings)
    app.dependency_overrides[get_upload_service] = lambda: service
    return TestClient(app)


def test_upload_files_and_fields(client, mock_storage):
    png = (FILES_DIR / "ffffff.png").read_bytes()
    r = client.post(
        "/api/v1/uploads",
        data={"title": "avatar"},
        files={"avatar": ("ffffff.png", png, "image/png")},
    )

    assert r.status_code == 201
    body = r.json()
    assert body["fields"] == {"title": "avatar"}
    assert len(body["files"]) == 1
    stored = body["files"][0]
    assert stored["fieldname"] == "avatar"
    assert stored["originalname"] == "ffffff.png"
    assert stored["mimetype"] == "image/png"
    assert stored["bucket"] == "test-bucket"
    assert stored["size"] == 68
    assert stored["content_type"] == "image/png"
    assert stored["acl"] == "private"
    assert stored["storage_class"] == "STANDARD"
    assert stored["metadata"] == {"fieldname": "avatar"}
    assert stored["etag"] == "mock-etag"
    assert re.fullmatch(r"incoming/[0-9a-f]{32}\.png", stored["key"])
    assert mock_storage.get("test-bucket", stored["key"])["body"] == png
    assert "transforms" not in stored


def test_svg_content_type_is_sniffed(client):
    svg = (FILES_DIR / "test.svg").read_bytes()
    r = client.post(
        "/api/v1/uploads",
        files={"drawing": ("drawing", svg, "application/octet-stream")},
    )

    assert r.status_code == 201
    stored = r.json()["files"][0]
    assert stored["content_type"] == "image/svg+xml"
    assert stored["size"] == 100
    assert re.fullmatch(r"incoming/[0-9a-f]{32}", stored["key"])


def test_rejects_non_multipart(client):
    r = client.post("/api/v1/uploads", content=b"raw", headers={"Content-Type": "text/plain"})

    assert r.status_code == 415
    assert r.json()["error_code"] == "unsupported_media_type"


def test_malformed_multipart_is_bad_request(client):
    r = client.post(
        "/api/v1/uploads",
        content=b"this is not a multipart body",
        headers={"Content-Type": "multipart/form-data; boundary=xyz"},
    )

    assert r.status_code == 400
    assert r.headers["content-type"].startswith("application/problem+json")
    assert r.json()["error_code"] == "invalid_multipart"


def test_too_many_files(client, mock_storage):
    files = [
        ("a", ("a.txt", b"1", "text/plain")),
        ("b", ("b.txt", b"2", "text/plain")),
        ("c", ("c.txt", b"3", "text/plain")),
    ]
    r = client.post("/api/v1/uploads", files=files)

    assert r.status_code == 400
    assert "Too many files" in r.json()["detail"]
    assert mock_storage.objects == {}


def test_storage_failure_is_bad_gateway(client, mock_storage):
    mock_storage.fail_put["*"] = "Failed to put object: denied"
    r = client.post("/api/v1/uploads", files={"doc": ("a.txt", b"hi", "text/plain")})

    assert r.status_code == 502
    body = r.json()
    assert body["error_code"] == "upload_failed"
    assert body["detail"]["field"] == "doc"
    assert "denied" in body["detail"]["message"]


def test_delete_upload(client, mock_storage):
    r = client.delete("/api/v1/uploads/test-bucket/incoming/abc.png")

    assert r.status_code == 204
    assert mock_storage.deleted == [("test-bucket", "incoming/abc.png")]


def test_delete_outside_configured_bucket(client, mock_storage):
    r = client.delete("/api/v1/uploads/other-bucket/abc.png")

    assert r.status_code == 404
    assert mock_storage.deleted == []


def test_delete_failure_is_bad_gateway(client, mock_storage):
    mock_storage.fail_delete.add("abc.png")
    r = client.delete("/api/v1/uploads/test-bucket/abc.png")

    assert r.status_code == 502
    assert r.json()["error_code"] == "removal_failed"


def test_storage_not_configured(monkeypatch):
    monkeypatch.setenv("S3_BUCKET", "")
    get_settings.cache_clear()  # type: ignore[attr-defined]
    _cached_upload_service.cache_clear()

    client = TestClient(create_app())
    r = client.post("/api/v1/uploads", files={"doc": ("a.txt", b"hi", "text/plain")})

    assert r.status_code == 503
    assert r.json()["error_code"] == "storage_not_configured"
    _cached_upload_service.cache_clear()
