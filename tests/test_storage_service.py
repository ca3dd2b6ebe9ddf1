"""Tests for the Cloudinary-backed storage service."""

import cloudinary.uploader
import pytest

from app.config.settings import settings
from app.core.errors import ApiError, ValidationError
from app.shared.services.storage_service import StorageService


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(settings, "cloudinary_cloud_name", "demo")
    monkeypatch.setattr(settings, "cloudinary_api_key", "key")
    monkeypatch.setattr(settings, "cloudinary_api_secret", "secret")
    return StorageService()


def test_unconfigured_storage_refuses_uploads(monkeypatch):
    monkeypatch.setattr(settings, "cloudinary_cloud_name", None)
    storage = StorageService()

    assert storage.configured is False
    with pytest.raises(ApiError) as exc_info:
        storage.upload_bytes(b"img", folder="directory/tid-1", filename="a.jpg")
    assert exc_info.value.error == "storage_not_configured"
    assert storage.delete_by_url("https://res.cloudinary.com/demo/image/upload/v1/a.jpg") is False


def test_upload_returns_secure_url(configured, monkeypatch):
    calls = []

    def fake_upload(content, **options):
        calls.append(options)
        return {"secure_url": "https://res.cloudinary.com/demo/image/upload/v1/storefront/x.jpg", "bytes": 3}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)

    url = configured.upload_bytes(b"img", folder="directory/tid-1", filename="my photo.jpg", content_type="image/jpeg")

    assert url.endswith("x.jpg")
    assert calls[0]["folder"] == "storefront/directory/tid-1"
    assert calls[0]["public_id"].startswith("my_photo_")


def test_upload_rejects_unsupported_type(configured):
    with pytest.raises(ValidationError) as exc_info:
        configured.upload_bytes(b"%PDF", folder="directory/tid-1", filename="a.pdf", content_type="application/pdf")
    assert exc_info.value.error == "invalid_image"


def test_upload_failure_is_wrapped(configured, monkeypatch):
    def broken_upload(content, **options):
        raise RuntimeError("network down")

    monkeypatch.setattr(cloudinary.uploader, "upload", broken_upload)

    with pytest.raises(ApiError) as exc_info:
        configured.upload_bytes(b"img", folder="directory/tid-1", filename="a.jpg")
    assert exc_info.value.error == "upload_failed"


def test_delete_by_url(configured, monkeypatch):
    destroyed = []
    monkeypatch.setattr(cloudinary.uploader, "destroy", lambda public_id: destroyed.append(public_id) or {"result": "ok"})

    assert configured.delete_by_url(
        "https://res.cloudinary.com/demo/image/upload/c_fit,w_800/v1712345/storefront/directory/tid-1/a_1.jpg"
    ) is True
    assert destroyed == ["storefront/directory/tid-1/a_1"]


@pytest.mark.parametrize("url", [None, "", "https://cdn.example.com/a.jpg", "https://res.cloudinary.com/demo/raw/a.jpg"])
def test_extract_public_id_ignores_foreign_urls(url):
    assert StorageService.extract_public_id(url) is None
