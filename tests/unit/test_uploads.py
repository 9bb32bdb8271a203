"""Unit tests for image upload validation and the storage client."""

import re

import httpx
import pytest
import respx

from kundedata.services.uploads import (
    StorageClient,
    StorageNotConfiguredError,
    UploadError,
    build_object_path,
    is_valid_file_size,
    is_valid_image_type,
)


BASE_URL = "https://prosjekt.supabase.co"


@pytest.mark.unit
class TestValidation:

    @pytest.mark.parametrize("content_type", ["image/jpeg", "image/PNG", "image/gif", "image/webp", "image/svg+xml"])
    def test_allowed_types(self, content_type):
        assert is_valid_image_type(content_type)

    @pytest.mark.parametrize("content_type", ["application/pdf", "text/html", "", None])
    def test_rejected_types(self, content_type):
        assert not is_valid_image_type(content_type)

    def test_size_limit(self):
        assert is_valid_file_size(5 * 1024 * 1024, max_mb=5)
        assert not is_valid_file_size(5 * 1024 * 1024 + 1, max_mb=5)

    def test_object_path(self):
        assert re.fullmatch(r"logos/\d{13}-[0-9a-f]{12}\.png", build_object_path("Logo.PNG", "image/png", "/logos/"))
        assert build_object_path(None, "image/webp").startswith("images/")
        assert build_object_path("blob", "image/jpeg").endswith(".jpg")


@pytest.mark.unit
class TestStorageClient:

    @respx.mock
    async def test_upload_returns_public_url(self):
        route = respx.post(f"{BASE_URL}/storage/v1/object/uploads/images/a.png").mock(
            return_value=httpx.Response(200, json={"Key": "uploads/images/a.png"})
        )
        client = StorageClient(base_url=BASE_URL + "/", api_key="anon", bucket="uploads")

        url = await client.upload(b"\x89PNG", "images/a.png", "image/png")

        assert url == f"{BASE_URL}/storage/v1/object/public/uploads/images/a.png"
        request = route.calls.last.request
        assert request.headers["apikey"] == "anon"
        assert request.headers["content-type"] == "image/png"
        assert request.content == b"\x89PNG"

    @respx.mock
    async def test_rejected_upload(self):
        respx.post(f"{BASE_URL}/storage/v1/object/uploads/images/a.png").mock(
            return_value=httpx.Response(400, json={"message": "The resource already exists"})
        )
        client = StorageClient(base_url=BASE_URL, api_key="anon", bucket="uploads")

        with pytest.raises(UploadError, match="already exists"):
            await client.upload(b"x", "images/a.png", "image/png")

    async def test_not_configured(self):
        client = StorageClient(base_url="", api_key="")
        assert not client.is_configured
        with pytest.raises(StorageNotConfiguredError):
            await client.upload(b"x", "images/a.png", "image/png")
