# ==== IMAGE UPLOADS ==== #

"""
Image uploads to Supabase Storage over its REST API.

Used for organization logos and other images in the dashboard. Files are
stored as ``{folder}/{timestamp}-{random}.{ext}`` in the configured bucket
and served from the bucket's public URL.
"""

import secrets
import time
from typing import Optional

import httpx

from kundedata.observability.logging import get_logger
from kundedata.observability.tracing import get_tracer
from kundedata.settings import settings


tracer = get_tracer(__name__)
logger = get_logger(__name__)


ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}


class StorageNotConfiguredError(Exception):
    """Supabase URL or key missing."""


class UploadError(Exception):
    """The storage service rejected or failed the upload."""


def is_valid_image_type(content_type: Optional[str]) -> bool:
    return (content_type or "").lower() in ALLOWED_IMAGE_TYPES


def is_valid_file_size(size: int, max_mb: Optional[int] = None) -> bool:
    max_mb = max_mb or settings.UPLOAD_MAX_MB
    return size <= max_mb * 1024 * 1024


def build_object_path(filename: Optional[str], content_type: str, folder: str = "images") -> str:
    """``{folder}/{epoch ms}-{random}.{ext}``; the extension comes from the file name when present."""
    extension = None
    if filename and "." in filename:
        extension = filename.rsplit(".", 1)[-1].lower()
    extension = extension or ALLOWED_IMAGE_TYPES.get(content_type.lower(), "bin")
    folder = folder.strip("/") or "images"
    return f"{folder}/{int(time.time() * 1000)}-{secrets.token_hex(6)}.{extension}"


class StorageClient:
    """Minimal Supabase Storage client for one bucket."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        bucket: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.base_url = (base_url if base_url is not None else settings.SUPABASE_URL or "").rstrip("/")
        self.api_key = api_key if api_key is not None else settings.SUPABASE_ANON_KEY
        self.bucket = bucket or settings.STORAGE_BUCKET
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}", "apikey": self.api_key}

    async def upload(self, content: bytes, path: str, content_type: str) -> str:
        """Upload bytes to ``path`` and return the public URL.

        Raises:
            StorageNotConfiguredError: When Supabase is not configured
            UploadError: When the upload fails
        """
        if not self.is_configured:
            raise StorageNotConfiguredError(
                "Bildeopplasting er ikke konfigurert. Mangler Supabase-konfigurasjon."
            )

        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"
        headers = {
            **self._headers(),
            "Content-Type": content_type,
            "Cache-Control": "max-age=3600",
            "x-upsert": "false",
        }

        with tracer.start_as_current_span("storage_upload") as span:
            span.set_attribute("storage.path", path)
            span.set_attribute("storage.size", len(content))
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, content=content, headers=headers)
                    response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error("Storage upload rejected", status=e.response.status_code, path=path)
                raise UploadError(_storage_error(e.response)) from e
            except httpx.HTTPError as e:
                logger.error("Storage upload failed", error=str(e), path=path)
                raise UploadError("Kunne ikke laste opp fil") from e

        logger.info("File uploaded", path=path, size=len(content))
        return self.public_url(path)

    async def delete(self, path: str) -> bool:
        """Remove an object; returns False when the storage service refuses."""
        if not self.is_configured:
            raise StorageNotConfiguredError("Supabase er ikke konfigurert")

        url = f"{self.base_url}/storage/v1/object/{self.bucket}"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.request("DELETE", url, json={"prefixes": [path]}, headers=self._headers())
        if response.is_error:
            logger.warning("Storage delete failed", status=response.status_code, path=path)
            return False
        return True


def _storage_error(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    return payload.get("message") or payload.get("error") or f"HTTP {response.status_code}"


def get_storage_client() -> StorageClient:
    return StorageClient()
