# ==== UPLOAD ROUTES ==== #

"""
Image upload for logos and form branding.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel

from kundedata.observability.logging import get_logger
from kundedata.security.auth import SessionUser, require_user
from kundedata.services.uploads import (
    StorageClient, StorageNotConfiguredError, UploadError, build_object_path,
    get_storage_client, is_valid_file_size, is_valid_image_type
)
from kundedata.settings import settings


router = APIRouter()
logger = get_logger(__name__)


class UploadResponse(BaseModel):
    success: bool = True
    url: str
    path: str


@router.post("", response_model=UploadResponse)
async def upload_image(
    file: Optional[UploadFile] = File(None),
    folder: str = Form("images"),
    user: SessionUser = Depends(require_user),
    storage: StorageClient = Depends(get_storage_client)
) -> UploadResponse:
    """
    Upload one image and return its public URL.

    Raises:
        HTTPException: 503 when storage is not configured, 400 for a missing
            file, a non-image type or a file over the size limit, 500 when
            the storage service fails
    """
    if not storage.is_configured:
        raise HTTPException(
            status_code=503,
            detail="Bildeopplasting er ikke konfigurert. Mangler Supabase-konfigurasjon.",
        )
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="Ingen fil lastet opp")
    if not is_valid_image_type(file.content_type):
        raise HTTPException(
            status_code=400,
            detail="Ugyldig filtype. Kun bilder (JPG, PNG, GIF, WebP, SVG) er tillatt.",
        )

    content = await file.read()
    if not is_valid_file_size(len(content)):
        raise HTTPException(status_code=400, detail=f"Filen er for stor. Maks {settings.UPLOAD_MAX_MB}MB.")

    path = build_object_path(file.filename, file.content_type, folder)
    try:
        url = await storage.upload(content, path, file.content_type)
    except StorageNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except UploadError as e:
        raise HTTPException(status_code=500, detail=f"Kunne ikke laste opp fil: {e}")

    logger.info("Image uploaded", user_id=user.id, path=path, size=len(content))
    return UploadResponse(url=url, path=path)
