"""Image upload router."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.auth_scope import AuthContext, get_current_user
from routers.rate_limit import rate_limit
from services.errors import InvalidInputError, PersistenceError, RequestFailed
from services.photos import PhotoStore
from services.storage import LocalImageStorage, build_upload_filename, validate_image_upload

router = APIRouter()
logger = logging.getLogger(__name__)


def get_image_storage() -> LocalImageStorage:
    return LocalImageStorage()


@router.post("/upload-image")
async def upload_image(
    file: Optional[UploadFile] = File(default=None),
    _rate_limit: None = Depends(rate_limit("upload_image", limit=120, window_seconds=3600)),
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: LocalImageStorage = Depends(get_image_storage),
):
    """Store an image and record it as a photo owned by the caller."""
    if file is None:
        raise InvalidInputError("No file provided")

    max_bytes = int(settings.MAX_IMAGE_UPLOAD_BYTES)
    validate_image_upload(file.content_type or "", int(file.size or 0), max_bytes)
    data = await file.read(max_bytes + 1)
    validate_image_upload(file.content_type or "", len(data), max_bytes)

    name = file.filename or "upload"
    stored_name = build_upload_filename(name)
    try:
        url = storage.save(data, stored_name)
    except OSError as exc:
        logger.exception("Could not store upload for user %s", auth.user_id)
        raise RequestFailed("Failed to process upload", str(exc)) from exc

    try:
        photo = await PhotoStore(db).create(auth.user_id, name=name, url=url, size=len(data))
    except PersistenceError as exc:
        storage.delete(stored_name)
        raise RequestFailed("Failed to process upload", exc.message) from exc

    logger.info("Uploaded image %s for user %s", photo.id, auth.user_id)
    return {
        "url": url,
        "id": photo.id,
        "name": name,
        "size": len(data),
    }
