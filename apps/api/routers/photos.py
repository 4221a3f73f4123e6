"""Photo records owned by the authenticated user."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_current_user
from services.errors import InvalidInputError, PersistenceError, RequestFailed
from services.photos import PhotoStore, serialize_photo

router = APIRouter()
logger = logging.getLogger(__name__)


class CreatePhotoRequest(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    url: Optional[str] = None
    size: Optional[int] = None


@router.get("")
async def list_photos(
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        photos = await PhotoStore(db).list_for_owner(auth.user_id)
    except SQLAlchemyError as exc:
        logger.exception("Error fetching photos for user %s", auth.user_id)
        raise RequestFailed("Failed to fetch photos", str(exc)) from exc
    return {"photos": [serialize_photo(photo) for photo in photos]}


@router.post("")
async def create_photo(
    request: CreatePhotoRequest,
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not request.name or not request.url or not request.size:
        raise InvalidInputError("name, url, and size are required")

    try:
        photo = await PhotoStore(db).create(
            auth.user_id,
            name=request.name,
            url=request.url,
            size=request.size,
            photo_id=request.id,
        )
    except PersistenceError as exc:
        logger.exception("Error creating photo for user %s", auth.user_id)
        raise RequestFailed("Failed to create photo", exc.message) from exc
    return {"success": True, "photo": serialize_photo(photo)}


@router.delete("")
async def delete_photo(
    id: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete a photo; ids the caller does not own are ignored."""
    if not id:
        raise InvalidInputError("Photo ID is required")
    try:
        await PhotoStore(db).delete(id, auth.user_id)
    except PersistenceError as exc:
        logger.exception("Error deleting photo %s", id)
        raise RequestFailed("Failed to delete photo", exc.message) from exc
    return {"success": True}
