"""Owner-scoped photo record store."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Optional
import uuid

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.photo import Photo
from services.errors import PersistenceError

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"name", "url", "size", "restored", "restored_url", "exported"})


def serialize_photo(photo: Photo) -> Dict[str, Any]:
    return {
        "id": photo.id,
        "userId": photo.user_id,
        "name": photo.name,
        "url": photo.url,
        "size": photo.size,
        "restored": bool(photo.restored),
        "restoredUrl": photo.restored_url,
        "exported": bool(photo.exported),
        "createdAt": photo.created_at.isoformat() if photo.created_at else None,
        "updatedAt": photo.updated_at.isoformat() if photo.updated_at else None,
    }


class PhotoStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_owner(self, user_id: str) -> List[Photo]:
        """Photos owned by ``user_id``, newest first."""
        result = await self.db.execute(
            select(Photo).where(Photo.user_id == user_id).order_by(Photo.created_at.desc())
        )
        return list(result.scalars().all())

    async def create(
        self,
        user_id: str,
        *,
        name: str,
        url: str,
        size: int,
        photo_id: Optional[str] = None,
    ) -> Photo:
        now = datetime.now(timezone.utc)
        photo = Photo(
            id=photo_id or str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            url=url,
            size=int(size),
            restored=0,
            exported=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(photo)
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(f"Could not create photo: {exc}") from exc
        return photo

    async def update(self, photo_id: str, user_id: str, **values: Any) -> int:
        """Update fields on an owned photo; returns the number of rows touched."""
        unknown = set(values) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update photo fields: {sorted(unknown)}")

        values["updated_at"] = datetime.now(timezone.utc)
        try:
            result = await self.db.execute(
                update(Photo)
                .where(Photo.id == photo_id, Photo.user_id == user_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(f"Could not update photo {photo_id}: {exc}") from exc

        if result.rowcount == 0:
            logger.warning("Photo %s not found for user %s; nothing updated", photo_id, user_id)
        return int(result.rowcount or 0)

    async def delete(self, photo_id: str, user_id: str) -> int:
        """Delete a photo only if ``user_id`` owns it.

        A non-owner (or unknown id) deletes nothing and is not told so.
        """
        try:
            result = await self.db.execute(
                delete(Photo)
                .where(Photo.id == photo_id, Photo.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(f"Could not delete photo {photo_id}: {exc}") from exc
        return int(result.rowcount or 0)
