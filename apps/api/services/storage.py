"""Image upload validation and storage."""

from __future__ import annotations

import logging
import os
from pathlib import Path
import time
import uuid

from config import settings
from services.errors import InvalidInputError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/svg+xml",
    }
)


def validate_image_upload(content_type: str, size_bytes: int, max_bytes: int = 0) -> None:
    """Reject non-image uploads and files over the size ceiling."""
    limit = int(max_bytes or settings.MAX_IMAGE_UPLOAD_BYTES)
    if (content_type or "").lower() not in ALLOWED_IMAGE_MIME_TYPES:
        raise InvalidInputError("Invalid file type. Only image files are allowed.")
    if size_bytes > limit:
        raise InvalidInputError(
            f"File too large. Maximum size allowed is {limit // (1024 * 1024)}MB."
        )


def build_upload_filename(original_filename: str) -> str:
    """Unique stored name that keeps the original extension."""
    base = os.path.basename(original_filename or "")
    ext = base.rsplit(".", 1)[-1].lower() if "." in base else ""
    ext = "".join(ch for ch in ext if ch.isalnum()) or "png"
    return f"upload-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.{ext}"


class LocalImageStorage:
    """Writes images to a directory served under a public base URL."""

    def __init__(self, root: str = "", public_base_url: str = ""):
        self.root = Path(root or settings.UPLOAD_DIR)
        self.public_base_url = (public_base_url or settings.PUBLIC_UPLOAD_BASE_URL).rstrip("/")

    def save(self, data: bytes, filename: str) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        destination = self.root / filename
        destination.write_bytes(data)
        logger.info("Stored upload %s (%s bytes)", destination, len(data))
        return f"{self.public_base_url}/{filename}"

    def delete(self, filename: str) -> None:
        try:
            (self.root / filename).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove stored upload %s: %s", filename, exc)
