"""Photo model for uploaded images and their AI results."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class Photo(Base):
    """User-owned photo record."""

    __tablename__ = "photos"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)
    size = Column(Integer, nullable=False)  # bytes
    restored = Column(Integer, nullable=False, default=0)  # 0/1
    restored_url = Column(String, nullable=True)
    exported = Column(Integer, nullable=False, default=0)  # 0/1
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="photos")
