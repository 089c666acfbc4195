"""
Collection model: a named, possibly overlapping grouping of wishlist items
"""
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from wishlist.database import Base
from wishlist.core.types import utcnow

if TYPE_CHECKING:
    from wishlist.models.user import User


class CollectionRecord(Base):
    """User-defined collection of wishlist items"""
    __tablename__ = "collections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    name: Mapped[str] = mapped_column(String(100))
    icon: Mapped[str] = mapped_column(String(16), default="📋")
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)

    # Cached count, recomputed by the catalog after mutations
    item_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    owner: Mapped["User"] = relationship("User", back_populates="collections")
