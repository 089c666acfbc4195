"""
Wishlist item model. The reservation lives on the row itself so a claim can
be taken with a single conditional UPDATE.
"""
from datetime import datetime
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, Integer, Boolean, DateTime, JSON, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from wishlist.database import Base
from wishlist.core.types import utcnow

if TYPE_CHECKING:
    from wishlist.models.user import User


class WishItemRecord(Base):
    """A desired item on a user's wishlist"""
    __tablename__ = "wishlist_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Owner
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    # Details
    name: Mapped[str] = mapped_column(String(500))
    description: Mapped[str] = mapped_column(String, default="")
    link: Mapped[str] = mapped_column(String, default="")
    image_url: Mapped[str] = mapped_column(String, default="")

    # Priority score 1-10
    score: Mapped[int] = mapped_column(Integer, default=5)

    # Stored as JSON lists
    category_tags: Mapped[list] = mapped_column(JSON, default=list)
    collection_ids: Mapped[list] = mapped_column(JSON, default=list)

    # Visibility
    is_private: Mapped[bool] = mapped_column(Boolean, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)

    # Dibs tracking
    dibbed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    dibbed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    owner: Mapped["User"] = relationship("User", back_populates="wish_items", foreign_keys=[user_id])

    __table_args__ = (
        CheckConstraint("score >= 1 AND score <= 10", name="ck_wishlist_items_score"),
        Index("ix_wishlist_items_created_at", "created_at"),
    )
