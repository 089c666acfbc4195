"""
User model for multi-user authentication
"""
from datetime import datetime
from typing import Optional, List, TYPE_CHECKING
from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from wishlist.database import Base
from wishlist.core.types import utcnow

if TYPE_CHECKING:
    from wishlist.models.wish_item import WishItemRecord
    from wishlist.models.collection import CollectionRecord


class User(Base):
    """User account; every user owns exactly one wishlist"""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Authentication
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255))

    # Profile
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    wish_items: Mapped[List["WishItemRecord"]] = relationship(
        "WishItemRecord",
        back_populates="owner",
        foreign_keys="WishItemRecord.user_id",
        cascade="all, delete-orphan"
    )
    collections: Mapped[List["CollectionRecord"]] = relationship(
        "CollectionRecord",
        back_populates="owner",
        cascade="all, delete-orphan"
    )
