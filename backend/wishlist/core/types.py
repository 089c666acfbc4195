"""
Core data types for the wishlist catalog
"""
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from wishlist.core.errors import ValidationError

ALL_COLLECTION_ID = "all"

MIN_DESIRE_SCORE = 1
MAX_DESIRE_SCORE = 10
DEFAULT_DESIRE_SCORE = 5
HIGH_PRIORITY_SCORE = 8


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns of the store"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class Role(str, Enum):
    OWNER = "owner"
    FRIEND = "friend"
    VISITOR = "visitor"


class ReservationState(str, Enum):
    AVAILABLE = "Available"
    CLAIMED = "Claimed"


class StatusFacet(str, Enum):
    """Status partitions. Claimed/available and private/public are orthogonal."""
    CLAIMED = "claimed"
    AVAILABLE = "available"
    PRIVATE = "private"
    PUBLIC = "public"

    @classmethod
    def parse(cls, value: str) -> "StatusFacet":
        key = (value or "").strip().lower()
        if key == "dibbed":
            return cls.CLAIMED
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"Unknown status filter: {value!r}", field="status")


class BulkOperationKind(str, Enum):
    DELETE = "delete"
    ARCHIVE = "archive"
    TOGGLE_PRIVACY = "togglePrivacy"
    MOVE_TO_COLLECTION = "moveToCollection"
    DUPLICATE = "duplicate"


class SortOrder(str, Enum):
    CREATED = "created"
    NEWEST = "newest"
    SCORE_HIGH = "score_high"
    SCORE_LOW = "score_low"
    NAME = "name"


@dataclass(frozen=True)
class Viewer:
    """Auth context for a single call"""
    viewer_id: Optional[str]
    role: Role

    @property
    def is_owner(self) -> bool:
        return self.role == Role.OWNER

    @property
    def is_authenticated(self) -> bool:
        return self.viewer_id is not None


@dataclass(frozen=True)
class ReservationRecord:
    item_id: str
    claimant_id: Optional[str] = None
    claimed_at: Optional[datetime] = None
    state: ReservationState = ReservationState.AVAILABLE

    @classmethod
    def available(cls, item_id: str) -> "ReservationRecord":
        return cls(item_id=item_id)

    @classmethod
    def claimed(cls, item_id: str, claimant_id: str, claimed_at: Optional[datetime] = None) -> "ReservationRecord":
        return cls(
            item_id=item_id,
            claimant_id=claimant_id,
            claimed_at=claimed_at or utcnow(),
            state=ReservationState.CLAIMED,
        )

    @property
    def is_claimed(self) -> bool:
        return self.state == ReservationState.CLAIMED


def normalize_tags(tags: Optional[Iterable[str]]) -> FrozenSet[str]:
    if not tags:
        return frozenset()
    if isinstance(tags, str):
        tags = [tags]
    return frozenset(t.strip().lower() for t in tags if isinstance(t, str) and t.strip())


def validate_score(score) -> int:
    if isinstance(score, bool) or not isinstance(score, int):
        raise ValidationError("Desire score must be a whole number between 1 and 10", field="desire_score")
    if score < MIN_DESIRE_SCORE or score > MAX_DESIRE_SCORE:
        raise ValidationError("Desire score must be a whole number between 1 and 10", field="desire_score")
    return score


def _clean(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""


@dataclass(frozen=True)
class WishItem:
    """A single wishlist entry. Instances are immutable; updates replace them."""
    id: str
    owner_id: str
    name: str
    description: str = ""
    link: str = ""
    image_url: str = ""
    desire_score: int = DEFAULT_DESIRE_SCORE
    category_tags: FrozenSet[str] = frozenset()
    is_private: bool = False
    is_archived: bool = False
    collection_ids: FrozenSet[str] = frozenset()
    reservation: Optional[ReservationRecord] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        owner_id: str,
        name: str,
        description: Optional[str] = None,
        link: Optional[str] = None,
        image_url: Optional[str] = None,
        desire_score: Optional[int] = None,
        category_tags: Optional[Iterable[str]] = None,
        is_private: bool = False,
        collection_ids: Optional[Iterable[str]] = None,
        item_id: Optional[str] = None,
    ) -> "WishItem":
        """Build a validated item from raw owner input"""
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Item name is required and cannot be empty", field="name")
        now = utcnow()
        return cls(
            id=item_id or new_id(),
            owner_id=owner_id,
            name=name.strip(),
            description=_clean(description),
            link=_clean(link),
            image_url=_clean(image_url),
            desire_score=validate_score(DEFAULT_DESIRE_SCORE if desire_score is None else desire_score),
            category_tags=normalize_tags(category_tags),
            is_private=bool(is_private),
            collection_ids=frozenset(c for c in (collection_ids or ()) if c and c != ALL_COLLECTION_ID),
            created_at=now,
            updated_at=now,
        )

    def with_patch(self, patch: dict) -> "WishItem":
        """Return a copy with the editable fields in ``patch`` applied"""
        changes = {}
        for key, value in patch.items():
            if key == "name":
                if not isinstance(value, str) or not value.strip():
                    raise ValidationError("Item name is required and cannot be empty", field="name")
                changes["name"] = value.strip()
            elif key in ("description", "link", "image_url"):
                changes[key] = _clean(value)
            elif key == "desire_score":
                changes[key] = validate_score(value)
            elif key == "category_tags":
                changes[key] = normalize_tags(value)
            elif key in ("is_private", "is_archived"):
                changes[key] = bool(value)
            elif key == "collection_ids":
                changes[key] = frozenset(c for c in (value or ()) if c and c != ALL_COLLECTION_ID)
            elif key == "reservation":
                changes[key] = value
            else:
                raise ValidationError(f"Field {key!r} cannot be edited", field=key)
        changes["updated_at"] = utcnow()
        return replace(self, **changes)

    @property
    def is_claimed(self) -> bool:
        return self.reservation is not None and self.reservation.is_claimed

    @property
    def reservation_record(self) -> ReservationRecord:
        if self.reservation is not None:
            return self.reservation
        return ReservationRecord.available(self.id)

    def search_blob(self) -> str:
        """Lowercase text searched by the search engine"""
        parts = [self.name, self.description, " ".join(sorted(self.category_tags))]
        return " ".join(p for p in parts if p).lower()


@dataclass(frozen=True)
class Collection:
    id: str
    owner_id: str
    name: str
    icon: str = "📋"
    is_default: bool = False
    item_count: int = 0
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(cls, owner_id: str, name: str, icon: Optional[str] = None,
               is_default: bool = False, collection_id: Optional[str] = None) -> "Collection":
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Collection name is required", field="name")
        if len(name.strip()) > 100:
            raise ValidationError("Collection name must be 100 characters or less", field="name")
        if collection_id == ALL_COLLECTION_ID:
            raise ValidationError("'all' is reserved", field="id")
        return cls(
            id=collection_id or new_id(),
            owner_id=owner_id,
            name=name.strip(),
            icon=_clean(icon) or "📋",
            is_default=is_default,
        )
