"""
GraphQL Types using Strawberry
Converts role-shaped item views and catalog objects to GraphQL types
"""
import strawberry
from typing import Optional, List
from datetime import datetime

from wishlist.core.bulk import BulkReport
from wishlist.core.reservations import ItemView
from wishlist.core.types import Collection, ReservationRecord


@strawberry.type
class WishItemType:
    """GraphQL type for a wishlist item as seen by the caller"""
    id: str
    name: str
    description: str
    link: str
    image_url: str
    desire_score: int
    category_tags: List[str]
    collection_ids: List[str]
    is_private: bool
    is_archived: bool
    created_at: datetime

    # Reservation, shaped per role: owners only see the flag
    reserved: bool
    perspective: str
    claimant_id: Optional[str] = None
    claimed_at: Optional[datetime] = None
    can_claim: bool = False
    can_unclaim: bool = False
    can_edit: bool = False

    # Relevance for the current search query, 0 when not searching
    search_score: int = 0


@strawberry.type
class ListItemsResult:
    """Filtered, ranked page of wishlist items"""
    items: List[WishItemType]
    filtered_count: int
    total_count: int
    page: int
    page_size: int
    has_more: bool
    request_seq: Optional[int] = None
    superseded: bool = False
    error: Optional[str] = None


@strawberry.type
class CollectionType:
    id: str
    name: str
    icon: str
    is_default: bool
    item_count: int
    created_at: datetime


@strawberry.type
class CollectionCount:
    collection_id: str
    count: int


@strawberry.type
class ReservationType:
    item_id: str
    state: str
    claimant_id: Optional[str] = None
    claimed_at: Optional[datetime] = None


@strawberry.type
class ClaimResult:
    """Outcome of a claim or unclaim; ``code`` names the error on failure"""
    success: bool
    message: str
    code: Optional[str] = None
    reservation: Optional[ReservationType] = None
    item: Optional[WishItemType] = None


@strawberry.type
class BulkFailureType:
    id: str
    reason: str
    detail: str


@strawberry.type
class DuplicatedItem:
    original_id: str
    copy_id: str


@strawberry.type
class BulkResult:
    success: bool
    message: str
    succeeded_ids: List[str]
    failed: List[BulkFailureType]
    created: List[DuplicatedItem]
    counts: List[CollectionCount]


def item_from_view(view: ItemView) -> WishItemType:
    """Convert a role-shaped ItemView to the GraphQL type"""
    return WishItemType(
        id=view.id,
        name=view.name,
        description=view.description,
        link=view.link,
        image_url=view.image_url,
        desire_score=view.desire_score,
        category_tags=list(view.category_tags),
        collection_ids=list(view.collection_ids),
        is_private=view.is_private,
        is_archived=view.is_archived,
        created_at=view.created_at,
        reserved=view.reserved,
        perspective=view.perspective,
        claimant_id=getattr(view, "claimant_id", None),
        claimed_at=getattr(view, "claimed_at", None),
        can_claim=getattr(view, "can_claim", False),
        can_unclaim=getattr(view, "can_unclaim", False),
        can_edit=getattr(view, "can_edit", False),
        search_score=view.search_score,
    )


def collection_from_core(collection: Collection) -> CollectionType:
    return CollectionType(
        id=collection.id,
        name=collection.name,
        icon=collection.icon,
        is_default=collection.is_default,
        item_count=collection.item_count,
        created_at=collection.created_at,
    )


def counts_from_dict(counts: dict) -> List[CollectionCount]:
    return [CollectionCount(collection_id=cid, count=n) for cid, n in counts.items()]


def reservation_from_record(record: ReservationRecord) -> ReservationType:
    return ReservationType(
        item_id=record.item_id,
        state=record.state.value,
        claimant_id=record.claimant_id,
        claimed_at=record.claimed_at,
    )


def bulk_result_from_report(report: BulkReport) -> BulkResult:
    return BulkResult(
        success=report.ok,
        message=f"{len(report.succeeded)} succeeded, {len(report.failed)} failed",
        succeeded_ids=list(report.succeeded),
        failed=[BulkFailureType(id=f.id, reason=f.reason, detail=f.detail) for f in report.failed],
        created=[DuplicatedItem(original_id=k, copy_id=v) for k, v in report.created.items()],
        counts=counts_from_dict(report.counts),
    )
