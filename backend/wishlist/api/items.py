"""
Wishlist items REST API endpoints
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from wishlist.api.deps import get_optional_user, get_service
from wishlist.core.filters import ItemFilters
from wishlist.core.types import ALL_COLLECTION_ID, BulkOperationKind, ReservationRecord, SortOrder
from wishlist.models import User
from wishlist.services.auth import resolve_viewer
from wishlist.services.wishlist_service import WishlistService

router = APIRouter(prefix="/wishlists/{owner_id}", tags=["items"])


class ItemCreate(BaseModel):
    """Request body for adding an item"""
    name: str
    description: Optional[str] = None
    link: Optional[str] = None
    image_url: Optional[str] = None
    desire_score: Optional[int] = None
    category_tags: List[str] = Field(default_factory=list)
    is_private: bool = False
    collection_ids: List[str] = Field(default_factory=list)


class ItemUpdate(BaseModel):
    """Request body for editing an item; only the fields sent are changed"""
    name: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    image_url: Optional[str] = None
    desire_score: Optional[int] = None
    category_tags: Optional[List[str]] = None
    is_private: Optional[bool] = None
    is_archived: Optional[bool] = None
    collection_ids: Optional[List[str]] = None


class BulkRequest(BaseModel):
    kind: BulkOperationKind
    item_ids: List[str]
    target_collection_id: Optional[str] = None


class CollectionMembership(BaseModel):
    collection_ids: List[str]


def reservation_to_dict(record: ReservationRecord) -> dict:
    return {
        "item_id": record.item_id,
        "state": record.state.value,
        "claimant_id": record.claimant_id,
        "claimed_at": record.claimed_at,
    }


@router.get("/items")
async def list_items(
    owner_id: str,
    collection: str = ALL_COLLECTION_ID,
    category: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    min_score: Optional[int] = Query(None, ge=1, le=10),
    max_score: Optional[int] = Query(None, ge=1, le=10),
    search: Optional[str] = None,
    sort: SortOrder = SortOrder.CREATED,
    include_archived: bool = False,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    request_seq: Optional[int] = None,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    """
    List the items of a wishlist as the caller is allowed to see them

    Args:
        collection: Collection id, or "all"
        category: Category tag
        status: claimed, available, private or public ("dibbed" is accepted)
        min_score: Minimum desire score (1-10)
        max_score: Maximum desire score (1-10)
        search: Free-text query; ranks results by relevance
        sort: created, newest, score_high, score_low or name
        include_archived: Owner only; include archived items
        request_seq: Client sequence number; older responses come back superseded
    """
    viewer = resolve_viewer(user, owner_id)
    filters = ItemFilters(
        collection=collection,
        category=category,
        status=status_filter,
        min_score=min_score,
        max_score=max_score,
        search=search,
        sort=sort,
        include_archived=include_archived,
    )
    result = await service.list_items(
        owner_id, viewer, filters, page=page, page_size=page_size, request_seq=request_seq,
    )
    return result.to_dict()


@router.post("/items", status_code=status.HTTP_201_CREATED)
async def create_item(
    owner_id: str,
    request: ItemCreate,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    view = await service.add_item(owner_id, resolve_viewer(user, owner_id), request.model_dump())
    return view.to_dict()


@router.post("/items/bulk")
async def bulk_items(
    owner_id: str,
    request: BulkRequest,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    """Apply one operation to many items; 207 when some items failed"""
    report = await service.bulk_apply(
        owner_id,
        request.kind,
        request.item_ids,
        resolve_viewer(user, owner_id),
        request.target_collection_id,
    )
    status_code = status.HTTP_200_OK if report.ok else status.HTTP_207_MULTI_STATUS
    return JSONResponse(status_code=status_code, content=jsonable_encoder(report.to_dict()))


@router.get("/items/{item_id}")
async def get_item(
    owner_id: str,
    item_id: str,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    view = await service.get_item(owner_id, item_id, resolve_viewer(user, owner_id))
    return view.to_dict()


@router.patch("/items/{item_id}")
async def update_item(
    owner_id: str,
    item_id: str,
    request: ItemUpdate,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    patch = request.model_dump(exclude_unset=True)
    view = await service.update_item(owner_id, resolve_viewer(user, owner_id), item_id, patch)
    return view.to_dict()


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    owner_id: str,
    item_id: str,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    await service.remove_item(owner_id, resolve_viewer(user, owner_id), item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/items/{item_id}/claim")
async def claim_item(
    owner_id: str,
    item_id: str,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    """Claim ("dibs") an item; 409 if someone got there first"""
    record = await service.claim(owner_id, item_id, resolve_viewer(user, owner_id))
    return reservation_to_dict(record)


@router.delete("/items/{item_id}/claim")
async def unclaim_item(
    owner_id: str,
    item_id: str,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    record = await service.unclaim(owner_id, item_id, resolve_viewer(user, owner_id))
    return reservation_to_dict(record)


@router.post("/items/{item_id}/collections")
async def add_item_to_collections(
    owner_id: str,
    item_id: str,
    request: CollectionMembership,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    view = await service.add_to_collections(
        owner_id, resolve_viewer(user, owner_id), item_id, request.collection_ids,
    )
    return view.to_dict()


@router.post("/items/{item_id}/collections/remove")
async def remove_item_from_collections(
    owner_id: str,
    item_id: str,
    request: CollectionMembership,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    view = await service.remove_from_collections(
        owner_id, resolve_viewer(user, owner_id), item_id, request.collection_ids,
    )
    return view.to_dict()


@router.get("/summary")
async def wishlist_summary(
    owner_id: str,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    """Owner dashboard statistics"""
    return await service.summary(owner_id, resolve_viewer(user, owner_id))


@router.get("/claims/mine")
async def my_claims(
    owner_id: str,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    """Items on this wishlist the caller has claimed"""
    views = await service.my_claims(owner_id, resolve_viewer(user, owner_id))
    return [view.to_dict() for view in views]
