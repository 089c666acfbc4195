"""
Collections REST API endpoints
"""
from typing import Optional
from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from wishlist.api.deps import get_optional_user, get_service
from wishlist.core.types import Collection
from wishlist.models import User
from wishlist.services.auth import resolve_viewer
from wishlist.services.wishlist_service import WishlistService

router = APIRouter(prefix="/wishlists/{owner_id}/collections", tags=["collections"])


class CollectionCreate(BaseModel):
    name: str
    icon: Optional[str] = None


class CollectionUpdate(BaseModel):
    name: Optional[str] = None
    icon: Optional[str] = None


def collection_to_dict(collection: Collection) -> dict:
    return {
        "id": collection.id,
        "name": collection.name,
        "icon": collection.icon,
        "is_default": collection.is_default,
        "item_count": collection.item_count,
        "created_at": collection.created_at,
    }


@router.get("")
async def list_collections(
    owner_id: str,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    """All collections, default first"""
    collections = await service.list_collections(owner_id, resolve_viewer(user, owner_id))
    return [collection_to_dict(c) for c in collections]


@router.get("/counts")
async def collection_counts(
    owner_id: str,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    """Item count per collection id, plus "all". Non-owners only count what they can see."""
    return await service.get_collection_counts(owner_id, resolve_viewer(user, owner_id))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_collection(
    owner_id: str,
    request: CollectionCreate,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    collection = await service.create_collection(
        owner_id, resolve_viewer(user, owner_id), request.name, request.icon,
    )
    return collection_to_dict(collection)


@router.patch("/{collection_id}")
async def update_collection(
    owner_id: str,
    collection_id: str,
    request: CollectionUpdate,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    collection = await service.update_collection(
        owner_id, resolve_viewer(user, owner_id), collection_id, request.name, request.icon,
    )
    return collection_to_dict(collection)


@router.delete("/{collection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_collection(
    owner_id: str,
    collection_id: str,
    user: Optional[User] = Depends(get_optional_user),
    service: WishlistService = Depends(get_service),
):
    """Delete a collection. Its items stay in the wishlist."""
    await service.delete_collection(owner_id, resolve_viewer(user, owner_id), collection_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
