"""
GraphQL Queries
Define all read operations for the API
"""
import logging
import strawberry
from typing import List, Optional
from strawberry.types import Info

from wishlist.core.errors import WishlistError
from wishlist.core.filters import ItemFilters
from wishlist.core.types import ALL_COLLECTION_ID, Viewer
from wishlist.graphql.types import (
    CollectionCount,
    CollectionType,
    ListItemsResult,
    WishItemType,
    collection_from_core,
    counts_from_dict,
    item_from_view,
)
from wishlist.services.auth import resolve_viewer
from wishlist.services.wishlist_service import WishlistService

logger = logging.getLogger(__name__)


def get_service(info: Info) -> WishlistService:
    return info.context["service"]


def get_viewer(info: Info, owner_id: str) -> Viewer:
    user = info.context.get("user") if info.context else None
    return resolve_viewer(user, owner_id)


@strawberry.type
class Query:
    @strawberry.field
    async def wishlist_items(
        self,
        info: Info,
        owner_id: str,
        collection: str = ALL_COLLECTION_ID,
        category: Optional[str] = None,
        status: Optional[str] = None,
        min_score: Optional[int] = None,
        max_score: Optional[int] = None,
        search: Optional[str] = None,
        sort: str = "created",
        include_archived: bool = False,
        page: int = 1,
        page_size: int = 20,
        request_seq: Optional[int] = None,
    ) -> ListItemsResult:
        """
        Get a filtered, ranked page of a wishlist's items

        Args:
            owner_id: Whose wishlist to read
            collection: Collection id, or "all"
            category: Category tag
            status: claimed, available, private or public
            min_score: Minimum desire score (1-10)
            max_score: Maximum desire score (1-10)
            search: Free-text query; results are ranked by relevance
            sort: created, newest, score_high, score_low or name
            include_archived: Owner only; include archived items
            request_seq: Client sequence number for last-request-wins
        """
        service = get_service(info)
        viewer = get_viewer(info, owner_id)

        try:
            filters = ItemFilters(
                collection=collection,
                category=category,
                status=status,
                min_score=min_score,
                max_score=max_score,
                search=search,
                sort=sort,
                include_archived=include_archived,
            )
        except (WishlistError, ValueError) as e:
            return ListItemsResult(
                items=[], filtered_count=0, total_count=0, page=page, page_size=page_size,
                has_more=False, request_seq=request_seq, error=getattr(e, "detail", None) or str(e),
            )

        result = await service.list_items(
            owner_id, viewer, filters, page=page, page_size=page_size, request_seq=request_seq,
        )
        return ListItemsResult(
            items=[item_from_view(v) for v in result.items],
            filtered_count=result.filtered_count,
            total_count=result.total_count,
            page=result.page,
            page_size=result.page_size,
            has_more=result.has_more,
            request_seq=result.request_seq,
            superseded=result.superseded,
            error=result.error,
        )

    @strawberry.field
    async def wishlist_item(self, info: Info, owner_id: str, id: str) -> Optional[WishItemType]:
        """Get a single item, or null if it is unknown or hidden from the caller"""
        try:
            view = await get_service(info).get_item(owner_id, id, get_viewer(info, owner_id))
        except WishlistError as e:
            logger.debug("wishlist_item %s unavailable: %s", id, e.detail)
            return None
        return item_from_view(view)

    @strawberry.field
    async def collections(self, info: Info, owner_id: str) -> List[CollectionType]:
        collections = await get_service(info).list_collections(owner_id, get_viewer(info, owner_id))
        return [collection_from_core(c) for c in collections]

    @strawberry.field
    async def collection_counts(self, info: Info, owner_id: str) -> List[CollectionCount]:
        """Item count per collection id, including "all" """
        counts = await get_service(info).get_collection_counts(owner_id, get_viewer(info, owner_id))
        return counts_from_dict(counts)
