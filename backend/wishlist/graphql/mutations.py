"""
GraphQL Mutations
Claim operations, plus bulk edits for the owner
"""
import strawberry
from typing import List, Optional
from strawberry.types import Info

from wishlist.core.errors import WishlistError
from wishlist.graphql.queries import get_service, get_viewer
from wishlist.graphql.types import (
    BulkResult,
    ClaimResult,
    bulk_result_from_report,
    item_from_view,
    reservation_from_record,
)


@strawberry.type
class Mutation:
    @strawberry.mutation
    async def claim_item(self, info: Info, owner_id: str, item_id: str) -> ClaimResult:
        """
        Claim ("dibs") an item on someone else's wishlist.
        Requires authentication. Fails if the item is already claimed.
        """
        viewer = get_viewer(info, owner_id)
        if not viewer.is_authenticated:
            return ClaimResult(
                success=False,
                message="Authentication required to claim items",
                code="Forbidden",
            )

        service = get_service(info)
        try:
            record = await service.claim(owner_id, item_id, viewer)
            view = await service.get_item(owner_id, item_id, viewer)
        except WishlistError as e:
            return ClaimResult(success=False, message=e.detail, code=e.code)

        return ClaimResult(
            success=True,
            message="Item claimed",
            reservation=reservation_from_record(record),
            item=item_from_view(view),
        )

    @strawberry.mutation
    async def unclaim_item(self, info: Info, owner_id: str, item_id: str) -> ClaimResult:
        """Release a claim held by the caller (or, for the owner, any claim)"""
        viewer = get_viewer(info, owner_id)
        service = get_service(info)
        try:
            record = await service.unclaim(owner_id, item_id, viewer)
            view = await service.get_item(owner_id, item_id, viewer)
        except WishlistError as e:
            return ClaimResult(success=False, message=e.detail, code=e.code)

        return ClaimResult(
            success=True,
            message="Claim released",
            reservation=reservation_from_record(record),
            item=item_from_view(view),
        )

    @strawberry.mutation
    async def bulk_update_items(
        self,
        info: Info,
        owner_id: str,
        kind: str,
        item_ids: List[str],
        target_collection_id: Optional[str] = None,
    ) -> BulkResult:
        """
        Apply one operation to many items. Owner only.

        Args:
            kind: delete, archive, togglePrivacy, moveToCollection or duplicate
            item_ids: Items to operate on
            target_collection_id: Required for moveToCollection
        """
        viewer = get_viewer(info, owner_id)
        try:
            report = await get_service(info).bulk_apply(
                owner_id, kind, item_ids, viewer, target_collection_id,
            )
        except WishlistError as e:
            return BulkResult(
                success=False,
                message=e.detail,
                succeeded_ids=[],
                failed=[],
                created=[],
                counts=[],
            )
        return bulk_result_from_report(report)
