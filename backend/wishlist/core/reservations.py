"""
Reservation Coordinator: the claim ("dibs") state machine and the per-role
item views.

    Available --claim(non-owner, public item)--> Claimed
    Claimed --unclaim(same claimant) or owner release--> Available

The owner of an item never learns who claimed it: views are shaped here so
presentation code never has to branch on the raw claimant field.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import ClassVar, List, Optional, Sequence, Tuple

from wishlist.core.backend import CatalogBackend
from wishlist.core.catalog import CatalogStore
from wishlist.core.errors import AlreadyClaimed, Forbidden, InvalidClaim, NotFound
from wishlist.core.types import ReservationRecord, Role, Viewer, WishItem, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemView:
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
    reserved: bool
    search_score: int

    perspective: ClassVar[str] = "viewer"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["perspective"] = self.perspective
        return data


@dataclass(frozen=True)
class OwnerItemView(ItemView):
    """What the owner sees: a reserved flag and nothing about who"""
    can_edit: bool = True

    perspective: ClassVar[str] = Role.OWNER.value


@dataclass(frozen=True)
class ViewerItemView(ItemView):
    """A non-owner who does not hold the claim"""
    claimant_id: Optional[str] = None
    can_claim: bool = False

    perspective: ClassVar[str] = "viewer"


@dataclass(frozen=True)
class ClaimantItemView(ItemView):
    """The viewer holding the claim: their claim plus the unclaim control"""
    claimant_id: Optional[str] = None
    claimed_at: Optional[datetime] = None
    can_unclaim: bool = True

    perspective: ClassVar[str] = "claimant"


class ReservationCoordinator:
    def __init__(self, store: CatalogStore, backend: Optional[CatalogBackend] = None):
        self.store = store
        self.backend = backend

    async def claim(self, item_id: str, viewer: Viewer) -> ReservationRecord:
        """Claim an item for ``viewer``.

        Raises InvalidClaim for private items or the owner's own items and
        AlreadyClaimed if any claim is active. An existing claim is never
        overwritten.
        """
        if not viewer.is_authenticated:
            raise Forbidden("Sign in to claim items")

        item = self.store.get(item_id)
        if viewer.is_owner or viewer.viewer_id == item.owner_id:
            raise InvalidClaim("You cannot claim your own item", item_id=item_id)
        if item.is_private:
            raise InvalidClaim("Private items cannot be claimed", item_id=item_id)
        if item.is_archived:
            raise InvalidClaim("Archived items cannot be claimed", item_id=item_id)
        if item.is_claimed:
            raise self._already_claimed(item, viewer)

        record = ReservationRecord.claimed(item_id, viewer.viewer_id, utcnow())

        if self.backend is not None:
            won = await self.backend.claim(item_id, viewer.viewer_id, record.claimed_at)
            if not won:
                # Lost the race in the backing store: trust it, not our copy
                current = await self.resync(item_id)
                logger.info("Claim on %s by %s lost to a concurrent claim", item_id, viewer.viewer_id)
                raise self._already_claimed(current or item, viewer)

        swapped, current = self.store.compare_and_set_reservation(item_id, None, record)
        if not swapped:
            if self.backend is None or not self._held_by(current, viewer):
                raise self._already_claimed(current, viewer)
            # A losing claimant already re-read our winning row into the catalog
            record = current.reservation_record

        logger.info("Item %s claimed by %s", item_id, viewer.viewer_id)
        return record

    async def unclaim(self, item_id: str, viewer: Viewer) -> ReservationRecord:
        """Release a claim.

        The claimant may release their own claim; the owner may release any
        claim on their items. Unclaiming an Available item is a no-op.
        """
        item = self.store.get(item_id)
        claimant = item.reservation.claimant_id if item.is_claimed else None

        if not viewer.is_owner and viewer.viewer_id != claimant:
            if item.is_private or item.is_archived:
                raise NotFound(f"Wishlist item {item_id} not found", item_id=item_id)
            if claimant is not None:
                raise Forbidden("Only the claimant or the owner can release this claim", item_id=item_id)

        if claimant is None:
            return ReservationRecord.available(item_id)

        if self.backend is not None:
            released = await self.backend.release(item_id, claimant)
            if not released:
                current = await self.resync(item_id)
                if current is None or not current.is_claimed:
                    return ReservationRecord.available(item_id)
                raise Forbidden("The claim on this item changed; refresh and try again", item_id=item_id)

        swapped, current = self.store.compare_and_set_reservation(
            item_id, claimant, ReservationRecord.available(item_id)
        )
        if not swapped and current.is_claimed:
            raise Forbidden("The claim on this item changed; refresh and try again", item_id=item_id)

        if viewer.is_owner:
            logger.info("Owner released claim on %s", item_id)
        else:
            logger.info("Item %s unclaimed by %s", item_id, viewer.viewer_id)
        return ReservationRecord.available(item_id)

    async def resync(self, item_id: str) -> Optional[WishItem]:
        """Re-read an item from the backing store into the catalog"""
        if self.backend is None:
            return self.store.get(item_id) if item_id in self.store else None
        fresh = await self.backend.fetch_item(item_id)
        if fresh is None:
            if item_id in self.store:
                self.store.remove(item_id)
            return None
        return self.store.put(fresh)

    @staticmethod
    def _held_by(item: WishItem, viewer: Viewer) -> bool:
        return item.is_claimed and item.reservation.claimant_id == viewer.viewer_id

    @classmethod
    def _already_claimed(cls, item: WishItem, viewer: Viewer) -> AlreadyClaimed:
        if cls._held_by(item, viewer):
            return AlreadyClaimed("You have already claimed this item", item_id=item.id)
        return AlreadyClaimed("This item has already been claimed by someone else", item_id=item.id)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def view_for(self, item: WishItem, viewer: Viewer, search_score: int = 0) -> ItemView:
        if not viewer.is_owner and (item.is_private or item.is_archived):
            raise NotFound(f"Wishlist item {item.id} not found", item_id=item.id)

        base = dict(
            id=item.id,
            name=item.name,
            description=item.description,
            link=item.link,
            image_url=item.image_url,
            desire_score=item.desire_score,
            category_tags=sorted(item.category_tags),
            collection_ids=sorted(item.collection_ids),
            is_private=item.is_private,
            is_archived=item.is_archived,
            created_at=item.created_at,
            reserved=item.is_claimed,
            search_score=search_score,
        )

        if viewer.is_owner:
            return OwnerItemView(**base)

        record = item.reservation_record
        if record.is_claimed and record.claimant_id == viewer.viewer_id:
            return ClaimantItemView(
                **base,
                claimant_id=record.claimant_id,
                claimed_at=record.claimed_at,
            )

        return ViewerItemView(
            **base,
            claimant_id=record.claimant_id if viewer.role == Role.FRIEND else None,
            can_claim=viewer.is_authenticated and not record.is_claimed,
        )

    def views(self, scored: Sequence[Tuple[WishItem, int]], viewer: Viewer) -> List[ItemView]:
        return [self.view_for(item, viewer, score) for item, score in scored]
