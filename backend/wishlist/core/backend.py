"""
Interface the core expects from the durable persistence collaborator
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from wishlist.core.types import Collection, WishItem


class CatalogBackend(Protocol):
    """Durable CRUD for items, collections and reservations.

    The backing store is the source of truth: every method returns the
    persisted state, which the catalog then adopts.
    """

    async def owner_exists(self, owner_id: str) -> bool:
        ...

    async def load_catalog(self, owner_id: str) -> Tuple[List[WishItem], List[Collection]]:
        ...

    async def fetch_item(self, item_id: str) -> Optional[WishItem]:
        ...

    async def insert_item(self, item: WishItem) -> WishItem:
        ...

    async def update_item(self, item: WishItem) -> WishItem:
        ...

    async def delete_item(self, item_id: str) -> bool:
        ...

    async def claim(self, item_id: str, claimant_id: str, claimed_at: datetime) -> bool:
        """Set the claimant only if the item has none (compare-and-set)"""
        ...

    async def release(self, item_id: str, claimant_id: str) -> bool:
        """Clear the claimant only if it is still ``claimant_id``"""
        ...

    async def insert_collection(self, collection: Collection) -> Collection:
        ...

    async def update_collection(self, collection: Collection) -> Collection:
        ...

    async def delete_collection(self, collection_id: str, changed_items: Iterable[WishItem]) -> None:
        ...

    async def save_collection_counts(self, counts: Dict[str, int]) -> None:
        ...
