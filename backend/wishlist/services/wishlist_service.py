"""
Wishlist service: the single entry point the API layers use.

It owns one CatalogStore per wishlist owner (loaded from the backing store on
first access), routes every write through the persistence collaborator and
then into the catalog, and shapes every read through the reservation views.
"""
import logging
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Dict, Iterable, List, Optional

from wishlist.config import Settings, get_settings
from wishlist.core.backend import CatalogBackend
from wishlist.core.bulk import BulkOperationCoordinator, BulkReport
from wishlist.core.catalog import CatalogRegistry, CatalogStore
from wishlist.core.errors import Forbidden, NotFound, ValidationError
from wishlist.core.filters import FilterPipeline, ItemFilters
from wishlist.core.reservations import ItemView, ReservationCoordinator
from wishlist.core.search import SearchSequencer
from wishlist.core.types import Collection, ReservationRecord, Viewer, WishItem

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION_NAME = "My Wishlist"
DEFAULT_COLLECTION_ICON = "⭐"


@dataclass
class ListResult:
    items: List[ItemView] = field(default_factory=list)
    filtered_count: int = 0
    total_count: int = 0
    page: int = 1
    page_size: int = 20
    has_more: bool = False
    request_seq: Optional[int] = None
    superseded: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "items": [view.to_dict() for view in self.items],
            "filtered_count": self.filtered_count,
            "total_count": self.total_count,
            "page": self.page,
            "page_size": self.page_size,
            "has_more": self.has_more,
            "request_seq": self.request_seq,
            "superseded": self.superseded,
            "error": self.error,
        }


class WishlistService:
    def __init__(
        self,
        backend: Optional[CatalogBackend] = None,
        settings: Optional[Settings] = None,
        registry: Optional[CatalogRegistry] = None,
    ):
        self.backend = backend
        self.settings = settings or get_settings()
        self.registry = registry or CatalogRegistry()
        self.sequencer = SearchSequencer(self.settings.search_max_channels)

    # ------------------------------------------------------------------
    # Catalog access
    # ------------------------------------------------------------------
    async def catalog(self, owner_id: str) -> CatalogStore:
        return await self.registry.get_or_load(str(owner_id), self._load)

    async def _load(self, owner_id: str) -> CatalogStore:
        options = dict(
            search_cache_size=self.settings.search_cache_size,
            min_query_length=self.settings.search_min_query_length,
        )
        if self.backend is None:
            return CatalogStore(owner_id, **options)

        if not await self.backend.owner_exists(owner_id):
            raise NotFound(f"Wishlist owner {owner_id} not found", owner_id=owner_id)

        items, collections = await self.backend.load_catalog(owner_id)
        if not any(c.is_default for c in collections):
            default = Collection.create(owner_id, DEFAULT_COLLECTION_NAME, DEFAULT_COLLECTION_ICON, is_default=True)
            collections.append(await self.backend.insert_collection(default))
            logger.info("Created default collection for owner %s", owner_id)
        return CatalogStore.load(owner_id, items, collections, **options)

    async def reload(self, owner_id: str) -> CatalogStore:
        """Drop the cached catalog and load it again from the backing store"""
        self.registry.drop(str(owner_id))
        self.sequencer.forget(str(owner_id))
        return await self.catalog(owner_id)

    def _reservations(self, store: CatalogStore) -> ReservationCoordinator:
        return ReservationCoordinator(store, self.backend)

    @staticmethod
    def _require_owner(viewer: Viewer) -> None:
        if not viewer.is_owner:
            raise Forbidden("Only the owner can change this wishlist")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def list_items(
        self,
        owner_id: str,
        viewer: Viewer,
        filters: Optional[ItemFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
        request_seq: Optional[int] = None,
    ) -> ListResult:
        """Ranked, filtered, paginated listing shaped for the viewer.

        Never raises: failures come back as an empty result with ``error``
        set. A result overtaken by a newer request on the same channel comes
        back empty with ``superseded`` set.
        """
        filters = filters or ItemFilters()
        page = max(1, page)
        page_size = min(page_size or self.settings.default_page_size, self.settings.max_page_size)
        channel = (str(owner_id), viewer.viewer_id)
        seq = self.sequencer.issue(channel, request_seq)
        result = ListResult(page=page, page_size=page_size, request_seq=seq)

        try:
            store = await self.catalog(owner_id)
            filtered = FilterPipeline(store).run(viewer, filters)
        except Exception as e:
            logger.warning("Listing for owner %s failed: %s", owner_id, e)
            result.error = getattr(e, "detail", None) or str(e)
            return result

        if not self.sequencer.is_current(channel, seq):
            logger.debug("Discarding superseded listing %d for %s", seq, channel)
            result.superseded = True
            return result

        offset = (page - 1) * page_size
        window = filtered.items[offset:offset + page_size]
        result.items = self._reservations(store).views(window, viewer)
        result.filtered_count = filtered.filtered_count
        result.total_count = filtered.total_count
        result.has_more = offset + page_size < filtered.filtered_count
        return result

    async def get_item(self, owner_id: str, item_id: str, viewer: Viewer) -> ItemView:
        store = await self.catalog(owner_id)
        return self._reservations(store).view_for(store.get(item_id), viewer)

    async def get_collection_counts(self, owner_id: str, viewer: Viewer) -> Dict[str, int]:
        store = await self.catalog(owner_id)
        return store.collection_counts(public_only=not viewer.is_owner)

    async def list_collections(self, owner_id: str, viewer: Viewer) -> List[Collection]:
        store = await self.catalog(owner_id)
        if viewer.is_owner:
            return store.collections()
        counts = store.collection_counts(public_only=True)
        return [replace(c, item_count=counts.get(c.id, 0)) for c in store.collections()]

    async def summary(self, owner_id: str, viewer: Viewer) -> dict:
        self._require_owner(viewer)
        store = await self.catalog(owner_id)
        return store.summary()

    async def my_claims(self, owner_id: str, viewer: Viewer) -> List[ItemView]:
        if not viewer.is_authenticated:
            raise Forbidden("Sign in to see your claims")
        if viewer.is_owner:
            return []
        store = await self.catalog(owner_id)
        reservations = self._reservations(store)
        return [
            reservations.view_for(item, viewer)
            for item in store.claims_by(viewer.viewer_id)
            if not item.is_private and not item.is_archived
        ]

    # ------------------------------------------------------------------
    # Item writes
    # ------------------------------------------------------------------
    def _check_collections(self, store: CatalogStore, collection_ids: Iterable[str]) -> None:
        unknown = sorted(c for c in collection_ids if not store.has_collection(c))
        if unknown:
            raise ValidationError(f"Unknown collection id(s): {', '.join(unknown)}", field="collection_ids")

    async def add_item(self, owner_id: str, viewer: Viewer, data: dict) -> ItemView:
        self._require_owner(viewer)
        store = await self.catalog(owner_id)
        item = WishItem.create(owner_id=str(owner_id), **data)
        self._check_collections(store, item.collection_ids)
        if self.backend is not None:
            item = await self.backend.insert_item(item)
        store.add(item)
        return self._reservations(store).view_for(item, viewer)

    async def update_item(self, owner_id: str, viewer: Viewer, item_id: str, patch: dict) -> ItemView:
        self._require_owner(viewer)
        store = await self.catalog(owner_id)
        if "reservation" in patch:
            raise ValidationError("Claims change through claim/unclaim only", field="reservation")
        updated = store.get(item_id).with_patch(patch)
        self._check_collections(store, updated.collection_ids)
        if self.backend is None:
            updated = store.update(item_id, patch)
        else:
            updated = store.put(await self.backend.update_item(updated))
        logger.info("Updated item %s (%s)", item_id, ", ".join(sorted(patch)))
        return self._reservations(store).view_for(updated, viewer)

    async def remove_item(self, owner_id: str, viewer: Viewer, item_id: str) -> None:
        self._require_owner(viewer)
        store = await self.catalog(owner_id)
        store.get(item_id)
        if self.backend is not None and not await self.backend.delete_item(item_id):
            store.remove(item_id)
            raise NotFound(f"Wishlist item {item_id} not found", item_id=item_id)
        store.remove(item_id)

    async def add_to_collections(self, owner_id: str, viewer: Viewer, item_id: str,
                                 collection_ids: List[str]) -> ItemView:
        if not collection_ids:
            raise ValidationError("Collection IDs must be a non-empty list", field="collection_ids")
        store = await self.catalog(owner_id)
        current = store.get(item_id).collection_ids
        return await self.update_item(owner_id, viewer, item_id, {"collection_ids": current | set(collection_ids)})

    async def remove_from_collections(self, owner_id: str, viewer: Viewer, item_id: str,
                                      collection_ids: List[str]) -> ItemView:
        if not collection_ids:
            raise ValidationError("Collection IDs must be a non-empty list", field="collection_ids")
        store = await self.catalog(owner_id)
        current = store.get(item_id).collection_ids
        return await self.update_item(owner_id, viewer, item_id, {"collection_ids": current - set(collection_ids)})

    # ------------------------------------------------------------------
    # Claims and bulk
    # ------------------------------------------------------------------
    async def claim(self, owner_id: str, item_id: str, viewer: Viewer) -> ReservationRecord:
        store = await self.catalog(owner_id)
        return await self._reservations(store).claim(item_id, viewer)

    async def unclaim(self, owner_id: str, item_id: str, viewer: Viewer) -> ReservationRecord:
        store = await self.catalog(owner_id)
        return await self._reservations(store).unclaim(item_id, viewer)

    async def bulk_apply(
        self,
        owner_id: str,
        kind: str,
        item_ids: List[str],
        viewer: Viewer,
        target_collection_id: Optional[str] = None,
    ) -> BulkReport:
        store = await self.catalog(owner_id)
        coordinator = BulkOperationCoordinator(
            store,
            self.backend,
            item_timeout=self.settings.bulk_item_timeout,
            concurrency=self.settings.bulk_concurrency,
        )
        return await coordinator.apply(kind, item_ids, viewer.role, target_collection_id)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------
    async def create_collection(self, owner_id: str, viewer: Viewer, name: str,
                                icon: Optional[str] = None) -> Collection:
        self._require_owner(viewer)
        store = await self.catalog(owner_id)
        collection = Collection.create(str(owner_id), name, icon)
        if any(c.name.lower() == collection.name.lower() for c in store.collections()):
            raise ValidationError("A collection with this name already exists", field="name")
        if self.backend is not None:
            collection = await self.backend.insert_collection(collection)
        return store.add_collection(collection)

    async def update_collection(self, owner_id: str, viewer: Viewer, collection_id: str,
                                name: Optional[str] = None, icon: Optional[str] = None) -> Collection:
        self._require_owner(viewer)
        store = await self.catalog(owner_id)
        if self.backend is not None:
            await self.backend.update_collection(store.preview_collection_update(collection_id, name=name, icon=icon))
        return store.update_collection(collection_id, name=name, icon=icon)

    async def delete_collection(self, owner_id: str, viewer: Viewer, collection_id: str) -> None:
        self._require_owner(viewer)
        store = await self.catalog(owner_id)
        collection = store.get_collection(collection_id)
        if self.backend is not None:
            await self.backend.delete_collection(collection_id, store.preview_collection_removal(collection_id))
        store.remove_collection(collection_id)
        logger.info("Deleted collection %s (%s)", collection_id, collection.name)


@lru_cache()
def get_wishlist_service() -> WishlistService:
    """Process-wide service bound to the configured database"""
    from wishlist.database import async_session_maker
    from wishlist.services.repository import SqlCatalogBackend

    return WishlistService(SqlCatalogBackend(async_session_maker))
