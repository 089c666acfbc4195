"""
Catalog Store: the authoritative in-memory view of one owner's wishlist.

All writes go through a single non-reentrant write lock and update the item
map and the derived indexes together, so a reader never observes a catalog
whose indexes are half-applied. Search results are invalidated on every
mutation.
"""
import asyncio
import logging
import warnings
from collections import Counter
from contextlib import contextmanager
from dataclasses import replace
from typing import Awaitable, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from wishlist.core.errors import NotFound, StaleIndexWarning, ValidationError
from wishlist.core.indexes import CatalogIndexes
from wishlist.core.locks import ReadWriteLock
from wishlist.core.search import DEFAULT_CACHE_SIZE, DEFAULT_MIN_QUERY_LENGTH, SearchEngine
from wishlist.core.types import (
    ALL_COLLECTION_ID,
    HIGH_PRIORITY_SCORE,
    Collection,
    ReservationRecord,
    StatusFacet,
    WishItem,
)

logger = logging.getLogger(__name__)


class CatalogStore:
    """Items, collections and their derived indexes for a single owner"""

    def __init__(
        self,
        owner_id: str,
        search_cache_size: int = DEFAULT_CACHE_SIZE,
        min_query_length: int = DEFAULT_MIN_QUERY_LENGTH,
    ):
        self.owner_id = owner_id
        self._items: Dict[str, WishItem] = {}
        self._collections: Dict[str, Collection] = {}
        self._indexes = CatalogIndexes()
        self._lock = ReadWriteLock()
        self.search = SearchEngine(lambda: self._indexes, search_cache_size, min_query_length)
        self.generation = 0
        self.index_stale = False

    @classmethod
    def load(
        cls,
        owner_id: str,
        items: Iterable[WishItem],
        collections: Iterable[Collection] = (),
        **kwargs,
    ) -> "CatalogStore":
        """Build a store from a persisted snapshot (cold start)"""
        store = cls(owner_id, **kwargs)
        with store._lock.write():
            for collection in collections:
                store._collections[collection.id] = collection
            known = set(store._collections)
            for item in sorted(items, key=lambda it: it.created_at):
                dangling = item.collection_ids - known
                if dangling:
                    logger.warning("Item %s references unknown collections %s; dropping them", item.id, sorted(dangling))
                    item = replace(item, collection_ids=item.collection_ids & known)
                store._items[item.id] = item
            store._indexes.rebuild(store._items.values())
            store._refresh_counts(store._collections)
        logger.info("Loaded catalog for owner %s: %d items, %d collections",
                    owner_id, len(store._items), len(store._collections))
        return store

    # ------------------------------------------------------------------
    # Internal helpers (callers hold the write lock)
    # ------------------------------------------------------------------
    def _require(self, item_id: str) -> WishItem:
        item = self._items.get(item_id)
        if item is None:
            raise NotFound(f"Wishlist item {item_id} not found", item_id=item_id)
        return item

    def _check_collections(self, collection_ids: Iterable[str]) -> None:
        unknown = sorted(set(collection_ids) - set(self._collections))
        if unknown:
            raise ValidationError(f"Unknown collection id(s): {', '.join(unknown)}", field="collection_ids")

    def _reindex(self, apply: Callable[[], None]) -> None:
        """Run an index update; on failure retry once as a full rebuild"""
        try:
            apply()
            self.index_stale = False
        except Exception as e:
            logger.warning("Incremental index update failed (%s); rebuilding", e)
            self._rebuild_or_mark_stale()
        finally:
            self.search.invalidate()
            self.generation += 1

    def _rebuild_or_mark_stale(self) -> None:
        try:
            self._indexes.rebuild(self._items.values())
            self.index_stale = False
        except Exception as e:
            self.index_stale = True
            logger.warning("Index rebuild failed for owner %s: %s", self.owner_id, e)
            warnings.warn(f"Catalog indexes for owner {self.owner_id} are stale: {e}", StaleIndexWarning)

    def _refresh_counts(self, collection_ids: Iterable[str]) -> None:
        for cid in set(collection_ids):
            collection = self._collections.get(cid)
            if collection is not None:
                self._collections[cid] = replace(collection, item_count=self._indexes.collection_size(cid))

    # ------------------------------------------------------------------
    # Item mutations
    # ------------------------------------------------------------------
    def add(self, item: WishItem) -> WishItem:
        with self._lock.write():
            if item.id in self._items:
                raise ValidationError(f"Wishlist item {item.id} already exists", field="id")
            self._check_collections(item.collection_ids)
            self._items[item.id] = item
            self._reindex(lambda: self._indexes.add(item))
            self._refresh_counts(item.collection_ids)
        logger.info("Added item %s (%s) to catalog of %s", item.id, item.name, self.owner_id)
        return item

    def update(self, item_id: str, patch: dict) -> WishItem:
        with self._lock.write():
            old = self._require(item_id)
            new = old.with_patch(patch)
            self._check_collections(new.collection_ids)
            self._items[item_id] = new
            self._reindex(lambda: self._indexes.replace(old, new))
            self._refresh_counts(old.collection_ids | new.collection_ids)
        return new

    def put(self, item: WishItem) -> WishItem:
        """Insert or overwrite an item with an authoritative copy from the backing store"""
        with self._lock.write():
            old = self._items.get(item.id)
            item = replace(item, collection_ids=item.collection_ids & set(self._collections))
            self._items[item.id] = item
            if old is None:
                self._reindex(lambda: self._indexes.add(item))
                self._refresh_counts(item.collection_ids)
            else:
                self._reindex(lambda: self._indexes.replace(old, item))
                self._refresh_counts(old.collection_ids | item.collection_ids)
        return item

    def remove(self, item_id: str) -> WishItem:
        """Delete an item. Any reservation on it is released with it."""
        with self._lock.write():
            item = self._require(item_id)
            del self._items[item_id]
            self._reindex(lambda: self._indexes.remove(item))
            self._refresh_counts(item.collection_ids)
        logger.info("Removed item %s from catalog of %s", item_id, self.owner_id)
        return item

    def compare_and_set_reservation(
        self,
        item_id: str,
        expected_claimant: Optional[str],
        record: ReservationRecord,
    ) -> Tuple[bool, WishItem]:
        """Swap an item's reservation only if its current claimant matches.

        Returns ``(swapped, item)`` where ``item`` is the state after the call.
        """
        with self._lock.write():
            item = self._require(item_id)
            current = item.reservation.claimant_id if item.is_claimed else None
            if current != expected_claimant:
                return False, item
            new = item.with_patch({"reservation": record if record.is_claimed else None})
            self._items[item_id] = new
            self._reindex(lambda: self._indexes.replace(item, new))
        return True, new

    # ------------------------------------------------------------------
    # Collection mutations
    # ------------------------------------------------------------------
    def add_collection(self, collection: Collection) -> Collection:
        with self._lock.write():
            if collection.id in self._collections or collection.id == ALL_COLLECTION_ID:
                raise ValidationError(f"Collection {collection.id} already exists", field="id")
            self._check_unique_name(collection.name)
            self._collections[collection.id] = replace(collection, item_count=0)
            self.generation += 1
            return self._collections[collection.id]

    def _renamed(self, collection_id: str, name: Optional[str], icon: Optional[str]) -> Collection:
        collection = self._require_collection(collection_id)
        changes = {}
        if collection.is_default and (name is not None or icon is not None):
            raise ValidationError("Cannot modify default collection name or icon", field="name")
        if name is not None:
            if not name.strip():
                raise ValidationError("Collection name is required", field="name")
            self._check_unique_name(name, exclude=collection_id)
            changes["name"] = name.strip()
        if icon is not None:
            changes["icon"] = icon.strip() or collection.icon
        return replace(collection, **changes)

    def preview_collection_update(self, collection_id: str, name: Optional[str] = None,
                                  icon: Optional[str] = None) -> Collection:
        """Validate a rename and return the result without applying it"""
        with self._lock.read():
            return self._renamed(collection_id, name, icon)

    def update_collection(self, collection_id: str, name: Optional[str] = None,
                          icon: Optional[str] = None) -> Collection:
        with self._lock.write():
            updated = self._renamed(collection_id, name, icon)
            self._collections[collection_id] = updated
            self.generation += 1
            return updated

    def preview_collection_removal(self, collection_id: str) -> List[WishItem]:
        """The items ``remove_collection`` would change, without changing them"""
        with self._lock.read():
            collection = self._require_collection(collection_id)
            if collection.is_default:
                raise ValidationError("Cannot delete default collection", field="id")
            return [
                self._items[item_id].with_patch(
                    {"collection_ids": self._items[item_id].collection_ids - {collection_id}}
                )
                for item_id in self._indexes.collection_members(collection_id)
            ]

    def remove_collection(self, collection_id: str) -> List[WishItem]:
        """Delete a collection and strip it from every item that referenced it.

        Returns the items that were changed.
        """
        with self._lock.write():
            collection = self._require_collection(collection_id)
            if collection.is_default:
                raise ValidationError("Cannot delete default collection", field="id")
            changed: List[WishItem] = []
            for item_id in list(self._indexes.collection_members(collection_id)):
                old = self._items[item_id]
                new = old.with_patch({"collection_ids": old.collection_ids - {collection_id}})
                self._items[item_id] = new
                changed.append(new)
            del self._collections[collection_id]

            def apply():
                for new in changed:
                    old_ids = new.collection_ids | {collection_id}
                    self._indexes.replace(replace(new, collection_ids=old_ids), new)
                self._indexes.drop_collection(collection_id)

            self._reindex(apply)
        logger.info("Removed collection %s (%d items updated)", collection_id, len(changed))
        return changed

    def _require_collection(self, collection_id: str) -> Collection:
        collection = self._collections.get(collection_id)
        if collection is None:
            raise NotFound(f"Collection {collection_id} not found", collection_id=collection_id)
        return collection

    def _check_unique_name(self, name: str, exclude: Optional[str] = None) -> None:
        wanted = name.strip().lower()
        for other in self._collections.values():
            if other.id != exclude and other.name.lower() == wanted:
                raise ValidationError("A collection with this name already exists", field="name")

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------
    def recompute_collection_counts(self) -> Dict[str, int]:
        """Recount every collection from the items themselves"""
        with self._lock.write():
            counter: Counter = Counter()
            for item in self._items.values():
                counter.update(item.collection_ids)
            for cid, collection in self._collections.items():
                self._collections[cid] = replace(collection, item_count=counter.get(cid, 0))
            counts = {ALL_COLLECTION_ID: len(self._items)}
            counts.update({cid: c.item_count for cid, c in self._collections.items()})
            return counts

    def rebuild_indexes(self) -> None:
        with self._lock.write():
            self._rebuild_or_mark_stale()
            self.search.invalidate()
            self.generation += 1

    def ensure_fresh(self) -> None:
        """Rebuild indexes left stale by an earlier failure"""
        if self.index_stale:
            self.rebuild_indexes()

    @contextmanager
    def reading(self) -> Iterator[CatalogIndexes]:
        """Hold the read lock and expose the indexes for a consistent read"""
        self.ensure_fresh()
        with self._lock.read():
            yield self._indexes

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, item_id: str) -> WishItem:
        with self._lock.read():
            return self._require(item_id)

    def get_many(self, item_ids: Iterable[str]) -> List[WishItem]:
        with self._lock.read():
            return [self._items[i] for i in item_ids if i in self._items]

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def list(self, scope: str = ALL_COLLECTION_ID) -> List[WishItem]:
        """Items in a collection scope, in insertion order"""
        with self.reading() as indexes:
            if scope == ALL_COLLECTION_ID:
                ids = indexes.ids_in_order()
            else:
                self._require_collection(scope)
                ids = sorted(indexes.collection_members(scope), key=lambda i: indexes.order[i])
            return [self._items[i] for i in ids]

    def get_collection(self, collection_id: str) -> Collection:
        with self._lock.read():
            return self._require_collection(collection_id)

    def has_collection(self, collection_id: str) -> bool:
        return collection_id == ALL_COLLECTION_ID or collection_id in self._collections

    def collections(self) -> List[Collection]:
        """Default collection first, then creation order"""
        with self._lock.read():
            return sorted(self._collections.values(), key=lambda c: (not c.is_default, c.created_at))

    def collection_counts(self, public_only: bool = False) -> Dict[str, int]:
        """Items per collection. ``public_only`` counts what non-owners can see."""
        with self.reading() as indexes:
            if not public_only:
                counts = {ALL_COLLECTION_ID: len(self._items)}
                for cid in self._collections:
                    counts[cid] = indexes.collection_size(cid)
                return counts
            visible = indexes.status_members(StatusFacet.PUBLIC) - indexes.archived
            counts = {ALL_COLLECTION_ID: len(visible)}
            for cid in self._collections:
                counts[cid] = sum(1 for i in indexes.collection_members(cid) if i in visible)
            return counts

    def claims_by(self, viewer_id: str) -> List[WishItem]:
        with self.reading() as indexes:
            ids = sorted(indexes.status_members(StatusFacet.CLAIMED), key=lambda i: indexes.order[i])
            return [
                self._items[i] for i in ids
                if self._items[i].reservation.claimant_id == viewer_id
            ]

    def summary(self) -> dict:
        """Dashboard statistics read off the indexes"""
        with self.reading() as indexes:
            total = len(indexes)
            score_sum = sum(score * len(ids) for score, ids in indexes.by_score.items())
            return {
                "total_items": total,
                "total_collections": len(self._collections),
                "claimed_items": len(indexes.status_members(StatusFacet.CLAIMED)),
                "private_items": len(indexes.status_members(StatusFacet.PRIVATE)),
                "average_score": round(score_sum / total, 1) if total else 0,
                "high_priority_items": len(indexes.score_at_least(HIGH_PRIORITY_SCORE)),
            }

    def item_map(self) -> Dict[str, WishItem]:
        """Direct item lookup for callers already holding the read lock"""
        return self._items


Loader = Callable[[str], Awaitable[CatalogStore]]


class CatalogRegistry:
    """One CatalogStore per owner, loaded lazily from the backing store"""

    def __init__(self):
        self._stores: Dict[str, CatalogStore] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def get_or_load(self, owner_id: str, loader: Loader) -> CatalogStore:
        store = self._stores.get(owner_id)
        if store is not None:
            return store
        lock = self._locks.setdefault(owner_id, asyncio.Lock())
        async with lock:
            store = self._stores.get(owner_id)
            if store is None:
                store = await loader(owner_id)
                self._stores[owner_id] = store
        return store

    def register(self, store: CatalogStore) -> CatalogStore:
        self._stores[store.owner_id] = store
        return store

    def get(self, owner_id: str) -> Optional[CatalogStore]:
        return self._stores.get(owner_id)

    def drop(self, owner_id: str) -> None:
        self._stores.pop(owner_id, None)
        self._locks.pop(owner_id, None)

    def clear(self) -> None:
        self._stores.clear()
        self._locks.clear()
