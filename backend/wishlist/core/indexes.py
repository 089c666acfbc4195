"""
Secondary indexes derived from the catalog.

Every index is keyed off item ids and is updated incrementally from the
item(s) touched by a mutation. Nothing here is authoritative: the catalog
store can always throw the indexes away and rebuild them.
"""
import logging
from typing import Dict, Iterable, List, Optional, Set

from wishlist.core.types import (
    MAX_DESIRE_SCORE,
    MIN_DESIRE_SCORE,
    StatusFacet,
    WishItem,
)

logger = logging.getLogger(__name__)


def status_partitions(item: WishItem) -> Set[StatusFacet]:
    """The two status partitions an item sits in (one per axis)"""
    return {
        StatusFacet.CLAIMED if item.is_claimed else StatusFacet.AVAILABLE,
        StatusFacet.PRIVATE if item.is_private else StatusFacet.PUBLIC,
    }


class CatalogIndexes:
    """Index Builder state for a single catalog"""

    def __init__(self):
        # Dicts double as insertion-ordered sets
        self.order: Dict[str, int] = {}
        self.by_collection: Dict[str, Dict[str, None]] = {}
        self.by_category: Dict[str, Set[str]] = {}
        self.by_status: Dict[StatusFacet, Set[str]] = {facet: set() for facet in StatusFacet}
        self.by_score: Dict[int, Set[str]] = {
            score: set() for score in range(MIN_DESIRE_SCORE, MAX_DESIRE_SCORE + 1)
        }
        self.archived: Set[str] = set()
        self.blobs: Dict[str, str] = {}
        self.names: Dict[str, str] = {}
        self._next_seq = 0

    # ------------------------------------------------------------------
    # Incremental maintenance
    # ------------------------------------------------------------------
    def add(self, item: WishItem) -> None:
        if item.id not in self.order:
            self.order[item.id] = self._next_seq
            self._next_seq += 1
        for cid in item.collection_ids:
            self.by_collection.setdefault(cid, {})[item.id] = None
        for tag in item.category_tags:
            self.by_category.setdefault(tag, set()).add(item.id)
        for facet in status_partitions(item):
            self.by_status[facet].add(item.id)
        self.by_score[item.desire_score].add(item.id)
        if item.is_archived:
            self.archived.add(item.id)
        self.blobs[item.id] = item.search_blob()
        self.names[item.id] = item.name.lower()

    def remove(self, item: WishItem) -> None:
        self.order.pop(item.id, None)
        for cid in item.collection_ids:
            members = self.by_collection.get(cid)
            if members is not None:
                members.pop(item.id, None)
        for tag in item.category_tags:
            self._discard(self.by_category, tag, item.id)
        for facet in self.by_status.values():
            facet.discard(item.id)
        self.by_score[item.desire_score].discard(item.id)
        self.archived.discard(item.id)
        self.blobs.pop(item.id, None)
        self.names.pop(item.id, None)

    def replace(self, old: WishItem, new: WishItem) -> None:
        """Apply the delta between two versions of the same item"""
        item_id = new.id

        for cid in old.collection_ids - new.collection_ids:
            members = self.by_collection.get(cid)
            if members is not None:
                members.pop(item_id, None)
        for cid in new.collection_ids - old.collection_ids:
            self.by_collection.setdefault(cid, {})[item_id] = None

        for tag in old.category_tags - new.category_tags:
            self._discard(self.by_category, tag, item_id)
        for tag in new.category_tags - old.category_tags:
            self.by_category.setdefault(tag, set()).add(item_id)

        old_status, new_status = status_partitions(old), status_partitions(new)
        for facet in old_status - new_status:
            self.by_status[facet].discard(item_id)
        for facet in new_status - old_status:
            self.by_status[facet].add(item_id)

        if old.desire_score != new.desire_score:
            self.by_score[old.desire_score].discard(item_id)
            self.by_score[new.desire_score].add(item_id)

        if new.is_archived:
            self.archived.add(item_id)
        else:
            self.archived.discard(item_id)

        self.blobs[item_id] = new.search_blob()
        self.names[item_id] = new.name.lower()

    def drop_collection(self, collection_id: str) -> None:
        self.by_collection.pop(collection_id, None)

    def rebuild(self, items: Iterable[WishItem]) -> None:
        """Full rebuild, keeping the existing insertion sequence where known"""
        previous = self.order
        ordered = sorted(items, key=lambda it: (previous.get(it.id, float("inf")), it.created_at))
        self.__init__()
        for item in ordered:
            self.add(item)
        logger.debug("Rebuilt indexes for %d items", len(ordered))

    @staticmethod
    def _discard(index: Dict[str, Set[str]], key: str, item_id: str) -> None:
        members = index.get(key)
        if members is None:
            return
        members.discard(item_id)
        if not members:
            del index[key]

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def ids_in_order(self) -> List[str]:
        return list(self.order)

    def collection_members(self, collection_id: str) -> Dict[str, None]:
        return self.by_collection.get(collection_id, {})

    def collection_size(self, collection_id: str) -> int:
        return len(self.by_collection.get(collection_id, ()))

    def category_members(self, tag: str) -> Set[str]:
        return self.by_category.get(tag.strip().lower(), set())

    def status_members(self, facet: StatusFacet) -> Set[str]:
        return self.by_status[facet]

    def score_at_least(self, threshold: int) -> Set[str]:
        return self.score_between(threshold, MAX_DESIRE_SCORE)

    def score_between(self, low: Optional[int], high: Optional[int]) -> Set[str]:
        """Union of the score buckets in [low, high]; a missing bound is open"""
        low = MIN_DESIRE_SCORE if low is None else max(low, MIN_DESIRE_SCORE)
        high = MAX_DESIRE_SCORE if high is None else min(high, MAX_DESIRE_SCORE)
        out: Set[str] = set()
        for score in range(low, high + 1):
            out |= self.by_score[score]
        return out

    def sequence(self, item_id: str) -> Optional[int]:
        return self.order.get(item_id)

    def __len__(self) -> int:
        return len(self.order)
