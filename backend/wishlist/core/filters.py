"""
Filter Pipeline: collection scope, facets and search composed into one
ranked result set.

Scope and facets are plain set intersections and commute. The search pass
always runs last because it decides the final rank order.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from wishlist.core.catalog import CatalogStore
from wishlist.core.errors import NotFound, ValidationError
from wishlist.core.indexes import CatalogIndexes
from wishlist.core.types import (
    ALL_COLLECTION_ID,
    SortOrder,
    StatusFacet,
    Viewer,
    WishItem,
    validate_score,
)

logger = logging.getLogger(__name__)


@dataclass
class ItemFilters:
    """Everything a listing request can narrow or order by"""
    collection: str = ALL_COLLECTION_ID
    category: Optional[str] = None
    status: Optional[StatusFacet] = None
    min_score: Optional[int] = None
    max_score: Optional[int] = None
    search: Optional[str] = None
    sort: SortOrder = SortOrder.CREATED
    include_archived: bool = False

    def __post_init__(self):
        if isinstance(self.status, str) and not isinstance(self.status, StatusFacet):
            self.status = StatusFacet.parse(self.status)
        if isinstance(self.sort, str) and not isinstance(self.sort, SortOrder):
            self.sort = SortOrder(self.sort)
        for bound in (self.min_score, self.max_score):
            if bound is not None:
                validate_score(bound)
        if self.min_score is not None and self.max_score is not None and self.min_score > self.max_score:
            raise ValidationError("min_score cannot exceed max_score", field="max_score")
        self.collection = self.collection or ALL_COLLECTION_ID


@dataclass
class FilterResult:
    items: List[Tuple[WishItem, int]] = field(default_factory=list)
    filtered_count: int = 0
    total_count: int = 0


class FilterPipeline:
    def __init__(self, store: CatalogStore):
        self.store = store

    def visible_ids(self, indexes: CatalogIndexes, viewer: Viewer, include_archived: bool) -> Set[str]:
        """Items the viewer may see at all. Private items never reach non-owners."""
        ids = set(indexes.order)
        if not viewer.is_owner:
            ids &= indexes.status_members(StatusFacet.PUBLIC)
            include_archived = False
        if not include_archived:
            ids -= indexes.archived
        return ids

    def run(self, viewer: Viewer, filters: ItemFilters) -> FilterResult:
        store = self.store
        if not store.has_collection(filters.collection):
            raise NotFound(f"Collection {filters.collection} not found", collection_id=filters.collection)

        with store.reading() as indexes:
            visible = self.visible_ids(indexes, viewer, filters.include_archived)
            candidates = set(visible)

            if filters.collection != ALL_COLLECTION_ID:
                candidates &= set(indexes.collection_members(filters.collection))
            if filters.category:
                candidates &= indexes.category_members(filters.category)
            if filters.status is not None:
                candidates &= indexes.status_members(filters.status)
            if filters.min_score is not None or filters.max_score is not None:
                candidates &= indexes.score_between(filters.min_score, filters.max_score)

            items = store.item_map()
            ordered = self._sort(candidates, indexes, items, filters.sort)
            ranked = store.search.search(filters.search, ordered)

            return FilterResult(
                items=[(items[item_id], score) for item_id, score in ranked],
                filtered_count=len(ranked),
                total_count=len(visible),
            )

    @staticmethod
    def _sort(ids: Set[str], indexes: CatalogIndexes, items, order: SortOrder) -> List[str]:
        seq = indexes.order
        if order == SortOrder.NEWEST:
            return sorted(ids, key=lambda i: -seq[i])
        if order == SortOrder.SCORE_HIGH:
            return sorted(ids, key=lambda i: (-items[i].desire_score, seq[i]))
        if order == SortOrder.SCORE_LOW:
            return sorted(ids, key=lambda i: (items[i].desire_score, seq[i]))
        if order == SortOrder.NAME:
            return sorted(ids, key=lambda i: (indexes.names[i], seq[i]))
        return sorted(ids, key=lambda i: seq[i])
