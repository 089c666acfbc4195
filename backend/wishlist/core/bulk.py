"""
Bulk Operation Coordinator: owner-only multi-item mutations.

Each item is mutated independently and concurrently; one failure never rolls
back or blocks the others. Once every item has settled (or timed out) the
collection counts are recounted from the catalog and every derived index and
search cache is rebuilt.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Union

from wishlist.core.backend import CatalogBackend
from wishlist.core.catalog import CatalogStore
from wishlist.core.errors import Forbidden, NotFound, PartialFailure, ValidationError, WishlistError
from wishlist.core.types import ALL_COLLECTION_ID, BulkOperationKind, Role, WishItem

logger = logging.getLogger(__name__)

DEFAULT_ITEM_TIMEOUT = 10.0
DEFAULT_CONCURRENCY = 10


@dataclass
class BulkFailure:
    id: str
    reason: str
    detail: str = ""

    def to_dict(self) -> dict:
        return {"id": self.id, "reason": self.reason, "detail": self.detail}


@dataclass
class BulkReport:
    kind: BulkOperationKind
    succeeded: List[str] = field(default_factory=list)
    failed: List[BulkFailure] = field(default_factory=list)
    # original id -> id of the new copy, for duplicate
    created: Dict[str, str] = field(default_factory=dict)
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def is_partial(self) -> bool:
        return bool(self.succeeded) and bool(self.failed)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "succeededIds": list(self.succeeded),
            "failedIds": [f.to_dict() for f in self.failed],
            "created": dict(self.created),
            "counts": dict(self.counts),
        }


class BulkOperationCoordinator:
    def __init__(
        self,
        store: CatalogStore,
        backend: Optional[CatalogBackend] = None,
        item_timeout: float = DEFAULT_ITEM_TIMEOUT,
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        self.store = store
        self.backend = backend
        self.item_timeout = item_timeout
        self.concurrency = max(1, concurrency)

    async def apply(
        self,
        kind: Union[str, BulkOperationKind],
        item_ids: Iterable[str],
        role: Union[str, Role],
        target_collection_id: Optional[str] = None,
        raise_on_partial: bool = False,
    ) -> BulkReport:
        """Run one bulk operation and return the per-item report"""
        if Role(role) != Role.OWNER:
            raise Forbidden("Only the owner can run bulk operations")
        try:
            kind = BulkOperationKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown bulk operation: {kind!r}", field="kind")

        if kind == BulkOperationKind.MOVE_TO_COLLECTION:
            if not target_collection_id or target_collection_id == ALL_COLLECTION_ID:
                raise ValidationError("A target collection is required to move items", field="target_collection_id")
            if not self.store.has_collection(target_collection_id):
                raise NotFound(f"Collection {target_collection_id} not found", collection_id=target_collection_id)

        ids = list(dict.fromkeys(i for i in item_ids if i))
        report = BulkReport(kind=kind)
        semaphore = asyncio.Semaphore(self.concurrency)
        # ids whose backend write may have landed without reaching the catalog
        in_doubt: List[str] = []

        async def run(item_id: str) -> None:
            pending: List[str] = [item_id]
            async with semaphore:
                try:
                    new_id = await asyncio.wait_for(
                        self._apply_one(kind, item_id, target_collection_id, pending),
                        timeout=self.item_timeout,
                    )
                except asyncio.TimeoutError:
                    logger.error("Bulk %s timed out for item %s", kind.value, item_id)
                    report.failed.append(BulkFailure(item_id, "Timeout", f"No response within {self.item_timeout}s"))
                    in_doubt.extend(pending)
                except WishlistError as e:
                    report.failed.append(BulkFailure(item_id, e.code, e.detail))
                except Exception as e:
                    logger.exception("Bulk %s failed for item %s", kind.value, item_id)
                    report.failed.append(BulkFailure(item_id, "Error", str(e)))
                else:
                    report.succeeded.append(item_id)
                    if new_id is not None:
                        report.created[item_id] = new_id

        await asyncio.gather(*(run(i) for i in ids))
        for item_id in in_doubt:
            await self._resync(item_id)

        # Report in request order, not completion order
        position = {item_id: n for n, item_id in enumerate(ids)}
        report.succeeded.sort(key=position.__getitem__)
        report.failed.sort(key=lambda f: position[f.id])

        report.counts = self.store.recompute_collection_counts()
        self.store.rebuild_indexes()
        if self.backend is not None:
            try:
                await self.backend.save_collection_counts(report.counts)
            except Exception as e:
                logger.error("Failed to persist collection counts after bulk %s: %s", kind.value, e)

        logger.info(
            "Bulk %s on %d item(s): %d succeeded, %d failed",
            kind.value, len(ids), len(report.succeeded), len(report.failed),
        )
        if raise_on_partial and report.failed:
            raise PartialFailure(report)
        return report

    async def _resync(self, item_id: str) -> None:
        """Make the catalog agree with the backing store for one item"""
        if self.backend is None:
            return
        try:
            fresh = await self.backend.fetch_item(item_id)
        except Exception as e:
            logger.error("Could not re-read item %s after timeout: %s", item_id, e)
            return
        if fresh is None:
            if item_id in self.store:
                self.store.remove(item_id)
        else:
            self.store.put(fresh)

    async def _apply_one(self, kind: BulkOperationKind, item_id: str,
                         target_collection_id: Optional[str],
                         pending: Optional[List[str]] = None) -> Optional[str]:
        item = self.store.get(item_id)

        if kind == BulkOperationKind.DELETE:
            if self.backend is not None and not await self.backend.delete_item(item_id):
                raise NotFound(f"Wishlist item {item_id} not found", item_id=item_id)
            self.store.remove(item_id)
            return None

        if kind == BulkOperationKind.DUPLICATE:
            copy = WishItem.create(
                owner_id=item.owner_id,
                name=f"{item.name} (copy)",
                description=item.description,
                link=item.link,
                image_url=item.image_url,
                desire_score=item.desire_score,
                category_tags=item.category_tags,
                is_private=item.is_private,
                collection_ids=item.collection_ids,
            )
            if pending is not None:
                pending.append(copy.id)
            if self.backend is not None:
                copy = await self.backend.insert_item(copy)
            self.store.add(copy)
            return copy.id

        if kind == BulkOperationKind.ARCHIVE:
            patch = {"is_archived": True}
        elif kind == BulkOperationKind.TOGGLE_PRIVACY:
            patch = {"is_private": not item.is_private}
        else:
            patch = {"collection_ids": {target_collection_id}}

        if self.backend is None:
            self.store.update(item_id, patch)
        else:
            persisted = await self.backend.update_item(item.with_patch(patch))
            self.store.put(persisted)
        return None
