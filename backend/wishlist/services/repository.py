"""
Persistence collaborator backed by async SQLAlchemy.

The catalog core treats this as the source of truth: every write returns the
row as persisted, and claims/releases are single conditional UPDATEs so two
racing viewers cannot both win.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from wishlist.core.errors import NotFound
from wishlist.core.types import (
    ALL_COLLECTION_ID,
    Collection,
    ReservationRecord,
    WishItem,
    normalize_tags,
    utcnow,
)
from wishlist.models import CollectionRecord, User, WishItemRecord

logger = logging.getLogger(__name__)


def item_from_record(row: WishItemRecord) -> WishItem:
    """Convert SQLAlchemy WishItemRecord row to a core WishItem"""
    reservation = None
    if row.dibbed_by is not None:
        reservation = ReservationRecord.claimed(row.id, str(row.dibbed_by), row.dibbed_at)
    return WishItem(
        id=row.id,
        owner_id=str(row.user_id),
        name=row.name,
        description=row.description or "",
        link=row.link or "",
        image_url=row.image_url or "",
        desire_score=row.score,
        category_tags=normalize_tags(row.category_tags),
        is_private=bool(row.is_private),
        is_archived=bool(row.is_archived),
        collection_ids=frozenset(row.collection_ids or ()),
        reservation=reservation,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def collection_from_record(row: CollectionRecord) -> Collection:
    """Convert SQLAlchemy CollectionRecord row to a core Collection"""
    return Collection(
        id=row.id,
        owner_id=str(row.user_id),
        name=row.name,
        icon=row.icon,
        is_default=bool(row.is_default),
        item_count=row.item_count or 0,
        created_at=row.created_at,
    )


def _editable_values(item: WishItem) -> dict:
    return {
        "name": item.name,
        "description": item.description,
        "link": item.link,
        "image_url": item.image_url,
        "score": item.desire_score,
        "category_tags": sorted(item.category_tags),
        "collection_ids": sorted(item.collection_ids),
        "is_private": item.is_private,
        "is_archived": item.is_archived,
        "updated_at": utcnow(),
    }


class SqlCatalogBackend:
    """CatalogBackend implementation over an async session factory"""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def owner_exists(self, owner_id: str) -> bool:
        if not str(owner_id).isdigit():
            return False
        async with self.session_maker() as db:
            result = await db.execute(select(User.id).where(User.id == int(owner_id)))
            return result.scalar_one_or_none() is not None

    async def load_catalog(self, owner_id: str) -> Tuple[List[WishItem], List[Collection]]:
        async with self.session_maker() as db:
            items_result = await db.execute(
                select(WishItemRecord)
                .where(WishItemRecord.user_id == int(owner_id))
                .order_by(WishItemRecord.created_at.asc())
            )
            collections_result = await db.execute(
                select(CollectionRecord)
                .where(CollectionRecord.user_id == int(owner_id))
                .order_by(CollectionRecord.created_at.asc())
            )
            items = [item_from_record(r) for r in items_result.scalars().all()]
            collections = [collection_from_record(r) for r in collections_result.scalars().all()]
        return items, collections

    async def fetch_item(self, item_id: str) -> Optional[WishItem]:
        async with self.session_maker() as db:
            row = await db.get(WishItemRecord, item_id)
            return item_from_record(row) if row else None

    async def insert_item(self, item: WishItem) -> WishItem:
        async with self.session_maker() as db:
            row = WishItemRecord(
                id=item.id,
                user_id=int(item.owner_id),
                created_at=item.created_at,
                **_editable_values(item),
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return item_from_record(row)

    async def update_item(self, item: WishItem) -> WishItem:
        """Persist the editable fields. Reservation columns are never written here."""
        async with self.session_maker() as db:
            result = await db.execute(
                update(WishItemRecord)
                .where(WishItemRecord.id == item.id)
                .values(**_editable_values(item))
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            if result.rowcount == 0:
                raise NotFound(f"Wishlist item {item.id} not found", item_id=item.id)
            row = await db.get(WishItemRecord, item.id, populate_existing=True)
            return item_from_record(row)

    async def delete_item(self, item_id: str) -> bool:
        async with self.session_maker() as db:
            result = await db.execute(
                delete(WishItemRecord)
                .where(WishItemRecord.id == item_id)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount == 1

    async def claim(self, item_id: str, claimant_id: str, claimed_at: datetime) -> bool:
        async with self.session_maker() as db:
            result = await db.execute(
                update(WishItemRecord)
                .where(WishItemRecord.id == item_id, WishItemRecord.dibbed_by.is_(None))
                .values(dibbed_by=int(claimant_id), dibbed_at=claimed_at, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount == 1

    async def release(self, item_id: str, claimant_id: str) -> bool:
        async with self.session_maker() as db:
            result = await db.execute(
                update(WishItemRecord)
                .where(WishItemRecord.id == item_id, WishItemRecord.dibbed_by == int(claimant_id))
                .values(dibbed_by=None, dibbed_at=None, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount == 1

    async def insert_collection(self, collection: Collection) -> Collection:
        async with self.session_maker() as db:
            row = CollectionRecord(
                id=collection.id,
                user_id=int(collection.owner_id),
                name=collection.name,
                icon=collection.icon,
                is_default=collection.is_default,
                item_count=collection.item_count,
                created_at=collection.created_at,
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return collection_from_record(row)

    async def update_collection(self, collection: Collection) -> Collection:
        async with self.session_maker() as db:
            row = await db.get(CollectionRecord, collection.id)
            if row is None:
                raise NotFound(f"Collection {collection.id} not found", collection_id=collection.id)
            row.name = collection.name
            row.icon = collection.icon
            row.updated_at = utcnow()
            await db.commit()
            await db.refresh(row)
            return collection_from_record(row)

    async def delete_collection(self, collection_id: str, changed_items: Iterable[WishItem]) -> None:
        async with self.session_maker() as db:
            for item in changed_items:
                await db.execute(
                    update(WishItemRecord)
                    .where(WishItemRecord.id == item.id)
                    .values(collection_ids=sorted(item.collection_ids), updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
            await db.execute(
                delete(CollectionRecord)
                .where(CollectionRecord.id == collection_id)
                .execution_options(synchronize_session=False)
            )
            await db.commit()

    async def save_collection_counts(self, counts: Dict[str, int]) -> None:
        async with self.session_maker() as db:
            for collection_id, count in counts.items():
                if collection_id == ALL_COLLECTION_ID:
                    continue
                await db.execute(
                    update(CollectionRecord)
                    .where(CollectionRecord.id == collection_id)
                    .values(item_count=count)
                    .execution_options(synchronize_session=False)
                )
            await db.commit()
        logger.debug("Persisted %d collection counts", len(counts))
