import asyncio
import os
from dataclasses import replace
from typing import Dict, Optional

# Must be set before wishlist.database creates its engine
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
# The in-memory database is one shared connection; bulk writes must not interleave on it
os.environ["BULK_CONCURRENCY"] = "1"

import pytest
from httpx import ASGITransport, AsyncClient

from wishlist.core.catalog import CatalogStore
from wishlist.core.types import Collection, ReservationRecord, Role, Viewer, WishItem

OWNER_ID = "1"


@pytest.fixture
def owner():
    return Viewer(viewer_id=OWNER_ID, role=Role.OWNER)


@pytest.fixture
def friend():
    return Viewer(viewer_id="2", role=Role.FRIEND)


@pytest.fixture
def other_friend():
    return Viewer(viewer_id="3", role=Role.FRIEND)


@pytest.fixture
def visitor():
    return Viewer(viewer_id=None, role=Role.VISITOR)


def make_item(name: str, **kwargs) -> WishItem:
    return WishItem.create(owner_id=OWNER_ID, name=name, **kwargs)


@pytest.fixture
def store():
    """Catalog with a default collection, a 'tech' collection and four items"""
    store = CatalogStore(OWNER_ID)
    store.add_collection(Collection.create(OWNER_ID, "My Wishlist", is_default=True, collection_id="default"))
    store.add_collection(Collection.create(OWNER_ID, "Tech", "💻", collection_id="tech"))
    store.add(make_item('MacBook Pro 16" M3', desire_score=9, category_tags=["electronics"],
                        collection_ids=["tech"], item_id="macbook"))
    store.add(make_item("Kindle Paperwhite", description="e-reader with warm light", desire_score=7,
                        category_tags=["electronics", "books"], collection_ids=["tech", "default"],
                        item_id="kindle"))
    store.add(make_item("Hiking boots", desire_score=4, category_tags=["outdoors"],
                        collection_ids=["default"], item_id="boots"))
    store.add(make_item("Secret gadget", desire_score=6, is_private=True, collection_ids=["tech"],
                        item_id="secret"))
    return store


class FakeBackend:
    """In-memory CatalogBackend that yields to the loop on every call"""

    def __init__(self, store: Optional[CatalogStore] = None, delay: float = 0):
        self.items: Dict[str, WishItem] = {}
        self.collections: Dict[str, Collection] = {}
        self.delay = delay
        self.saved_counts = None
        if store is not None:
            self.items = dict(store.item_map())
            self.collections = {c.id: c for c in store.collections()}

    async def _tick(self):
        await asyncio.sleep(self.delay)

    async def owner_exists(self, owner_id):
        return owner_id == OWNER_ID

    async def load_catalog(self, owner_id):
        await self._tick()
        return list(self.items.values()), list(self.collections.values())

    async def fetch_item(self, item_id):
        await self._tick()
        return self.items.get(item_id)

    async def insert_item(self, item):
        await self._tick()
        self.items[item.id] = item
        return item

    async def update_item(self, item):
        await self._tick()
        current = self.items[item.id]
        self.items[item.id] = replace(item, reservation=current.reservation)
        return self.items[item.id]

    async def delete_item(self, item_id):
        await self._tick()
        return self.items.pop(item_id, None) is not None

    async def claim(self, item_id, claimant_id, claimed_at):
        await self._tick()
        item = self.items.get(item_id)
        if item is None or item.is_claimed:
            return False
        record = ReservationRecord.claimed(item_id, claimant_id, claimed_at)
        self.items[item_id] = replace(item, reservation=record)
        return True

    async def release(self, item_id, claimant_id):
        await self._tick()
        item = self.items.get(item_id)
        if item is None or not item.is_claimed or item.reservation.claimant_id != claimant_id:
            return False
        self.items[item_id] = replace(item, reservation=None)
        return True

    async def insert_collection(self, collection):
        self.collections[collection.id] = collection
        return collection

    async def update_collection(self, collection):
        self.collections[collection.id] = collection
        return collection

    async def delete_collection(self, collection_id, changed_items):
        for item in changed_items:
            self.items[item.id] = item
        self.collections.pop(collection_id, None)

    async def save_collection_counts(self, counts):
        self.saved_counts = dict(counts)


@pytest.fixture
def backend(store):
    return FakeBackend(store)


# ----------------------------------------------------------------------
# Database-backed API fixtures
# ----------------------------------------------------------------------
@pytest.fixture
async def client():
    from wishlist.database import drop_db, engine, init_db
    from wishlist.main import app
    from wishlist.services.wishlist_service import get_wishlist_service

    await init_db()
    get_wishlist_service().registry.clear()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    get_wishlist_service().registry.clear()
    await drop_db()
    await engine.dispose()


async def register(client: AsyncClient, email: str, password: str = "hunter2hunter2") -> dict:
    response = await client.post("/auth/register", json={"email": email, "password": password})
    assert response.status_code == 201, response.text
    data = response.json()
    return {
        "id": str(data["user_id"]),
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
    }


@pytest.fixture
async def users(client):
    """Registered owner, two friends"""
    return {
        "owner": await register(client, "owner@example.com"),
        "friend": await register(client, "friend@example.com"),
        "other": await register(client, "other@example.com"),
    }
