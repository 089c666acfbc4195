import pytest

from wishlist.core.errors import Forbidden, NotFound, ValidationError
from wishlist.core.filters import ItemFilters
from wishlist.core.types import ALL_COLLECTION_ID
from wishlist.services.wishlist_service import DEFAULT_COLLECTION_NAME, WishlistService

from conftest import OWNER_ID, FakeBackend


@pytest.fixture
def service(store, backend):
    service = WishlistService(backend)
    service.registry.register(store)
    return service


async def test_cold_start_creates_default_collection(owner):
    backend = FakeBackend()
    service = WishlistService(backend)

    collections = await service.list_collections(OWNER_ID, owner)

    assert [c.name for c in collections] == [DEFAULT_COLLECTION_NAME]
    assert collections[0].is_default
    assert collections[0].id in backend.collections


async def test_unknown_owner():
    service = WishlistService(FakeBackend())

    with pytest.raises(NotFound):
        await service.catalog("99")


async def test_listing_degrades_to_error_result(friend):
    service = WishlistService(FakeBackend())

    result = await service.list_items("99", friend)

    assert result.items == []
    assert result.error
    assert not result.superseded


async def test_listing_pagination(service, owner):
    first = await service.list_items(OWNER_ID, owner, page=1, page_size=3)
    second = await service.list_items(OWNER_ID, owner, page=2, page_size=3)

    assert [v.id for v in first.items] == ["macbook", "kindle", "boots"]
    assert first.has_more
    assert [v.id for v in second.items] == ["secret"]
    assert not second.has_more
    assert first.filtered_count == 4


async def test_superseded_request_is_discarded(service, friend):
    channel = (OWNER_ID, friend.viewer_id)
    service.sequencer.issue(channel, 2)

    stale = await service.list_items(OWNER_ID, friend, ItemFilters(search="kindle"), request_seq=1)
    fresh = await service.list_items(OWNER_ID, friend, ItemFilters(search="kindle"), request_seq=3)

    assert stale.superseded and stale.items == []
    assert [v.id for v in fresh.items] == ["kindle"]


async def test_add_and_update_item(service, owner, friend, backend):
    view = await service.add_item(OWNER_ID, owner, {"name": "Camera", "desire_score": 8,
                                                    "collection_ids": ["tech"]})

    assert view.id in backend.items
    assert (await service.get_collection_counts(OWNER_ID, owner))["tech"] == 4

    updated = await service.update_item(OWNER_ID, owner, view.id, {"desire_score": 10})
    assert updated.desire_score == 10
    assert backend.items[view.id].desire_score == 10

    with pytest.raises(Forbidden):
        await service.update_item(OWNER_ID, friend, view.id, {"desire_score": 1})
    with pytest.raises(ValidationError):
        await service.update_item(OWNER_ID, owner, view.id, {"collection_ids": ["nope"]})


async def test_remove_item(service, owner, backend):
    await service.remove_item(OWNER_ID, owner, "boots")

    assert "boots" not in backend.items
    with pytest.raises(NotFound):
        await service.get_item(OWNER_ID, "boots", owner)


async def test_collection_membership(service, owner):
    view = await service.add_to_collections(OWNER_ID, owner, "boots", ["tech"])
    assert view.collection_ids == ["default", "tech"]

    view = await service.remove_from_collections(OWNER_ID, owner, "boots", ["default"])
    assert view.collection_ids == ["tech"]

    with pytest.raises(ValidationError):
        await service.add_to_collections(OWNER_ID, owner, "boots", [])


async def test_collection_lifecycle(service, owner, backend):
    created = await service.create_collection(OWNER_ID, owner, "Books", "📚")
    assert created.id in backend.collections

    with pytest.raises(ValidationError):
        await service.create_collection(OWNER_ID, owner, "books")

    renamed = await service.update_collection(OWNER_ID, owner, created.id, name="Reading")
    assert renamed.name == "Reading"

    await service.add_to_collections(OWNER_ID, owner, "kindle", [created.id])
    await service.delete_collection(OWNER_ID, owner, created.id)

    assert created.id not in backend.collections
    assert created.id not in backend.items["kindle"].collection_ids
    counts = await service.get_collection_counts(OWNER_ID, owner)
    assert created.id not in counts
    assert counts[ALL_COLLECTION_ID] == 4

    with pytest.raises(ValidationError):
        await service.delete_collection(OWNER_ID, owner, "default")


async def test_my_claims_and_summary(service, owner, friend, other_friend):
    await service.claim(OWNER_ID, "kindle", friend)

    mine = await service.my_claims(OWNER_ID, friend)
    assert [v.id for v in mine] == ["kindle"]
    assert await service.my_claims(OWNER_ID, other_friend) == []

    summary = await service.summary(OWNER_ID, owner)
    assert summary["claimed_items"] == 1
    with pytest.raises(Forbidden):
        await service.summary(OWNER_ID, friend)


async def test_bulk_through_service(service, owner, friend):
    with pytest.raises(Forbidden):
        await service.bulk_apply(OWNER_ID, "delete", ["boots"], friend)

    report = await service.bulk_apply(OWNER_ID, "delete", ["boots", "missing"], owner)
    assert report.succeeded == ["boots"]
    assert (await service.get_collection_counts(OWNER_ID, owner))["default"] == 1


async def test_reload_reads_backing_store(service, owner, backend):
    del backend.items["macbook"]

    store = await service.reload(OWNER_ID)

    assert "macbook" not in store
    assert len(store) == 3


async def test_failed_collection_writes_leave_catalog_untouched(store, owner):
    class BrokenCollections(FakeBackend):
        async def update_collection(self, collection):
            raise RuntimeError("database unavailable")

        async def delete_collection(self, collection_id, changed_items):
            raise RuntimeError("database unavailable")

    service = WishlistService(BrokenCollections(store))
    service.registry.register(store)

    with pytest.raises(RuntimeError):
        await service.update_collection(OWNER_ID, owner, "tech", name="Gadgets")
    with pytest.raises(RuntimeError):
        await service.delete_collection(OWNER_ID, owner, "tech")

    assert store.get_collection("tech").name == "Tech"
    assert "tech" in store.get("macbook").collection_ids
    assert (await service.get_collection_counts(OWNER_ID, owner))["tech"] == 3


async def test_non_owners_only_count_visible_items(service, owner, friend, visitor):
    await service.update_item(OWNER_ID, owner, "boots", {"is_archived": True})

    assert await service.get_collection_counts(OWNER_ID, owner) == {ALL_COLLECTION_ID: 4, "default": 2, "tech": 3}
    for viewer in (friend, visitor):
        assert await service.get_collection_counts(OWNER_ID, viewer) == {ALL_COLLECTION_ID: 2, "default": 1, "tech": 2}

    tech = next(c for c in await service.list_collections(OWNER_ID, friend) if c.id == "tech")
    assert tech.item_count == 2


async def test_reload_forgets_listing_channels(service, owner, friend):
    await service.list_items(OWNER_ID, friend)
    await service.list_items(OWNER_ID, owner)
    assert len(service.sequencer) == 2

    await service.reload(OWNER_ID)

    assert len(service.sequencer) == 0
