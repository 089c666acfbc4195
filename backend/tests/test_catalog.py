import threading

import pytest

from wishlist.core.catalog import CatalogRegistry, CatalogStore
from wishlist.core.errors import NotFound, StaleIndexWarning, ValidationError
from wishlist.core.locks import ReadWriteLock
from wishlist.core.types import ALL_COLLECTION_ID, Collection, StatusFacet, WishItem

from conftest import OWNER_ID, make_item


def test_collection_counts_follow_mutations(store):
    assert store.collection_counts() == {ALL_COLLECTION_ID: 4, "default": 2, "tech": 3}

    store.update("boots", {"collection_ids": ["default", "tech"]})
    assert store.collection_counts()["tech"] == 4
    assert store.get_collection("tech").item_count == 4

    store.remove("kindle")
    assert store.collection_counts() == {ALL_COLLECTION_ID: 3, "default": 1, "tech": 3}


def test_item_defaults():
    item = WishItem.create(owner_id=OWNER_ID, name="  Tent  ", category_tags=[" Outdoors ", "CAMPING"])

    assert item.name == "Tent"
    assert item.desire_score == 5
    assert item.category_tags == frozenset({"outdoors", "camping"})
    assert not item.is_claimed


@pytest.mark.parametrize("score", [0, 11, 5.5, True, "7"])
def test_invalid_desire_score_rejected(store, score):
    with pytest.raises(ValidationError):
        store.add(make_item("Bad score", desire_score=score))


def test_blank_name_rejected(store):
    with pytest.raises(ValidationError):
        store.update("boots", {"name": "   "})


def test_unknown_collection_rejected(store):
    with pytest.raises(ValidationError):
        store.add(make_item("Orphan", collection_ids=["nope"]))
    assert len(store) == 4


def test_unknown_item_is_not_found(store):
    with pytest.raises(NotFound):
        store.get("missing")
    with pytest.raises(NotFound):
        store.update("missing", {"name": "x"})


def test_indexes_track_updates(store):
    with store.reading() as indexes:
        assert "secret" in indexes.status_members(StatusFacet.PRIVATE)
        assert indexes.category_members("books") == {"kindle"}

    store.update("secret", {"is_private": False, "category_tags": ["books"]})

    with store.reading() as indexes:
        assert "secret" in indexes.status_members(StatusFacet.PUBLIC)
        assert "secret" not in indexes.status_members(StatusFacet.PRIVATE)
        assert indexes.category_members("books") == {"kindle", "secret"}


def test_remove_collection_strips_membership(store):
    changed = store.remove_collection("tech")

    assert {item.id for item in changed} == {"macbook", "kindle", "secret"}
    assert store.get("kindle").collection_ids == frozenset({"default"})
    assert "tech" not in store.collection_counts()
    assert len(store) == 4


def test_default_collection_is_protected(store):
    with pytest.raises(ValidationError):
        store.remove_collection("default")
    with pytest.raises(ValidationError):
        store.update_collection("default", name="Renamed")


def test_collection_names_are_unique(store):
    with pytest.raises(ValidationError):
        store.add_collection(Collection.create(OWNER_ID, "tech"))
    with pytest.raises(ValidationError):
        store.update_collection("tech", name="MY WISHLIST")


def test_recompute_collection_counts_matches_incremental(store):
    incremental = store.collection_counts()
    assert store.recompute_collection_counts() == incremental


def test_load_drops_dangling_collection_ids():
    items = [make_item("Lamp", item_id="lamp")]
    items[0] = items[0].with_patch({"collection_ids": ["gone"]})

    store = CatalogStore.load(OWNER_ID, items, [])

    assert store.get("lamp").collection_ids == frozenset()
    assert store.collection_counts() == {ALL_COLLECTION_ID: 1}


def test_list_scope_keeps_insertion_order(store):
    assert [i.id for i in store.list()] == ["macbook", "kindle", "boots", "secret"]
    assert [i.id for i in store.list("tech")] == ["macbook", "kindle", "secret"]


def test_summary(store):
    summary = store.summary()

    assert summary["total_items"] == 4
    assert summary["total_collections"] == 2
    assert summary["private_items"] == 1
    assert summary["claimed_items"] == 0
    assert summary["high_priority_items"] == 1
    assert summary["average_score"] == 6.5


def test_failed_index_update_marks_stale_and_recovers(store, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("index exploded")

    monkeypatch.setattr(store._indexes, "add", boom)
    monkeypatch.setattr(store._indexes, "rebuild", boom)

    with pytest.warns(StaleIndexWarning):
        store.add(make_item("Telescope", item_id="telescope"))
    assert store.index_stale

    monkeypatch.undo()
    assert "telescope" in [item.id for item in store.list()]
    assert not store.index_stale


def test_write_lock_is_not_reentrant():
    lock = ReadWriteLock()
    with lock.write():
        with pytest.raises(RuntimeError):
            with lock.write():
                pass
        # The writer may still read
        with lock.read():
            assert lock.write_locked
    assert not lock.write_locked


def test_readers_share_the_lock():
    lock = ReadWriteLock()
    entered = threading.Event()

    def reader():
        with lock.read():
            entered.set()

    with lock.read():
        thread = threading.Thread(target=reader)
        thread.start()
        assert entered.wait(timeout=2)
        thread.join(timeout=2)


async def test_registry_loads_each_owner_once():
    registry = CatalogRegistry()
    calls = []

    async def loader(owner_id):
        calls.append(owner_id)
        return CatalogStore(owner_id)

    first = await registry.get_or_load("1", loader)
    second = await registry.get_or_load("1", loader)
    other = await registry.get_or_load("2", loader)

    assert first is second
    assert other is not first
    assert calls == ["1", "2"]
