from wishlist.core.catalog import CatalogStore
from wishlist.core.search import (
    FULL_QUERY_SCORE,
    NAME_TERM_SCORE,
    SearchCache,
    SearchSequencer,
    normalize_query,
)

from conftest import OWNER_ID, make_item


def test_normalize_query():
    assert normalize_query("  Kindle   PAPERWHITE ") == "kindle paperwhite"
    assert normalize_query(None) == ""


def test_kindle_query_matches_only_kindle():
    store = CatalogStore(OWNER_ID)
    store.add(make_item('MacBook Pro 16" M3', item_id="macbook"))
    store.add(make_item("Kindle Paperwhite", item_id="kindle"))

    results = store.search.search("kindle", ["macbook", "kindle"])

    assert [item_id for item_id, _ in results] == ["kindle"]
    assert results[0][1] >= NAME_TERM_SCORE


def test_exact_name_ranks_first(store):
    store.add(make_item("Noise cancelling headphones", item_id="headphones"))
    store.add(make_item("Headphone stand", description="for noise cancelling headphones", item_id="stand"))

    results = store.search.search("Noise cancelling headphones", list(store.item_map()))

    assert results[0][0] == "headphones"
    assert results[0][1] >= FULL_QUERY_SCORE
    assert results[0][1] > results[1][1]


def test_name_matches_outrank_description_matches():
    store = CatalogStore(OWNER_ID)
    store.add(make_item("Reading lamp", description="clips onto a kindle", item_id="lamp"))
    store.add(make_item("Kindle case", item_id="case"))

    results = store.search.search("kindle", ["lamp", "case"])

    assert [item_id for item_id, _ in results] == ["case", "lamp"]


def test_short_query_does_not_filter(store):
    scope = list(store.item_map())

    assert store.search.search("k", scope) == store.search.search("", scope)
    assert [item_id for item_id, _ in store.search.search("k", scope)] == scope
    assert all(score == 0 for _, score in store.search.search(" ", scope))


def test_results_are_cached_and_invalidated_on_mutation(store):
    store.search.search("kindle", list(store.item_map()))
    assert "kindle" in store.search.cache

    store.update("boots", {"description": "for a kindle-free holiday"})

    assert len(store.search.cache) == 0
    scope = list(store.item_map())
    assert "boots" in [item_id for item_id, _ in store.search.search("kindle", scope)]


def test_cache_evicts_oldest_inserted_entry():
    cache = SearchCache(capacity=100)
    for n in range(100):
        cache.put(f"query {n}", [])
    # Reads do not refresh an entry's position
    assert cache.get("query 0") == []

    cache.put("query 100", [])

    assert len(cache) == 100
    assert "query 0" not in cache
    assert "query 1" in cache
    assert cache.get("query 0") is None


def test_evicted_query_is_recomputed():
    store = CatalogStore(OWNER_ID, search_cache_size=100)
    store.add(make_item("Kindle Paperwhite", item_id="kindle"))
    first = store.search.rank("kindle")
    for n in range(100):
        store.search.rank(f"filler {n}")
    assert "kindle" not in store.search.cache

    misses = store.search.cache.misses
    assert store.search.rank("kindle") == first
    assert store.search.cache.misses == misses + 1


def test_sequencer_keeps_only_latest_request():
    sequencer = SearchSequencer()
    first = sequencer.issue("viewer")
    second = sequencer.issue("viewer")

    assert not sequencer.is_current("viewer", first)
    assert sequencer.is_current("viewer", second)
    # Channels are independent
    assert sequencer.is_current("other", sequencer.issue("other"))


def test_sequencer_accepts_client_numbers():
    sequencer = SearchSequencer()
    sequencer.issue("viewer", 5)
    late = sequencer.issue("viewer", 3)

    assert late == 3
    assert not sequencer.is_current("viewer", 3)
    assert sequencer.latest("viewer") == 5


def test_sequencer_is_bounded():
    sequencer = SearchSequencer(max_channels=2)
    for viewer in ("a", "b", "c"):
        sequencer.issue(("owner", viewer))

    assert len(sequencer) == 2
    assert sequencer.latest(("owner", "a")) == 0
    # A forgotten channel has nothing newer in flight
    assert sequencer.is_current(("owner", "a"), 1)


def test_sequencer_forgets_owner_channels():
    sequencer = SearchSequencer()
    sequencer.issue(("1", "2"))
    sequencer.issue(("1", None))
    sequencer.issue(("9", "2"))

    sequencer.forget("1")

    assert len(sequencer) == 1
    assert sequencer.latest(("9", "2")) == 1
