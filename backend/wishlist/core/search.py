"""
Ranked text search over the per-item search blobs.

Scoring per item:
    +20  the whole normalized query is a substring of the blob
    +10  per query term found in the item name
    +3   per query term found elsewhere in the blob
Items scoring 0 are dropped. Results are ordered by descending score, ties
keep the order of the input scope.
"""
import logging
import threading
from collections import OrderedDict
from typing import Callable, Dict, Hashable, List, Optional, Sequence, Tuple

from wishlist.core.indexes import CatalogIndexes

logger = logging.getLogger(__name__)

FULL_QUERY_SCORE = 20
NAME_TERM_SCORE = 10
BLOB_TERM_SCORE = 3

DEFAULT_CACHE_SIZE = 100
DEFAULT_MIN_QUERY_LENGTH = 2
DEFAULT_MAX_CHANNELS = 10000

ScoredId = Tuple[str, int]


def normalize_query(raw: Optional[str]) -> str:
    """Lowercase, trim and collapse whitespace"""
    if not raw or not isinstance(raw, str):
        return ""
    return " ".join(raw.lower().split())


class SearchCache:
    """Bounded query cache. On overflow the oldest-inserted entry is evicted."""

    def __init__(self, capacity: int = DEFAULT_CACHE_SIZE):
        if capacity < 1:
            raise ValueError("Search cache capacity must be at least 1")
        self.capacity = capacity
        self._entries: "OrderedDict[str, List[ScoredId]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[List[ScoredId]]:
        with self._lock:
            value = self._entries.get(key)
            if value is None:
                self.misses += 1
            else:
                self.hits += 1
            return value

    def put(self, key: str, value: List[ScoredId]) -> None:
        with self._lock:
            if key in self._entries:
                self._entries[key] = value
                return
            while len(self._entries) >= self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Search cache evicted %r", evicted)
            self._entries[key] = value

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class SearchEngine:
    """Search over one catalog's indexes, memoized per normalized query"""

    def __init__(
        self,
        indexes: Callable[[], CatalogIndexes],
        cache_size: int = DEFAULT_CACHE_SIZE,
        min_query_length: int = DEFAULT_MIN_QUERY_LENGTH,
    ):
        self._indexes = indexes
        self.cache = SearchCache(cache_size)
        self.min_query_length = min_query_length

    def is_filtering(self, query: Optional[str]) -> bool:
        """Empty and single-character queries do not filter"""
        return len(normalize_query(query)) >= self.min_query_length

    def invalidate(self) -> None:
        self.cache.invalidate()

    def rank(self, query: str) -> List[ScoredId]:
        """Score every item in the catalog for a normalized query"""
        cached = self.cache.get(query)
        if cached is not None:
            return cached

        indexes = self._indexes()
        terms = query.split()
        ranked: List[ScoredId] = []
        for item_id in indexes.ids_in_order():
            blob = indexes.blobs.get(item_id, "")
            name = indexes.names.get(item_id, "")
            score = 0
            if query in blob:
                score += FULL_QUERY_SCORE
            for term in terms:
                if term in name:
                    score += NAME_TERM_SCORE
                elif term in blob:
                    score += BLOB_TERM_SCORE
            if score > 0:
                ranked.append((item_id, score))

        self.cache.put(query, ranked)
        return ranked

    def search(self, raw_query: Optional[str], scope: Sequence[str]) -> List[ScoredId]:
        """Rank ``scope`` against a raw query.

        A non-filtering query returns the scope unchanged with zero scores.
        """
        query = normalize_query(raw_query)
        if len(query) < self.min_query_length:
            return [(item_id, 0) for item_id in scope]

        scores: Dict[str, int] = dict(self.rank(query))
        matched = [(item_id, scores[item_id]) for item_id in scope if item_id in scores]
        # sorted() is stable, so equal scores keep scope order
        return sorted(matched, key=lambda pair: -pair[1])


class SearchSequencer:
    """Last-request-wins bookkeeping for search requests.

    Each channel (typically one viewer) has a monotonically increasing
    sequence number. A result is only applied if its sequence number is still
    the newest one issued on its channel. At most ``max_channels`` channels
    are tracked; the least recently used one is forgotten first.
    """

    def __init__(self, max_channels: int = DEFAULT_MAX_CHANNELS):
        self.max_channels = max(1, max_channels)
        self._latest: "OrderedDict[Hashable, int]" = OrderedDict()
        self._lock = threading.Lock()

    def issue(self, channel: Hashable, seq: Optional[int] = None) -> int:
        with self._lock:
            latest = self._latest.get(channel, 0)
            if seq is None:
                seq = latest + 1
            if seq > latest:
                self._latest[channel] = seq
            if channel in self._latest:
                self._latest.move_to_end(channel)
            while len(self._latest) > self.max_channels:
                self._latest.popitem(last=False)
            return seq

    def is_current(self, channel: Hashable, seq: int) -> bool:
        # A forgotten channel has no newer request
        with self._lock:
            return self._latest.get(channel, seq) == seq

    def forget(self, owner_id: str) -> None:
        """Drop every channel on one owner's wishlist"""
        with self._lock:
            for channel in [c for c in self._latest if isinstance(c, tuple) and c[:1] == (owner_id,)]:
                del self._latest[channel]

    def __len__(self) -> int:
        return len(self._latest)

    def latest(self, channel: Hashable) -> int:
        with self._lock:
            return self._latest.get(channel, 0)
