"""
Time-bounded memoization of recommendation results.

Keys are (user_id, strategy, params). Stale entries are acceptable for up
to the TTL; writers may call invalidate_user() after new interactions.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Hashable

from .config import CACHE_MAX_ENTRIES, CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)

CacheKey = tuple[str | None, str, Hashable]


class RecommendationCache:
    """Thread-safe TTL cache with oldest-first eviction."""

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        max_entries: int = CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[CacheKey, tuple[float, list]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(user_id: str | None, strategy: str, params: Hashable) -> CacheKey:
        return (user_id, strategy, params)

    def get(self, key: CacheKey) -> list | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None

            stored_at, value = entry
            if now - stored_at > self._ttl:
                del self._entries[key]
                self.misses += 1
                return None

            self.hits += 1
            return list(value)

    def set(self, key: CacheKey, value: list) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (self._clock(), list(value))
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted cache entry {evicted}")

    def invalidate_user(self, user_id: str) -> int:
        """Drop every entry for a user. Returns the number removed."""
        with self._lock:
            stale = [key for key in self._entries if key[0] == user_id]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug(f"Invalidated {len(stale)} cached results for {user_id}")
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        with self._lock:
            return {
                'entries': len(self._entries),
                'max_entries': self._max_entries,
                'ttl_seconds': self._ttl,
                'hits': self.hits,
                'misses': self.misses,
            }
