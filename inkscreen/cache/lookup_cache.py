"""Short-TTL cache for external lookups (GitHub stars, weather).

Entries expire after the TTL for normal reads but are kept around so a caller
whose upstream request just failed can still serve the last known value.

Example:
    cache = LookupCache(ttl_seconds=300)

    key = LookupCache.normalize_key("github", "Facebook/React")
    cached = cache.get_fresh(key)
    if cached is not None:
        return cached
    try:
        value = await fetch()
    except FetchError:
        return cache.get_stale(key)
    cache.set(key, value)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


class LookupCache:
    """In-memory TTL map with stale fallback and FIFO eviction."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_size: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize lookup cache.

        Args:
            ttl_seconds: Age after which an entry is no longer fresh
            max_size: Maximum number of entries (oldest inserted evicted first)
            clock: Monotonic time source, injectable for tests
        """
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self.cache: dict[str, tuple[Any, float]] = {}  # key -> (value, stored_at)
        self.stats = {
            "hits": 0,
            "misses": 0,
            "stale_served": 0,
            "evictions": 0,
        }

    @staticmethod
    def normalize_key(namespace: str, *parts: object) -> str:
        """Build a case-insensitive key, e.g. ``github:facebook/react``."""
        return f"{namespace}:" + "/".join(str(p).strip().lower() for p in parts)

    def get_fresh(self, key: str) -> Optional[Any]:
        """Return the value if present and younger than the TTL."""
        entry = self.cache.get(key)
        if entry is not None:
            value, stored_at = entry
            if self._clock() - stored_at < self.ttl_seconds:
                self.stats["hits"] += 1
                logger.debug("Lookup cache hit: %s", key)
                return value
            logger.debug("Lookup cache entry expired: %s", key)

        self.stats["misses"] += 1
        return None

    def get_stale(self, key: str) -> Optional[Any]:
        """Return the value regardless of age; used after an upstream failure."""
        entry = self.cache.get(key)
        if entry is None:
            return None
        self.stats["stale_served"] += 1
        logger.debug("Serving expired lookup cache entry: %s", key)
        return entry[0]

    def set(self, key: str, value: Any) -> None:
        """Store a value stamped with the current time."""
        self.cache.pop(key, None)
        self.cache[key] = (value, self._clock())

        if len(self.cache) > self.max_size:
            oldest_key = next(iter(self.cache))
            del self.cache[oldest_key]
            self.stats["evictions"] += 1
            logger.debug("Evicted oldest lookup cache entry: %s", oldest_key)

    def invalidate(self, key: str) -> bool:
        """Drop one entry. Returns True if it existed."""
        return self.cache.pop(key, None) is not None

    def clear(self) -> None:
        self.cache.clear()

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dict with hits, misses, hit_rate (0-100), stale_served, evictions,
            current_size and max_size
        """
        total_requests = self.stats["hits"] + self.stats["misses"]
        hit_rate = (self.stats["hits"] / total_requests * 100) if total_requests > 0 else 0.0

        return {
            "hits": self.stats["hits"],
            "misses": self.stats["misses"],
            "hit_rate": round(hit_rate, 2),
            "stale_served": self.stats["stale_served"],
            "evictions": self.stats["evictions"],
            "current_size": len(self.cache),
            "max_size": self.max_size,
        }
