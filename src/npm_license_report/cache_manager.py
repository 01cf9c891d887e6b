"""
In-memory response cache with TTL-based expiration.

Registry documents and SPDX license texts are requested once per package or
identifier even when many dependencies need them concurrently. The cache lives
for a single run and is only touched from the event loop thread.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .cli_config import PerformanceConfig


@dataclass(frozen=True)
class CacheKey:
    """Cache key for HTTP lookups."""

    namespace: str
    key: str

    def __str__(self) -> str:
        """Generate a string representation for use as dict key."""
        return f"{self.namespace}:{self.key}"


@dataclass
class CacheEntry:
    """Cache entry with TTL and last access time."""

    data: Any
    created_at: float
    last_accessed: float
    ttl_seconds: int

    def is_expired(self, now: float) -> bool:
        return (now - self.created_at) > self.ttl_seconds


@dataclass
class CacheStats:
    """Cache performance statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expired_removals: int = 0

    def get_stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expired_removals": self.expired_removals,
            "hit_rate_percent": round((self.hits / total) * 100.0, 1) if total else 0.0,
        }


class ResponseCacheManager:
    """
    Cache for HTTP response payloads.

    Features:
    - TTL-based expiration
    - LRU eviction once ``max_cache_size`` entries are stored
    """

    def __init__(self, config: Optional[PerformanceConfig] = None):
        config = config or PerformanceConfig()

        self.max_size = config.max_cache_size
        self.default_ttl = config.cache_ttl_seconds
        self.enabled = config.enable_caching

        self._cache: Dict[str, CacheEntry] = {}
        self._stats = CacheStats()

    def _evict_lru(self) -> None:
        lru_key = min(self._cache, key=lambda k: self._cache[k].last_accessed)
        del self._cache[lru_key]
        self._stats.evictions += 1

    def get(self, namespace: str, key: str) -> Optional[Any]:
        """
        Get a cached payload.

        Returns:
            The cached payload or None if not found/expired
        """
        if not self.enabled:
            return None

        key_str = str(CacheKey(namespace, key))
        entry = self._cache.get(key_str)
        if entry is None:
            self._stats.misses += 1
            return None

        now = time.time()
        if entry.is_expired(now):
            del self._cache[key_str]
            self._stats.expired_removals += 1
            self._stats.misses += 1
            return None

        entry.last_accessed = now
        self._stats.hits += 1
        return entry.data

    def put(self, namespace: str, key: str, data: Any) -> None:
        """Cache a payload, evicting the least recently used entries if full."""
        if not self.enabled:
            return

        key_str = str(CacheKey(namespace, key))
        now = time.time()
        while key_str not in self._cache and self._cache and len(self._cache) >= self.max_size:
            self._evict_lru()

        self._cache[key_str] = CacheEntry(
            data=data, created_at=now, last_accessed=now, ttl_seconds=self.default_ttl
        )

    def get_stats(self) -> Dict[str, Any]:
        """Cache statistics with the current size."""
        stats = self._stats.get_stats()
        stats["size"] = len(self._cache)
        return stats
