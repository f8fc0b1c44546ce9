"""
Engagement Cache Service

Two-tier cache for stats snapshots and trending lists:
- Tier 1: in-memory LRU (per process, fastest)
- Tier 2: Redis (shared across workers)

Also owns the cache key layout and the invalidation helpers used when
likes change or view counts are reset.
"""

import fnmatch
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from churchsite.models.engagement import ContentItem, ContentType
from churchsite.utils.cache import CacheManager, cache_manager
from churchsite.utils.metrics import record_cache_hit, record_cache_miss

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total * 100


class LRUCache:
    """
    Simple in-memory LRU cache for frequently accessed data.

    First tier of multi-tier caching (before Redis).
    """

    def __init__(self, max_size: int = 1000):
        self._cache: OrderedDict = OrderedDict()
        self._max_size = max_size
        self._stats = CacheStats()

    def get(self, key: str) -> Any | None:
        """Get value and move to end (most recently used)."""
        if key in self._cache:
            self._cache.move_to_end(key)
            value, expiry = self._cache[key]
            if expiry and datetime.now(timezone.utc) > expiry:
                del self._cache[key]
                self._stats.misses += 1
                return None
            self._stats.hits += 1
            return value
        self._stats.misses += 1
        return None

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set value with optional TTL."""
        expiry = None
        if ttl:
            expiry = datetime.now(timezone.utc) + timedelta(seconds=ttl)

        if key in self._cache:
            self._cache.move_to_end(key)
        self._cache[key] = (value, expiry)

        while len(self._cache) > self._max_size:
            self._cache.popitem(last=False)

        self._stats.sets += 1

    def delete(self, key: str) -> bool:
        if key in self._cache:
            del self._cache[key]
            self._stats.deletes += 1
            return True
        return False

    def delete_matching(self, pattern: str) -> int:
        """Delete keys matching a glob pattern (same syntax as Redis SCAN MATCH)."""
        keys = [key for key in self._cache if fnmatch.fnmatchcase(key, pattern)]
        for key in keys:
            del self._cache[key]
        self._stats.deletes += len(keys)
        return len(keys)

    def clear(self) -> None:
        self._cache.clear()

    def get_stats(self) -> dict:
        return {
            "size": len(self._cache),
            "max_size": self._max_size,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "hit_rate": f"{self._stats.hit_rate:.2f}%",
        }


class CacheService:
    """
    Multi-tier cache used by the stats aggregator and trending lists.

    Tier 1: In-memory LRU cache (fastest, limited size)
    Tier 2: Redis (distributed)
    """

    MEMORY_TTL_CAP = 60

    def __init__(self, redis_cache: CacheManager | None = None, memory_size: int = 500):
        self._redis = redis_cache or cache_manager
        self._memory = LRUCache(max_size=memory_size)
        self._stats = CacheStats()

    # ============== Key layout ==============

    @staticmethod
    def stats_key(item: ContentItem) -> str:
        return f"{CacheManager.PREFIX_STATS}{item.key}"

    @staticmethod
    def trending_key(content_type: ContentType, limit: int) -> str:
        return f"{CacheManager.PREFIX_TRENDING}{content_type.value}:{limit}"

    # ============== Basic operations ==============

    async def get(self, key: str) -> Any | None:
        """Get value from memory first, then Redis."""
        value = self._memory.get(key)
        if value is not None:
            self._stats.hits += 1
            record_cache_hit("memory")
            return value
        record_cache_miss("memory")

        value = await self._redis.get(key)
        if value is not None:
            self._memory.set(key, value, ttl=self.MEMORY_TTL_CAP)
            self._stats.hits += 1
            return value

        self._stats.misses += 1
        return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Write to both tiers. Returns whether the Redis write succeeded."""
        ttl = ttl or CacheManager.TTL_MEDIUM
        self._memory.set(key, value, min(ttl, self.MEMORY_TTL_CAP))

        result = await self._redis.set(key, value, ttl)
        if result:
            self._stats.sets += 1
        else:
            self._stats.errors += 1
        return result

    async def delete(self, key: str) -> bool:
        self._memory.delete(key)
        result = await self._redis.delete(key)
        if result:
            self._stats.deletes += 1
        return result

    async def invalidate_by_pattern(self, pattern: str) -> int:
        local = self._memory.delete_matching(pattern)
        remote = await self._redis.delete_pattern(pattern)
        return max(local, remote)

    # ============== Invalidation helpers ==============

    async def invalidate_post_stats(self, item: ContentItem) -> None:
        await self.delete(self.stats_key(item))
        logger.debug(f"Invalidated stats cache for {item.key}")

    async def invalidate_trending(self, content_type: ContentType) -> int:
        return await self.invalidate_by_pattern(f"{CacheManager.PREFIX_TRENDING}{content_type.value}:*")

    async def invalidate_content_type(self, content_type: ContentType) -> int:
        """Drop every stats and trending entry for one content type."""
        removed = await self.invalidate_by_pattern(f"{CacheManager.PREFIX_STATS}{content_type.value}:*")
        removed += await self.invalidate_trending(content_type)
        logger.info(f"Invalidated {removed} cache entries for {content_type.value} posts")
        return removed

    def clear_memory(self) -> None:
        self._memory.clear()

    def get_stats(self) -> dict:
        return {
            "memory_cache": self._memory.get_stats(),
            "service_stats": {
                "hits": self._stats.hits,
                "misses": self._stats.misses,
                "sets": self._stats.sets,
                "deletes": self._stats.deletes,
                "errors": self._stats.errors,
                "hit_rate": f"{self._stats.hit_rate:.2f}%",
            },
            "redis_enabled": self._redis.enabled,
        }


# Global cache service instance
cache_service = CacheService()


async def get_cache_service() -> CacheService:
    """FastAPI dependency for CacheService."""
    return cache_service
