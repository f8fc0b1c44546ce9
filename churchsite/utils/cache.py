"""
Cache Utility Module

Provides Redis-based caching for stats snapshots and trending lists.
Cache failures never propagate: a broken Redis degrades to cache misses.
"""

import json
import logging
import time
from typing import Any

import redis.asyncio as redis

from churchsite.config import settings
from churchsite.utils.metrics import REDIS_CONNECTED, record_cache_hit, record_cache_miss

logger = logging.getLogger(__name__)


def build_redis_pool() -> redis.ConnectionPool:
    """Connection pool from redis_url, or from the individual redis_* settings."""
    if settings.redis_url:
        return redis.ConnectionPool.from_url(settings.redis_url, decode_responses=True)
    return redis.ConnectionPool(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        password=settings.redis_password,
        decode_responses=True,
    )


class CacheManager:
    """
    Manages Redis-based caching for the application.

    Provides:
    - Key-value caching with TTL
    - Cache invalidation by key or pattern
    - Self-healing reconnect after a 30 second cooldown
    """

    # Cache key prefixes
    PREFIX_STATS = "cache:stats:"
    PREFIX_TRENDING = "cache:trending:"

    # Default TTLs in seconds
    TTL_SHORT = 60  # 1 minute
    TTL_MEDIUM = 300  # 5 minutes
    TTL_LONG = 3600  # 1 hour

    def __init__(self, enabled: bool = True):
        self._redis: redis.Redis | None = None
        self._pool: redis.ConnectionPool | None = None
        self._configured = enabled
        self._enabled = enabled
        self._last_connect_attempt: float = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def connect(self) -> None:
        """Establish connection to Redis."""
        if self._redis is not None or not self._configured:
            return

        self._last_connect_attempt = time.time()

        try:
            self._pool = build_redis_pool()
            self._redis = redis.Redis(connection_pool=self._pool)
            await self._redis.ping()
            REDIS_CONNECTED.labels(role="cache").set(1)
            logger.info("Cache: Successfully connected to Redis")
        except Exception as e:
            REDIS_CONNECTED.labels(role="cache").set(0)
            logger.warning(f"Cache: Failed to connect to Redis: {e}. Caching disabled.")
            self._redis = None
            self._pool = None
            self._enabled = False

    async def disconnect(self) -> None:
        """Close Redis connection"""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        if self._pool:
            await self._pool.aclose()
            self._pool = None
        logger.info("Cache: Disconnected from Redis")

    async def _maybe_retry_connect(self) -> None:
        """Re-attempt connection after a 30-second cooldown to allow self-healing."""
        if self._configured and not self._enabled and time.time() - self._last_connect_attempt >= 30:
            logger.info("Cache: retrying Redis connection after cooldown...")
            self._enabled = True
            await self.connect()

    async def get(self, key: str) -> Any | None:
        """
        Get a cached value by key.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found
        """
        await self._maybe_retry_connect()
        if not self._enabled:
            return None

        try:
            if not self._redis:
                await self.connect()
            if not self._redis:
                return None

            data = await self._redis.get(key)
            if data:
                logger.debug(f"Cache HIT: {key}")
                record_cache_hit("redis")
                return json.loads(data)

            logger.debug(f"Cache MISS: {key}")
            record_cache_miss("redis")
            return None
        except Exception as e:
            logger.warning(f"Cache get error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Set a cached value with optional TTL.

        Args:
            key: Cache key
            value: Value to cache (must be JSON serializable)
            ttl: Time to live in seconds (default: TTL_MEDIUM)

        Returns:
            True if successful, False otherwise
        """
        await self._maybe_retry_connect()
        if not self._enabled:
            return False

        try:
            if not self._redis:
                await self.connect()
            if not self._redis:
                return False

            ttl = ttl or self.TTL_MEDIUM
            serialized = json.dumps(value, default=str)
            await self._redis.setex(key, ttl, serialized)
            logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.warning(f"Cache set error for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete a cached value."""
        if not self._enabled or not self._redis:
            return False

        try:
            await self._redis.delete(key)
            logger.debug(f"Cache DELETE: {key}")
            return True
        except Exception as e:
            logger.warning(f"Cache delete error for {key}: {e}")
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching a pattern.

        Args:
            pattern: Key pattern (e.g., "cache:stats:church:*")

        Returns:
            Number of keys deleted
        """
        if not self._enabled or not self._redis:
            return 0

        try:
            keys = []
            async for key in self._redis.scan_iter(match=pattern):
                keys.append(key)

            if keys:
                deleted = await self._redis.delete(*keys)
                logger.info(f"Cache DELETE PATTERN: {pattern} ({deleted} keys)")
                return deleted
            return 0
        except Exception as e:
            logger.warning(f"Cache delete pattern error for {pattern}: {e}")
            return 0


# Global cache manager instance
cache_manager = CacheManager(enabled=settings.cache_enabled)


async def get_cache_manager() -> CacheManager:
    """
    Dependency to get the cache manager instance.
    Ensures Redis connection is established.
    """
    if cache_manager._redis is None and cache_manager.enabled:
        await cache_manager.connect()
    return cache_manager
