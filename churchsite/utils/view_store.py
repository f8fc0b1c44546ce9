"""
View Dedup / Rate-Limit Store

Ephemeral key-value state used by view tracking:
- "viewed recently" markers per (session, post), expiring after the dedup window
- per-(IP, post) view counters, expiring with the rate window

Two backends share one interface: Redis for production and an in-process
store for tests and single-instance development. This state is a cache,
never a source of truth. When Redis cannot be reached every operation raises
DependencyUnavailableError and the caller decides how to degrade.
"""

import abc
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import redis.asyncio as redis
from redis.exceptions import RedisError

from churchsite.config import settings
from churchsite.exceptions import DependencyUnavailableError
from churchsite.utils.cache import build_redis_pool
from churchsite.utils.metrics import REDIS_CONNECTED

logger = logging.getLogger(__name__)

DEDUP_PREFIX = "view:dedup:"
RATE_PREFIX = "view:rate:"


def dedup_key(session_id: str, content_key: str) -> str:
    return f"{DEDUP_PREFIX}{session_id}:{content_key}"


def rate_key(ip_address: str, content_key: str) -> str:
    return f"{RATE_PREFIX}{ip_address}:{content_key}"


@dataclass(frozen=True)
class RateCheck:
    """Result of one rate-limit increment."""

    count: int
    allowed: bool


class ViewStore(abc.ABC):
    """Contract shared by the view store backends."""

    @abc.abstractmethod
    async def mark_viewed_recently(self, session_id: str, content_key: str, ttl_seconds: int) -> None:
        """Suppress further views of content_key by session_id for ttl_seconds."""

    @abc.abstractmethod
    async def was_viewed_recently(self, session_id: str, content_key: str) -> bool:
        """True while a mark set by mark_viewed_recently is still alive."""

    @abc.abstractmethod
    async def increment_and_check_rate(
        self, ip_address: str, content_key: str, limit: int, window_seconds: int
    ) -> RateCheck:
        """Atomically count one view from ip_address; the first count in a window starts its expiry."""

    @abc.abstractmethod
    async def ping(self) -> bool:
        """Connectivity check."""

    async def close(self) -> None:
        return None


class InMemoryViewStore(ViewStore):
    """
    In-process view store.

    Note: state is lost on restart and is not shared across workers.
    Operations never await between read and write, so they are atomic
    within one event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._markers: dict[str, float] = {}
        self._counters: dict[str, tuple[int, float]] = {}

    def _cleanup_expired(self) -> None:
        now = self._clock()
        for key in [k for k, exp in self._markers.items() if exp <= now]:
            del self._markers[key]
        for key in [k for k, (_, exp) in self._counters.items() if exp <= now]:
            del self._counters[key]

    async def mark_viewed_recently(self, session_id: str, content_key: str, ttl_seconds: int) -> None:
        self._markers[dedup_key(session_id, content_key)] = self._clock() + ttl_seconds

    async def was_viewed_recently(self, session_id: str, content_key: str) -> bool:
        self._cleanup_expired()
        return dedup_key(session_id, content_key) in self._markers

    async def increment_and_check_rate(
        self, ip_address: str, content_key: str, limit: int, window_seconds: int
    ) -> RateCheck:
        self._cleanup_expired()
        key = rate_key(ip_address, content_key)
        count, expires_at = self._counters.get(key, (0, self._clock() + window_seconds))
        count += 1
        self._counters[key] = (count, expires_at)
        return RateCheck(count=count, allowed=count <= limit)

    async def ping(self) -> bool:
        return True

    def clear(self) -> None:
        self._markers.clear()
        self._counters.clear()


class RedisViewStore(ViewStore):
    """
    Redis-backed view store.

    Uses SET EX for dedup markers and the native INCR for rate counters, so
    concurrent requests never undercount.
    """

    def __init__(self, client: redis.Redis | None = None):
        self._redis: redis.Redis | None = client
        self._pool: redis.ConnectionPool | None = None

    async def connect(self) -> None:
        if self._redis is not None:
            return
        try:
            self._pool = build_redis_pool()
            self._redis = redis.Redis(connection_pool=self._pool)
            await self._redis.ping()
            REDIS_CONNECTED.labels(role="view_store").set(1)
            logger.info("View store: connected to Redis")
        except (RedisError, OSError) as e:
            REDIS_CONNECTED.labels(role="view_store").set(0)
            self._redis = None
            self._pool = None
            logger.error(f"View store: failed to connect to Redis: {e}")
            raise DependencyUnavailableError("view_store") from e

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        if self._pool:
            await self._pool.aclose()
            self._pool = None
        logger.info("View store: disconnected from Redis")

    async def _client(self) -> redis.Redis:
        if self._redis is None:
            await self.connect()
        return self._redis

    async def mark_viewed_recently(self, session_id: str, content_key: str, ttl_seconds: int) -> None:
        client = await self._client()
        try:
            await client.set(dedup_key(session_id, content_key), "1", ex=ttl_seconds)
        except (RedisError, OSError) as e:
            logger.warning(f"View store: mark failed for {content_key}: {e}")
            raise DependencyUnavailableError("view_store") from e

    async def was_viewed_recently(self, session_id: str, content_key: str) -> bool:
        client = await self._client()
        try:
            return bool(await client.exists(dedup_key(session_id, content_key)))
        except (RedisError, OSError) as e:
            logger.warning(f"View store: dedup check failed for {content_key}: {e}")
            raise DependencyUnavailableError("view_store") from e

    async def increment_and_check_rate(
        self, ip_address: str, content_key: str, limit: int, window_seconds: int
    ) -> RateCheck:
        """
        INCR the counter and read its TTL in one MULTI.

        A counter left without an expiry (first call, or an earlier EXPIRE
        that failed) gets one here, so a window can never become permanent.
        """
        client = await self._client()
        key = rate_key(ip_address, content_key)
        try:
            pipe = client.pipeline(transaction=True)
            pipe.incr(key)
            pipe.ttl(key)
            count, ttl = await pipe.execute()
            if ttl < 0:
                await client.expire(key, window_seconds)
        except (RedisError, OSError) as e:
            logger.warning(f"View store: rate check failed for {content_key}: {e}")
            raise DependencyUnavailableError("view_store") from e
        return RateCheck(count=count, allowed=count <= limit)

    async def ping(self) -> bool:
        try:
            client = await self._client()
            return bool(await client.ping())
        except (DependencyUnavailableError, RedisError, OSError):
            return False


# Global view store instance (will be set on first access)
_view_store: ViewStore | None = None


def create_view_store(backend: str | None = None) -> ViewStore:
    backend = (backend or settings.view_store_backend).lower()
    if backend == "memory":
        logger.info("View store using in-memory storage")
        return InMemoryViewStore()
    if backend == "redis":
        return RedisViewStore()
    raise ValueError(f"Unknown view store backend: {backend!r}")


async def get_view_store() -> ViewStore:
    """FastAPI dependency returning the process-wide view store."""
    global _view_store

    if _view_store is None:
        _view_store = create_view_store()
    return _view_store


async def close_view_store() -> None:
    global _view_store

    if _view_store is not None:
        await _view_store.close()
        _view_store = None
