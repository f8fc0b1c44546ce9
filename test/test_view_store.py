"""
Tests for the view dedup / rate-limit store.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from churchsite.exceptions import DependencyUnavailableError
from churchsite.utils.view_store import (
    InMemoryViewStore,
    RedisViewStore,
    create_view_store,
    dedup_key,
    rate_key,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def rate_client(results):
    """AsyncMock Redis client whose MULTI pipeline returns results for INCR and TTL."""
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=results)
    client = AsyncMock()
    client.pipeline = MagicMock(return_value=pipe)
    return client, pipe


class TestKeys:
    def test_dedup_key_layout(self):
        assert dedup_key("abc", "church:12") == "view:dedup:abc:church:12"

    def test_rate_key_layout(self):
        assert rate_key("10.0.0.1", "community:3") == "view:rate:10.0.0.1:community:3"

    def test_keys_differ_across_content_types(self):
        assert dedup_key("abc", "church:1") != dedup_key("abc", "community:1")


class TestInMemoryViewStore:
    """Tests for the in-process backend."""

    @pytest.mark.asyncio
    async def test_mark_and_check(self):
        store = InMemoryViewStore()

        assert await store.was_viewed_recently("s1", "church:1") is False
        await store.mark_viewed_recently("s1", "church:1", ttl_seconds=1800)
        assert await store.was_viewed_recently("s1", "church:1") is True

    @pytest.mark.asyncio
    async def test_mark_is_scoped_to_session_and_post(self):
        store = InMemoryViewStore()
        await store.mark_viewed_recently("s1", "church:1", ttl_seconds=1800)

        assert await store.was_viewed_recently("s2", "church:1") is False
        assert await store.was_viewed_recently("s1", "church:2") is False
        assert await store.was_viewed_recently("s1", "community:1") is False

    @pytest.mark.asyncio
    async def test_mark_expires(self):
        clock = FakeClock()
        store = InMemoryViewStore(clock=clock)
        await store.mark_viewed_recently("s1", "church:1", ttl_seconds=1800)

        clock.advance(1799)
        assert await store.was_viewed_recently("s1", "church:1") is True

        clock.advance(2)
        assert await store.was_viewed_recently("s1", "church:1") is False

    @pytest.mark.asyncio
    async def test_rate_counts_up_to_limit(self):
        store = InMemoryViewStore()

        results = [await store.increment_and_check_rate("10.0.0.1", "church:1", 10, 3600) for _ in range(11)]

        assert [r.count for r in results] == list(range(1, 12))
        assert all(r.allowed for r in results[:10])
        assert results[10].allowed is False

    @pytest.mark.asyncio
    async def test_rate_window_starts_at_first_count(self):
        """Later increments must not extend the window."""
        clock = FakeClock()
        store = InMemoryViewStore(clock=clock)

        await store.increment_and_check_rate("10.0.0.1", "church:1", 2, 3600)
        clock.advance(3000)
        await store.increment_and_check_rate("10.0.0.1", "church:1", 2, 3600)
        clock.advance(601)

        result = await store.increment_and_check_rate("10.0.0.1", "church:1", 2, 3600)
        assert result.count == 1
        assert result.allowed is True

    @pytest.mark.asyncio
    async def test_rate_is_per_ip_and_post(self):
        store = InMemoryViewStore()
        for _ in range(3):
            await store.increment_and_check_rate("10.0.0.1", "church:1", 3, 3600)

        other_ip = await store.increment_and_check_rate("10.0.0.2", "church:1", 3, 3600)
        other_post = await store.increment_and_check_rate("10.0.0.1", "church:2", 3, 3600)

        assert other_ip.count == 1
        assert other_post.count == 1

    @pytest.mark.asyncio
    async def test_ping_and_clear(self):
        store = InMemoryViewStore()
        await store.mark_viewed_recently("s1", "church:1", ttl_seconds=60)

        assert await store.ping() is True
        store.clear()
        assert await store.was_viewed_recently("s1", "church:1") is False


class TestRedisViewStore:
    """Tests for the Redis backend using a mocked client."""

    @pytest.mark.asyncio
    async def test_mark_uses_set_with_expiry(self):
        client = AsyncMock()
        store = RedisViewStore(client=client)

        await store.mark_viewed_recently("s1", "church:1", ttl_seconds=1800)

        client.set.assert_awaited_once_with("view:dedup:s1:church:1", "1", ex=1800)

    @pytest.mark.asyncio
    async def test_was_viewed_uses_exists(self):
        client = AsyncMock()
        client.exists.return_value = 1
        store = RedisViewStore(client=client)

        assert await store.was_viewed_recently("s1", "church:1") is True
        client.exists.assert_awaited_once_with("view:dedup:s1:church:1")

    @pytest.mark.asyncio
    async def test_first_increment_sets_expiry(self):
        client, pipe = rate_client([1, -1])
        store = RedisViewStore(client=client)

        result = await store.increment_and_check_rate("10.0.0.1", "church:1", 10, 3600)

        assert result.count == 1
        assert result.allowed is True
        client.pipeline.assert_called_once_with(transaction=True)
        pipe.incr.assert_called_once_with("view:rate:10.0.0.1:church:1")
        client.expire.assert_awaited_once_with("view:rate:10.0.0.1:church:1", 3600)

    @pytest.mark.asyncio
    async def test_later_increment_keeps_expiry(self):
        client, _ = rate_client([11, 1200])
        store = RedisViewStore(client=client)

        result = await store.increment_and_check_rate("10.0.0.1", "church:1", 10, 3600)

        assert result.allowed is False
        client.expire.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_expiry_is_restored(self):
        """A failed EXPIRE on the first count is repaired by the next call."""
        client, pipe = rate_client([1, -1])
        client.expire.side_effect = [RedisConnectionError("connection reset"), True]
        store = RedisViewStore(client=client)

        with pytest.raises(DependencyUnavailableError):
            await store.increment_and_check_rate("10.0.0.1", "church:1", 10, 3600)

        pipe.execute.return_value = [2, -1]
        result = await store.increment_and_check_rate("10.0.0.1", "church:1", 10, 3600)

        assert result.count == 2
        assert client.expire.await_count == 2
        client.expire.assert_awaited_with("view:rate:10.0.0.1:church:1", 3600)

    @pytest.mark.asyncio
    async def test_redis_errors_become_dependency_unavailable(self):
        client, pipe = rate_client([1, -1])
        client.exists.side_effect = RedisConnectionError("connection refused")
        pipe.execute.side_effect = RedisConnectionError("connection refused")
        client.set.side_effect = RedisConnectionError("connection refused")
        store = RedisViewStore(client=client)

        with pytest.raises(DependencyUnavailableError):
            await store.was_viewed_recently("s1", "church:1")
        with pytest.raises(DependencyUnavailableError):
            await store.increment_and_check_rate("10.0.0.1", "church:1", 10, 3600)
        with pytest.raises(DependencyUnavailableError):
            await store.mark_viewed_recently("s1", "church:1", 1800)

    @pytest.mark.asyncio
    async def test_ping_reports_failure(self):
        client = AsyncMock()
        client.ping.side_effect = RedisConnectionError("connection refused")
        store = RedisViewStore(client=client)

        assert await store.ping() is False


class TestCreateViewStore:
    def test_memory_backend(self):
        assert isinstance(create_view_store("memory"), InMemoryViewStore)

    def test_redis_backend(self):
        assert isinstance(create_view_store("redis"), RedisViewStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_view_store("memcached")
