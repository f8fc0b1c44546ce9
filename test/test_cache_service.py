"""
Tests for the engagement cache service.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from churchsite.models.engagement import ContentItem, ContentType
from churchsite.services.cache_service import CacheService, LRUCache
from churchsite.utils.cache import CacheManager


class TestLRUCache:
    """Tests for in-memory LRU cache."""

    def test_basic_get_set(self):
        cache = LRUCache(max_size=10)

        cache.set("key1", "value1")
        assert cache.get("key1") == "value1"

    def test_get_missing_key(self):
        cache = LRUCache(max_size=10)

        assert cache.get("missing") is None

    def test_max_size_eviction(self):
        """Test that LRU eviction works when max size is reached."""
        cache = LRUCache(max_size=3)

        cache.set("key1", "value1")
        cache.set("key2", "value2")
        cache.set("key3", "value3")
        cache.get("key1")
        cache.set("key4", "value4")  # evicts key2, the least recently used

        assert cache.get("key2") is None
        assert cache.get("key1") == "value1"
        assert cache.get("key4") == "value4"

    def test_delete_matching(self):
        cache = LRUCache(max_size=10)
        cache.set("cache:stats:church:1", {"a": 1})
        cache.set("cache:stats:church:2", {"a": 2})
        cache.set("cache:stats:community:1", {"a": 3})

        removed = cache.delete_matching("cache:stats:church:*")

        assert removed == 2
        assert cache.get("cache:stats:community:1") == {"a": 3}

    def test_stats(self):
        cache = LRUCache(max_size=10)
        cache.set("key1", "value1")
        cache.get("key1")
        cache.get("missing")

        stats = cache.get_stats()
        assert stats["size"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == "50.00%"


class TestCacheKeys:
    def test_stats_key(self):
        item = ContentItem(id=12, type=ContentType.CHURCH, slug="welcome")
        assert CacheService.stats_key(item) == "cache:stats:church:12"

    def test_trending_key(self):
        assert CacheService.trending_key(ContentType.COMMUNITY, 5) == "cache:trending:community:5"


class TestCacheService:
    """Tests for the two-tier cache with Redis disabled or mocked."""

    @pytest.mark.asyncio
    async def test_memory_tier_without_redis(self):
        service = CacheService(redis_cache=CacheManager(enabled=False))

        assert await service.set("k", {"total_views": 3}, ttl=60) is False
        assert await service.get("k") == {"total_views": 3}

    @pytest.mark.asyncio
    async def test_falls_back_to_redis(self):
        redis_cache = MagicMock(spec=CacheManager)
        redis_cache.get = AsyncMock(return_value={"total_views": 9})
        service = CacheService(redis_cache=redis_cache)

        assert await service.get("k") == {"total_views": 9}
        redis_cache.get.assert_awaited_once_with("k")

        # Promoted into memory: the second read does not hit Redis
        assert await service.get("k") == {"total_views": 9}
        redis_cache.get.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalidate_post_stats(self):
        service = CacheService(redis_cache=CacheManager(enabled=False))
        item = ContentItem(id=1, type=ContentType.CHURCH, slug="welcome")
        await service.set(CacheService.stats_key(item), {"total_views": 1})

        await service.invalidate_post_stats(item)

        assert await service.get(CacheService.stats_key(item)) is None

    @pytest.mark.asyncio
    async def test_invalidate_content_type_keeps_other_type(self):
        service = CacheService(redis_cache=CacheManager(enabled=False))
        church = ContentItem(id=1, type=ContentType.CHURCH, slug="a")
        community = ContentItem(id=1, type=ContentType.COMMUNITY, slug="b")
        await service.set(CacheService.stats_key(church), {"v": 1})
        await service.set(CacheService.stats_key(community), {"v": 2})
        await service.set(CacheService.trending_key(ContentType.CHURCH, 5), [])

        removed = await service.invalidate_content_type(ContentType.CHURCH)

        assert removed == 2
        assert await service.get(CacheService.stats_key(church)) is None
        assert await service.get(CacheService.stats_key(community)) == {"v": 2}

    @pytest.mark.asyncio
    async def test_get_stats_reports_redis_state(self):
        service = CacheService(redis_cache=CacheManager(enabled=False))

        stats = service.get_stats()

        assert stats["redis_enabled"] is False
        assert "memory_cache" in stats
