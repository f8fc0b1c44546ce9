"""
Tests for the unified engagement facade
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError
from utils.mock_utils import make_viewer

from churchsite.exceptions import DependencyUnavailableError, PostNotFoundError, ValidationError
from churchsite.models import ContentType
from churchsite.services.cache_service import CacheService
from churchsite.services.engagement_service import EngagementPing, ViewPolicy
from churchsite.services.unified_engagement_service import UnifiedEngagementService, resolve_content
from churchsite.utils.cache import CacheManager
from churchsite.utils.view_store import InMemoryViewStore


def operational_error() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


@pytest.fixture
def service():
    return UnifiedEngagementService.create(
        InMemoryViewStore(), CacheService(redis_cache=CacheManager(enabled=False)), ViewPolicy()
    )


class TestResolveContent:
    @pytest.mark.asyncio
    async def test_resolves_church_post(self, test_db, church_post):
        item = await resolve_content(test_db, ContentType.CHURCH, church_post.slug)

        assert item.id == church_post.id
        assert item.type is ContentType.CHURCH
        assert item.key == f"church:{church_post.id}"

    @pytest.mark.asyncio
    async def test_resolves_community_post(self, test_db, community_post):
        item = await resolve_content(test_db, ContentType.COMMUNITY, community_post.slug)

        assert item.key == f"community:{community_post.id}"

    @pytest.mark.asyncio
    async def test_unknown_slug(self, test_db, church_post):
        with pytest.raises(PostNotFoundError):
            await resolve_content(test_db, ContentType.CHURCH, "missing")

    @pytest.mark.asyncio
    async def test_wrong_content_type(self, test_db, church_post):
        with pytest.raises(PostNotFoundError):
            await resolve_content(test_db, ContentType.COMMUNITY, church_post.slug)

    @pytest.mark.asyncio
    async def test_blank_slug(self, test_db):
        with pytest.raises(ValidationError):
            await resolve_content(test_db, ContentType.CHURCH, "  ")

    @pytest.mark.asyncio
    async def test_database_outage(self):
        db = AsyncMock()
        db.execute.side_effect = operational_error()

        with pytest.raises(DependencyUnavailableError):
            await resolve_content(db, ContentType.CHURCH, "welcome")


class TestFacade:
    @pytest.mark.asyncio
    async def test_view_then_stats(self, test_db, church_item, service):
        result = await service.record_view(test_db, church_item, make_viewer())
        stats = await service.get_stats(test_db, church_item, make_viewer())

        assert result.success is True
        assert stats["total_views"] == 1
        assert stats["has_liked"] is False

    @pytest.mark.asyncio
    async def test_like_outage_surfaces(self, church_item, service, test_user):
        db = AsyncMock()
        db.execute.side_effect = operational_error()

        with pytest.raises(DependencyUnavailableError):
            await service.like(db, church_item, make_viewer(user_id=test_user.id))

    @pytest.mark.asyncio
    async def test_stats_outage_surfaces(self, church_item, service):
        db = AsyncMock()
        db.execute.side_effect = operational_error()

        with pytest.raises(DependencyUnavailableError):
            await service.get_stats(db, church_item)

    @pytest.mark.asyncio
    async def test_ping_outage_surfaces(self, church_item, service):
        db = AsyncMock()
        db.execute.side_effect = operational_error()

        with pytest.raises(DependencyUnavailableError):
            await service.record_engagement_ping(db, church_item, make_viewer(), EngagementPing(scroll_depth=40))
        db.rollback.assert_awaited()

    @pytest.mark.asyncio
    async def test_share_outage_surfaces(self, church_item, service):
        db = AsyncMock()
        db.execute.side_effect = operational_error()

        with pytest.raises(DependencyUnavailableError):
            await service.record_share(db, church_item, make_viewer(), "twitter")
