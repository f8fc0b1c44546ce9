"""
Unified Engagement Service

One entry point for church posts and community posts. Route handlers resolve
the slug into a ContentItem once; from then on the content type only selects
the table set, and every policy (dedup, rate limit, likes, stats) is shared.
"""

import logging

from fastapi import Depends
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from churchsite.exceptions import DependencyUnavailableError, PostNotFoundError, ValidationError
from churchsite.models.engagement import ENGAGEMENT_TABLES, ContentItem, ContentType
from churchsite.services.cache_service import CacheService, get_cache_service
from churchsite.services.engagement_service import (
    EngagementPing,
    EngagementRecorder,
    ViewPolicy,
    ViewResult,
)
from churchsite.services.identity_service import Viewer
from churchsite.services.like_service import LikeLedger, LikeResult
from churchsite.services.stats_service import StatsAggregator
from churchsite.utils.view_store import ViewStore, get_view_store

logger = logging.getLogger(__name__)


async def resolve_content(db: AsyncSession, content_type: ContentType, slug: str) -> ContentItem:
    """Look up a post by slug in the table set of content_type."""
    slug = (slug or "").strip()
    if not slug:
        raise ValidationError("Invalid slug", field="slug")

    post_model = ENGAGEMENT_TABLES[content_type].post
    try:
        result = await db.execute(select(post_model.id).where(post_model.slug == slug))
    except OperationalError as e:
        raise DependencyUnavailableError("database") from e

    post_id = result.scalar()
    if post_id is None:
        raise PostNotFoundError(slug)
    return ContentItem(id=post_id, type=content_type, slug=slug)


class UnifiedEngagementService:
    """Facade over the recorder, like ledger and stats aggregator."""

    def __init__(
        self,
        recorder: EngagementRecorder,
        likes: LikeLedger,
        stats: StatsAggregator,
        cache: CacheService,
    ):
        self.recorder = recorder
        self.likes = likes
        self.stats = stats
        self.cache = cache

    @classmethod
    def create(
        cls,
        view_store: ViewStore,
        cache: CacheService,
        policy: ViewPolicy | None = None,
    ) -> "UnifiedEngagementService":
        return cls(
            recorder=EngagementRecorder(view_store, policy),
            likes=LikeLedger(cache),
            stats=StatsAggregator(cache),
            cache=cache,
        )

    async def resolve_content(self, db: AsyncSession, content_type: ContentType, slug: str) -> ContentItem:
        return await resolve_content(db, content_type, slug)

    # Views and engagement are fire-and-forget; routes turn outages into soft failures.

    async def record_view(
        self, db: AsyncSession, item: ContentItem, viewer: Viewer, referrer: str | None = None
    ) -> ViewResult:
        return await self.recorder.record_view(db, item, viewer, referrer=referrer)

    async def record_engagement_ping(self, db: AsyncSession, item: ContentItem, viewer: Viewer, ping: EngagementPing):
        try:
            return await self.recorder.record_engagement_ping(db, item, viewer, ping)
        except OperationalError as e:
            await db.rollback()
            logger.error(f"Database unavailable while recording engagement for {item.key}: {e}")
            raise DependencyUnavailableError("database") from e

    async def record_share(self, db: AsyncSession, item: ContentItem, viewer: Viewer, platform: str) -> int:
        try:
            return await self.recorder.record_share(db, item, viewer, platform)
        except OperationalError as e:
            await db.rollback()
            logger.error(f"Database unavailable while recording share of {item.key}: {e}")
            raise DependencyUnavailableError("database") from e

    # Likes and stats are explicit reads/actions; outages surface as errors.

    async def like(self, db: AsyncSession, item: ContentItem, viewer: Viewer) -> LikeResult:
        try:
            return await self.likes.like(db, item, viewer.user_id)
        except OperationalError as e:
            logger.error(f"Database unavailable while liking {item.key}: {e}")
            raise DependencyUnavailableError("database") from e

    async def unlike(self, db: AsyncSession, item: ContentItem, viewer: Viewer) -> LikeResult:
        try:
            return await self.likes.unlike(db, item, viewer.user_id)
        except OperationalError as e:
            logger.error(f"Database unavailable while unliking {item.key}: {e}")
            raise DependencyUnavailableError("database") from e

    async def get_stats(self, db: AsyncSession, item: ContentItem, viewer: Viewer | None = None) -> dict:
        user_id = viewer.user_id if viewer else None
        try:
            return await self.stats.get_stats(db, item, user_id)
        except OperationalError as e:
            logger.error(f"Database unavailable while reading stats for {item.key}: {e}")
            raise DependencyUnavailableError("database") from e


async def get_engagement_service(
    view_store: ViewStore = Depends(get_view_store),
    cache: CacheService = Depends(get_cache_service),
) -> UnifiedEngagementService:
    """FastAPI dependency for the engagement facade."""
    return UnifiedEngagementService.create(view_store, cache)
