"""
Analytics Service

Reporting on top of the engagement tables: trending posts per content type,
detailed per-post analytics for admins and the administrative view reset.
Trending lists are cached for an hour.
"""

import logging
from datetime import timedelta
from typing import Any
from urllib.parse import urlparse

from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from churchsite.config import settings
from churchsite.exceptions import PostNotFoundError
from churchsite.models.engagement import ENGAGEMENT_TABLES, ContentItem, ContentType
from churchsite.models.user import User
from churchsite.services.cache_service import CacheService, cache_service
from churchsite.services.stats_service import StatsAggregator, StatsSnapshot, load_snapshot_row
from churchsite.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

TRENDING_WINDOW_DAYS = 7
RECENT_LIKERS_LIMIT = 50


def referrer_host(referrer: str) -> str:
    """Hostname of a referrer URL, or the raw value when it is not a URL."""
    host = urlparse(referrer).hostname
    return host or referrer


class AnalyticsService:
    """Service for engagement reporting and maintenance"""

    @staticmethod
    async def get_trending_posts(
        db: AsyncSession,
        content_type: ContentType,
        limit: int = 5,
        cache: CacheService | None = None,
    ) -> list[dict[str, Any]]:
        """
        Published posts ranked by distinct sessions over the last 7 days, then likes.

        Args:
            db: Database session
            content_type: Which table set to rank
            limit: Maximum number of posts
            cache: Cache service (defaults to the global one)

        Returns:
            List of post dicts with recent_views and total_likes
        """
        cache = cache or cache_service
        key = CacheService.trending_key(content_type, limit)
        cached = await cache.get(key)
        if cached is not None:
            return cached

        tables = ENGAGEMENT_TABLES[content_type]
        post, view, like = tables.post, tables.view, tables.like
        since = utcnow() - timedelta(days=TRENDING_WINDOW_DAYS)

        recent_views = (
            select(view.post_id, func.count(func.distinct(view.session_id)).label("recent_views"))
            .where(view.created_at >= since)
            .group_by(view.post_id)
            .subquery()
        )
        like_counts = (
            select(like.post_id, func.count(like.id).label("total_likes")).group_by(like.post_id).subquery()
        )
        total_likes = func.coalesce(like_counts.c.total_likes, 0)

        result = await db.execute(
            select(post.id, post.title, post.slug, post.excerpt, recent_views.c.recent_views, total_likes)
            .join(recent_views, recent_views.c.post_id == post.id)
            .outerjoin(like_counts, like_counts.c.post_id == post.id)
            .where(post.published.is_(True))
            .order_by(recent_views.c.recent_views.desc(), total_likes.desc(), post.id)
            .limit(limit)
        )

        trending = [
            {
                "id": row[0],
                "title": row[1],
                "slug": row[2],
                "excerpt": row[3],
                "content_type": content_type.value,
                "recent_views": row[4],
                "total_likes": row[5],
            }
            for row in result.all()
        ]

        await cache.set(key, trending, ttl=settings.trending_cache_ttl_seconds)
        return trending

    @staticmethod
    async def get_content_item(db: AsyncSession, content_type: ContentType, post_id: int) -> tuple[ContentItem, Any]:
        post_model = ENGAGEMENT_TABLES[content_type].post
        result = await db.execute(select(post_model).where(post_model.id == post_id))
        post = result.scalars().first()
        if post is None:
            raise PostNotFoundError(post_id)
        return ContentItem(id=post.id, type=content_type, slug=post.slug), post

    @staticmethod
    async def get_post_analytics(db: AsyncSession, content_type: ContentType, post_id: int) -> dict[str, Any]:
        """Detailed engagement breakdown for one post (admin dashboard)."""
        item, post = await AnalyticsService.get_content_item(db, content_type, post_id)
        tables = item.tables
        view, like, engagement = tables.view, tables.like, tables.engagement

        aggregate = await StatsAggregator().aggregate_views(db, item)

        duration_result = await db.execute(
            select(func.avg(view.view_duration)).where(view.post_id == item.id, view.view_duration > 0)
        )
        avg_duration = duration_result.scalar()

        date_col = func.date(view.created_at)
        by_date_result = await db.execute(
            select(date_col, func.count(view.id)).where(view.post_id == item.id).group_by(date_col).order_by(date_col)
        )
        views_by_date = {str(day): count for day, count in by_date_result.all()}

        referrer_result = await db.execute(
            select(view.referrer, func.count(view.id))
            .where(view.post_id == item.id, view.referrer.isnot(None))
            .group_by(view.referrer)
        )
        views_by_referrer: dict[str, int] = {}
        for referrer, count in referrer_result.all():
            host = referrer_host(referrer)
            views_by_referrer[host] = views_by_referrer.get(host, 0) + count

        engagement_result = await db.execute(
            select(
                func.count(engagement.id),
                func.avg(engagement.scroll_depth).filter(engagement.scroll_depth > 0),
                func.avg(engagement.time_on_page).filter(engagement.time_on_page > 0),
                func.coalesce(func.sum(engagement.clicks), 0),
                func.coalesce(func.sum(engagement.shares), 0),
            ).where(engagement.post_id == item.id)
        )
        sessions, avg_scroll, avg_time, clicks, shares = engagement_result.one()

        likers_result = await db.execute(
            select(User.id, User.username, User.email, like.created_at)
            .join(like, like.user_id == User.id)
            .where(like.post_id == item.id)
            .order_by(like.created_at.desc())
            .limit(RECENT_LIKERS_LIMIT)
        )
        likers = [
            {"id": user_id, "username": username, "email": email, "liked_at": liked_at.isoformat()}
            for user_id, username, email, liked_at in likers_result.all()
        ]

        snapshot_row = await load_snapshot_row(db, item)
        snapshot = StatsSnapshot.from_row(snapshot_row).to_cache() if snapshot_row is not None else None

        return {
            "post": {
                "id": post.id,
                "title": post.title,
                "slug": post.slug,
                "published": post.published,
                "content_type": content_type.value,
            },
            "snapshot": snapshot,
            "view_analytics": {
                "total_views": aggregate.total_views,
                "unique_views": aggregate.unique_views,
                "registered_views": aggregate.registered_views,
                "anonymous_views": aggregate.total_views - aggregate.registered_views,
                "avg_view_duration": round(float(avg_duration), 2) if avg_duration is not None else 0,
                "last_viewed_at": aggregate.last_viewed_at.isoformat() if aggregate.last_viewed_at else None,
            },
            "engagement_metrics": {
                "total_sessions": sessions or 0,
                "avg_scroll_depth": round(float(avg_scroll), 2) if avg_scroll is not None else 0,
                "avg_time_on_page": round(float(avg_time), 2) if avg_time is not None else 0,
                "total_clicks": int(clicks),
                "total_shares": int(shares),
            },
            "charts": {
                "views_by_date": views_by_date,
                "views_by_referrer": views_by_referrer,
            },
            "likers": likers,
        }

    @staticmethod
    async def reset_views(
        db: AsyncSession,
        content_type: ContentType,
        post_id: int | None = None,
        cache: CacheService | None = None,
    ) -> dict[str, int]:
        """
        Delete view events and engagement sessions for one post, or every post of
        content_type, and zero the view counters on their snapshots.

        Likes are kept. This is the only operation that deletes view events.
        """
        cache = cache or cache_service
        tables = ENGAGEMENT_TABLES[content_type]
        item = None
        if post_id is not None:
            item, _ = await AnalyticsService.get_content_item(db, content_type, post_id)

        def scoped(stmt, model):
            return stmt.where(model.post_id == post_id) if post_id is not None else stmt

        views_deleted = (await db.execute(scoped(delete(tables.view), tables.view))).rowcount
        sessions_deleted = (await db.execute(scoped(delete(tables.engagement), tables.engagement))).rowcount
        await db.execute(
            scoped(update(tables.stats), tables.stats).values(
                total_views=0,
                unique_views=0,
                registered_views=0,
                anonymous_views=0,
                avg_view_duration=None,
                last_viewed_at=None,
                updated_at=utcnow(),
            )
        )
        await db.commit()

        if item is not None:
            await cache.invalidate_post_stats(item)
            await cache.invalidate_trending(content_type)
        else:
            await cache.invalidate_content_type(content_type)

        scope = item.key if item is not None else f"all {content_type.value} posts"
        logger.warning(f"Reset views for {scope}: {views_deleted} views, {sessions_deleted} sessions deleted")
        return {"views_deleted": views_deleted, "sessions_deleted": sessions_deleted}
