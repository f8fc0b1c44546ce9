"""
Engagement Analytics Routes

Trending posts (public) plus per-post analytics, stats recomputation and
view resets for admins.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from churchsite.auth import require_admin
from churchsite.database import get_db
from churchsite.models.engagement import ContentType
from churchsite.models.user import User
from churchsite.schemas.engagement import ResetViewsResponse, TrendingPost
from churchsite.services.analytics_service import AnalyticsService
from churchsite.services.cache_service import CacheService, get_cache_service
from churchsite.services.stats_service import StatsAggregator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Engagement Analytics"])


@router.get("/trending/{content_type}", response_model=list[TrendingPost])
async def get_trending_posts(
    content_type: ContentType,
    limit: int = Query(5, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """Posts with the most distinct readers over the last 7 days, ties broken by likes."""
    return await AnalyticsService.get_trending_posts(db, content_type, limit=limit, cache=cache)


@router.get("/admin/{content_type}/posts/{post_id}/stats")
async def get_post_analytics(
    content_type: ContentType,
    post_id: int,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Detailed analytics for one post.

    **Requires**: Admin role

    **Returns**:
    - View totals (total, unique, registered, anonymous, average duration)
    - Engagement aggregates (scroll depth, time on page, clicks, shares)
    - Views by date and by referrer host
    - Most recent likers
    """
    return await AnalyticsService.get_post_analytics(db, content_type, post_id)


@router.post("/admin/{content_type}/posts/{post_id}/stats/recompute")
async def recompute_post_stats(
    content_type: ContentType,
    post_id: int,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """Rebuild the post's stats snapshot now and drop its cached stats. **Requires**: Admin role"""
    item, _ = await AnalyticsService.get_content_item(db, content_type, post_id)
    snapshot = await StatsAggregator(cache).recompute(db, item, reason="admin")
    await cache.invalidate_post_stats(item)
    return snapshot.to_cache()


@router.delete("/admin/{content_type}/posts/{post_id}/views", response_model=ResetViewsResponse)
async def reset_post_views(
    content_type: ContentType,
    post_id: int,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """Delete all recorded views of one post. Likes are kept. **Requires**: Admin role"""
    logger.warning(f"Admin {current_user.id} is resetting views of {content_type.value} post {post_id}")
    result = await AnalyticsService.reset_views(db, content_type, post_id=post_id, cache=cache)
    return ResetViewsResponse(**result)


@router.delete("/admin/{content_type}/views", response_model=ResetViewsResponse)
async def reset_all_views(
    content_type: ContentType,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache_service),
):
    """Delete all recorded views of every post of one content type. **Requires**: Admin role"""
    logger.warning(f"Admin {current_user.id} is resetting all {content_type.value} views")
    result = await AnalyticsService.reset_views(db, content_type, cache=cache)
    return ResetViewsResponse(**result)
