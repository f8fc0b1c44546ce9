from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from churchsite.config import settings
from churchsite.database import AsyncSessionLocal
from churchsite.models.engagement import ContentType
from churchsite.services.analytics_service import AnalyticsService
from churchsite.services.cache_service import cache_service
import logging

scheduler = AsyncIOScheduler()

logger = logging.getLogger(__name__)

TRENDING_WARM_LIMITS = (5, 10)


async def warm_trending_cache():
    """Rebuild the cached trending lists the blog pages ask for."""
    async with AsyncSessionLocal() as db:
        for content_type in ContentType:
            await cache_service.invalidate_trending(content_type)
            for limit in TRENDING_WARM_LIMITS:
                posts = await AnalyticsService.get_trending_posts(db, content_type, limit=limit)
                logger.debug(f"[Scheduler] Warmed trending {content_type.value} (limit {limit}): {len(posts)} posts")
    logger.info("[Scheduler] Trending cache warmed.")


def schedule_trending_warmup(interval_minutes: int | None = None):
    scheduler.add_job(
        warm_trending_cache,
        trigger=IntervalTrigger(minutes=interval_minutes or settings.trending_warm_interval_minutes),
        id="warm_trending_cache",
        replace_existing=True,
    )
    logger.info("[Scheduler] Trending cache warm-up scheduled.")
