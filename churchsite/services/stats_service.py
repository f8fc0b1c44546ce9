"""
Stats Aggregator

Serves per-post view/like statistics from a denormalized snapshot row that
is recomputed lazily:

- no snapshot yet
- the stored view count drifted from the live count by more than the tolerance
- the snapshot is older than the maximum age

On top of that, the rendered stats are cached for a short TTL. has_liked is
viewer-specific and always read live.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from churchsite.config import settings
from churchsite.models.engagement import ContentItem
from churchsite.services.cache_service import CacheService, cache_service
from churchsite.utils.metrics import record_stats_recompute
from churchsite.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

SNAPSHOT_EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class ViewAggregate:
    """Result of the single aggregation pass over a post's view events."""

    total_views: int = 0
    unique_views: int = 0
    registered_views: int = 0
    avg_view_duration: Optional[float] = None
    last_viewed_at: Optional[datetime] = None


@dataclass(frozen=True)
class StatsSnapshot:
    total_views: int
    unique_views: int
    registered_views: int
    anonymous_views: int
    total_likes: int
    avg_view_duration: Optional[float]
    last_viewed_at: Optional[datetime]
    updated_at: datetime

    @classmethod
    def from_row(cls, row) -> "StatsSnapshot":
        return cls(
            total_views=row.total_views or 0,
            unique_views=row.unique_views or 0,
            registered_views=row.registered_views or 0,
            anonymous_views=row.anonymous_views or 0,
            total_likes=row.total_likes or 0,
            avg_view_duration=row.avg_view_duration,
            last_viewed_at=row.last_viewed_at,
            updated_at=row.updated_at,
        )

    def to_cache(self) -> dict[str, Any]:
        """JSON-safe form, identical whether it comes back from memory or Redis."""
        data = asdict(self)
        for key in ("last_viewed_at", "updated_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


def build_snapshot(aggregate: ViewAggregate, total_likes: int, now: datetime) -> StatsSnapshot:
    """Derive a snapshot from aggregated view events and the like count."""
    avg = aggregate.avg_view_duration
    return StatsSnapshot(
        total_views=aggregate.total_views,
        unique_views=aggregate.unique_views,
        registered_views=aggregate.registered_views,
        anonymous_views=aggregate.total_views - aggregate.registered_views,
        total_likes=total_likes,
        avg_view_duration=round(float(avg), 2) if avg is not None else None,
        last_viewed_at=aggregate.last_viewed_at,
        updated_at=now,
    )


def needs_recompute(
    snapshot: Optional[StatsSnapshot],
    live_total_views: int,
    now: datetime,
    max_age_seconds: int,
    drift_tolerance: int,
) -> Optional[str]:
    """Return why the snapshot must be rebuilt, or None if it can be served."""
    if snapshot is None:
        return "missing"
    if abs(live_total_views - snapshot.total_views) > drift_tolerance:
        return "drift"
    if (now - snapshot.updated_at).total_seconds() > max_age_seconds:
        return "age"
    return None


async def load_snapshot_row(db: AsyncSession, item: ContentItem):
    model = item.tables.stats
    result = await db.execute(select(model).where(model.post_id == item.id))
    return result.scalars().first()


async def upsert_snapshot(db: AsyncSession, item: ContentItem, touch: bool = True, **values):
    """
    Write values onto the post's snapshot row, creating a zeroed row if absent,
    and commit.

    With touch=False the snapshot's age is left alone, and a newly created row
    is dated at the epoch so the next read rebuilds it.

    Callers commit their own changes first: losing an insert race rolls the
    session back before retrying as an update. Concurrent writers are
    last-write-wins.
    """
    model = item.tables.stats
    if touch:
        values.setdefault("updated_at", utcnow())

    row = await load_snapshot_row(db, item)
    if row is None:
        row = model(
            post_id=item.id,
            total_views=0,
            unique_views=0,
            registered_views=0,
            anonymous_views=0,
            total_likes=0,
            updated_at=SNAPSHOT_EPOCH,
        )
        for key, value in values.items():
            setattr(row, key, value)
        db.add(row)
        try:
            await db.commit()
            return row
        except IntegrityError:
            await db.rollback()
            row = await load_snapshot_row(db, item)

    for key, value in values.items():
        setattr(row, key, value)
    await db.commit()
    return row


class StatsAggregator:
    """Read path for post statistics."""

    def __init__(
        self,
        cache: CacheService | None = None,
        cache_ttl_seconds: int | None = None,
        max_age_seconds: int | None = None,
        drift_tolerance: int | None = None,
    ):
        self.cache = cache or cache_service
        self.cache_ttl_seconds = cache_ttl_seconds or settings.stats_cache_ttl_seconds
        self.max_age_seconds = max_age_seconds if max_age_seconds is not None else settings.stats_max_age_seconds
        self.drift_tolerance = drift_tolerance if drift_tolerance is not None else settings.stats_drift_tolerance

    async def aggregate_views(self, db: AsyncSession, item: ContentItem) -> ViewAggregate:
        view = item.tables.view
        result = await db.execute(
            select(
                func.count(view.id),
                func.count(func.distinct(view.session_id)),
                func.count(view.user_id),
                func.avg(view.view_duration),
                func.max(view.created_at),
            ).where(view.post_id == item.id)
        )
        total, unique, registered, avg_duration, last_viewed = result.one()
        return ViewAggregate(
            total_views=total or 0,
            unique_views=unique or 0,
            registered_views=registered or 0,
            avg_view_duration=avg_duration,
            last_viewed_at=last_viewed,
        )

    async def count_views(self, db: AsyncSession, item: ContentItem) -> int:
        view = item.tables.view
        result = await db.execute(select(func.count(view.id)).where(view.post_id == item.id))
        return result.scalar() or 0

    async def count_likes(self, db: AsyncSession, item: ContentItem) -> int:
        like = item.tables.like
        result = await db.execute(select(func.count(like.id)).where(like.post_id == item.id))
        return result.scalar() or 0

    async def has_liked(self, db: AsyncSession, item: ContentItem, user_id: int | None) -> bool:
        if user_id is None:
            return False
        like = item.tables.like
        result = await db.execute(select(like.id).where(like.post_id == item.id, like.user_id == user_id))
        return result.first() is not None

    async def recompute(self, db: AsyncSession, item: ContentItem, reason: str = "manual") -> StatsSnapshot:
        """Rebuild the snapshot from view events and like edges and store it."""
        aggregate = await self.aggregate_views(db, item)
        total_likes = await self.count_likes(db, item)
        snapshot = build_snapshot(aggregate, total_likes, utcnow())

        await upsert_snapshot(db, item, **asdict(snapshot))

        record_stats_recompute(item.type.value, reason)
        logger.info(f"Recomputed stats for {item.key} ({reason}): {snapshot.total_views} views")
        return snapshot

    async def get_snapshot(self, db: AsyncSession, item: ContentItem) -> StatsSnapshot:
        """Stored snapshot if still acceptable, otherwise a fresh one."""
        row = await load_snapshot_row(db, item)
        snapshot = StatsSnapshot.from_row(row) if row is not None else None

        live_total = await self.count_views(db, item)
        reason = needs_recompute(snapshot, live_total, utcnow(), self.max_age_seconds, self.drift_tolerance)
        if reason is None:
            return snapshot
        return await self.recompute(db, item, reason)

    async def get_stats(self, db: AsyncSession, item: ContentItem, viewer_user_id: int | None = None) -> dict:
        """
        Stats for one post as a JSON-safe dict, plus the viewer's has_liked.

        Args:
            db: Database session
            item: Resolved content item
            viewer_user_id: Authenticated viewer, or None for anonymous readers

        Returns:
            Dict with the snapshot fields and has_liked
        """
        key = CacheService.stats_key(item)
        stats = await self.cache.get(key)
        if stats is None:
            snapshot = await self.get_snapshot(db, item)
            stats = snapshot.to_cache()
            await self.cache.set(key, stats, ttl=self.cache_ttl_seconds)

        return {**stats, "has_liked": await self.has_liked(db, item, viewer_user_id)}
