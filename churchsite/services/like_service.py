"""
Like Ledger

At most one like per (post, user), enforced by the unique constraint on the
like table. Every change recounts the post's likes, writes the count into the
stats snapshot and drops the cached stats so the counter is fresh
immediately.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from churchsite.exceptions import AlreadyLikedError, LikeNotFoundError, UnauthorizedError
from churchsite.models.engagement import ContentItem
from churchsite.services.cache_service import CacheService, cache_service
from churchsite.services.stats_service import upsert_snapshot
from churchsite.utils.metrics import record_like_operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LikeResult:
    liked: bool
    like_count: int


class LikeLedger:
    def __init__(self, cache: CacheService | None = None):
        self.cache = cache or cache_service

    async def count_likes(self, db: AsyncSession, item: ContentItem) -> int:
        like = item.tables.like
        result = await db.execute(select(func.count(like.id)).where(like.post_id == item.id))
        return result.scalar() or 0

    async def _find_like(self, db: AsyncSession, item: ContentItem, user_id: int):
        like = item.tables.like
        result = await db.execute(select(like).where(like.post_id == item.id, like.user_id == user_id))
        return result.scalars().first()

    async def _sync_like_count(self, db: AsyncSession, item: ContentItem) -> int:
        count = await self.count_likes(db, item)
        await upsert_snapshot(db, item, touch=False, total_likes=count)
        await self.cache.invalidate_post_stats(item)
        return count

    async def like(self, db: AsyncSession, item: ContentItem, user_id: int | None) -> LikeResult:
        """
        Add user_id's like to item.

        Raises:
            UnauthorizedError: anonymous viewer
            AlreadyLikedError: the user already likes this post
        """
        if user_id is None:
            raise UnauthorizedError("You must be logged in to like posts")

        if await self._find_like(db, item, user_id) is not None:
            raise AlreadyLikedError(item.id)

        db.add(item.tables.like(post_id=item.id, user_id=user_id))
        try:
            await db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent like from the same user.
            await db.rollback()
            raise AlreadyLikedError(item.id) from e

        count = await self._sync_like_count(db, item)
        record_like_operation(item.type.value, "like")
        logger.info(f"User {user_id} liked {item.key} ({count} likes)")
        return LikeResult(liked=True, like_count=count)

    async def unlike(self, db: AsyncSession, item: ContentItem, user_id: int | None) -> LikeResult:
        """
        Remove user_id's like from item.

        Raises:
            UnauthorizedError: anonymous viewer
            LikeNotFoundError: the user does not like this post
        """
        if user_id is None:
            raise UnauthorizedError("You must be logged in to unlike posts")

        like = item.tables.like
        result = await db.execute(delete(like).where(like.post_id == item.id, like.user_id == user_id))
        if result.rowcount == 0:
            await db.rollback()
            raise LikeNotFoundError(item.id)
        await db.commit()

        count = await self._sync_like_count(db, item)
        record_like_operation(item.type.value, "unlike")
        logger.info(f"User {user_id} unliked {item.key} ({count} likes)")
        return LikeResult(liked=False, like_count=count)
