"""
Engagement Recorder

Records views, engagement pings and shares for one content item.

View recording applies the bot filter, the per-session dedup window and the
per-IP rate window before writing a view event. Any view-store or database
outage turns into a soft failure so page rendering never depends on it.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from churchsite.config import settings
from churchsite.exceptions import DependencyUnavailableError, ValidationError
from churchsite.models.engagement import ContentItem
from churchsite.services.identity_service import Viewer, is_bot
from churchsite.utils.metrics import record_engagement_ping, record_share, record_view_outcome
from churchsite.utils.view_store import ViewStore

logger = logging.getLogger(__name__)

SHARE_PLATFORMS = ("twitter", "facebook", "linkedin", "copy", "other")
MAX_SCROLL_DEPTH = 100


class ViewOutcome(str, enum.Enum):
    RECORDED = "recorded"
    DUPLICATE = "duplicate"
    RATE_LIMITED = "rate_limited"
    BOT = "bot"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class ViewPolicy:
    """Dedup and rate windows applied to view recording."""

    dedup_ttl_seconds: int = 1800
    rate_limit: int = 10
    rate_window_seconds: int = 3600
    bot_filter_enabled: bool = True

    @classmethod
    def from_settings(cls) -> "ViewPolicy":
        return cls(
            dedup_ttl_seconds=settings.view_dedup_ttl_seconds,
            rate_limit=settings.view_rate_limit,
            rate_window_seconds=settings.view_rate_window_seconds,
            bot_filter_enabled=settings.bot_filter_enabled,
        )


@dataclass(frozen=True)
class ViewResult:
    outcome: ViewOutcome
    session_id: str
    view_id: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.outcome is ViewOutcome.RECORDED

    @property
    def reason(self) -> Optional[str]:
        return None if self.success else self.outcome.value


@dataclass(frozen=True)
class EngagementPing:
    scroll_depth: float = 0
    time_on_page: int = 0
    clicks: int = 0

    def validate(self) -> None:
        if not 0 <= self.scroll_depth <= MAX_SCROLL_DEPTH:
            raise ValidationError("scrollDepth must be between 0 and 100", field="scrollDepth")
        if self.time_on_page < 0:
            raise ValidationError("timeOnPage must not be negative", field="timeOnPage")
        if self.clicks < 0:
            raise ValidationError("clicks must not be negative", field="clicks")


class EngagementRecorder:
    """Writes view events and per-session engagement aggregates."""

    def __init__(self, view_store: ViewStore, policy: ViewPolicy | None = None):
        self.view_store = view_store
        self.policy = policy or ViewPolicy.from_settings()

    # ============== Views ==============

    async def record_view(
        self,
        db: AsyncSession,
        item: ContentItem,
        viewer: Viewer,
        referrer: str | None = None,
    ) -> ViewResult:
        """
        Count one view of item by viewer, unless filtered.

        Order of checks: bot filter, dedup window, rate window. The dedup
        marker is set only after the view event is written, so a rare double
        count under concurrent requests is possible and accepted.
        """
        result = await self._record_view(db, item, viewer, referrer)
        record_view_outcome(item.type.value, result.outcome.value)
        return result

    async def _record_view(
        self, db: AsyncSession, item: ContentItem, viewer: Viewer, referrer: str | None
    ) -> ViewResult:
        session_id = viewer.session_id

        if self.policy.bot_filter_enabled and is_bot(viewer.user_agent):
            logger.debug(f"Ignoring bot view of {item.key}: {viewer.user_agent!r}")
            return ViewResult(ViewOutcome.BOT, session_id)

        try:
            if await self.view_store.was_viewed_recently(session_id, item.key):
                logger.debug(f"Duplicate view of {item.key} from session {session_id}")
                return ViewResult(ViewOutcome.DUPLICATE, session_id)

            rate = await self.view_store.increment_and_check_rate(
                viewer.ip_address, item.key, self.policy.rate_limit, self.policy.rate_window_seconds
            )
        except DependencyUnavailableError:
            logger.warning(f"View store unavailable; not recording view of {item.key}")
            return ViewResult(ViewOutcome.UNAVAILABLE, session_id)

        if not rate.allowed:
            logger.info(f"Rate limit hit for {viewer.ip_address} on {item.key} ({rate.count} views in window)")
            return ViewResult(ViewOutcome.RATE_LIMITED, session_id)

        view_model = item.tables.view
        view = view_model(
            post_id=item.id,
            user_id=viewer.user_id,
            session_id=session_id,
            ip_address=viewer.ip_address,
            user_agent=viewer.user_agent,
            referrer=referrer,
        )
        db.add(view)
        try:
            await db.commit()
            await db.refresh(view)
        except OperationalError as e:
            await db.rollback()
            logger.error(f"Database unavailable while recording view of {item.key}: {e}")
            return ViewResult(ViewOutcome.UNAVAILABLE, session_id)

        try:
            await self.view_store.mark_viewed_recently(session_id, item.key, self.policy.dedup_ttl_seconds)
        except DependencyUnavailableError:
            # The view is already stored; only dedup for the next request is lost.
            logger.warning(f"Could not mark {item.key} as viewed for session {session_id}")

        logger.debug(f"Recorded view {view.id} of {item.key}")
        return ViewResult(ViewOutcome.RECORDED, session_id, view_id=view.id)

    # ============== Engagement sessions ==============

    async def _load_session(self, db: AsyncSession, item: ContentItem, session_id: str):
        model = item.tables.engagement
        result = await db.execute(select(model).where(model.post_id == item.id, model.session_id == session_id))
        return result.scalars().first()

    async def _get_or_create_session(self, db: AsyncSession, item: ContentItem, viewer: Viewer):
        """
        Load the (session, post) engagement row, creating an empty one if absent.

        Returns (row, created). A concurrent insert for the same pair loses to
        the unique constraint and falls back to the row that won.
        """
        row = await self._load_session(db, item, viewer.session_id)
        if row is not None:
            return row, False

        row = item.tables.engagement(
            post_id=item.id,
            session_id=viewer.session_id,
            user_id=viewer.user_id,
            scroll_depth=0,
            time_on_page=0,
            clicks=0,
            shares=0,
        )
        db.add(row)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            row = await self._load_session(db, item, viewer.session_id)
            if row is None:
                raise
            return row, False
        return row, True

    async def record_engagement_ping(
        self,
        db: AsyncSession,
        item: ContentItem,
        viewer: Viewer,
        ping: EngagementPing,
    ):
        """
        Merge a scroll/time/click ping into the viewer's engagement session.

        scroll_depth keeps the maximum, time_on_page is last-write-wins and
        clicks accumulate. time_on_page is also copied onto the session's view
        event so duration statistics follow the latest ping.
        """
        ping.validate()

        row, created = await self._get_or_create_session(db, item, viewer)
        if created:
            row.scroll_depth = ping.scroll_depth
            row.clicks = ping.clicks
        else:
            row.scroll_depth = max(row.scroll_depth or 0, ping.scroll_depth)
            row.clicks = (row.clicks or 0) + ping.clicks
        row.time_on_page = ping.time_on_page
        if row.user_id is None and viewer.user_id is not None:
            row.user_id = viewer.user_id

        view_model = item.tables.view
        await db.execute(
            update(view_model)
            .where(view_model.post_id == item.id, view_model.session_id == viewer.session_id)
            .values(view_duration=ping.time_on_page)
        )

        await db.commit()
        record_engagement_ping(item.type.value)
        return row

    async def record_share(
        self,
        db: AsyncSession,
        item: ContentItem,
        viewer: Viewer,
        platform: str,
    ) -> int:
        """Count one share by viewer; returns the post's total shares across all sessions."""
        platform = (platform or "").lower()
        if platform not in SHARE_PLATFORMS:
            raise ValidationError(
                f"platform must be one of: {', '.join(SHARE_PLATFORMS)}",
                field="platform",
            )

        row, _ = await self._get_or_create_session(db, item, viewer)
        row.shares = (row.shares or 0) + 1
        row.last_share_platform = platform
        if row.user_id is None and viewer.user_id is not None:
            row.user_id = viewer.user_id
        await db.commit()

        record_share(item.type.value, platform)
        return await self.total_shares(db, item)

    async def total_shares(self, db: AsyncSession, item: ContentItem) -> int:
        model = item.tables.engagement
        result = await db.execute(select(func.coalesce(func.sum(model.shares), 0)).where(model.post_id == item.id))
        return int(result.scalar() or 0)
