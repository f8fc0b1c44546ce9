"""
Engagement Routes

Views, likes, engagement pings, shares and stats for blog posts. The same
endpoints are mounted once per content type:

- /api/blog/{slug}/...             church posts
- /api/community-blogs/{slug}/...  community posts
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from churchsite.auth import get_optional_user, get_viewing_user
from churchsite.config import settings
from churchsite.database import get_db
from churchsite.exceptions import DependencyUnavailableError, UnauthorizedError
from churchsite.middleware.rate_limit import like_rate_limit, limiter
from churchsite.models.engagement import ContentType
from churchsite.models.user import User
from churchsite.schemas.engagement import (
    EngagementRequest,
    EngagementResponse,
    LikeResponse,
    ShareRequest,
    ShareResponse,
    StatsResponse,
    ViewRequest,
    ViewResponse,
)
from churchsite.services.engagement_service import EngagementPing, ViewOutcome, ViewResult
from churchsite.services.identity_service import Viewer, resolve_viewer
from churchsite.services.unified_engagement_service import UnifiedEngagementService, get_engagement_service
from churchsite.utils.metrics import record_view_outcome
from churchsite.utils.request_body import parse_payload

logger = logging.getLogger(__name__)


def stats_cache_control() -> str:
    ttl = settings.stats_cache_ttl_seconds
    return f"public, max-age={ttl}, stale-while-revalidate={ttl * 2}"


def _named(name: str):
    """Give a route function a per-content-type name so slowapi keeps separate counters."""

    def rename(func):
        func.__name__ = name
        func.__qualname__ = name
        return func

    return rename


def _viewer(request: Request, user: Optional[User], session_id: Optional[str] = None) -> Viewer:
    return resolve_viewer(request.headers, session_id=session_id, user_id=user.id if user else None)


def build_engagement_router(content_type: ContentType, prefix: str, tag: str) -> APIRouter:
    """Create the engagement endpoints for one content type."""
    router = APIRouter(prefix=prefix, tags=[tag])

    @router.post(
        "/{slug}/views",
        response_model=ViewResponse,
        status_code=status.HTTP_201_CREATED,
        responses={200: {"model": ViewResponse}, 429: {"model": ViewResponse}},
    )
    async def record_view(
        slug: str,
        request: Request,
        db: AsyncSession = Depends(get_db),
        user: Optional[User] = Depends(get_viewing_user),
        engagement: UnifiedEngagementService = Depends(get_engagement_service),
    ):
        """
        Count a page view.

        Duplicates within the dedup window and views over the per-IP rate
        window are reported with success=false; they are not errors.
        """
        payload = await parse_payload(request, ViewRequest, lenient=True)
        viewer = _viewer(request, user, payload.session_id)
        referrer = payload.referrer or request.headers.get("referer")

        try:
            item = await engagement.resolve_content(db, content_type, slug)
            result = await engagement.record_view(db, item, viewer, referrer=referrer)
        except DependencyUnavailableError as e:
            logger.warning(f"View of {content_type.value}/{slug} not recorded: {e.message}")
            record_view_outcome(content_type.value, ViewOutcome.UNAVAILABLE.value)
            result = ViewResult(ViewOutcome.UNAVAILABLE, viewer.session_id)

        if result.success:
            body = ViewResponse(
                success=True,
                session_id=result.session_id,
                view_id=result.view_id,
                content_type=content_type.value,
            )
            status_code = status.HTTP_201_CREATED
        else:
            body = ViewResponse(
                success=False,
                session_id=result.session_id,
                reason=result.reason,
                cached=result.outcome is ViewOutcome.DUPLICATE,
            )
            status_code = (
                status.HTTP_429_TOO_MANY_REQUESTS
                if result.outcome is ViewOutcome.RATE_LIMITED
                else status.HTTP_200_OK
            )

        return JSONResponse(body.model_dump(by_alias=True, exclude_none=True), status_code=status_code)

    @router.post("/{slug}/likes", response_model=LikeResponse, status_code=status.HTTP_201_CREATED)
    @limiter.limit(like_rate_limit)
    @_named(f"like_{content_type.value}_post")
    async def like_post(
        slug: str,
        request: Request,
        response: Response,
        db: AsyncSession = Depends(get_db),
        user: Optional[User] = Depends(get_optional_user),
        engagement: UnifiedEngagementService = Depends(get_engagement_service),
    ):
        """Like a post. **Requires**: authenticated user."""
        if user is None:
            raise UnauthorizedError("You must be logged in to like posts")

        item = await engagement.resolve_content(db, content_type, slug)
        result = await engagement.like(db, item, _viewer(request, user))
        return LikeResponse(liked=result.liked, like_count=result.like_count)

    @router.delete("/{slug}/likes", response_model=LikeResponse)
    @limiter.limit(like_rate_limit)
    @_named(f"unlike_{content_type.value}_post")
    async def unlike_post(
        slug: str,
        request: Request,
        response: Response,
        db: AsyncSession = Depends(get_db),
        user: Optional[User] = Depends(get_optional_user),
        engagement: UnifiedEngagementService = Depends(get_engagement_service),
    ):
        """Remove the current user's like. **Requires**: authenticated user."""
        if user is None:
            raise UnauthorizedError("You must be logged in to unlike posts")

        item = await engagement.resolve_content(db, content_type, slug)
        result = await engagement.unlike(db, item, _viewer(request, user))
        return LikeResponse(liked=result.liked, like_count=result.like_count)

    @router.post("/{slug}/engagement", response_model=EngagementResponse, response_model_exclude_none=True)
    async def record_engagement(
        slug: str,
        request: Request,
        db: AsyncSession = Depends(get_db),
        user: Optional[User] = Depends(get_viewing_user),
        engagement: UnifiedEngagementService = Depends(get_engagement_service),
    ):
        """Merge a scroll depth / time on page / clicks ping into the session's engagement."""
        payload = await parse_payload(request, EngagementRequest)
        viewer = _viewer(request, user, payload.session_id)

        ping = EngagementPing(
            scroll_depth=payload.scroll_depth,
            time_on_page=payload.time_on_page,
            clicks=payload.clicks,
        )
        try:
            item = await engagement.resolve_content(db, content_type, slug)
            await engagement.record_engagement_ping(db, item, viewer, ping)
        except DependencyUnavailableError as e:
            logger.warning(f"Engagement ping for {content_type.value}/{slug} dropped: {e.message}")
            return EngagementResponse(success=False, reason=ViewOutcome.UNAVAILABLE.value)
        return EngagementResponse()

    @router.post("/{slug}/share", response_model=ShareResponse, response_model_exclude_none=True)
    async def record_share(
        slug: str,
        request: Request,
        db: AsyncSession = Depends(get_db),
        user: Optional[User] = Depends(get_viewing_user),
        engagement: UnifiedEngagementService = Depends(get_engagement_service),
    ):
        """Count a share of the post on one platform."""
        payload = await parse_payload(request, ShareRequest)
        viewer = _viewer(request, user, payload.session_id)

        try:
            item = await engagement.resolve_content(db, content_type, slug)
            total_shares = await engagement.record_share(db, item, viewer, payload.platform.value)
        except DependencyUnavailableError as e:
            logger.warning(f"Share of {content_type.value}/{slug} dropped: {e.message}")
            return ShareResponse(success=False, platform=payload.platform, reason=ViewOutcome.UNAVAILABLE.value)
        return ShareResponse(platform=payload.platform, total_shares=total_shares)

    @router.get("/{slug}/stats", response_model=StatsResponse)
    async def get_stats(
        slug: str,
        request: Request,
        response: Response,
        db: AsyncSession = Depends(get_db),
        user: Optional[User] = Depends(get_optional_user),
        engagement: UnifiedEngagementService = Depends(get_engagement_service),
    ):
        """
        View and like statistics for the post.

        **Returns**: totals served from a snapshot cached for a minute, plus
        whether the current user has liked the post (always live).
        """
        item = await engagement.resolve_content(db, content_type, slug)
        stats = await engagement.get_stats(db, item, _viewer(request, user))
        response.headers["Cache-Control"] = stats_cache_control()
        return StatsResponse(**stats)

    return router


church_router = build_engagement_router(ContentType.CHURCH, "/api/blog", "Blog Engagement")
community_router = build_engagement_router(ContentType.COMMUNITY, "/api/community-blogs", "Community Blog Engagement")
