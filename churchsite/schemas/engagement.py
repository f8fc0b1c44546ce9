"""
Engagement request/response schemas.

Field names are snake_case in Python and camelCase on the wire, matching
what the blog pages send from the browser.
"""

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SharePlatform(str, enum.Enum):
    TWITTER = "twitter"
    FACEBOOK = "facebook"
    LINKEDIN = "linkedin"
    COPY = "copy"
    OTHER = "other"


# ============== Requests ==============


class ViewRequest(CamelModel):
    session_id: Optional[str] = Field(None, max_length=255, description="Client browsing session id")
    referrer: Optional[str] = Field(None, max_length=2048, description="document.referrer of the page view")


class EngagementRequest(CamelModel):
    session_id: Optional[str] = Field(None, max_length=255)
    scroll_depth: float = Field(0, ge=0, le=100, description="Deepest scroll position, in percent")
    time_on_page: int = Field(0, ge=0, description="Seconds spent on the page so far")
    clicks: int = Field(0, ge=0, description="Clicks since the previous ping")


class ShareRequest(CamelModel):
    platform: SharePlatform
    session_id: Optional[str] = Field(None, max_length=255)


# ============== Responses ==============


class ViewResponse(CamelModel):
    success: bool
    session_id: Optional[str] = None
    view_id: Optional[int] = None
    content_type: Optional[str] = None
    reason: Optional[str] = None
    cached: Optional[bool] = None


class LikeResponse(CamelModel):
    success: bool = True
    liked: bool
    like_count: int


class EngagementResponse(CamelModel):
    success: bool = True
    reason: Optional[str] = None


class ShareResponse(CamelModel):
    success: bool = True
    platform: SharePlatform
    total_shares: Optional[int] = None
    reason: Optional[str] = None


class StatsResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    total_views: int
    unique_views: int
    total_likes: int
    has_liked: bool
    registered_views: int
    anonymous_views: int
    avg_view_duration: Optional[float] = None
    last_viewed_at: Optional[str] = None


class TrendingPost(CamelModel):
    id: int
    title: str
    slug: str
    excerpt: Optional[str] = None
    content_type: str
    recent_views: int
    total_likes: int


class ResetViewsResponse(CamelModel):
    success: bool = True
    views_deleted: int
    sessions_deleted: int
