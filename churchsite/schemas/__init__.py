from .engagement import (
    EngagementRequest,
    EngagementResponse,
    LikeResponse,
    ResetViewsResponse,
    SharePlatform,
    ShareRequest,
    ShareResponse,
    StatsResponse,
    TrendingPost,
    ViewRequest,
    ViewResponse,
)

__all__ = [
    "EngagementRequest",
    "EngagementResponse",
    "LikeResponse",
    "ResetViewsResponse",
    "SharePlatform",
    "ShareRequest",
    "ShareResponse",
    "StatsResponse",
    "TrendingPost",
    "ViewRequest",
    "ViewResponse",
]
