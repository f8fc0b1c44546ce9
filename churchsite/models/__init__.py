from .user import RoleEnum, User
from .blog_post import BlogPost, UserBlogPost
from .engagement import (
    ENGAGEMENT_TABLES,
    BlogPostEngagement,
    BlogPostLike,
    BlogPostStats,
    BlogPostView,
    ContentItem,
    ContentType,
    EngagementTables,
    UserBlogPostEngagement,
    UserBlogPostLike,
    UserBlogPostStats,
    UserBlogPostView,
)

__all__ = [
    "RoleEnum",
    "User",
    "BlogPost",
    "UserBlogPost",
    "BlogPostView",
    "BlogPostLike",
    "BlogPostEngagement",
    "BlogPostStats",
    "UserBlogPostView",
    "UserBlogPostLike",
    "UserBlogPostEngagement",
    "UserBlogPostStats",
    "ContentType",
    "ContentItem",
    "EngagementTables",
    "ENGAGEMENT_TABLES",
]
