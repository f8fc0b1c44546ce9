"""
Engagement Models

View events, like edges, per-session engagement aggregates and stats
snapshots. Each content type (church posts and community posts) gets its
own set of tables built from the same mixins, so the engagement services
never branch on content type beyond picking the table set.
"""

import enum
from dataclasses import dataclass

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declared_attr

from churchsite.database import Base
from churchsite.models.blog_post import BlogPost, UserBlogPost
from churchsite.utils.timeutils import utcnow


class ContentType(str, enum.Enum):
    """Tag identifying which table set a content item belongs to."""

    CHURCH = "church"
    COMMUNITY = "community"


class _PostScoped:
    """Adds a post_id foreign key pointing at the owning post table."""

    __post_table__: str

    @declared_attr
    def post_id(cls):
        return Column(Integer, ForeignKey(f"{cls.__post_table__}.id", ondelete="CASCADE"), nullable=False, index=True)


class ViewEventMixin(_PostScoped):
    """
    Append-only record of a counted view.

    Only view_duration is updated after creation (by engagement pings from
    the same session).
    """

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    session_id = Column(String(255), nullable=False)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    referrer = Column(Text, nullable=True)
    view_duration = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @declared_attr
    def user_id(cls):
        return Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @declared_attr
    def __table_args__(cls):
        return (
            Index(f"idx_{cls.__tablename__}_post_created", "post_id", "created_at"),
            Index(f"idx_{cls.__tablename__}_post_session", "post_id", "session_id"),
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(id={self.id}, post={self.post_id}, session={self.session_id!r})>"


class LikeEdgeMixin(_PostScoped):
    """A user's like on a post. At most one per (post, user)."""

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @declared_attr
    def user_id(cls):
        return Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    @declared_attr
    def __table_args__(cls):
        return (UniqueConstraint("post_id", "user_id", name=f"uq_{cls.__tablename__}_post_user"),)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(post={self.post_id}, user={self.user_id})>"


class EngagementSessionMixin(_PostScoped):
    """
    Mutable per-(session, post) engagement aggregate.

    scroll_depth only grows, clicks and shares only grow, time_on_page is
    the latest reported value.
    """

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    session_id = Column(String(255), nullable=False)
    scroll_depth = Column(Float, default=0, nullable=False)
    time_on_page = Column(Integer, default=0, nullable=False)
    clicks = Column(Integer, default=0, nullable=False)
    shares = Column(Integer, default=0, nullable=False)
    last_share_platform = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @declared_attr
    def user_id(cls):
        return Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @declared_attr
    def __table_args__(cls):
        return (UniqueConstraint("session_id", "post_id", name=f"uq_{cls.__tablename__}_session_post"),)


class StatsSnapshotMixin(_PostScoped):
    """Denormalized, lazily recomputed aggregate of one post's views and likes."""

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    total_views = Column(Integer, default=0, nullable=False)
    unique_views = Column(Integer, default=0, nullable=False)
    registered_views = Column(Integer, default=0, nullable=False)
    anonymous_views = Column(Integer, default=0, nullable=False)
    total_likes = Column(Integer, default=0, nullable=False)
    avg_view_duration = Column(Float, nullable=True)
    last_viewed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    @declared_attr
    def __table_args__(cls):
        return (UniqueConstraint("post_id", name=f"uq_{cls.__tablename__}_post"),)


# ============== Church posts ==============


class BlogPostView(ViewEventMixin, Base):
    __tablename__ = "blog_post_views"
    __post_table__ = "blog_posts"


class BlogPostLike(LikeEdgeMixin, Base):
    __tablename__ = "blog_post_likes"
    __post_table__ = "blog_posts"


class BlogPostEngagement(EngagementSessionMixin, Base):
    __tablename__ = "blog_post_engagements"
    __post_table__ = "blog_posts"


class BlogPostStats(StatsSnapshotMixin, Base):
    __tablename__ = "blog_post_stats"
    __post_table__ = "blog_posts"


# ============== Community posts ==============


class UserBlogPostView(ViewEventMixin, Base):
    __tablename__ = "user_blog_post_views"
    __post_table__ = "user_blog_posts"


class UserBlogPostLike(LikeEdgeMixin, Base):
    __tablename__ = "user_blog_post_likes"
    __post_table__ = "user_blog_posts"


class UserBlogPostEngagement(EngagementSessionMixin, Base):
    __tablename__ = "user_blog_post_engagements"
    __post_table__ = "user_blog_posts"


class UserBlogPostStats(StatsSnapshotMixin, Base):
    __tablename__ = "user_blog_post_stats"
    __post_table__ = "user_blog_posts"


@dataclass(frozen=True)
class EngagementTables:
    """The five models serving one content type."""

    post: type
    view: type
    like: type
    engagement: type
    stats: type


ENGAGEMENT_TABLES: dict[ContentType, EngagementTables] = {
    ContentType.CHURCH: EngagementTables(
        post=BlogPost,
        view=BlogPostView,
        like=BlogPostLike,
        engagement=BlogPostEngagement,
        stats=BlogPostStats,
    ),
    ContentType.COMMUNITY: EngagementTables(
        post=UserBlogPost,
        view=UserBlogPostView,
        like=UserBlogPostLike,
        engagement=UserBlogPostEngagement,
        stats=UserBlogPostStats,
    ),
}


@dataclass(frozen=True)
class ContentItem:
    """A likeable/viewable post, resolved once at the HTTP boundary."""

    id: int
    type: ContentType
    slug: str

    @property
    def tables(self) -> EngagementTables:
        return ENGAGEMENT_TABLES[self.type]

    @property
    def key(self) -> str:
        """Store/cache key fragment, unique across content types."""
        return f"{self.type.value}:{self.id}"
