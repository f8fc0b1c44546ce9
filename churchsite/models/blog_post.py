"""
Blog post models.

Church-authored posts and community (user-authored) posts live in separate
tables. Authoring is handled elsewhere; the engagement subsystem only reads
id, slug and the published flag.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from churchsite.database import Base
from churchsite.utils.timeutils import utcnow


class BlogPost(Base):
    """A church-authored blog post."""

    __tablename__ = "blog_posts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    excerpt = Column(Text, nullable=True)
    published = Column(Boolean, default=True, nullable=False)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<BlogPost(id={self.id}, slug={self.slug!r})>"


class UserBlogPost(Base):
    """A community blog post written by a site member."""

    __tablename__ = "user_blog_posts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    excerpt = Column(Text, nullable=True)
    published = Column(Boolean, default=True, nullable=False)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<UserBlogPost(id={self.id}, slug={self.slug!r})>"
