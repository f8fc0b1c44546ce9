"""Create users, blog posts and engagement tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 09:00:00.000000

Church posts and community posts each get their own view, like,
engagement and stats tables with identical shapes.
"""

from collections.abc import Sequence
from typing import Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# (post table, table prefix)
TABLE_SETS = (
    ("blog_posts", "blog_post"),
    ("user_blog_posts", "user_blog_post"),
)


def _create_post_table(name: str, author_ondelete: str, author_nullable: bool) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("excerpt", sa.Text(), nullable=True),
        sa.Column("published", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "author_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete=author_ondelete),
            nullable=author_nullable,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(f"ix_{name}_id", name, ["id"])
    op.create_index(f"ix_{name}_slug", name, ["slug"], unique=True)


def _post_fk(post_table: str) -> sa.Column:
    return sa.Column("post_id", sa.Integer(), sa.ForeignKey(f"{post_table}.id", ondelete="CASCADE"), nullable=False)


def _create_engagement_tables(post_table: str, prefix: str) -> None:
    views = f"{prefix}_views"
    op.create_table(
        views,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _post_fk(post_table),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("session_id", sa.String(255), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("referrer", sa.Text(), nullable=True),
        sa.Column("view_duration", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(f"ix_{views}_id", views, ["id"])
    op.create_index(f"ix_{views}_post_id", views, ["post_id"])
    op.create_index(f"idx_{views}_post_created", views, ["post_id", "created_at"])
    op.create_index(f"idx_{views}_post_session", views, ["post_id", "session_id"])

    likes = f"{prefix}_likes"
    op.create_table(
        likes,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _post_fk(post_table),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("post_id", "user_id", name=f"uq_{likes}_post_user"),
    )
    op.create_index(f"ix_{likes}_id", likes, ["id"])
    op.create_index(f"ix_{likes}_post_id", likes, ["post_id"])
    op.create_index(f"ix_{likes}_user_id", likes, ["user_id"])

    engagements = f"{prefix}_engagements"
    op.create_table(
        engagements,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _post_fk(post_table),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("session_id", sa.String(255), nullable=False),
        sa.Column("scroll_depth", sa.Float(), nullable=False, server_default="0"),
        sa.Column("time_on_page", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("clicks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("shares", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_share_platform", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("session_id", "post_id", name=f"uq_{engagements}_session_post"),
    )
    op.create_index(f"ix_{engagements}_id", engagements, ["id"])
    op.create_index(f"ix_{engagements}_post_id", engagements, ["post_id"])

    stats = f"{prefix}_stats"
    op.create_table(
        stats,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _post_fk(post_table),
        sa.Column("total_views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unique_views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("registered_views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("anonymous_views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_likes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("avg_view_duration", sa.Float(), nullable=True),
        sa.Column("last_viewed_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("post_id", name=f"uq_{stats}_post"),
    )
    op.create_index(f"ix_{stats}_id", stats, ["id"])
    op.create_index(f"ix_{stats}_post_id", stats, ["post_id"])


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("role", sa.Enum("user", "admin", name="roleenum"), nullable=False, server_default="user"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_username", "users", ["username"])

    _create_post_table("blog_posts", author_ondelete="SET NULL", author_nullable=True)
    _create_post_table("user_blog_posts", author_ondelete="CASCADE", author_nullable=False)

    for post_table, prefix in TABLE_SETS:
        _create_engagement_tables(post_table, prefix)


def downgrade() -> None:
    for _, prefix in reversed(TABLE_SETS):
        for suffix in ("stats", "engagements", "likes", "views"):
            op.drop_table(f"{prefix}_{suffix}")

    op.drop_table("user_blog_posts")
    op.drop_table("blog_posts")
    op.drop_table("users")
    sa.Enum(name="roleenum").drop(op.get_bind(), checkfirst=True)
