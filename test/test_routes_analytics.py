"""
Tests for Analytics Routes

Tests trending posts and the admin analytics, recompute and reset endpoints.
"""

from datetime import timedelta

import pytest
from utils.mock_utils import (
    count_rows,
    count_views,
    create_test_like,
    create_test_post,
    create_test_view,
)

from churchsite.models import BlogPostEngagement, BlogPostLike, ContentType
from churchsite.services.stats_service import load_snapshot_row, upsert_snapshot
from churchsite.utils.timeutils import utcnow


class TestTrending:
    """Tests for GET /api/trending/{content_type}"""

    @pytest.mark.asyncio
    async def test_ranked_by_recent_readers_then_likes(self, async_client, test_db, test_admin, test_user):
        _, quiet = await create_test_post(test_db, "Quiet Post", test_admin.id)
        _, busy = await create_test_post(test_db, "Busy Post", test_admin.id)
        _, liked = await create_test_post(test_db, "Liked Post", test_admin.id)
        for session in ("a", "b", "c"):
            await create_test_view(test_db, busy, session)
        await create_test_view(test_db, quiet, "a")
        await create_test_view(test_db, liked, "a")
        await create_test_like(test_db, liked, test_user.id)

        response = await async_client.get("/api/trending/church")

        assert response.status_code == 200
        data = response.json()
        assert [post["slug"] for post in data] == ["busy-post", "liked-post", "quiet-post"]
        assert data[0]["recentViews"] == 3
        assert data[1]["totalLikes"] == 1
        assert data[0]["contentType"] == "church"

    @pytest.mark.asyncio
    async def test_counts_distinct_sessions(self, async_client, test_db, test_admin):
        _, item = await create_test_post(test_db, "Repeat Reader", test_admin.id)
        for _ in range(3):
            await create_test_view(test_db, item, "same-session")

        data = (await async_client.get("/api/trending/church")).json()

        assert data[0]["recentViews"] == 1

    @pytest.mark.asyncio
    async def test_excludes_old_views_and_unpublished_posts(self, async_client, test_db, test_admin):
        _, old = await create_test_post(test_db, "Old News", test_admin.id)
        _, draft = await create_test_post(test_db, "Draft", test_admin.id, published=False)
        await create_test_view(test_db, old, "a", created_at=utcnow() - timedelta(days=8))
        await create_test_view(test_db, draft, "a")

        data = (await async_client.get("/api/trending/church")).json()

        assert data == []

    @pytest.mark.asyncio
    async def test_limit(self, async_client, test_db, test_admin):
        for i in range(4):
            _, item = await create_test_post(test_db, f"Post {i}", test_admin.id)
            await create_test_view(test_db, item, "a")

        data = (await async_client.get("/api/trending/church", params={"limit": 2})).json()

        assert len(data) == 2

    @pytest.mark.asyncio
    async def test_community_trending(self, async_client, test_db, test_user):
        _, item = await create_test_post(test_db, "Potluck", test_user.id, content_type=ContentType.COMMUNITY)
        await create_test_view(test_db, item, "a")

        data = (await async_client.get("/api/trending/community")).json()

        assert [post["slug"] for post in data] == ["potluck"]
        assert data[0]["contentType"] == "community"

    @pytest.mark.asyncio
    async def test_unknown_content_type(self, async_client):
        response = await async_client.get("/api/trending/sermons")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_trending_is_cached(self, async_client, test_db, test_admin):
        _, item = await create_test_post(test_db, "Cached", test_admin.id)
        await create_test_view(test_db, item, "a")
        first = (await async_client.get("/api/trending/church")).json()

        await create_test_view(test_db, item, "b")
        second = (await async_client.get("/api/trending/church")).json()

        assert first == second


class TestPostAnalytics:
    """Tests for GET /api/admin/{content_type}/posts/{post_id}/stats"""

    @pytest.mark.asyncio
    async def test_requires_authentication(self, async_client, church_post):
        response = await async_client.get(f"/api/admin/church/posts/{church_post.id}/stats")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_forbidden_for_regular_user(self, async_client, church_post, user_headers):
        response = await async_client.get(f"/api/admin/church/posts/{church_post.id}/stats", headers=user_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_analytics(self, async_client, test_db, church_post, church_item, test_user, admin_headers):
        await create_test_view(test_db, church_item, "a", user_id=test_user.id, referrer="https://www.google.com/search")
        await create_test_view(test_db, church_item, "b", referrer="https://www.google.com/")
        await create_test_view(test_db, church_item, "c", view_duration=30)
        await create_test_like(test_db, church_item, test_user.id)

        response = await async_client.get(f"/api/admin/church/posts/{church_post.id}/stats", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["post"]["slug"] == church_post.slug
        assert data["view_analytics"]["total_views"] == 3
        assert data["view_analytics"]["registered_views"] == 1
        assert data["view_analytics"]["avg_view_duration"] == 30
        assert data["charts"]["views_by_referrer"] == {"www.google.com": 2}
        assert sum(data["charts"]["views_by_date"].values()) == 3
        assert [liker["username"] for liker in data["likers"]] == [test_user.username]
        assert data["engagement_metrics"]["total_sessions"] == 0

    @pytest.mark.asyncio
    async def test_missing_post(self, async_client, church_post, admin_headers):
        response = await async_client.get("/api/admin/church/posts/9999/stats", headers=admin_headers)

        assert response.status_code == 404


class TestRecompute:
    @pytest.mark.asyncio
    async def test_recompute(self, async_client, test_db, church_post, church_item, admin_headers):
        await upsert_snapshot(test_db, church_item, total_views=50)
        await create_test_view(test_db, church_item, "a")

        response = await async_client.post(
            f"/api/admin/church/posts/{church_post.id}/stats/recompute", headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["total_views"] == 1


class TestResetViews:
    """Tests for the admin view reset endpoints"""

    @pytest.mark.asyncio
    async def test_reset_one_post(self, async_client, test_db, test_admin, test_user, admin_headers):
        _, first = await create_test_post(test_db, "First", test_admin.id)
        _, second = await create_test_post(test_db, "Second", test_admin.id)
        await create_test_view(test_db, first, "a")
        await create_test_view(test_db, first, "b")
        await create_test_view(test_db, second, "a")
        await create_test_like(test_db, first, test_user.id)
        test_db.add(BlogPostEngagement(post_id=first.id, session_id="a"))
        await test_db.commit()

        response = await async_client.delete(f"/api/admin/church/posts/{first.id}/views", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "viewsDeleted": 2, "sessionsDeleted": 1}
        assert await count_views(test_db, first) == 0
        assert await count_views(test_db, second) == 1
        assert await count_rows(test_db, BlogPostLike, post_id=first.id) == 1

    @pytest.mark.asyncio
    async def test_reset_zeroes_snapshot_and_stats(self, async_client, test_db, church_post, church_item, admin_headers):
        for session in ("a", "b"):
            await async_client.post(f"/api/blog/{church_post.slug}/views", json={"sessionId": session})
        before = (await async_client.get(f"/api/blog/{church_post.slug}/stats")).json()

        await async_client.delete(f"/api/admin/church/posts/{church_post.id}/views", headers=admin_headers)
        after = (await async_client.get(f"/api/blog/{church_post.slug}/stats")).json()

        assert before["totalViews"] == 2
        assert after["totalViews"] == 0
        row = await load_snapshot_row(test_db, church_item)
        await test_db.refresh(row)
        assert row.total_views == 0

    @pytest.mark.asyncio
    async def test_reset_all(self, async_client, test_db, test_admin, admin_headers):
        _, first = await create_test_post(test_db, "First", test_admin.id)
        _, second = await create_test_post(test_db, "Second", test_admin.id)
        await create_test_view(test_db, first, "a")
        await create_test_view(test_db, second, "a")

        response = await async_client.delete("/api/admin/church/views", headers=admin_headers)

        assert response.json()["viewsDeleted"] == 2
        assert await count_views(test_db, first) == 0
        assert await count_views(test_db, second) == 0

    @pytest.mark.asyncio
    async def test_reset_requires_admin(self, async_client, church_post, user_headers):
        response = await async_client.delete("/api/admin/church/views", headers=user_headers)

        assert response.status_code == 403
