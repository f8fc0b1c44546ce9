"""
Tests for monitoring endpoints, metrics and the trending warm-up job.
"""

import pytest
from utils.mock_utils import create_test_post, create_test_view

import churchsite.database as database_module
import churchsite.scheduler as scheduler_module
from churchsite.scheduler import schedule_trending_warmup, scheduler, warm_trending_cache
from churchsite.models import ContentType
from churchsite.services.cache_service import CacheService, cache_service


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_root(self, async_client):
        response = await async_client.get("/")

        assert response.status_code == 200
        assert "message" in response.json()

    @pytest.mark.asyncio
    async def test_health(self, async_client):
        response = await async_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "uptime_seconds" in data

    @pytest.mark.asyncio
    async def test_ready(self, async_client):
        response = await async_client.get("/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["view_store"]["backend"] == "InMemoryViewStore"

    @pytest.mark.asyncio
    async def test_not_ready_without_view_store(self, async_client, view_store, monkeypatch):
        async def down():
            return False

        monkeypatch.setattr(view_store, "ping", down)

        data = (await async_client.get("/ready")).json()

        assert data["status"] == "not_ready"
        assert data["checks"]["view_store"]["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_redis_health_requires_admin(self, async_client, user_headers):
        response = await async_client.get("/health/redis", headers=user_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_redis_health_with_cache_disabled(self, async_client, admin_headers):
        response = await async_client.get("/health/redis", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"
        assert response.json()["redis"]["connected"] is False


class TestMetrics:
    @pytest.mark.asyncio
    async def test_metrics_exposition(self, async_client, church_post):
        await async_client.post(f"/api/blog/{church_post.slug}/views", json={"sessionId": "abc"})

        response = await async_client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "churchsite_view_events_total" in response.text
        assert "http_requests_total" in response.text

    @pytest.mark.asyncio
    async def test_request_id_header(self, async_client):
        response = await async_client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"


class TestTrendingWarmup:
    def test_job_is_scheduled(self):
        schedule_trending_warmup(interval_minutes=5)

        job = scheduler.get_job("warm_trending_cache")
        assert job is not None
        assert job.trigger.interval.total_seconds() == 300
        scheduler.remove_job("warm_trending_cache")

    @pytest.mark.asyncio
    async def test_warm_fills_trending_cache(self, test_db, test_admin, monkeypatch):
        monkeypatch.setattr(scheduler_module, "AsyncSessionLocal", database_module.AsyncSessionLocal)
        _, item = await create_test_post(test_db, "Warm Post", test_admin.id)
        await create_test_view(test_db, item, "a")

        await warm_trending_cache()

        cached = await cache_service.get(CacheService.trending_key(ContentType.CHURCH, 5))
        assert [post["slug"] for post in cached] == ["warm-post"]
        assert await cache_service.get(CacheService.trending_key(ContentType.COMMUNITY, 10)) == []
