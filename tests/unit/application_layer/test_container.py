"""
Unit Tests for the Application Container

Strategy selection (Redis vs in-memory), startup and shutdown.
"""

import pytest
from fastapi.testclient import TestClient

from ledger_resilience.application.app import create_app
from ledger_resilience.application.container import Container
from ledger_resilience.core.config.constants import REDIS_KEY_QUEUE
from ledger_resilience.core.config.settings import Settings
from ledger_resilience.infrastructure.cache.redis_client import NullCacheBackend, RedisCacheBackend
from ledger_resilience.infrastructure.message_queue.memory_queue import InMemoryJobQueue
from ledger_resilience.infrastructure.message_queue.redis_queue import RedisJobQueue


@pytest.mark.unit
class TestContainerBuild:
    def test_without_redis_uses_in_memory_strategies(self, test_settings, http_client):
        container = Container.build(test_settings, http_client=http_client)

        assert isinstance(container.cache_backend, NullCacheBackend)
        assert isinstance(container.job_queue, InMemoryJobQueue)
        assert container.redis_client is None
        assert container.owns_http_client is False

    def test_with_redis_uses_redis_strategies(self, test_settings, fake_redis, http_client):
        container = Container.build(test_settings, redis_client=fake_redis, http_client=http_client)

        assert isinstance(container.cache_backend, RedisCacheBackend)
        assert isinstance(container.job_queue, RedisJobQueue)
        assert container.cache_backend.kind == "redis"
        assert container.job_queue.kind == "redis"

    def test_components_share_one_breaker_registry(self, test_settings, http_client):
        container = Container.build(test_settings, http_client=http_client)

        assert container.webhook_service._breaker is container.breaker
        assert container.attempter._breaker is container.breaker

    def test_aggregation_handler_registered(self, test_settings, http_client):
        container = Container.build(test_settings, http_client=http_client)
        assert "aggregation.updateMonthly" in container.worker.job_names

    def test_builds_own_http_client(self, test_settings):
        container = Container.build(test_settings)
        assert container.owns_http_client is True


@pytest.mark.unit
class TestContainerLifecycle:
    @pytest.mark.asyncio
    async def test_startup_connects_and_requeues_orphans(self, test_settings, fake_redis, http_client):
        fake_redis.lists[f"{REDIS_KEY_QUEUE}:processing"] = ["job-orphan"]
        container = Container.build(test_settings, redis_client=fake_redis, http_client=http_client)

        await container.startup()

        assert container.redis_connected is True
        assert fake_redis.lists[f"{REDIS_KEY_QUEUE}:ready"] == ["job-orphan"]
        assert not fake_redis.lists.get(f"{REDIS_KEY_QUEUE}:processing")
        assert container.worker.running is False

        await container.shutdown()
        assert fake_redis.closed is True

    @pytest.mark.asyncio
    async def test_startup_survives_unreachable_redis(self, test_settings, fake_redis, http_client):
        fake_redis.go_down()
        container = Container.build(test_settings, redis_client=fake_redis, http_client=http_client)

        await container.startup()

        assert container.redis_connected is False
        await container.shutdown()

    @pytest.mark.asyncio
    async def test_worker_started_when_enabled(self, http_client):
        settings = Settings(REDIS_ENABLED=False, RUN_WORKER=True, LOG_FORMAT="console")
        container = Container.build(settings, http_client=http_client)

        await container.startup()
        assert container.worker.running is True

        await container.shutdown()
        assert container.worker.running is False

    def test_detailed_health_with_redis_is_healthy(self, test_settings, fake_redis, http_client):
        container = Container.build(test_settings, redis_client=fake_redis, http_client=http_client)

        with TestClient(create_app(container=container)) as client:
            body = client.get("/health/detailed").json()

        assert body["status"] == "healthy"
        assert body["redis_connected"] is True
        assert body["queue"]["kind"] == "redis"


@pytest.mark.unit
class TestContainerSettings:
    @pytest.mark.asyncio
    async def test_fallback_capacity_from_settings(self, http_client):
        settings = Settings(
            REDIS_ENABLED=False,
            RUN_WORKER=False,
            LOG_FORMAT="console",
            CACHE_FALLBACK_MAX_ENTRIES=5,
            CACHE_FALLBACK_EVICTION_BATCH=2,
        )
        container = Container.build(settings, http_client=http_client)

        for i in range(6):
            await container.cache.set(f"k{i}", i, ttl_seconds=60)

        assert len(container.cache.fallback) == 4
