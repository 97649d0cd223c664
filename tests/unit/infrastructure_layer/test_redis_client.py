"""
Unit Tests for Redis Client Construction and Cache Backends
"""

import pytest

from ledger_resilience.core.config.settings import Settings
from ledger_resilience.core.exceptions import CacheConnectionError, ConfigurationError
from ledger_resilience.infrastructure.cache.redis_client import (
    NullCacheBackend,
    RedisCacheBackend,
    build_cache_backend,
    build_redis_client,
    _ping,
    connect_with_retry,
    create_redis_client,
)


@pytest.mark.unit
class TestClientConstruction:
    def test_disabled_returns_none(self):
        assert build_redis_client(Settings(REDIS_ENABLED=False)) is None

    def test_malformed_url_degrades(self):
        assert build_redis_client(Settings(REDIS_ENABLED=True, REDIS_URL="not-a-url")) is None

    def test_malformed_url_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            create_redis_client(Settings(REDIS_ENABLED=True, REDIS_URL="not-a-url"))

    def test_valid_url_builds_client_without_connecting(self):
        client = build_redis_client(Settings(REDIS_ENABLED=True, REDIS_URL="redis://localhost:6390/2"))
        assert client is not None

    def test_backend_strategy(self, fake_redis):
        assert isinstance(build_cache_backend(None), NullCacheBackend)
        assert isinstance(build_cache_backend(fake_redis), RedisCacheBackend)


@pytest.mark.unit
class TestConnectWithRetry:
    @pytest.mark.asyncio
    async def test_reachable(self, fake_redis):
        assert await connect_with_retry(fake_redis) is True

    @pytest.mark.asyncio
    async def test_unreachable_returns_false(self, fake_redis):
        fake_redis.go_down()
        assert await connect_with_retry(fake_redis) is False

    def test_backoff_starts_at_fifth_of_a_second(self):
        wait = _ping.retry.wait
        assert wait.multiplier == 0.2
        assert wait.max == 2.0


@pytest.mark.unit
class TestRedisCacheBackend:
    @pytest.mark.asyncio
    async def test_set_uses_ttl(self, fake_redis, clock):
        backend = RedisCacheBackend(fake_redis)
        await backend.set("k", '"v"', ttl_seconds=30)

        assert await backend.get("k") == '"v"'
        clock.advance(30)
        assert await backend.get("k") is None

    @pytest.mark.asyncio
    async def test_delete_pattern_scans(self, fake_redis):
        backend = RedisCacheBackend(fake_redis)
        for i in range(3):
            await backend.set(f"invoices:list:u1:{i}", "1", 30)
        await backend.set("invoices:list:u2:0", "1", 30)

        assert await backend.delete_pattern("invoices:list:u1:*") == 3
        assert list(fake_redis.strings) == ["invoices:list:u2:0"]

    @pytest.mark.asyncio
    async def test_errors_are_wrapped(self, fake_redis):
        backend = RedisCacheBackend(fake_redis)
        fake_redis.go_down()

        with pytest.raises(CacheConnectionError) as exc_info:
            await backend.get("k")
        assert exc_info.value.details["operation"] == "get"
        assert exc_info.value.details["original_error"] == "ConnectionError"

    @pytest.mark.asyncio
    async def test_sliding_window_hit_counts_before_insert(self, fake_redis, clock):
        backend = RedisCacheBackend(fake_redis)
        now = int(clock.ms())

        assert await backend.sliding_window_hit("ratelimit:k", now, 60_000, "a") == 0
        assert await backend.sliding_window_hit("ratelimit:k", now + 1, 60_000, "b") == 1
        assert fake_redis.pipelines_executed == 2

    @pytest.mark.asyncio
    async def test_ping_false_on_outage(self, fake_redis):
        backend = RedisCacheBackend(fake_redis)
        assert await backend.ping() is True
        fake_redis.go_down()
        assert await backend.ping() is False

    @pytest.mark.asyncio
    async def test_close(self, fake_redis):
        await RedisCacheBackend(fake_redis).close()
        assert fake_redis.closed


@pytest.mark.unit
class TestNullCacheBackend:
    @pytest.mark.asyncio
    async def test_inert(self):
        backend = NullCacheBackend()
        await backend.set("k", "v", 30)
        assert await backend.get("k") is None
        assert await backend.delete_pattern("*") == 0
        assert backend.available is False
        assert backend.kind == "memory"

    @pytest.mark.asyncio
    async def test_sliding_window_unavailable(self):
        with pytest.raises(CacheConnectionError):
            await NullCacheBackend().sliding_window_hit("k", 0, 1000, "m")
