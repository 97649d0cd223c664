"""
Unit Tests for the Degradable Cache

Covers the in-process fallback store (TTL, LRU eviction, glob deletes) and
the two-tier cache over the Redis backend, including outages.
"""

import orjson
import pytest

from ledger_resilience.core.config.constants import CACHE_BACKEND_CIRCUIT, CircuitState
from ledger_resilience.infrastructure.cache.cache_manager import (
    DegradableCache,
    FallbackStore,
    glob_to_regex,
)
from ledger_resilience.infrastructure.cache.redis_client import NullCacheBackend, RedisCacheBackend


@pytest.fixture
def fallback(clock, metrics):
    return FallbackStore(max_entries=1000, eviction_batch=100, clock=clock, metrics=metrics)


@pytest.fixture
def redis_cache(fake_redis, breaker, fallback, metrics):
    return DegradableCache(RedisCacheBackend(fake_redis), breaker, fallback=fallback, metrics=metrics)


@pytest.fixture
def memory_cache(breaker, fallback, metrics):
    return DegradableCache(NullCacheBackend(), breaker, fallback=fallback, metrics=metrics)


@pytest.mark.unit
class TestGlobToRegex:
    def test_star_matches_any_suffix(self):
        assert glob_to_regex("dashboard:revenue:u1:*").match("dashboard:revenue:u1:12")

    def test_other_characters_are_literal(self):
        matcher = glob_to_regex("a.b:*")
        assert matcher.match("a.b:1")
        assert not matcher.match("axb:1")

    def test_anchored(self):
        assert not glob_to_regex("invoices:*").match("x:invoices:1")
        assert not glob_to_regex("invoices:?").match("invoices:12")

    def test_question_mark_matches_one_character(self):
        matcher = glob_to_regex("invoices:u?:list")
        assert matcher.match("invoices:u1:list")
        assert not matcher.match("invoices:u12:list")
        assert not matcher.match("invoices:u:list")

    def test_character_classes(self):
        assert glob_to_regex("h[ae]llo").match("hallo")
        assert not glob_to_regex("h[ae]llo").match("hillo")
        assert glob_to_regex("h[^e]llo").match("hallo")
        assert not glob_to_regex("h[^e]llo").match("hello")
        assert glob_to_regex("chart:[0-9]").match("chart:7")
        assert not glob_to_regex("chart:[0-9]").match("chart:x")

    def test_backslash_escapes_glob_characters(self):
        matcher = glob_to_regex(r"literal\*star")
        assert matcher.match("literal*star")
        assert not matcher.match("literal-star")

    def test_unterminated_bracket_is_literal(self):
        assert glob_to_regex("a[b").match("a[b")


@pytest.mark.unit
class TestFallbackStore:
    def test_entry_expires_after_ttl(self, fallback, clock):
        fallback.set("k", '"v"', ttl_seconds=10)
        clock.advance(9)
        assert fallback.get("k") == '"v"'

        clock.advance(1)
        assert fallback.get("k") is None
        assert "k" not in fallback

    def test_evicts_least_recently_used_not_oldest(self, clock, metrics):
        store = FallbackStore(max_entries=3, eviction_batch=1, clock=clock, metrics=metrics)
        for key in ("a", "b", "c"):
            store.set(key, "1", ttl_seconds=100)

        store.get("a")
        store.set("d", "1", ttl_seconds=100)

        assert store.keys() == ["c", "a", "d"]

    def test_expired_entries_purged_before_lru(self, clock, metrics):
        store = FallbackStore(max_entries=3, eviction_batch=2, clock=clock, metrics=metrics)
        store.set("short", "1", ttl_seconds=1)
        store.set("b", "1", ttl_seconds=100)
        store.set("c", "1", ttl_seconds=100)

        clock.advance(2)
        store.set("d", "1", ttl_seconds=100)

        assert store.keys() == ["b", "c", "d"]

    def test_evicts_a_batch_on_overflow(self, clock, metrics):
        store = FallbackStore(max_entries=10, eviction_batch=5, clock=clock, metrics=metrics)
        for i in range(11):
            store.set(f"k{i}", "1", ttl_seconds=100)

        assert len(store) == 6
        assert store.keys()[0] == "k5"

    def test_overwrite_refreshes_ttl(self, fallback, clock):
        fallback.set("k", "1", ttl_seconds=10)
        clock.advance(8)
        fallback.set("k", "2", ttl_seconds=10)
        clock.advance(8)
        assert fallback.get("k") == "2"

    def test_delete_pattern(self, fallback):
        fallback.set("invoices:list:u1:page1", "1", 30)
        fallback.set("invoices:list:u1:page2", "1", 30)
        fallback.set("invoices:list:u2:page1", "1", 30)

        assert fallback.delete_pattern("invoices:list:u1:*") == 2
        assert fallback.keys() == ["invoices:list:u2:page1"]

    def test_delete_and_clear(self, fallback):
        fallback.set("a", "1", 30)
        fallback.set("b", "1", 30)
        assert fallback.delete("a") is True
        assert fallback.delete("a") is False
        fallback.clear()
        assert len(fallback) == 0


@pytest.mark.unit
class TestDegradableCacheHealthyBackend:
    @pytest.mark.asyncio
    async def test_set_writes_both_tiers(self, redis_cache, fake_redis, fallback):
        await redis_cache.set("dashboard:stats:u1", {"total": 3}, ttl_seconds=60)

        assert orjson.loads(fake_redis.strings["dashboard:stats:u1"][0]) == {"total": 3}
        assert "dashboard:stats:u1" in fallback

    @pytest.mark.asyncio
    async def test_get_prefers_backend(self, redis_cache, fake_redis, fallback):
        fallback.set("k", orjson.dumps("stale").decode(), 60)
        await fake_redis.set("k", orjson.dumps("fresh").decode())

        assert await redis_cache.get("k") == "fresh"

    @pytest.mark.asyncio
    async def test_backend_miss_falls_back(self, redis_cache, fake_redis):
        await redis_cache.set("k", [1, 2], ttl_seconds=60)
        fake_redis.strings.clear()

        assert await redis_cache.get("k") == [1, 2]

    @pytest.mark.asyncio
    async def test_undecodable_backend_value_ignored(self, redis_cache, fake_redis, fallback):
        fallback.set("k", orjson.dumps({"ok": True}).decode(), 60)
        fake_redis.strings["k"] = ("{not json", None)

        assert await redis_cache.get("k") == {"ok": True}

    @pytest.mark.asyncio
    async def test_miss_on_both_tiers(self, redis_cache):
        assert await redis_cache.get("absent") is None

    @pytest.mark.asyncio
    async def test_delete_pattern_clears_both_tiers(self, redis_cache, fake_redis, fallback):
        for months in (6, 12):
            await redis_cache.set(f"dashboard:revenue:u1:{months}", {"m": months}, 300)
        await redis_cache.set("dashboard:revenue:u2:6", {"m": 6}, 300)

        await redis_cache.delete_pattern("dashboard:revenue:u1:*")

        assert sorted(fake_redis.strings) == ["dashboard:revenue:u2:6"]
        assert fallback.keys() == ["dashboard:revenue:u2:6"]


@pytest.mark.unit
class TestDegradableCacheOutage:
    @pytest.mark.asyncio
    async def test_outage_never_raises(self, redis_cache, fake_redis):
        fake_redis.go_down()

        await redis_cache.set("k", {"v": 1}, ttl_seconds=60)
        assert await redis_cache.get("k") == {"v": 1}
        await redis_cache.delete("k")
        await redis_cache.delete_pattern("k*")
        assert await redis_cache.get("k") is None

    @pytest.mark.asyncio
    async def test_repeated_failures_open_circuit(self, redis_cache, fake_redis, breaker):
        fake_redis.go_down()
        for _ in range(3):
            await redis_cache.get("k")

        assert breaker.get_state(CACHE_BACKEND_CIRCUIT).state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_open_circuit_skips_backend(self, redis_cache, fake_redis, breaker, clock):
        fake_redis.go_down()
        for _ in range(3):
            await redis_cache.get("k")
        fake_redis.come_back()

        await redis_cache.set("k", "v", ttl_seconds=60)
        assert "k" not in fake_redis.strings
        assert await redis_cache.get("k") == "v"

    @pytest.mark.asyncio
    async def test_recovers_after_reset_timeout(self, redis_cache, fake_redis, breaker, clock):
        fake_redis.go_down()
        for _ in range(3):
            await redis_cache.get("k")
        fake_redis.come_back()

        clock.advance(31)
        await redis_cache.set("a", 1, ttl_seconds=60)
        await redis_cache.set("b", 2, ttl_seconds=60)

        assert breaker.get_state(CACHE_BACKEND_CIRCUIT).state == CircuitState.CLOSED
        assert {"a", "b"} <= set(fake_redis.strings)


@pytest.mark.unit
class TestDegradableCacheWithoutBackend:
    @pytest.mark.asyncio
    async def test_serves_from_fallback(self, memory_cache):
        await memory_cache.set("k", {"v": 1}, ttl_seconds=60)
        assert await memory_cache.get("k") == {"v": 1}

    @pytest.mark.asyncio
    async def test_breaker_untouched(self, memory_cache, breaker):
        await memory_cache.get("k")
        await memory_cache.set("k", 1, ttl_seconds=60)

        snapshot = breaker.get_state(CACHE_BACKEND_CIRCUIT)
        assert snapshot.state == CircuitState.CLOSED
        assert snapshot.failures == 0

    def test_health(self, memory_cache):
        health = memory_cache.health()
        assert health["backend"] == "memory"
        assert health["circuit"]["state"] == "CLOSED"
        assert health["fallback_entries"] == 0

    def test_keeps_injected_empty_fallback(self, memory_cache, fallback):
        assert len(fallback) == 0
        assert memory_cache.fallback is fallback

    @pytest.mark.asyncio
    async def test_injected_capacity_applies(self, breaker, clock, metrics):
        small = FallbackStore(max_entries=5, eviction_batch=2, clock=clock, metrics=metrics)
        cache = DegradableCache(NullCacheBackend(), breaker, fallback=small, metrics=metrics)

        for i in range(6):
            await cache.set(f"k{i}", i, ttl_seconds=60)

        assert len(small) == 4
        assert await cache.get("k0") is None
        assert await cache.get("k5") == 5
