"""
Unit Tests for Application Cache Namespaces
"""

import pytest

from ledger_resilience.infrastructure.cache.app_cache import AppCache, CacheKeys
from ledger_resilience.infrastructure.cache.cache_manager import DegradableCache, FallbackStore
from ledger_resilience.infrastructure.cache.redis_client import RedisCacheBackend


@pytest.fixture
def app_cache(fake_redis, breaker, clock, metrics, test_settings):
    cache = DegradableCache(
        RedisCacheBackend(fake_redis),
        breaker,
        fallback=FallbackStore(clock=clock, metrics=metrics),
        metrics=metrics,
    )
    return AppCache(cache, test_settings)


@pytest.mark.unit
class TestCacheKeys:
    def test_key_shapes(self):
        assert CacheKeys.dashboard_stats("u1") == "dashboard:stats:u1"
        assert CacheKeys.revenue_chart("u1", 12) == "dashboard:revenue:u1:12"
        assert CacheKeys.invoice_list("u1", "p1") == "invoices:list:u1:p1"
        assert CacheKeys.customer_list("u1", "p1") == "customers:list:u1:p1"
        assert CacheKeys.quotation_list("u1", "p1") == "quotations:list:u1:p1"
        assert CacheKeys.api_key("abc") == "apikey:hash:abc"


@pytest.mark.unit
class TestAppCache:
    @pytest.mark.asyncio
    async def test_dashboard_stats_ttl(self, app_cache, clock):
        await app_cache.set_dashboard_stats("u1", {"revenue": "10.00"})
        assert await app_cache.get_dashboard_stats("u1") == {"revenue": "10.00"}

        clock.advance(61)
        assert await app_cache.get_dashboard_stats("u1") is None

    @pytest.mark.asyncio
    async def test_api_key_ttl_is_short(self, app_cache, clock):
        await app_cache.set_api_key("hash1", {"userId": "u1"})
        clock.advance(121)
        assert await app_cache.get_api_key("hash1") is None

    @pytest.mark.asyncio
    async def test_invoice_invalidation_scope(self, app_cache):
        await app_cache.set_dashboard_stats("u1", {"n": 1})
        await app_cache.set_revenue_chart("u1", 6, [1])
        await app_cache.set_invoice_list("u1", "page1", [1])
        await app_cache.set_customer_list("u1", "page1", [1])

        await app_cache.invalidate_invoice_caches("u1")

        assert await app_cache.get_dashboard_stats("u1") is None
        assert await app_cache.get_revenue_chart("u1", 6) is None
        assert await app_cache.get_invoice_list("u1", "page1") is None
        assert await app_cache.get_customer_list("u1", "page1") == [1]

    @pytest.mark.asyncio
    async def test_customer_invalidation_clears_invoice_pages(self, app_cache):
        await app_cache.set_invoice_list("u1", "page1", [1])
        await app_cache.set_customer_list("u1", "page1", [1])
        await app_cache.set_dashboard_stats("u1", {"n": 1})

        await app_cache.invalidate_customer_caches("u1")

        assert await app_cache.get_invoice_list("u1", "page1") is None
        assert await app_cache.get_customer_list("u1", "page1") is None
        assert await app_cache.get_dashboard_stats("u1") == {"n": 1}

    @pytest.mark.asyncio
    async def test_user_invalidation_leaves_other_users(self, app_cache):
        await app_cache.set_quotation_list("u1", "p", [1])
        await app_cache.set_quotation_list("u2", "p", [2])

        await app_cache.invalidate_all_user_caches("u1")

        assert await app_cache.get_quotation_list("u1", "p") is None
        assert await app_cache.get_quotation_list("u2", "p") == [2]

    @pytest.mark.asyncio
    async def test_invalidate_all_api_keys(self, app_cache):
        await app_cache.set_api_key("h1", {"userId": "u1"})
        await app_cache.set_api_key("h2", {"userId": "u2"})

        await app_cache.invalidate_all_api_keys()

        assert await app_cache.get_api_key("h1") is None
        assert await app_cache.get_api_key("h2") is None
