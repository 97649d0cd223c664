"""
Application Cache Namespaces

Typed helpers over DegradableCache for the hot read paths of the bookkeeping
API, plus the grouped invalidations that write paths call after a change.

Key namespaces (colon-delimited, last segment variable):
    dashboard:stats:{userId}                    60s
    dashboard:revenue:{userId}:{months}        300s
    invoices:list:{userId}:{filterKey}          30s
    customers:list:{userId}:{filterKey}         30s
    quotations:list:{userId}:{filterKey}        30s
    apikey:hash:{keyHash}                      120s

The API-key TTL is short to bound how long a revoked key stays valid from cache.
"""

import asyncio
from typing import Any

from ledger_resilience.infrastructure.cache.cache_manager import DegradableCache


class CacheKeys:
    DASHBOARD_STATS = "dashboard:stats:"
    REVENUE_CHART = "dashboard:revenue:"
    INVOICE_LIST = "invoices:list:"
    CUSTOMER_LIST = "customers:list:"
    QUOTATION_LIST = "quotations:list:"
    API_KEY = "apikey:hash:"

    @staticmethod
    def dashboard_stats(user_id: str) -> str:
        return f"{CacheKeys.DASHBOARD_STATS}{user_id}"

    @staticmethod
    def revenue_chart(user_id: str, months: int) -> str:
        return f"{CacheKeys.REVENUE_CHART}{user_id}:{months}"

    @staticmethod
    def invoice_list(user_id: str, filter_key: str) -> str:
        return f"{CacheKeys.INVOICE_LIST}{user_id}:{filter_key}"

    @staticmethod
    def customer_list(user_id: str, filter_key: str) -> str:
        return f"{CacheKeys.CUSTOMER_LIST}{user_id}:{filter_key}"

    @staticmethod
    def quotation_list(user_id: str, filter_key: str) -> str:
        return f"{CacheKeys.QUOTATION_LIST}{user_id}:{filter_key}"

    @staticmethod
    def api_key(key_hash: str) -> str:
        return f"{CacheKeys.API_KEY}{key_hash}"


class AppCache:
    """Namespaced get/set/invalidate for the application's cached reads."""

    def __init__(self, cache: DegradableCache, settings):
        self._cache = cache
        cfg = settings.cache
        self.ttl_dashboard_stats = cfg.CACHE_TTL_DASHBOARD_STATS
        self.ttl_revenue_chart = cfg.CACHE_TTL_REVENUE_CHART
        self.ttl_list_data = cfg.CACHE_TTL_LIST_DATA
        self.ttl_api_key = cfg.CACHE_TTL_API_KEY

    # Dashboard stats
    async def get_dashboard_stats(self, user_id: str) -> Any | None:
        return await self._cache.get(CacheKeys.dashboard_stats(user_id))

    async def set_dashboard_stats(self, user_id: str, data: Any) -> None:
        await self._cache.set(CacheKeys.dashboard_stats(user_id), data, self.ttl_dashboard_stats)

    async def invalidate_dashboard_stats(self, user_id: str) -> None:
        await self._cache.delete(CacheKeys.dashboard_stats(user_id))

    # Revenue chart
    async def get_revenue_chart(self, user_id: str, months: int) -> Any | None:
        return await self._cache.get(CacheKeys.revenue_chart(user_id, months))

    async def set_revenue_chart(self, user_id: str, months: int, data: Any) -> None:
        await self._cache.set(CacheKeys.revenue_chart(user_id, months), data, self.ttl_revenue_chart)

    async def invalidate_revenue_chart(self, user_id: str) -> None:
        await self._cache.delete_pattern(f"{CacheKeys.REVENUE_CHART}{user_id}:*")

    # List pages
    async def get_invoice_list(self, user_id: str, filter_key: str) -> Any | None:
        return await self._cache.get(CacheKeys.invoice_list(user_id, filter_key))

    async def set_invoice_list(self, user_id: str, filter_key: str, data: Any) -> None:
        await self._cache.set(CacheKeys.invoice_list(user_id, filter_key), data, self.ttl_list_data)

    async def invalidate_invoice_list(self, user_id: str) -> None:
        await self._cache.delete_pattern(f"{CacheKeys.INVOICE_LIST}{user_id}:*")

    async def get_customer_list(self, user_id: str, filter_key: str) -> Any | None:
        return await self._cache.get(CacheKeys.customer_list(user_id, filter_key))

    async def set_customer_list(self, user_id: str, filter_key: str, data: Any) -> None:
        await self._cache.set(CacheKeys.customer_list(user_id, filter_key), data, self.ttl_list_data)

    async def invalidate_customer_list(self, user_id: str) -> None:
        await self._cache.delete_pattern(f"{CacheKeys.CUSTOMER_LIST}{user_id}:*")

    async def get_quotation_list(self, user_id: str, filter_key: str) -> Any | None:
        return await self._cache.get(CacheKeys.quotation_list(user_id, filter_key))

    async def set_quotation_list(self, user_id: str, filter_key: str, data: Any) -> None:
        await self._cache.set(CacheKeys.quotation_list(user_id, filter_key), data, self.ttl_list_data)

    async def invalidate_quotation_list(self, user_id: str) -> None:
        await self._cache.delete_pattern(f"{CacheKeys.QUOTATION_LIST}{user_id}:*")

    # API keys
    async def get_api_key(self, key_hash: str) -> Any | None:
        return await self._cache.get(CacheKeys.api_key(key_hash))

    async def set_api_key(self, key_hash: str, record: Any) -> None:
        await self._cache.set(CacheKeys.api_key(key_hash), record, self.ttl_api_key)

    async def invalidate_api_key(self, key_hash: str) -> None:
        await self._cache.delete(CacheKeys.api_key(key_hash))

    async def invalidate_all_api_keys(self) -> None:
        # No user -> key hash index exists, so this drops every cached key.
        await self._cache.delete_pattern(f"{CacheKeys.API_KEY}*")

    # Grouped invalidations
    async def invalidate_all_user_caches(self, user_id: str) -> None:
        await asyncio.gather(
            self.invalidate_dashboard_stats(user_id),
            self.invalidate_revenue_chart(user_id),
            self.invalidate_invoice_list(user_id),
            self.invalidate_customer_list(user_id),
            self.invalidate_quotation_list(user_id),
        )

    async def invalidate_invoice_caches(self, user_id: str) -> None:
        await asyncio.gather(
            self.invalidate_dashboard_stats(user_id),
            self.invalidate_revenue_chart(user_id),
            self.invalidate_invoice_list(user_id),
        )

    async def invalidate_quotation_caches(self, user_id: str) -> None:
        await asyncio.gather(
            self.invalidate_dashboard_stats(user_id),
            self.invalidate_quotation_list(user_id),
        )

    async def invalidate_customer_caches(self, user_id: str) -> None:
        # Invoice pages render customer names.
        await asyncio.gather(
            self.invalidate_customer_list(user_id),
            self.invalidate_invoice_list(user_id),
        )
