"""
Cache Infrastructure

Components:
- redis_client: Redis client factory and CacheBackend strategies
- cache_manager: FallbackStore and DegradableCache
- app_cache: Namespaced application cache helpers
"""

from ledger_resilience.infrastructure.cache.app_cache import AppCache, CacheKeys
from ledger_resilience.infrastructure.cache.cache_manager import (
    DegradableCache,
    FallbackStore,
    glob_to_regex,
)
from ledger_resilience.infrastructure.cache.redis_client import (
    NullCacheBackend,
    RedisCacheBackend,
    build_cache_backend,
    build_redis_client,
    connect_with_retry,
)

__all__ = [
    "AppCache",
    "CacheKeys",
    "DegradableCache",
    "FallbackStore",
    "NullCacheBackend",
    "RedisCacheBackend",
    "build_cache_backend",
    "build_redis_client",
    "connect_with_retry",
    "glob_to_regex",
]
