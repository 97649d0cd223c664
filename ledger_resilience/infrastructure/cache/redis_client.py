"""
Redis Client and Cache Backends

Architecture:
    build_redis_client()        (pooled redis.asyncio client, or None)
    connect_with_retry()        (startup ping with tenacity back-off)
    RedisCacheBackend           (CacheBackend over a shared client)
    NullCacheBackend            (CacheBackend with no durable store)
    build_cache_backend()       (strategy selection, once at startup)

A malformed REDIS_URL is a configuration error: it is logged once and the
process continues on the in-memory strategies. A reachable-but-failing Redis is
a runtime condition handled by the "cache-backend" circuit breaker instead.

Author: Platform Team
Date: 2025-12-13
"""

import logging

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ledger_resilience.core.config.constants import Stage
from ledger_resilience.core.exceptions import CacheConnectionError, ConfigurationError
from ledger_resilience.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# =============================================================================


def create_redis_client(settings) -> redis.Redis:
    """
    Build a pooled Redis client from settings without touching the network.

    STAGE-REDIS.1: Pool creation

    Raises:
        ConfigurationError: If REDIS_URL cannot be parsed
    """
    cfg = settings.redis
    pool_kwargs = dict(
        max_connections=cfg.REDIS_MAX_CONNECTIONS,
        socket_connect_timeout=cfg.REDIS_SOCKET_CONNECT_TIMEOUT,
        socket_timeout=cfg.REDIS_SOCKET_TIMEOUT,
        health_check_interval=cfg.REDIS_HEALTH_CHECK_INTERVAL,
        decode_responses=True,
    )

    if cfg.REDIS_URL:
        try:
            pool = ConnectionPool.from_url(cfg.REDIS_URL, **pool_kwargs)
        except ValueError as e:
            raise ConfigurationError(
                "Malformed REDIS_URL",
                details={"error": str(e)},
            ) from e
    else:
        pool = ConnectionPool(
            host=cfg.REDIS_HOST,
            port=cfg.REDIS_PORT,
            db=cfg.REDIS_DB,
            password=cfg.REDIS_PASSWORD,
            **pool_kwargs,
        )

    return redis.Redis(connection_pool=pool)


def build_redis_client(settings) -> redis.Redis | None:
    """
    Return a Redis client, or None when Redis is disabled or misconfigured.

    Misconfiguration is reported here exactly once.
    """
    if not settings.redis.REDIS_ENABLED:
        log_stage(logger, Stage.INITIALIZATION, "Redis disabled, using in-memory strategies")
        return None

    try:
        return create_redis_client(settings)
    except ConfigurationError as e:
        log_stage(
            logger,
            Stage.INITIALIZATION,
            "Redis misconfigured, degrading to in-memory strategies",
            level="warning",
            **e.details,
        )
        return None


_std_logger = logging.getLogger(__name__)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential_jitter(multiplier=0.2, max=2.0),
    retry=retry_if_exception_type((ConnectionError, TimeoutError)),
    before_sleep=before_sleep_log(_std_logger, logging.WARNING),
    reraise=True,
)
async def _ping(client: redis.Redis) -> None:
    await client.ping()


async def connect_with_retry(client: redis.Redis) -> bool:
    """
    Verify connectivity at startup.

    STAGE-REDIS.2: Connection verification

    Returns False instead of raising: an unreachable Redis is survivable, the
    breakers and in-memory fallbacks carry the process until it comes back.
    """
    try:
        await _ping(client)
    except (ConnectionError, TimeoutError) as e:
        log_stage(
            logger,
            Stage.INITIALIZATION,
            "Redis unreachable at startup, serving from fallbacks",
            level="warning",
            error=str(e),
        )
        return False

    log_stage(logger, Stage.INITIALIZATION, "Redis connected")
    return True


# =============================================================================
# LAYER 2: CACHE BACKENDS
# =============================================================================


class RedisCacheBackend:
    """
    CacheBackend over a shared Redis client.

    STAGE-2.2: Durable cache tier

    Errors are translated into CacheConnectionError so the degradable cache
    only has to know about one exception family.
    """

    kind = "redis"
    available = True

    def __init__(self, client: redis.Redis):
        self._client = client

    @property
    def client(self) -> redis.Redis:
        return self._client

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError as e:
            raise CacheConnectionError.from_exception(e, operation="get", key=key) from e

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            raise CacheConnectionError.from_exception(e, operation="set", key=key) from e

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            raise CacheConnectionError.from_exception(e, operation="delete", key=key) from e

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete keys matching a glob using SCAN.

        Cost grows with the keyspace; reserve it for small per-user
        invalidations.
        """
        deleted = 0
        batch: list[str] = []
        try:
            async for key in self._client.scan_iter(match=pattern, count=200):
                batch.append(key)
                if len(batch) >= 200:
                    deleted += await self._client.delete(*batch)
                    batch.clear()
            if batch:
                deleted += await self._client.delete(*batch)
        except RedisError as e:
            raise CacheConnectionError.from_exception(
                e, operation="delete_pattern", pattern=pattern
            ) from e
        return deleted

    async def sliding_window_hit(self, key: str, now_ms: int, window_ms: int, member: str) -> int:
        """
        Sliding-log rate window in one MULTI/EXEC round trip.

        STAGE-1.1: Distributed rate window
        """
        window_seconds = max(1, window_ms // 1000)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, 0, now_ms - window_ms)
                pipe.zcard(key)
                pipe.zadd(key, {member: now_ms})
                pipe.expire(key, window_seconds)
                results = await pipe.execute()
        except RedisError as e:
            raise CacheConnectionError.from_exception(e, operation="sliding_window", key=key) from e
        return int(results[1] or 0)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self._client.aclose()


class NullCacheBackend:
    """
    CacheBackend with no durable store.

    Selected when Redis is disabled or misconfigured. `available=False` tells
    callers to go straight to their in-process fallbacks without involving the
    circuit breaker; the methods below are inert for callers that do not check.
    """

    kind = "memory"
    available = False

    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        return None

    async def delete(self, key: str) -> None:
        return None

    async def delete_pattern(self, pattern: str) -> int:
        return 0

    async def sliding_window_hit(self, key: str, now_ms: int, window_ms: int, member: str) -> int:
        raise CacheConnectionError("No durable backend configured")

    async def ping(self) -> bool:
        return False

    async def close(self) -> None:
        return None


def build_cache_backend(client: redis.Redis | None) -> RedisCacheBackend | NullCacheBackend:
    """Pick the cache backend strategy for the process."""
    if client is None:
        return NullCacheBackend()
    return RedisCacheBackend(client)
