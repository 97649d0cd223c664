#!/usr/bin/env python3
"""
Rate Limiter - Sliding Log with Per-Process Fallback

Algorithms:
    1. Sliding window by log (durable backend healthy)
       One sorted set per identifier, scored by request time. Each check runs
       ZREMRANGEBYSCORE / ZCARD / ZADD / EXPIRE in a single MULTI/EXEC and
       compares the pre-insert count to the limit.

    2. Fixed window per process (backend circuit open, errored or absent)
       A counter per identifier, reset to 1 once the window start is stale by
       at least the window length. Coarser than the sliding log; instances do
       not share counts while degraded.

Both report remaining = max(0, limit - count) where count includes the current
request, and reset_at = end of the window in epoch seconds. For limit=3 four
quick calls give allowed [T, T, T, F] and remaining [2, 1, 0, 0].

Author: Platform Team
Date: 2025-12-13
"""

import math
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from ledger_resilience.core.config.constants import (
    CACHE_BACKEND_CIRCUIT,
    REDIS_KEY_RATE_LIMIT,
    Stage,
)
from ledger_resilience.core.interfaces.cache import CacheBackend
from ledger_resilience.core.logging.logger import get_logger
from ledger_resilience.core.resilience.circuit_breaker import (
    CACHE_BACKEND_CIRCUIT_CONFIG,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    wall_clock_ms,
)
from ledger_resilience.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

PRUNE_INTERVAL_MS = 60_000


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one rate limit check."""

    allowed: bool
    remaining: int
    reset_at: int
    limit: int

    def retry_after(self, now_seconds: float) -> int:
        return max(0, math.ceil(self.reset_at - now_seconds))


@dataclass
class RateWindow:
    count: int
    window_start: float
    window_ms: int
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class RateLimiter:
    """
    Request throttling keyed by caller identifier.

    STAGE-1: Rate limiting

    Usage:
        limiter = RateLimiter(backend, breaker)
        result = await limiter.check_rate_limit("ip:1.2.3.4", limit=100, window_seconds=60)
        if not result.allowed:
            ...
    """

    def __init__(
        self,
        backend: CacheBackend,
        breaker: CircuitBreakerRegistry,
        circuit_config: CircuitBreakerConfig = CACHE_BACKEND_CIRCUIT_CONFIG,
        clock: Callable[[], float] = wall_clock_ms,
        metrics: MetricsCollector | None = None,
    ):
        self._backend = backend
        self._breaker = breaker
        self._circuit_config = circuit_config
        self._clock = clock
        self._metrics = metrics or get_metrics_collector()
        self._windows: dict[str, RateWindow] = {}
        self._windows_lock = threading.Lock()
        self._last_prune = clock()

    async def check_rate_limit(
        self, identifier: str, limit: int, window_seconds: int
    ) -> RateLimitResult:
        now_ms = int(self._clock())
        window_ms = window_seconds * 1000

        if self._backend.available:
            key = f"{REDIS_KEY_RATE_LIMIT}:{identifier}"
            member = f"{now_ms}:{secrets.token_hex(4)}"
            outcome = await self._breaker.execute_with_circuit_breaker(
                CACHE_BACKEND_CIRCUIT,
                lambda: self._backend.sliding_window_hit(key, now_ms, window_ms, member),
                self._circuit_config,
            )
            if outcome.success:
                self._metrics.record_rate_limit_check("sliding")
                count = outcome.result + 1
                return RateLimitResult(
                    allowed=outcome.result < limit,
                    remaining=max(0, limit - count),
                    reset_at=math.ceil((now_ms + window_ms) / 1000),
                    limit=limit,
                )
            if not outcome.circuit_open:
                logger.debug(
                    "Rate limit backend error, using local window",
                    stage=Stage.RATE_LIMITING.value,
                    identifier=identifier,
                    error=outcome.error,
                )

        self._metrics.record_rate_limit_check("fallback")
        return self._check_local(identifier, limit, window_ms, now_ms)

    def _window(self, identifier: str, now_ms: int, window_ms: int) -> RateWindow:
        window = self._windows.get(identifier)
        if window is None:
            with self._windows_lock:
                window = self._windows.setdefault(
                    identifier, RateWindow(count=0, window_start=now_ms, window_ms=window_ms)
                )
        return window

    def _check_local(
        self, identifier: str, limit: int, window_ms: int, now_ms: int
    ) -> RateLimitResult:
        self._maybe_prune(now_ms)
        window = self._window(identifier, now_ms, window_ms)
        with window.lock:
            window.window_ms = window_ms
            if now_ms - window.window_start >= window_ms:
                window.count = 1
                window.window_start = now_ms
            else:
                window.count += 1
            count = window.count
            reset_at = math.ceil((window.window_start + window_ms) / 1000)

        return RateLimitResult(
            allowed=count <= limit,
            remaining=max(0, limit - count),
            reset_at=reset_at,
            limit=limit,
        )

    def _maybe_prune(self, now_ms: int) -> None:
        """Drop windows that have outlived their own length."""
        if now_ms - self._last_prune < PRUNE_INTERVAL_MS:
            return
        with self._windows_lock:
            self._last_prune = now_ms
            stale = [k for k, w in self._windows.items() if now_ms - w.window_start >= w.window_ms]
            for k in stale:
                del self._windows[k]
        if stale:
            logger.debug("Pruned stale rate windows", stage=Stage.RATE_LIMITING.value, pruned=len(stale))

    def local_window_count(self) -> int:
        return len(self._windows)
