#!/usr/bin/env python3
"""
Degradable Cache - Durable Backend with In-Process Fallback

Architecture:
    DegradableCache (Public API)
        ├── CacheBackend ("cache-backend" circuit, Redis or null strategy)
        ├── FallbackStore (In-process bounded LRU with TTL)
        └── MetricsCollector (hits per tier, absorbed backend errors)

Behavior:
    - set: always writes the fallback first, then the backend if its circuit allows
    - get: backend first; the fallback answers when the backend was skipped,
      failed, or had nothing
    - delete / delete_pattern: applied to both tiers
    - backend errors are logged at debug and never reach the caller

The cache is a performance optimization, not a source of truth: a None from
`get` means "load it from the database".

Author: Platform Team
Date: 2025-12-13
"""

import re
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import orjson

from ledger_resilience.core.config.constants import CACHE_BACKEND_CIRCUIT, CacheTier, Stage
from ledger_resilience.core.interfaces.cache import CacheBackend
from ledger_resilience.core.logging.logger import get_logger, log_stage
from ledger_resilience.core.resilience.circuit_breaker import (
    CACHE_BACKEND_CIRCUIT_CONFIG,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitResult,
)
from ledger_resilience.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

FALLBACK_MAX_ENTRIES = 1000
FALLBACK_EVICTION_BATCH = 100


def _glob_class(body: str) -> str:
    items = []
    i = 0
    while i < len(body):
        c = body[i]
        if c == "\\" and i + 1 < len(body):
            i += 1
            c = body[i]
        if i + 2 < len(body) and body[i + 1] == "-":
            lo, hi = sorted((c, body[i + 2]))
            items.append(f"{re.escape(lo)}-{re.escape(hi)}")
            i += 3
            continue
        items.append(re.escape(c))
        i += 1
    return "".join(items)


def glob_to_regex(pattern: str) -> re.Pattern:
    """
    Translate a Redis SCAN MATCH glob into an anchored regex, so the fallback
    store selects the same keys the backend would: `*`, `?`, `[...]` classes
    (with `^` negation and `a-z` ranges) and backslash escapes.
    """
    out = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        i += 1
        if c == "*":
            out.append(".*")
        elif c == "?":
            out.append(".")
        elif c == "\\" and i < n:
            out.append(re.escape(pattern[i]))
            i += 1
        elif c == "[":
            negate = i < n and pattern[i] == "^"
            start = i + 1 if negate else i
            end = pattern.find("]", start)
            if end == -1:
                out.append(re.escape(c))
                continue
            body = _glob_class(pattern[start:end])
            if body:
                out.append(f"[{'^' if negate else ''}{body}]")
            else:
                out.append("." if negate else "(?!)")
            i = end + 1
        else:
            out.append(re.escape(c))
    return re.compile("".join(out) + r"\Z", re.DOTALL)


# =============================================================================
# LAYER 1: FALLBACK STORAGE
# =============================================================================


@dataclass
class CacheEntry:
    key: str
    value: str
    expires_at: float
    last_accessed_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class FallbackStore:
    """
    In-process LRU store with per-entry TTL.

    STAGE-2.1: Fallback tier

    Entries are kept in an OrderedDict ordered by last access: `get` hits and
    `set` both move the key to the end, so the front is always the least
    recently used entry. This is true LRU, not insertion order.

    Capacity policy, applied when an insert pushes the size past `max_entries`:
    1. purge every expired entry
    2. if still over capacity, evict `eviction_batch` entries from the front
    """

    def __init__(
        self,
        max_entries: int = FALLBACK_MAX_ENTRIES,
        eviction_batch: int = FALLBACK_EVICTION_BATCH,
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsCollector | None = None,
    ):
        self._max_entries = max_entries
        self._eviction_batch = eviction_batch
        self._clock = clock
        self._metrics = metrics or get_metrics_collector()
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            now = self._clock()
            if entry.is_expired(now):
                del self._entries[key]
                return None
            entry.last_accessed_at = now
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: str, value: str, ttl_seconds: float) -> None:
        with self._lock:
            now = self._clock()
            self._entries[key] = CacheEntry(
                key=key, value=value, expires_at=now + ttl_seconds, last_accessed_at=now
            )
            self._entries.move_to_end(key)
            if len(self._entries) > self._max_entries:
                self._shrink(now)

    def _shrink(self, now: float) -> None:
        expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
        for k in expired:
            del self._entries[k]
        self._metrics.record_fallback_eviction("expired", len(expired))

        if len(self._entries) > self._max_entries:
            evicted = 0
            while self._entries and evicted < self._eviction_batch:
                self._entries.popitem(last=False)
                evicted += 1
            self._metrics.record_fallback_eviction("lru", evicted)
            logger.debug(
                "Fallback cache evicted LRU entries",
                stage=Stage.CACHE_LOOKUP.value,
                evicted=evicted,
                expired=len(expired),
            )

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_pattern(self, pattern: str) -> int:
        matcher = glob_to_regex(pattern)
        with self._lock:
            doomed = [k for k in self._entries if matcher.match(k)]
            for k in doomed:
                del self._entries[k]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        """Keys in LRU order (least recently used first)."""
        with self._lock:
            return list(self._entries)


# =============================================================================
# LAYER 2: DEGRADABLE CACHE
# =============================================================================


class DegradableCache:
    """
    Cache facade that survives backend outages.

    STAGE-2: Cache lookup

    Every backend call goes through the "cache-backend" circuit of the shared
    registry, which also feeds the result back to the breaker. With the null
    backend strategy the breaker is never consulted.

    Values are JSON-serialized with orjson, so anything orjson can encode
    (dicts, lists, dataclasses, datetimes) round-trips.
    """

    def __init__(
        self,
        backend: CacheBackend,
        breaker: CircuitBreakerRegistry,
        fallback: FallbackStore | None = None,
        circuit_config: CircuitBreakerConfig = CACHE_BACKEND_CIRCUIT_CONFIG,
        metrics: MetricsCollector | None = None,
    ):
        self._backend = backend
        self._breaker = breaker
        self._metrics = metrics or get_metrics_collector()
        self._fallback = fallback if fallback is not None else FallbackStore(metrics=self._metrics)
        self._circuit_config = circuit_config

    @property
    def fallback(self) -> FallbackStore:
        return self._fallback

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    async def _backend_call(self, operation: str, fn) -> CircuitResult:
        if not self._backend.available:
            return CircuitResult(success=False, error="no durable backend", circuit_open=True)

        result = await self._breaker.execute_with_circuit_breaker(
            CACHE_BACKEND_CIRCUIT, fn, self._circuit_config
        )
        if not result.success and not result.circuit_open:
            self._metrics.record_cache_backend_error(operation)
            logger.debug(
                "Cache backend error absorbed",
                stage=Stage.CACHE_LOOKUP.value,
                operation=operation,
                error=result.error,
            )
        return result

    async def get(self, key: str) -> Any | None:
        result = await self._backend_call("get", lambda: self._backend.get(key))
        if result.success and result.result is not None:
            try:
                value = orjson.loads(result.result)
            except orjson.JSONDecodeError:
                logger.debug("Undecodable backend value ignored", stage=Stage.CACHE_LOOKUP.value, key=key)
            else:
                self._metrics.record_cache_hit(CacheTier.BACKEND.value)
                return value

        raw = self._fallback.get(key)
        if raw is not None:
            self._metrics.record_cache_hit(CacheTier.FALLBACK.value)
            return orjson.loads(raw)

        self._metrics.record_cache_miss()
        return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raw = orjson.dumps(value).decode()
        self._fallback.set(key, raw, ttl_seconds)
        await self._backend_call("set", lambda: self._backend.set(key, raw, ttl_seconds))

    async def delete(self, key: str) -> None:
        self._fallback.delete(key)
        await self._backend_call("delete", lambda: self._backend.delete(key))

    async def delete_pattern(self, pattern: str) -> None:
        removed = self._fallback.delete_pattern(pattern)
        await self._backend_call("delete_pattern", lambda: self._backend.delete_pattern(pattern))
        log_stage(
            logger, Stage.CACHE_LOOKUP, "Cache pattern invalidated", level="debug",
            pattern=pattern, fallback_removed=removed,
        )

    def health(self) -> dict[str, Any]:
        snapshot = self._breaker.get_state(CACHE_BACKEND_CIRCUIT)
        return {
            "backend": self._backend.kind,
            "circuit": snapshot.to_dict(),
            "fallback_entries": len(self._fallback),
        }
