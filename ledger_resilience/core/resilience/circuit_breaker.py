"""
In-Process Circuit Breaker Registry.

Protects outbound calls (cache backend, webhook endpoints) from hammering a
dependency that is known to be failing.

MECHANISM OF ACTION:
-------------------
1.  **Per-identifier records**:
    One `CircuitRecord` per identifier (`"cache-backend"`, `"webhook:<id>"`), created
    lazily on first use and kept for the lifetime of the registry. Records are plain
    process memory: every instance protects itself, the durable backend remains the
    cross-instance source of truth when it is healthy.

2.  **State Transitions**:
    - **CLOSED**: Requests are allowed.
      - On Failure: failure is counted. With a sliding window, timestamps older than
        the window are pruned before counting. Reaching `failure_threshold` opens.
      - On Success: without a window the failure counter resets to 0.

    - **OPEN**: Requests are refused until `reset_timeout_ms` has elapsed since the last
      failure. The next `can_execute` after that moves to HALF_OPEN and is itself
      allowed through as the probe.

    - **HALF_OPEN**: Requests are allowed and watched.
      - `success_threshold` successes close the circuit and clear failure history.
      - A single failure reopens it and re-arms the timeout.

3.  **Serialization**:
    Each record carries its own `threading.Lock`; every transition is a
    read-modify-write under that lock. Different identifiers never share a lock.

4.  **execute_with_circuit_breaker**:
    Wraps any awaitable operation and returns a tagged `CircuitResult` instead of
    raising, so callers can tell "the dependency failed" from "the breaker refused
    to even try".
"""

import math
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from ledger_resilience.core.config.constants import CircuitState, Stage
from ledger_resilience.core.exceptions import CircuitBreakerOpenError
from ledger_resilience.core.logging.logger import get_logger, log_stage
from ledger_resilience.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


def wall_clock_ms() -> float:
    """Current time in epoch milliseconds."""
    return time.time() * 1000


# ============================================================================
# Configuration
# ============================================================================


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """
    Thresholds for one family of circuits.

    Attributes:
        failure_threshold: Failures that open a CLOSED circuit
        reset_timeout_ms: Time after the last failure before a probe is allowed
        success_threshold: HALF_OPEN successes required to close
        failure_window_ms: Sliding failure window; None accumulates until a success
    """

    failure_threshold: int = 5
    reset_timeout_ms: int = 60_000
    success_threshold: int = 2
    failure_window_ms: int | None = 60_000

    @classmethod
    def for_cache_backend(cls, settings) -> "CircuitBreakerConfig":
        cb = settings.circuit_breaker
        return cls(
            failure_threshold=cb.CB_CACHE_FAILURE_THRESHOLD,
            reset_timeout_ms=cb.CB_CACHE_RESET_TIMEOUT_MS,
            success_threshold=cb.CB_CACHE_SUCCESS_THRESHOLD,
            failure_window_ms=None,
        )

    @classmethod
    def for_webhooks(cls, settings) -> "CircuitBreakerConfig":
        cb = settings.circuit_breaker
        return cls(
            failure_threshold=cb.CB_WEBHOOK_FAILURE_THRESHOLD,
            reset_timeout_ms=cb.CB_WEBHOOK_RESET_TIMEOUT_MS,
            success_threshold=cb.CB_WEBHOOK_SUCCESS_THRESHOLD,
            failure_window_ms=cb.CB_WEBHOOK_WINDOW_MS,
        )


DEFAULT_CIRCUIT_CONFIG = CircuitBreakerConfig()

CACHE_BACKEND_CIRCUIT_CONFIG = CircuitBreakerConfig(
    failure_threshold=3,
    reset_timeout_ms=30_000,
    success_threshold=2,
    failure_window_ms=None,
)

WEBHOOK_CIRCUIT_CONFIG = CircuitBreakerConfig(
    failure_threshold=5,
    reset_timeout_ms=5 * 60 * 1000,
    success_threshold=2,
    failure_window_ms=5 * 60 * 1000,
)


# ============================================================================
# State
# ============================================================================


@dataclass
class CircuitRecord:
    """Mutable breaker state for one identifier. Only touched under `lock`."""

    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    failure_timestamps: deque = field(default_factory=deque)
    last_failure_at: float | None = None
    half_open_successes: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def prune(self, now: float, window_ms: int | None) -> None:
        if window_ms is None:
            return
        cutoff = now - window_ms
        while self.failure_timestamps and self.failure_timestamps[0] <= cutoff:
            self.failure_timestamps.popleft()
        self.failures = len(self.failure_timestamps)


@dataclass(frozen=True)
class CircuitSnapshot:
    """Read-only view of a record for health endpoints and tests."""

    identifier: str
    state: CircuitState
    failures: int
    last_failure_at: float | None
    half_open_successes: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "failures": self.failures,
            "last_failure_at": self.last_failure_at,
            "half_open_successes": self.half_open_successes,
        }


@dataclass(frozen=True)
class CircuitCheck:
    """Answer of `can_execute`."""

    allowed: bool
    state: CircuitState
    reason: str | None = None


@dataclass(frozen=True)
class CircuitResult(Generic[T]):
    """
    Tagged outcome of `execute_with_circuit_breaker`.

    success=True carries `result`. success=False carries `error`, the original
    `exception` when the operation ran, and `circuit_open=True` when it never ran.
    """

    success: bool
    result: T | None = None
    error: str | None = None
    circuit_open: bool = False
    exception: Exception | None = None


# ============================================================================
# Registry
# ============================================================================


class CircuitBreakerRegistry:
    """
    Owns every circuit record of one process.

    Constructed once at startup and injected into the cache, rate limiter and
    webhook deliverer. Tests build a fresh registry with a fake clock.

    Usage:
        registry = CircuitBreakerRegistry()
        check = registry.can_execute("webhook:wh_1", WEBHOOK_CIRCUIT_CONFIG)
        if check.allowed:
            ...
    """

    def __init__(self, clock: Clock = wall_clock_ms, metrics: MetricsCollector | None = None):
        self._clock = clock
        self._metrics = metrics or get_metrics_collector()
        self._records: dict[str, CircuitRecord] = {}
        self._records_lock = threading.Lock()

    def _record(self, identifier: str) -> CircuitRecord:
        record = self._records.get(identifier)
        if record is None:
            with self._records_lock:
                record = self._records.setdefault(identifier, CircuitRecord())
        return record

    def _transition(self, identifier: str, record: CircuitRecord, new_state: CircuitState, **extra) -> None:
        record.state = new_state
        level = "warning" if new_state == CircuitState.OPEN else "info"
        log_stage(
            logger,
            Stage.CIRCUIT_BREAKER,
            f"Circuit {new_state.value}",
            level=level,
            circuit=identifier,
            **extra,
        )
        self._metrics.record_circuit_transition(identifier, new_state.value)

    # ------------------------------------------------------------------
    # Core contract
    # ------------------------------------------------------------------

    def can_execute(
        self, identifier: str, config: CircuitBreakerConfig = DEFAULT_CIRCUIT_CONFIG
    ) -> CircuitCheck:
        """
        Decide whether a call to `identifier` may proceed.

        An OPEN circuit whose reset timeout has elapsed moves to HALF_OPEN here,
        and this very call is the probe.
        """
        record = self._record(identifier)
        with record.lock:
            now = self._clock()
            record.prune(now, config.failure_window_ms)

            if record.state == CircuitState.OPEN:
                elapsed = now - (record.last_failure_at or 0)
                if elapsed >= config.reset_timeout_ms:
                    record.half_open_successes = 0
                    self._transition(identifier, record, CircuitState.HALF_OPEN)
                    return CircuitCheck(allowed=True, state=CircuitState.HALF_OPEN)

                retry_after = math.ceil((config.reset_timeout_ms - elapsed) / 1000)
                self._metrics.record_circuit_rejection(identifier)
                return CircuitCheck(
                    allowed=False,
                    state=CircuitState.OPEN,
                    reason=f"Circuit open. Retry after {retry_after}s",
                )

            return CircuitCheck(allowed=True, state=record.state)

    def record_success(
        self, identifier: str, config: CircuitBreakerConfig = DEFAULT_CIRCUIT_CONFIG
    ) -> None:
        record = self._record(identifier)
        with record.lock:
            if record.state == CircuitState.HALF_OPEN:
                record.half_open_successes += 1
                if record.half_open_successes >= config.success_threshold:
                    record.failures = 0
                    record.failure_timestamps.clear()
                    record.half_open_successes = 0
                    self._transition(identifier, record, CircuitState.CLOSED)
            elif record.state == CircuitState.CLOSED and config.failure_window_ms is None:
                record.failures = 0

    def record_failure(
        self, identifier: str, config: CircuitBreakerConfig = DEFAULT_CIRCUIT_CONFIG
    ) -> None:
        record = self._record(identifier)
        with record.lock:
            now = self._clock()
            record.last_failure_at = now
            if config.failure_window_ms is None:
                record.failures += 1
            else:
                record.failure_timestamps.append(now)
                record.prune(now, config.failure_window_ms)

            if record.state == CircuitState.HALF_OPEN:
                record.half_open_successes = 0
                self._transition(identifier, record, CircuitState.OPEN, reason="probe failed")
            elif record.state == CircuitState.CLOSED and record.failures >= config.failure_threshold:
                self._transition(identifier, record, CircuitState.OPEN, failures=record.failures)

    async def execute_with_circuit_breaker(
        self,
        identifier: str,
        fn: Callable[[], Awaitable[T]],
        config: CircuitBreakerConfig = DEFAULT_CIRCUIT_CONFIG,
    ) -> CircuitResult[T]:
        """
        Run `fn` under the breaker and return a tagged result. Never raises
        for failures of `fn` itself.
        """
        check = self.can_execute(identifier, config)
        if not check.allowed:
            return CircuitResult(
                success=False,
                error=check.reason or "Circuit breaker open",
                circuit_open=True,
            )

        try:
            result = await fn()
        except Exception as e:
            self.record_failure(identifier, config)
            return CircuitResult(
                success=False,
                error=str(e) or e.__class__.__name__,
                circuit_open=False,
                exception=e,
            )

        self.record_success(identifier, config)
        return CircuitResult(success=True, result=result)

    async def call(
        self,
        identifier: str,
        fn: Callable[[], Awaitable[T]],
        config: CircuitBreakerConfig = DEFAULT_CIRCUIT_CONFIG,
    ) -> T:
        """
        Raising variant of `execute_with_circuit_breaker`.

        Raises:
            CircuitBreakerOpenError: If the circuit refused the call
            Exception: Whatever `fn` raised, after it was recorded as a failure
        """
        outcome = await self.execute_with_circuit_breaker(identifier, fn, config)
        if outcome.success:
            return outcome.result
        if outcome.circuit_open:
            raise CircuitBreakerOpenError(
                outcome.error or "Circuit breaker open", details={"circuit": identifier}
            )
        raise outcome.exception

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def get_state(self, identifier: str) -> CircuitSnapshot:
        record = self._record(identifier)
        with record.lock:
            return CircuitSnapshot(
                identifier=identifier,
                state=record.state,
                failures=record.failures,
                last_failure_at=record.last_failure_at,
                half_open_successes=record.half_open_successes,
            )

    def get_all_states(self) -> dict[str, CircuitSnapshot]:
        with self._records_lock:
            identifiers = list(self._records)
        return {identifier: self.get_state(identifier) for identifier in identifiers}

    def reset(self, identifier: str) -> None:
        """Forget a circuit (manual intervention)."""
        with self._records_lock:
            self._records.pop(identifier, None)
        self._metrics.set_circuit_state(identifier, CircuitState.CLOSED.value)
        logger.info("Circuit reset", stage=Stage.CIRCUIT_BREAKER.value, circuit=identifier)
