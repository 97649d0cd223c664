#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

Prometheus metrics for the resilience core:
- Circuit breaker state and transitions per identifier
- Cache hits/misses per tier and backend errors
- Rate limit rejections per policy
- Webhook delivery attempts, outcomes and latency
- Job queue depth and job outcomes per job name

Architectural Decision: prometheus-client for industry-standard metrics

Author: Platform Team
Date: 2025-12-05
"""


from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from ledger_resilience.core.config.settings import get_settings
from ledger_resilience.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

# Circuit breaker metrics
CIRCUIT_BREAKER_STATE = Gauge(
    'ledger_circuit_breaker_state',
    'Circuit breaker state (0=closed, 1=half_open, 2=open)',
    ['circuit']
)

CIRCUIT_BREAKER_TRANSITIONS = Counter(
    'ledger_circuit_breaker_transitions_total',
    'Circuit breaker state transitions',
    ['circuit', 'to_state']
)

CIRCUIT_BREAKER_REJECTIONS = Counter(
    'ledger_circuit_breaker_rejections_total',
    'Calls refused because the circuit was open',
    ['circuit']
)

# Cache metrics
CACHE_HITS = Counter(
    'ledger_cache_hits_total',
    'Total cache hits',
    ['tier']  # backend or fallback
)

CACHE_MISSES = Counter(
    'ledger_cache_misses_total',
    'Total cache misses (both tiers)'
)

CACHE_BACKEND_ERRORS = Counter(
    'ledger_cache_backend_errors_total',
    'Cache backend errors absorbed by the degradable cache',
    ['operation']
)

CACHE_FALLBACK_EVICTIONS = Counter(
    'ledger_cache_fallback_evictions_total',
    'Entries evicted from the in-process fallback store',
    ['reason']  # expired or lru
)

# Rate limiting metrics
RATE_LIMIT_EXCEEDED = Counter(
    'ledger_rate_limit_exceeded_total',
    'Total rate limit rejections',
    ['policy']
)

RATE_LIMIT_CHECKS = Counter(
    'ledger_rate_limit_checks_total',
    'Rate limit checks by algorithm',
    ['mode']  # sliding or fallback
)

# Webhook metrics
WEBHOOK_DELIVERIES = Counter(
    'ledger_webhook_delivery_attempts_total',
    'Webhook delivery attempts by outcome',
    ['outcome']  # success, failure, circuit_open, inactive
)

WEBHOOK_DELIVERY_LATENCY = Histogram(
    'ledger_webhook_delivery_latency_seconds',
    'Webhook endpoint response latency',
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

WEBHOOK_EVENTS_DISPATCHED = Counter(
    'ledger_webhook_events_dispatched_total',
    'Domain events fanned out to webhooks',
    ['event']
)

# Queue metrics
QUEUE_DEPTH = Gauge(
    'ledger_queue_depth',
    'Current queue depth per job name',
    ['job_name']
)

QUEUE_JOBS = Counter(
    'ledger_queue_jobs_total',
    'Jobs handled by the worker',
    ['job_name', 'outcome']  # completed, retried, dead_lettered, duplicate
)

# HTTP metrics
HTTP_ERRORS = Counter(
    'ledger_http_errors_total',
    'Requests that ended in an error response',
    ['error_type', 'source']  # handled, unhandled_exception
)

# App info
APP_INFO = Info(
    'ledger_app',
    'Application information'
)

_STATE_VALUES = {"CLOSED": 0, "HALF_OPEN": 1, "OPEN": 2}


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_cache_hit("fallback")
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        self.settings = get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Circuit Breaker Metrics
    # =========================================================================

    def set_circuit_state(self, circuit: str, state: str) -> None:
        """Set circuit breaker state gauge."""
        CIRCUIT_BREAKER_STATE.labels(circuit=circuit).set(_STATE_VALUES.get(str(state), 0))

    def record_circuit_transition(self, circuit: str, to_state: str) -> None:
        CIRCUIT_BREAKER_TRANSITIONS.labels(circuit=circuit, to_state=str(to_state)).inc()
        self.set_circuit_state(circuit, to_state)

    def record_circuit_rejection(self, circuit: str) -> None:
        CIRCUIT_BREAKER_REJECTIONS.labels(circuit=circuit).inc()

    # =========================================================================
    # Cache Metrics
    # =========================================================================

    def record_cache_hit(self, tier: str) -> None:
        """Record cache hit."""
        CACHE_HITS.labels(tier=tier).inc()

    def record_cache_miss(self) -> None:
        """Record cache miss."""
        CACHE_MISSES.inc()

    def record_cache_backend_error(self, operation: str) -> None:
        CACHE_BACKEND_ERRORS.labels(operation=operation).inc()

    def record_fallback_eviction(self, reason: str, count: int = 1) -> None:
        if count:
            CACHE_FALLBACK_EVICTIONS.labels(reason=reason).inc(count)

    # =========================================================================
    # Rate Limiting Metrics
    # =========================================================================

    def record_rate_limit_check(self, mode: str) -> None:
        RATE_LIMIT_CHECKS.labels(mode=mode).inc()

    def record_rate_limit_exceeded(self, policy: str) -> None:
        """Record rate limit exceeded event."""
        RATE_LIMIT_EXCEEDED.labels(policy=policy).inc()

    # =========================================================================
    # Webhook Metrics
    # =========================================================================

    def record_delivery_attempt(self, outcome: str, duration_seconds: float | None = None) -> None:
        """Record one delivery attempt and, when an HTTP call happened, its latency."""
        WEBHOOK_DELIVERIES.labels(outcome=outcome).inc()
        if duration_seconds is not None:
            WEBHOOK_DELIVERY_LATENCY.observe(duration_seconds)

    def record_event_dispatched(self, event: str) -> None:
        WEBHOOK_EVENTS_DISPATCHED.labels(event=event).inc()

    # =========================================================================
    # Queue Metrics
    # =========================================================================

    def record_queue_depth(self, job_name: str, depth: int) -> None:
        """Record current queue depth."""
        QUEUE_DEPTH.labels(job_name=job_name).set(depth)

    def record_job(self, job_name: str, outcome: str) -> None:
        QUEUE_JOBS.labels(job_name=job_name, outcome=outcome).inc()

    # =========================================================================
    # HTTP Metrics
    # =========================================================================

    def record_error(self, error_type: str, source: str) -> None:
        HTTP_ERRORS.labels(error_type=error_type, source=source).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """
        Get Prometheus metrics output.

        Returns:
            bytes: Prometheus text format metrics
        """
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
