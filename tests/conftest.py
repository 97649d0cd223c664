"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.

Every fixture builds fresh instances: breaker records, fallback entries, rate
windows and queues are owned by objects, never by module state, so tests do
not leak into each other.
"""

import os
import sys

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ledger_resilience.core.config.settings import Settings  # noqa: E402
from ledger_resilience.core.resilience.circuit_breaker import CircuitBreakerRegistry  # noqa: E402
from ledger_resilience.infrastructure.message_queue.memory_queue import InMemoryJobQueue  # noqa: E402
from ledger_resilience.infrastructure.message_queue.producer import JobProducer  # noqa: E402
from ledger_resilience.infrastructure.monitoring.metrics_collector import get_metrics_collector  # noqa: E402
from ledger_resilience.webhooks.delivery import DeliveryAttempter, RetryPolicy, WebhookSender  # noqa: E402
from ledger_resilience.webhooks.dispatcher import EventDispatcher  # noqa: E402
from ledger_resilience.webhooks.store import InMemoryWebhookStore  # noqa: E402
from tests.test_fixtures import FakeClock, FakeEndpoints, FakeRedis  # noqa: E402


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    """Settings for an isolated process: no Redis, no background worker."""
    return Settings(
        REDIS_ENABLED=False,
        RUN_WORKER=False,
        ENVIRONMENT="development",
        LOG_FORMAT="console",
    )


@pytest.fixture
def metrics():
    return get_metrics_collector()


# ============================================================================
# Time and Backends
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock=clock)


@pytest.fixture
def breaker(clock, metrics):
    return CircuitBreakerRegistry(clock=clock.ms, metrics=metrics)


# ============================================================================
# Queue and Webhook Fixtures
# ============================================================================


@pytest.fixture
def job_queue(clock):
    return InMemoryJobQueue(clock=clock)


@pytest.fixture
def producer(job_queue):
    return JobProducer(job_queue, aggregation_debounce_seconds=5)


@pytest.fixture
def webhook_store():
    return InMemoryWebhookStore()


@pytest.fixture
def endpoints():
    """Fake receiving endpoints; every host answers 200 unless scripted."""
    return FakeEndpoints()


@pytest.fixture
def http_client(endpoints):
    # MockTransport holds no sockets, so the client needs no closing.
    return endpoints.client()


@pytest.fixture
def retry_policy():
    """Deterministic back-off (no jitter): 60, 120, 240, 480 seconds."""
    return RetryPolicy(max_attempts=5, base_delay_seconds=60, max_delay_seconds=3600, jitter=0.0)


@pytest.fixture
def attempter(webhook_store, http_client, breaker, producer, retry_policy, clock, metrics):
    return DeliveryAttempter(
        webhook_store,
        WebhookSender(http_client, timeout_seconds=5.0),
        breaker,
        producer,
        retry_policy=retry_policy,
        clock=clock.datetime,
        metrics=metrics,
    )


@pytest.fixture
def dispatcher(webhook_store, attempter, metrics):
    return EventDispatcher(webhook_store, attempter, metrics=metrics)
