"""
Test Fixtures Package

Shared fakes and factories used across the unit tests.
"""

from .clock import FakeClock
from .redis_stub import FakePipeline, FakeRedis
from .webhook_factory import (
    FakeEndpoints,
    ScriptedStatuses,
    WebhookFactory,
    raise_connect_error,
    raise_timeout,
)

__all__ = [
    "FakeClock",
    "FakeEndpoints",
    "FakePipeline",
    "FakeRedis",
    "ScriptedStatuses",
    "WebhookFactory",
    "raise_connect_error",
    "raise_timeout",
]
