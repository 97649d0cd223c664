"""
Job Queue Infrastructure

Components:
- jobs: Payload contracts per job name
- memory_queue / redis_queue: JobQueue strategies
- factory: Strategy selection at startup
- producer: Typed submission helpers
"""

from ledger_resilience.infrastructure.message_queue.factory import build_job_queue
from ledger_resilience.infrastructure.message_queue.jobs import (
    AggregationUpdateJob,
    JobPayload,
    WebhookDeliverJob,
    WebhookDispatchJob,
    parse_job,
)
from ledger_resilience.infrastructure.message_queue.memory_queue import InMemoryJobQueue
from ledger_resilience.infrastructure.message_queue.producer import JobProducer
from ledger_resilience.infrastructure.message_queue.redis_queue import JobSerializer, RedisJobQueue

__all__ = [
    "AggregationUpdateJob",
    "InMemoryJobQueue",
    "JobPayload",
    "JobProducer",
    "JobSerializer",
    "RedisJobQueue",
    "WebhookDeliverJob",
    "WebhookDispatchJob",
    "build_job_queue",
    "parse_job",
]
