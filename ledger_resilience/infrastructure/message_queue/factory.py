"""
Job Queue Factory

Selects the JobQueue strategy once at startup: Redis when a client exists,
the in-memory queue otherwise.
"""

import redis.asyncio as redis

from ledger_resilience.core.config.constants import Stage
from ledger_resilience.core.logging.logger import get_logger, log_stage
from ledger_resilience.infrastructure.message_queue.memory_queue import InMemoryJobQueue
from ledger_resilience.infrastructure.message_queue.redis_queue import RedisJobQueue

logger = get_logger(__name__)


def build_job_queue(settings, client: redis.Redis | None) -> RedisJobQueue | InMemoryJobQueue:
    retention = settings.worker.WORKER_JOB_KEY_RETENTION_SECONDS
    if client is None:
        log_stage(logger, Stage.INITIALIZATION, "Using in-memory job queue", level="warning")
        return InMemoryJobQueue(key_retention_seconds=retention)
    return RedisJobQueue(client, key_retention_seconds=retention)
