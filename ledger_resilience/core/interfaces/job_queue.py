"""
Job Queue Protocol

Contract the durable job substrate honors: at-least-once delivery, delayed
jobs, idempotency keys and a dead-letter list.

Author: Platform Team
Date: 2025-12-08
"""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class Job:
    """
    One reserved unit of work.

    Attributes:
        id: Queue-assigned job id
        name: Job name (e.g. "webhook.deliver")
        payload: Raw JSON payload, validated by the worker
        job_key: Idempotency key, if the producer supplied one
        attempts_made: Times a handler has already crashed on this job
        release_key: Free `job_key` once the job settles, so the key only
            dedupes while the job is queued or running
    """

    id: str
    name: str
    payload: dict[str, Any]
    job_key: str | None = None
    attempts_made: int = 0
    enqueued_at: float = 0.0
    release_key: bool = False
    extra: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class JobQueue(Protocol):
    """
    Protocol for job queue implementations.

    Implementations:
    - RedisJobQueue: Durable, shared across processes
    - InMemoryJobQueue: Single-process, used without Redis and in tests
    """

    kind: str

    async def enqueue(
        self,
        name: str,
        payload: dict[str, Any],
        job_key: str | None = None,
        delay_seconds: float = 0,
        release_key: bool = False,
    ) -> str | None:
        """
        Submit a job. Returns the job id, or None when a job with the same
        `job_key` already exists (the duplicate collapses).

        Keys are held for the retention period, or only until the job is
        acked or dead-lettered when `release_key` is set.
        """
        ...

    async def reserve(self) -> Job | None:
        """Take the next ready job, or None when nothing is due."""
        ...

    async def ack(self, job: Job) -> None:
        ...

    async def retry(self, job: Job, delay_seconds: float) -> None:
        """Put a crashed job back with a delay."""
        ...

    async def dead_letter(self, job: Job, reason: str) -> None:
        ...

    async def depth(self) -> dict[str, int]:
        """Ready plus delayed jobs per job name."""
        ...

    async def dead_letters(self, limit: int = 50) -> list[dict[str, Any]]:
        ...
