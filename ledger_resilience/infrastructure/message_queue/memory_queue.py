"""
In-Memory Job Queue

Single-process JobQueue used when Redis is disabled or misconfigured, and in
tests. Same contract as RedisJobQueue: delayed jobs, idempotency keys retained
for a fixed period or until the job settles (expired keys are purged on
enqueue), a dead-letter list capped at DEAD_LETTER_MAX and per-name depth.

Nothing here survives a restart; that is the accepted cost of running without
a durable backend.
"""

import heapq
import itertools
import time
import uuid
from collections import deque
from collections.abc import Callable
from typing import Any

from ledger_resilience.core.config.constants import DEAD_LETTER_MAX, Stage
from ledger_resilience.core.interfaces.job_queue import Job
from ledger_resilience.core.logging.logger import get_logger

logger = get_logger(__name__)


class InMemoryJobQueue:
    kind = "memory"

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        key_retention_seconds: float = 86_400,
    ):
        self._clock = clock
        self._key_retention = key_retention_seconds
        self._ready: deque[Job] = deque()
        self._delayed: list[tuple[float, int, Job]] = []
        self._keys: dict[str, float] = {}
        self._dead: deque[dict[str, Any]] = deque(maxlen=DEAD_LETTER_MAX)
        self._in_flight: dict[str, Job] = {}
        self._seq = itertools.count()

    async def enqueue(
        self,
        name: str,
        payload: dict[str, Any],
        job_key: str | None = None,
        delay_seconds: float = 0,
        release_key: bool = False,
    ) -> str | None:
        now = self._clock()
        if job_key is not None:
            self._purge_keys(now)
            expires_at = self._keys.get(job_key)
            if expires_at is not None and expires_at > now:
                logger.debug("Duplicate job collapsed", stage=Stage.QUEUE.value, job_key=job_key)
                return None
            self._keys[job_key] = now + self._key_retention

        job = Job(
            id=uuid.uuid4().hex,
            name=name,
            payload=payload,
            job_key=job_key,
            enqueued_at=now,
            release_key=release_key,
        )
        self._schedule(job, now + delay_seconds if delay_seconds > 0 else None)
        return job.id

    def _purge_keys(self, now: float) -> None:
        expired = [key for key, expires_at in self._keys.items() if expires_at <= now]
        for key in expired:
            del self._keys[key]

    def _settle(self, job: Job) -> None:
        self._in_flight.pop(job.id, None)
        if job.release_key and job.job_key is not None:
            self._keys.pop(job.job_key, None)

    def _schedule(self, job: Job, due_at: float | None) -> None:
        if due_at is None:
            self._ready.append(job)
        else:
            heapq.heappush(self._delayed, (due_at, next(self._seq), job))

    def _promote_due(self) -> None:
        now = self._clock()
        while self._delayed and self._delayed[0][0] <= now:
            _, _, job = heapq.heappop(self._delayed)
            self._ready.append(job)

    async def reserve(self) -> Job | None:
        self._promote_due()
        if not self._ready:
            return None
        job = self._ready.popleft()
        self._in_flight[job.id] = job
        return job

    async def ack(self, job: Job) -> None:
        self._settle(job)

    async def retry(self, job: Job, delay_seconds: float) -> None:
        self._in_flight.pop(job.id, None)
        job.attempts_made += 1
        self._schedule(job, self._clock() + delay_seconds)

    async def dead_letter(self, job: Job, reason: str) -> None:
        self._settle(job)
        self._dead.append({
            "id": job.id,
            "name": job.name,
            "payload": job.payload,
            "reason": reason,
            "failed_at": self._clock(),
        })

    async def depth(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for job in itertools.chain(self._ready, (entry[2] for entry in self._delayed)):
            counts[job.name] = counts.get(job.name, 0) + 1
        return counts

    async def dead_letters(self, limit: int = 50) -> list[dict[str, Any]]:
        return list(reversed(self._dead))[:limit]

    def scheduled(self) -> list[tuple[float, Job]]:
        """Delayed jobs ordered by due time."""
        return [(due, job) for due, _, job in sorted(self._delayed)]

    async def close(self) -> None:
        return None
