"""
Redis Job Queue

Architecture:
    RedisJobQueue (Public API)
        ├── JobSerializer (orjson job envelopes)
        └── Redis keys under one prefix:
              {prefix}:ready        LIST  job ids ready to run
              {prefix}:delayed      ZSET  job id -> due time (epoch seconds)
              {prefix}:processing   LIST  job ids reserved by a worker
              {prefix}:data:{id}    STR   job envelope
              {prefix}:key:{key}    STR   idempotency key (SET NX EX)
              {prefix}:depth        HASH  job name -> queued count
              {prefix}:dead         LIST  dead-letter envelopes (newest first)

Guarantees:
    - at-least-once: a reserved job stays in `processing` until acked; jobs
      orphaned by a crashed worker are moved back by `requeue_orphans()`
    - idempotency: a job key is claimed with SET NX and kept for the retention
      period (or until the job settles, for `release_key` jobs), so
      re-submitting the same key collapses into the first job; a claim whose
      job never got stored is released again
    - delayed jobs are promoted on reserve; ZREM decides which worker wins

Author: Platform Team
Date: 2025-12-10
"""

import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import orjson
import redis.asyncio as redis
from redis.exceptions import RedisError

from ledger_resilience.core.config.constants import DEAD_LETTER_MAX, REDIS_KEY_QUEUE, Stage
from ledger_resilience.core.exceptions import QueueError
from ledger_resilience.core.interfaces.job_queue import Job
from ledger_resilience.core.logging.logger import get_logger

logger = get_logger(__name__)
PROMOTE_BATCH = 100


class JobSerializer:
    """Converts Job records to and from orjson envelopes."""

    @staticmethod
    def serialize(job: Job) -> str:
        return orjson.dumps({
            "id": job.id,
            "name": job.name,
            "payload": job.payload,
            "job_key": job.job_key,
            "attempts_made": job.attempts_made,
            "enqueued_at": job.enqueued_at,
            "release_key": job.release_key,
        }).decode()

    @staticmethod
    def deserialize(raw: str) -> Job:
        data = orjson.loads(raw)
        return Job(
            id=data["id"],
            name=data["name"],
            payload=data.get("payload") or {},
            job_key=data.get("job_key"),
            attempts_made=int(data.get("attempts_made", 0)),
            enqueued_at=float(data.get("enqueued_at", 0.0)),
            release_key=bool(data.get("release_key", False)),
        )


@contextmanager
def _queue_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except RedisError as e:
        raise QueueError.from_exception(e, operation=operation) from e


class RedisJobQueue:
    """
    Durable JobQueue on Redis.

    STAGE-Q: Job queue
    """

    kind = "redis"

    def __init__(
        self,
        client: redis.Redis,
        prefix: str = REDIS_KEY_QUEUE,
        key_retention_seconds: int = 86_400,
        clock: Callable[[], float] = time.time,
        serializer: JobSerializer | None = None,
    ):
        self._redis = client
        self._prefix = prefix
        self._key_retention = key_retention_seconds
        self._clock = clock
        self._serializer = serializer or JobSerializer()

        self._ready_key = f"{prefix}:ready"
        self._delayed_key = f"{prefix}:delayed"
        self._processing_key = f"{prefix}:processing"
        self._depth_key = f"{prefix}:depth"
        self._dead_key = f"{prefix}:dead"

    def _data_key(self, job_id: str) -> str:
        return f"{self._prefix}:data:{job_id}"

    def _idempotency_key(self, job_key: str) -> str:
        return f"{self._prefix}:key:{job_key}"

    async def enqueue(
        self,
        name: str,
        payload: dict[str, Any],
        job_key: str | None = None,
        delay_seconds: float = 0,
        release_key: bool = False,
    ) -> str | None:
        now = self._clock()
        job = Job(
            id=uuid.uuid4().hex,
            name=name,
            payload=payload,
            job_key=job_key,
            enqueued_at=now,
            release_key=release_key,
        )

        with _queue_errors("enqueue"):
            if job_key is not None:
                claimed = await self._redis.set(
                    self._idempotency_key(job_key), job.id, nx=True, ex=self._key_retention
                )
                if not claimed:
                    logger.debug("Duplicate job collapsed", stage=Stage.QUEUE.value, job_key=job_key)
                    return None

            try:
                async with self._redis.pipeline(transaction=True) as pipe:
                    pipe.set(self._data_key(job.id), self._serializer.serialize(job))
                    if delay_seconds > 0:
                        pipe.zadd(self._delayed_key, {job.id: now + delay_seconds})
                    else:
                        pipe.lpush(self._ready_key, job.id)
                    pipe.hincrby(self._depth_key, name, 1)
                    await pipe.execute()
            except RedisError:
                if job_key is not None:
                    await self._release_claim(job_key)
                raise

        return job.id

    async def _release_claim(self, job_key: str) -> None:
        try:
            await self._redis.delete(self._idempotency_key(job_key))
        except RedisError as e:
            logger.warning(
                "Idempotency key not released after failed enqueue",
                stage=Stage.QUEUE.value, job_key=job_key, error=str(e),
            )

    def _release_on_settle(self, pipe, job: Job) -> None:
        if job.release_key and job.job_key is not None:
            pipe.delete(self._idempotency_key(job.job_key))

    async def _promote_due(self) -> None:
        due = await self._redis.zrangebyscore(
            self._delayed_key, 0, self._clock(), start=0, num=PROMOTE_BATCH
        )
        for job_id in due:
            if await self._redis.zrem(self._delayed_key, job_id):
                await self._redis.lpush(self._ready_key, job_id)

    async def reserve(self) -> Job | None:
        with _queue_errors("reserve"):
            await self._promote_due()
            job_id = await self._redis.lmove(self._ready_key, self._processing_key, "RIGHT", "LEFT")
            if job_id is None:
                return None

            raw = await self._redis.get(self._data_key(job_id))
            if raw is None:
                await self._redis.lrem(self._processing_key, 1, job_id)
                logger.warning("Job envelope missing, dropped", stage=Stage.QUEUE.value, job_id=job_id)
                return None

        return self._serializer.deserialize(raw)

    async def ack(self, job: Job) -> None:
        with _queue_errors("ack"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.lrem(self._processing_key, 1, job.id)
                pipe.delete(self._data_key(job.id))
                pipe.hincrby(self._depth_key, job.name, -1)
                self._release_on_settle(pipe, job)
                await pipe.execute()

    async def retry(self, job: Job, delay_seconds: float) -> None:
        job.attempts_made += 1
        with _queue_errors("retry"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(self._data_key(job.id), self._serializer.serialize(job))
                pipe.lrem(self._processing_key, 1, job.id)
                pipe.zadd(self._delayed_key, {job.id: self._clock() + delay_seconds})
                await pipe.execute()

    async def dead_letter(self, job: Job, reason: str) -> None:
        envelope = orjson.dumps({
            "id": job.id,
            "name": job.name,
            "payload": job.payload,
            "reason": reason,
            "failed_at": self._clock(),
        }).decode()
        with _queue_errors("dead_letter"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.lrem(self._processing_key, 1, job.id)
                pipe.delete(self._data_key(job.id))
                pipe.lpush(self._dead_key, envelope)
                pipe.ltrim(self._dead_key, 0, DEAD_LETTER_MAX - 1)
                self._release_on_settle(pipe, job)
                pipe.hincrby(self._depth_key, job.name, -1)
                await pipe.execute()

    async def depth(self) -> dict[str, int]:
        with _queue_errors("depth"):
            raw = await self._redis.hgetall(self._depth_key)
        return {name: max(0, int(count)) for name, count in raw.items()}

    async def dead_letters(self, limit: int = 50) -> list[dict[str, Any]]:
        with _queue_errors("dead_letters"):
            raw = await self._redis.lrange(self._dead_key, 0, limit - 1)
        return [orjson.loads(item) for item in raw]

    async def requeue_orphans(self) -> int:
        """Move jobs left in `processing` by a dead worker back to `ready`."""
        moved = 0
        with _queue_errors("requeue_orphans"):
            while await self._redis.lmove(self._processing_key, self._ready_key, "RIGHT", "LEFT"):
                moved += 1
        if moved:
            logger.warning("Requeued orphaned jobs", stage=Stage.QUEUE.value, count=moved)
        return moved

    async def close(self) -> None:
        return None
