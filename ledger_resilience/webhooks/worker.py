#!/usr/bin/env python3
"""
Delivery Worker

Consumer side of the job queue.

Architecture:
    DeliveryWorker.run()            (consumer loop, stoppable)
        ├── asyncio.Semaphore       (at most `concurrency` jobs in flight)
        ├── SlidingThrottle         (at most `throttle_max` job starts per window)
        ├── process_job()           (validate -> handler -> ack / retry / dead-letter)
        │     ├── webhook.dispatch  -> EventDispatcher.dispatch
        │     ├── webhook.deliver   -> DeliveryAttempter.attempt_scheduled
        │     └── registered extras (e.g. aggregation.updateMonthly)
        └── sweep_pending_retries() (re-enqueue due deliveries from the store)

Failure handling:
    - malformed or unknown job   -> dead-letter immediately, never retried
    - handler raised             -> queue-level retry with back-off, then dead-letter
    - delivery failures          -> absorbed into the delivery record by the attempter;
                                    they are not job failures

Backpressure is applied here, on the consumer side, regardless of how fast
producers enqueue.

Author: Platform Team
Date: 2025-12-12
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from ledger_resilience.core.config.constants import Stage
from ledger_resilience.core.exceptions import (
    InvalidWebhookEventError,
    JobValidationError,
    UnknownJobError,
)
from ledger_resilience.core.interfaces.job_queue import Job, JobQueue
from ledger_resilience.core.logging.logger import (
    clear_correlation_id,
    get_logger,
    log_stage,
    set_correlation_id,
)
from ledger_resilience.infrastructure.message_queue.jobs import (
    JobPayload,
    WebhookDeliverJob,
    WebhookDispatchJob,
    parse_job,
)
from ledger_resilience.infrastructure.message_queue.producer import JobProducer
from ledger_resilience.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from ledger_resilience.webhooks.delivery import DeliveryAttempter
from ledger_resilience.webhooks.dispatcher import EventDispatcher
from ledger_resilience.webhooks.models import utcnow
from ledger_resilience.webhooks.store import WebhookStore

logger = get_logger(__name__)

JobHandler = Callable[[Any], Awaitable[None]]


class SlidingThrottle:
    """
    At most `max_events` acquisitions in any `window_seconds` interval.

    `acquire` waits until the oldest start in the window ages out.
    """

    def __init__(
        self,
        max_events: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._max_events = max_events
        self._window = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._starts: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._starts and now - self._starts[0] >= self._window:
            self._starts.popleft()

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                if len(self._starts) < self._max_events:
                    self._starts.append(now)
                    return
                await self._sleep(self._window - (now - self._starts[0]))

    def in_window(self) -> int:
        self._prune(self._clock())
        return len(self._starts)


class DeliveryWorker:
    """
    STAGE-W: Delivery worker

    Usage:
        worker = DeliveryWorker(queue, dispatcher, attempter, store, producer)
        await worker.start()
        ...
        await worker.stop()
    """

    def __init__(
        self,
        queue: JobQueue,
        dispatcher: EventDispatcher,
        attempter: DeliveryAttempter,
        store: WebhookStore,
        producer: JobProducer,
        concurrency: int = 10,
        throttle: SlidingThrottle | None = None,
        poll_interval_seconds: float = 0.5,
        error_backoff_seconds: float = 5.0,
        job_max_retries: int = 3,
        sweep_interval_seconds: float = 60.0,
        sweep_limit: int = 100,
        clock: Callable[[], datetime] = utcnow,
        metrics: MetricsCollector | None = None,
    ):
        self._queue = queue
        self._dispatcher = dispatcher
        self._attempter = attempter
        self._store = store
        self._producer = producer
        self._concurrency = concurrency
        self._semaphore = asyncio.Semaphore(concurrency)
        self._throttle = throttle if throttle is not None else SlidingThrottle(200, 60.0)
        self._poll_interval = poll_interval_seconds
        self._error_backoff = error_backoff_seconds
        self._job_max_retries = job_max_retries
        self._sweep_interval = sweep_interval_seconds
        self._sweep_limit = sweep_limit
        self._clock = clock
        self._metrics = metrics or get_metrics_collector()

        self._handlers: dict[str, tuple[type[JobPayload], JobHandler]] = {}
        self._stop_event = asyncio.Event()
        self._loop_task: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()
        self._last_sweep = 0.0

        self.register_handler(WebhookDispatchJob, self._handle_dispatch)
        self.register_handler(WebhookDeliverJob, self._handle_deliver)

    @classmethod
    def from_settings(cls, settings, queue, dispatcher, attempter, store, producer) -> "DeliveryWorker":
        cfg = settings.worker
        return cls(
            queue,
            dispatcher,
            attempter,
            store,
            producer,
            concurrency=cfg.WORKER_CONCURRENCY,
            throttle=SlidingThrottle(cfg.WORKER_THROTTLE_MAX, cfg.WORKER_THROTTLE_WINDOW_SECONDS),
            poll_interval_seconds=cfg.WORKER_POLL_INTERVAL_MS / 1000,
            error_backoff_seconds=cfg.WORKER_ERROR_BACKOFF_SECONDS,
            job_max_retries=cfg.WORKER_JOB_MAX_RETRIES,
            sweep_interval_seconds=cfg.WORKER_RETRY_SWEEP_INTERVAL_SECONDS,
            sweep_limit=cfg.WORKER_RETRY_SWEEP_LIMIT,
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def register_handler(self, model: type[JobPayload], handler: JobHandler) -> None:
        self._handlers[model.JOB_NAME] = (model, handler)

    @property
    def job_names(self) -> list[str]:
        return sorted(self._handlers)

    async def _handle_dispatch(self, job: WebhookDispatchJob) -> None:
        try:
            await self._dispatcher.dispatch(job.user_id, job.event, job.data)
        except InvalidWebhookEventError as e:
            raise JobValidationError(e.message, details=e.details) from e

    async def _handle_deliver(self, job: WebhookDeliverJob) -> None:
        await self._attempter.attempt_scheduled(job.delivery_id, job.attempt)

    # ------------------------------------------------------------------
    # Single job
    # ------------------------------------------------------------------

    async def process_job(self, job: Job) -> str:
        """
        Run one reserved job to completion and settle it with the queue.

        Returns the outcome: "completed", "retried" or "dead_lettered".
        """
        set_correlation_id(job.id)
        try:
            return await self._process(job)
        finally:
            clear_correlation_id()

    async def _process(self, job: Job) -> str:
        models = {name: model for name, (model, _) in self._handlers.items()}
        try:
            payload = parse_job(job.name, job.payload, models=models)
            _, handler = self._handlers[job.name]
            await handler(payload)
        except (JobValidationError, UnknownJobError) as e:
            return await self._reject(job, e)
        except Exception as e:
            return await self._handle_crash(job, e)

        await self._queue.ack(job)
        self._metrics.record_job(job.name, "completed")
        return "completed"

    async def _reject(self, job: Job, error: JobValidationError | UnknownJobError) -> str:
        await self._queue.dead_letter(job, error.message)
        self._metrics.record_job(job.name, "dead_lettered")
        log_stage(
            logger, Stage.WORKER, "Rejected malformed job",
            level="warning", job_id=job.id, job_name=job.name,
            error=error.message, errors=error.details.get("errors"),
        )
        return "dead_lettered"

    async def _handle_crash(self, job: Job, error: Exception) -> str:
        logger.exception(
            "Job handler failed",
            stage=Stage.WORKER.value,
            job_id=job.id,
            job_name=job.name,
            attempts_made=job.attempts_made,
        )
        if job.attempts_made < self._job_max_retries:
            await self._queue.retry(job, self._error_backoff * 2 ** job.attempts_made)
            self._metrics.record_job(job.name, "retried")
            return "retried"

        await self._queue.dead_letter(job, f"Handler failed: {error}")
        self._metrics.record_job(job.name, "dead_lettered")
        return "dead_lettered"

    # ------------------------------------------------------------------
    # Retry sweep and monitoring
    # ------------------------------------------------------------------

    async def sweep_pending_retries(self, limit: int | None = None) -> int:
        """
        Re-enqueue due pending/retrying deliveries.

        Covers retry jobs lost before they reached the queue. Idempotency keys
        make this safe to run at any time: a job that already exists for the
        same (delivery, attempt) collapses.
        """
        due = await self._store.find_pending_retries(self._clock(), limit or self._sweep_limit)
        queued = 0
        for delivery in due:
            job_id = await self._producer.schedule_delivery_retry(
                delivery_id=delivery.id,
                webhook_id=delivery.webhook_id,
                user_id=delivery.user_id,
                attempt=delivery.attempts,
                delay_seconds=0,
            )
            if job_id is not None:
                queued += 1

        if due:
            log_stage(
                logger, Stage.RETRY_SCHEDULING, "Swept pending retries",
                due=len(due), queued=queued,
            )
        return queued

    async def report_queue_depth(self) -> dict[str, int]:
        depth = await self._queue.depth()
        for name in set(self._handlers) | set(depth):
            self._metrics.record_queue_depth(name, depth.get(name, 0))
        return depth

    # ------------------------------------------------------------------
    # Consumer loop
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._loop_task = asyncio.create_task(self.run(), name="delivery-worker")

    async def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._loop_task is not None:
            try:
                await asyncio.wait_for(self._loop_task, timeout=timeout)
            except asyncio.TimeoutError:
                self._loop_task.cancel()
            self._loop_task = None

        if self._in_flight:
            _, pending = await asyncio.wait(self._in_flight, timeout=timeout)
            for task in pending:
                task.cancel()

        log_stage(logger, Stage.CLEANUP, "Delivery worker stopped")

    async def run(self) -> None:
        log_stage(
            logger, Stage.WORKER, "Delivery worker started",
            queue=self._queue.kind, concurrency=self._concurrency, jobs=self.job_names,
        )
        while not self._stop_event.is_set():
            try:
                await self._maintenance()
                job = await self._next_job()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log_stage(
                    logger, Stage.WORKER, "Worker loop error, backing off",
                    level="error", error=str(e), backoff_seconds=self._error_backoff,
                )
                await self._idle(self._error_backoff)
                continue

            if job is None:
                await self._idle(self._poll_interval)
                continue

            task = asyncio.create_task(self._execute(job))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)

    async def _maintenance(self) -> None:
        now = time.monotonic()
        if now - self._last_sweep < self._sweep_interval:
            return
        self._last_sweep = now
        await self.sweep_pending_retries()
        await self.report_queue_depth()

    async def _next_job(self) -> Job | None:
        await self._semaphore.acquire()
        try:
            job = await self._queue.reserve()
            if job is not None:
                await self._throttle.acquire()
        except BaseException:
            self._semaphore.release()
            raise

        if job is None:
            self._semaphore.release()
        return job

    async def _execute(self, job: Job) -> None:
        try:
            await self.process_job(job)
        except Exception as e:
            log_stage(
                logger, Stage.WORKER, "Job could not be settled",
                level="error", job_id=job.id, job_name=job.name, error=str(e),
            )
        finally:
            self._semaphore.release()

    async def _idle(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def drain(self, max_jobs: int | None = None) -> int:
        """
        Process ready jobs one by one until the queue has nothing due.

        For one-shot runs and tests; the long-running path is `run`.
        """
        processed = 0
        while max_jobs is None or processed < max_jobs:
            job = await self._queue.reserve()
            if job is None:
                break
            await self.process_job(job)
            processed += 1
        return processed
