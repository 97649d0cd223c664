"""
Job Producer

Typed submission helpers. Every payload is built from its contract model, so
producers cannot enqueue a shape the worker would reject.
"""

from ledger_resilience.core.config.constants import Stage
from ledger_resilience.core.interfaces.job_queue import JobQueue
from ledger_resilience.core.logging.logger import get_logger
from ledger_resilience.infrastructure.message_queue.jobs import (
    AggregationUpdateJob,
    JobPayload,
    WebhookDeliverJob,
    WebhookDispatchJob,
)

logger = get_logger(__name__)


class JobProducer:
    def __init__(self, queue: JobQueue, aggregation_debounce_seconds: float = 5):
        self._queue = queue
        self._aggregation_debounce = aggregation_debounce_seconds

    @property
    def queue(self) -> JobQueue:
        return self._queue

    async def submit(self, job: JobPayload, delay_seconds: float = 0) -> str | None:
        job_id = await self._queue.enqueue(
            job.JOB_NAME,
            job.to_wire(),
            job_key=job.job_key(),
            delay_seconds=delay_seconds,
            release_key=job.RELEASE_KEY_ON_ACK,
        )
        logger.debug(
            "Job submitted",
            stage=Stage.QUEUE.value,
            job_name=job.JOB_NAME,
            job_id=job_id,
            duplicate=job_id is None,
            delay_seconds=delay_seconds,
        )
        return job_id

    async def dispatch_webhook_event(self, user_id: str, event: str, data: dict) -> str | None:
        return await self.submit(WebhookDispatchJob(user_id=user_id, event=event, data=data))

    async def schedule_delivery_retry(
        self,
        delivery_id: str,
        webhook_id: str,
        user_id: str,
        attempt: int,
        delay_seconds: float,
    ) -> str | None:
        job = WebhookDeliverJob(
            delivery_id=delivery_id, webhook_id=webhook_id, user_id=user_id, attempt=attempt
        )
        return await self.submit(job, delay_seconds=max(0.0, delay_seconds))

    async def queue_aggregation_update(self, user_id: str, year: int, month: int) -> str | None:
        """Debounced: bursts of changes to one month collapse into one job."""
        job = AggregationUpdateJob(user_id=user_id, year=year, month=month)
        return await self.submit(job, delay_seconds=self._aggregation_debounce)
