"""
Webhook Trigger

Entry point for business code: after an invoice, payment, customer (etc.)
changes, call `trigger` and carry on. The event is queued as a
`webhook.dispatch` job; the caller gets an outcome value back and is never
failed or blocked by webhook problems.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from ledger_resilience.core.config.constants import Stage
from ledger_resilience.core.exceptions import InvalidWebhookEventError, QueueError
from ledger_resilience.core.logging.logger import get_logger, log_stage
from ledger_resilience.infrastructure.message_queue.producer import JobProducer
from ledger_resilience.webhooks.events import ensure_valid_event

logger = get_logger(__name__)


@dataclass(frozen=True)
class TriggerOutcome:
    event: str
    queued: bool
    job_id: str | None = None
    error: str | None = None


class WebhookTrigger:
    def __init__(self, producer: JobProducer):
        self._producer = producer

    async def trigger(self, user_id: str, event: str, data: dict[str, Any]) -> TriggerOutcome:
        try:
            ensure_valid_event(event)
            job_id = await self._producer.dispatch_webhook_event(user_id, event, data)
        except (InvalidWebhookEventError, QueueError) as e:
            log_stage(
                logger, Stage.EVENT_DISPATCH, "Webhook event not queued",
                level="warning", user_id=user_id, event_type=event, error=e.message,
            )
            return TriggerOutcome(event=event, queued=False, error=e.message)

        return TriggerOutcome(event=event, queued=True, job_id=job_id)

    async def trigger_resource(
        self, user_id: str, resource: str, action: str, obj: dict[str, Any]
    ) -> TriggerOutcome:
        """trigger_resource(uid, "invoice", "paid", invoice) -> "invoice.paid"."""
        return await self.trigger(user_id, f"{resource}.{action}", obj)

    async def trigger_many(
        self, user_id: str, event: str, items: Iterable[dict[str, Any]]
    ) -> list[TriggerOutcome]:
        """One event per item, e.g. after a bulk import. Items are independent."""
        return [await self.trigger(user_id, event, item) for item in items]
