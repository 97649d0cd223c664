"""
Event Dispatcher

Fans one domain event out to every active webhook of the user subscribed to
it. All subscribers receive the same payload, including the same event id,
so receivers can deduplicate.

Each webhook gets its own delivery record and its own immediate attempt. A
failure for one webhook is recorded on that webhook's outcome and never stops
the others.

Author: Platform Team
Date: 2025-12-11
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

from ledger_resilience.core.config.constants import DeliveryStatus, Stage
from ledger_resilience.core.logging.logger import get_logger, log_stage
from ledger_resilience.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from ledger_resilience.webhooks.delivery import DeliveryAttempter
from ledger_resilience.webhooks.events import ensure_valid_event
from ledger_resilience.webhooks.models import Webhook, WebhookDelivery, build_event_payload
from ledger_resilience.webhooks.store import WebhookStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class DeliveryOutcome:
    webhook_id: str
    delivery_id: str | None
    status: DeliveryStatus | None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "webhookId": self.webhook_id,
            "deliveryId": self.delivery_id,
            "status": self.status.value if self.status else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class DispatchResult:
    event: str
    event_id: str | None
    deliveries: tuple[DeliveryOutcome, ...] = field(default_factory=tuple)

    @property
    def delivered(self) -> int:
        return sum(1 for d in self.deliveries if d.status == DeliveryStatus.SUCCESS)

    @property
    def pending(self) -> int:
        return sum(
            1 for d in self.deliveries
            if d.status in (DeliveryStatus.PENDING, DeliveryStatus.RETRYING)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "eventId": self.event_id,
            "deliveries": [d.to_dict() for d in self.deliveries],
        }


class EventDispatcher:
    """
    STAGE-3: Event dispatch

    Usage:
        result = await dispatcher.dispatch("user_1", "invoice.paid", {"id": "inv_1"})
    """

    def __init__(
        self,
        store: WebhookStore,
        attempter: DeliveryAttempter,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._attempter = attempter
        self._metrics = metrics or get_metrics_collector()

    async def dispatch(self, user_id: str, event: str, data: dict[str, Any]) -> DispatchResult:
        """
        Raises:
            InvalidWebhookEventError: If `event` is not in the catalogue
        """
        ensure_valid_event(event)

        webhooks = await self._store.find_active_by_event(user_id, event)
        if not webhooks:
            log_stage(
                logger, Stage.EVENT_DISPATCH, "No subscribers for event",
                level="debug", user_id=user_id, event_type=event,
            )
            return DispatchResult(event=event, event_id=None)

        payload = build_event_payload(event, data)
        outcomes = await asyncio.gather(
            *(self._deliver_one(webhook, payload) for webhook in webhooks)
        )

        self._metrics.record_event_dispatched(event)
        log_stage(
            logger, Stage.EVENT_DISPATCH, "Event dispatched",
            user_id=user_id, event_type=event, event_id=payload["id"], webhooks=len(webhooks),
        )
        return DispatchResult(event=event, event_id=payload["id"], deliveries=tuple(outcomes))

    async def _deliver_one(self, webhook: Webhook, payload: dict[str, Any]) -> DeliveryOutcome:
        delivery_id = None
        try:
            delivery = await self._store.create_delivery(
                WebhookDelivery(
                    webhook_id=webhook.id,
                    user_id=webhook.user_id,
                    event=payload["type"],
                    event_id=payload["id"],
                    payload=payload,
                    max_attempts=self._attempter.retry_policy.max_attempts,
                )
            )
            delivery_id = delivery.id
            settled = await self._attempter.attempt(delivery, webhook)
        except Exception as e:
            logger.exception(
                "Dispatch to webhook failed",
                stage=Stage.EVENT_DISPATCH.value,
                webhook_id=webhook.id,
                delivery_id=delivery_id,
            )
            return DeliveryOutcome(
                webhook_id=webhook.id,
                delivery_id=delivery_id,
                status=None,
                error=str(e) or e.__class__.__name__,
            )

        return DeliveryOutcome(
            webhook_id=webhook.id,
            delivery_id=settled.id,
            status=settled.status,
            error=settled.error_message if settled.status != DeliveryStatus.SUCCESS else None,
        )
