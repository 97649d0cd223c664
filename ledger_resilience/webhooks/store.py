"""
Webhook Store

`WebhookStore` is the persistence contract for webhook registrations and
their delivery history. The production implementation lives with the rest of
the database layer; `InMemoryWebhookStore` is the reference implementation
used by tests and by single-process deployments.

Records handed out are copies: callers mutate their own copy and write it
back with `update_delivery`, the way a row fetched from a database behaves.

Author: Platform Team
Date: 2025-12-09
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from ledger_resilience.core.config.constants import DeliveryStatus
from ledger_resilience.webhooks.models import Webhook, WebhookDelivery, utcnow

_MUTABLE_WEBHOOK_FIELDS = frozenset({"url", "events", "description", "is_active"})


@dataclass(frozen=True)
class DeliveryStats:
    total: int
    success: int
    failed: int
    pending: int
    avg_response_time_ms: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "pending": self.pending,
            "avgResponseTimeMs": self.avg_response_time_ms,
        }


@runtime_checkable
class WebhookStore(Protocol):
    """Persistence contract for webhooks and deliveries."""

    async def create_webhook(self, webhook: Webhook) -> Webhook:
        ...

    async def get_webhook(self, webhook_id: str, user_id: str | None = None) -> Webhook | None:
        """Fetch a webhook; with `user_id`, only if that user owns it."""
        ...

    async def list_webhooks(self, user_id: str) -> list[Webhook]:
        ...

    async def update_webhook(self, webhook_id: str, user_id: str, **changes: Any) -> Webhook | None:
        ...

    async def deactivate_webhook(self, webhook_id: str, user_id: str) -> bool:
        ...

    async def rotate_secret(self, webhook_id: str, user_id: str, secret: str) -> Webhook | None:
        ...

    async def count_active(self, user_id: str) -> int:
        ...

    async def find_active_by_event(self, user_id: str, event: str) -> list[Webhook]:
        ...

    async def create_delivery(self, delivery: WebhookDelivery) -> WebhookDelivery:
        ...

    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        ...

    async def update_delivery(self, delivery: WebhookDelivery) -> WebhookDelivery:
        ...

    async def list_deliveries(
        self,
        webhook_id: str,
        status: DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WebhookDelivery]:
        """Newest first."""
        ...

    async def find_pending_retries(self, now: datetime, limit: int = 100) -> list[WebhookDelivery]:
        """pending/retrying deliveries whose next_retry_at is unset or due."""
        ...

    async def delivery_stats(self, webhook_id: str) -> DeliveryStats:
        ...


class InMemoryWebhookStore:
    def __init__(self):
        self._webhooks: dict[str, Webhook] = {}
        self._deliveries: dict[str, WebhookDelivery] = {}

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def create_webhook(self, webhook: Webhook) -> Webhook:
        self._webhooks[webhook.id] = webhook.model_copy(deep=True)
        return webhook.model_copy(deep=True)

    def _owned(self, webhook_id: str, user_id: str | None) -> Webhook | None:
        webhook = self._webhooks.get(webhook_id)
        if webhook is None or (user_id is not None and webhook.user_id != user_id):
            return None
        return webhook

    async def get_webhook(self, webhook_id: str, user_id: str | None = None) -> Webhook | None:
        webhook = self._owned(webhook_id, user_id)
        return webhook.model_copy(deep=True) if webhook else None

    async def list_webhooks(self, user_id: str) -> list[Webhook]:
        owned = [w for w in self._webhooks.values() if w.user_id == user_id]
        owned.sort(key=lambda w: w.created_at, reverse=True)
        return [w.model_copy(deep=True) for w in owned]

    async def update_webhook(self, webhook_id: str, user_id: str, **changes: Any) -> Webhook | None:
        webhook = self._owned(webhook_id, user_id)
        if webhook is None:
            return None
        unknown = set(changes) - _MUTABLE_WEBHOOK_FIELDS
        if unknown:
            raise ValueError(f"Cannot update webhook fields: {sorted(unknown)}")
        for name, value in changes.items():
            setattr(webhook, name, value)
        webhook.updated_at = utcnow()
        return webhook.model_copy(deep=True)

    async def deactivate_webhook(self, webhook_id: str, user_id: str) -> bool:
        webhook = self._owned(webhook_id, user_id)
        if webhook is None:
            return False
        webhook.is_active = False
        webhook.updated_at = utcnow()
        return True

    async def rotate_secret(self, webhook_id: str, user_id: str, secret: str) -> Webhook | None:
        webhook = self._owned(webhook_id, user_id)
        if webhook is None:
            return None
        webhook.secret = secret
        webhook.updated_at = utcnow()
        return webhook.model_copy(deep=True)

    async def count_active(self, user_id: str) -> int:
        return sum(1 for w in self._webhooks.values() if w.user_id == user_id and w.is_active)

    async def find_active_by_event(self, user_id: str, event: str) -> list[Webhook]:
        return [
            w.model_copy(deep=True)
            for w in self._webhooks.values()
            if w.user_id == user_id and w.is_active and w.subscribes_to(event)
        ]

    # ------------------------------------------------------------------
    # Deliveries
    # ------------------------------------------------------------------

    async def create_delivery(self, delivery: WebhookDelivery) -> WebhookDelivery:
        self._deliveries[delivery.id] = delivery.model_copy(deep=True)
        return delivery.model_copy(deep=True)

    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        delivery = self._deliveries.get(delivery_id)
        return delivery.model_copy(deep=True) if delivery else None

    async def update_delivery(self, delivery: WebhookDelivery) -> WebhookDelivery:
        if delivery.id not in self._deliveries:
            raise KeyError(delivery.id)
        self._deliveries[delivery.id] = delivery.model_copy(deep=True)
        return delivery.model_copy(deep=True)

    async def list_deliveries(
        self,
        webhook_id: str,
        status: DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WebhookDelivery]:
        rows = [
            d for d in self._deliveries.values()
            if d.webhook_id == webhook_id and (status is None or d.status == status)
        ]
        rows.sort(key=lambda d: d.created_at, reverse=True)
        return [d.model_copy(deep=True) for d in rows[offset:offset + limit]]

    async def find_pending_retries(self, now: datetime, limit: int = 100) -> list[WebhookDelivery]:
        due = [
            d for d in self._deliveries.values()
            if d.awaiting_attempt and (d.next_retry_at is None or d.next_retry_at <= now)
        ]
        due.sort(key=lambda d: d.next_retry_at or d.created_at)
        return [d.model_copy(deep=True) for d in due[:limit]]

    async def delivery_stats(self, webhook_id: str) -> DeliveryStats:
        rows = [d for d in self._deliveries.values() if d.webhook_id == webhook_id]
        timings = [d.response_time_ms for d in rows if d.response_time_ms is not None]
        return DeliveryStats(
            total=len(rows),
            success=sum(1 for d in rows if d.status == DeliveryStatus.SUCCESS),
            failed=sum(1 for d in rows if d.status == DeliveryStatus.FAILED),
            pending=sum(1 for d in rows if d.awaiting_attempt),
            avg_response_time_ms=round(sum(timings) / len(timings), 2) if timings else None,
        )
