"""
Webhook Records

Webhook registrations and their delivery history. The durable tables live
outside this package; these models are the shape every WebhookStore speaks.

Author: Platform Team
Date: 2025-12-09
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ledger_resilience.core.config.constants import EVENT_ID_PREFIX, DeliveryStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_z(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_event_id() -> str:
    return f"{EVENT_ID_PREFIX}{uuid.uuid4().hex}"


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Webhook(_Record):
    """
    A user's subscription of one URL to a set of event types.

    `secret` signs every delivery; it is shown to the owner only when the
    webhook is created or the secret rotated.
    """

    id: str = Field(default_factory=lambda: f"wh_{uuid.uuid4().hex}")
    user_id: str
    url: str
    secret: str
    events: list[str]
    description: str | None = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def subscribes_to(self, event: str) -> bool:
        return event in self.events

    def public_view(self, include_secret: bool = False) -> dict[str, Any]:
        exclude = None if include_secret else {"secret"}
        return self.model_dump(by_alias=True, mode="json", exclude=exclude)


class WebhookDelivery(_Record):
    """
    One event sent to one webhook, with the outcome of its latest attempt.

    Lifecycle: pending -> success | retrying -> ... -> success | failed.
    `success` and `failed` are terminal.
    """

    id: str = Field(default_factory=lambda: f"whd_{uuid.uuid4().hex}")
    webhook_id: str
    user_id: str
    event: str
    event_id: str
    payload: dict[str, Any]
    status: DeliveryStatus = DeliveryStatus.PENDING
    status_code: int | None = None
    response_body: str | None = None
    response_time_ms: int | None = None
    attempts: int = 0
    max_attempts: int = 5
    next_retry_at: datetime | None = None
    error_message: str | None = None
    delivered_at: datetime | None = None
    failed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in (DeliveryStatus.SUCCESS, DeliveryStatus.FAILED)

    @property
    def awaiting_attempt(self) -> bool:
        return self.status in (DeliveryStatus.PENDING, DeliveryStatus.RETRYING)

    def view(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def build_event_payload(
    event: str, data: dict[str, Any], event_id: str | None = None, created_at: datetime | None = None
) -> dict[str, Any]:
    """
    Canonical event body shared by every subscriber of one logical event.

    Key order is fixed (id, type, data, createdAt) so the serialized body, and
    therefore its signature, is stable.
    """
    return {
        "id": event_id or new_event_id(),
        "type": event,
        "data": data,
        "createdAt": isoformat_z(created_at or utcnow()),
    }
