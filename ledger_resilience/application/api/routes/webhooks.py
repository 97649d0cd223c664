"""
Webhook Management Routes

All routes act on the caller's own webhooks (X-User-ID). Domain errors raised
by WebhookService are mapped to status codes by the exception handlers in
`middleware.error_handler`.

The signing secret is returned only by create and rotate-secret.
"""

from fastapi import APIRouter, Query, Response
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ledger_resilience.application.api.dependencies import UserIdDep, WebhookServiceDep
from ledger_resilience.core.config.constants import DeliveryStatus
from ledger_resilience.webhooks.events import event_catalogue

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


# ============================================================================
# REQUEST MODELS
# ============================================================================


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class CreateWebhookRequest(_Body):
    url: str = Field(..., min_length=1, max_length=2048)
    events: list[str] = Field(..., min_length=1)
    description: str | None = Field(default=None, max_length=500)


class UpdateWebhookRequest(_Body):
    url: str | None = Field(default=None, min_length=1, max_length=2048)
    events: list[str] | None = Field(default=None, min_length=1)
    description: str | None = Field(default=None, max_length=500)
    is_active: bool | None = None


# ============================================================================
# ROUTES
# ============================================================================


@router.get("/events")
async def list_events():
    return {"events": event_catalogue()}


@router.post("", status_code=201)
async def create_webhook(body: CreateWebhookRequest, user_id: UserIdDep, service: WebhookServiceDep):
    webhook = await service.register(user_id, body.url, body.events, body.description)
    return {"webhook": webhook.public_view(include_secret=True)}


@router.get("")
async def list_webhooks(user_id: UserIdDep, service: WebhookServiceDep):
    webhooks = await service.list_webhooks(user_id)
    return {"webhooks": [w.public_view() for w in webhooks]}


@router.get("/{webhook_id}")
async def get_webhook(webhook_id: str, user_id: UserIdDep, service: WebhookServiceDep):
    webhook = await service.get(user_id, webhook_id)
    return {"webhook": webhook.public_view()}


@router.patch("/{webhook_id}")
async def update_webhook(
    webhook_id: str, body: UpdateWebhookRequest, user_id: UserIdDep, service: WebhookServiceDep
):
    webhook = await service.update(
        user_id,
        webhook_id,
        url=body.url,
        events=body.events,
        description=body.description,
        is_active=body.is_active,
    )
    return {"webhook": webhook.public_view()}


@router.delete("/{webhook_id}", status_code=204)
async def delete_webhook(webhook_id: str, user_id: UserIdDep, service: WebhookServiceDep):
    await service.deactivate(user_id, webhook_id)
    return Response(status_code=204)


@router.post("/{webhook_id}/rotate-secret")
async def rotate_secret(webhook_id: str, user_id: UserIdDep, service: WebhookServiceDep):
    webhook = await service.rotate_secret(user_id, webhook_id)
    return {"webhook": webhook.public_view(include_secret=True)}


@router.get("/{webhook_id}/deliveries")
async def list_deliveries(
    webhook_id: str,
    user_id: UserIdDep,
    service: WebhookServiceDep,
    status: DeliveryStatus | None = None,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    deliveries = await service.deliveries(user_id, webhook_id, status=status, limit=limit, offset=offset)
    return {
        "deliveries": [d.view() for d in deliveries],
        "limit": limit,
        "offset": offset,
    }


@router.get("/{webhook_id}/stats")
async def delivery_stats(webhook_id: str, user_id: UserIdDep, service: WebhookServiceDep):
    stats = await service.stats(user_id, webhook_id)
    return {"stats": stats.to_dict()}


@router.post("/{webhook_id}/deliveries/{delivery_id}/resend")
async def resend_delivery(
    webhook_id: str, delivery_id: str, user_id: UserIdDep, service: WebhookServiceDep
):
    delivery = await service.resend(user_id, webhook_id, delivery_id)
    return {"delivery": delivery.view()}


@router.post("/{webhook_id}/test")
async def send_test_event(webhook_id: str, user_id: UserIdDep, service: WebhookServiceDep):
    delivery = await service.send_test(user_id, webhook_id)
    return {"success": delivery.status == DeliveryStatus.SUCCESS, "delivery": delivery.view()}


@router.get("/{webhook_id}/circuit")
async def circuit_status(webhook_id: str, user_id: UserIdDep, service: WebhookServiceDep):
    snapshot = await service.circuit_status(user_id, webhook_id)
    return {"circuit": snapshot.to_dict()}
