"""
Unit Tests for Webhook Management
"""

import pytest

from ledger_resilience.core.config.constants import CircuitState, DeliveryStatus
from ledger_resilience.core.exceptions import (
    InvalidWebhookEventError,
    WebhookError,
    WebhookLimitError,
    WebhookNotFoundError,
    WebhookUrlError,
)
from ledger_resilience.webhooks.service import WebhookService

HOST = "hooks.example.com"
URL = f"https://{HOST}/ledger"


@pytest.fixture
def service(webhook_store, attempter, breaker):
    return WebhookService(webhook_store, attempter, breaker, max_per_user=2)


@pytest.mark.unit
class TestRegistration:
    @pytest.mark.asyncio
    async def test_register(self, service):
        webhook = await service.register("user_1", URL, ["invoice.paid", "invoice.paid"], "Books")

        assert webhook.secret.startswith("whsec_")
        assert webhook.events == ["invoice.paid"]
        assert webhook.description == "Books"
        assert webhook.is_active

    @pytest.mark.asyncio
    async def test_rejects_internal_url(self, service):
        with pytest.raises(WebhookUrlError):
            await service.register("user_1", "http://10.1.2.3/hook", ["invoice.paid"])

    @pytest.mark.asyncio
    async def test_rejects_unknown_events(self, service):
        with pytest.raises(InvalidWebhookEventError):
            await service.register("user_1", URL, ["invoice.exploded"])

    @pytest.mark.asyncio
    async def test_https_required_in_production(self, webhook_store, attempter, breaker):
        strict = WebhookService(webhook_store, attempter, breaker, require_https=True)
        with pytest.raises(WebhookUrlError):
            await strict.register("user_1", f"http://{HOST}/", ["invoice.paid"])

    @pytest.mark.asyncio
    async def test_active_limit(self, service):
        first = await service.register("user_1", URL, ["invoice.paid"])
        await service.register("user_1", URL, ["invoice.paid"])

        with pytest.raises(WebhookLimitError):
            await service.register("user_1", URL, ["invoice.paid"])

        await service.deactivate("user_1", first.id)
        await service.register("user_1", URL, ["invoice.paid"])

    @pytest.mark.asyncio
    async def test_reactivation_respects_limit(self, service):
        first = await service.register("user_1", URL, ["invoice.paid"])
        await service.deactivate("user_1", first.id)
        await service.register("user_1", URL, ["invoice.paid"])
        await service.register("user_1", URL, ["invoice.paid"])

        with pytest.raises(WebhookLimitError):
            await service.update("user_1", first.id, is_active=True)


@pytest.mark.unit
class TestManagement:
    @pytest.mark.asyncio
    async def test_other_users_cannot_see_webhook(self, service):
        webhook = await service.register("user_1", URL, ["invoice.paid"])

        with pytest.raises(WebhookNotFoundError):
            await service.get("user_2", webhook.id)
        with pytest.raises(WebhookNotFoundError):
            await service.deactivate("user_2", webhook.id)
        assert await service.list_webhooks("user_2") == []

    @pytest.mark.asyncio
    async def test_update(self, service):
        webhook = await service.register("user_1", URL, ["invoice.paid"])

        updated = await service.update(
            "user_1", webhook.id, events=["bill.paid"], description="Bills"
        )

        assert updated.events == ["bill.paid"]
        assert updated.description == "Bills"
        assert updated.url == URL

    @pytest.mark.asyncio
    async def test_update_without_changes_returns_current(self, service):
        webhook = await service.register("user_1", URL, ["invoice.paid"])
        assert (await service.update("user_1", webhook.id)).id == webhook.id

    @pytest.mark.asyncio
    async def test_rotate_secret(self, service):
        webhook = await service.register("user_1", URL, ["invoice.paid"])
        rotated = await service.rotate_secret("user_1", webhook.id)

        assert rotated.secret != webhook.secret
        assert rotated.secret.startswith("whsec_")


@pytest.mark.unit
class TestDeliveryOperations:
    @pytest.mark.asyncio
    async def test_send_test(self, service, endpoints):
        webhook = await service.register("user_1", URL, ["bill.paid"])

        delivery = await service.send_test("user_1", webhook.id)

        assert delivery.status == DeliveryStatus.SUCCESS
        assert delivery.event == "invoice.created"
        assert delivery.payload["data"]["id"] == "test_invoice_123"
        assert len(endpoints.requests) == 1

    @pytest.mark.asyncio
    async def test_resend_failed_delivery(self, service, webhook_store, endpoints):
        webhook = await service.register("user_1", URL, ["invoice.paid"])
        endpoints.responses[HOST] = 500
        failed = await service.send_test("user_1", webhook.id)
        failed.status = DeliveryStatus.FAILED
        await webhook_store.update_delivery(failed)
        endpoints.responses[HOST] = 200

        resent = await service.resend("user_1", webhook.id, failed.id)

        assert resent.id != failed.id
        assert resent.event_id == failed.event_id
        assert resent.status == DeliveryStatus.SUCCESS
        assert resent.attempts == 1

    @pytest.mark.asyncio
    async def test_resend_only_failed(self, service):
        webhook = await service.register("user_1", URL, ["invoice.paid"])
        delivered = await service.send_test("user_1", webhook.id)

        with pytest.raises(WebhookError) as exc_info:
            await service.resend("user_1", webhook.id, delivered.id)
        assert exc_info.value.details["status"] == "success"

    @pytest.mark.asyncio
    async def test_resend_delivery_of_other_webhook(self, service):
        first = await service.register("user_1", URL, ["invoice.paid"])
        second = await service.register("user_1", URL, ["invoice.paid"])
        delivery = await service.send_test("user_1", first.id)

        with pytest.raises(WebhookNotFoundError):
            await service.resend("user_1", second.id, delivery.id)

    @pytest.mark.asyncio
    async def test_deliveries_and_stats(self, service, endpoints):
        webhook = await service.register("user_1", URL, ["invoice.paid"])
        await service.send_test("user_1", webhook.id)
        endpoints.responses[HOST] = 502
        await service.send_test("user_1", webhook.id)

        retrying = await service.deliveries("user_1", webhook.id, status=DeliveryStatus.RETRYING)
        stats = await service.stats("user_1", webhook.id)

        assert len(retrying) == 1
        assert (stats.total, stats.success, stats.pending) == (2, 1, 1)

    @pytest.mark.asyncio
    async def test_circuit_status(self, service):
        webhook = await service.register("user_1", URL, ["invoice.paid"])
        snapshot = await service.circuit_status("user_1", webhook.id)

        assert snapshot.identifier == f"webhook:{webhook.id}"
        assert snapshot.state == CircuitState.CLOSED
