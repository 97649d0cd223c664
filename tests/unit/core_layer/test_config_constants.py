"""
Unit Tests for Configuration Constants

Enum values are part of the wire format (log fields, delivery rows, job
names), so they are pinned here.
"""

import pytest

from ledger_resilience.core.config.constants import (
    HEADER_RATE_LIMIT,
    HEADER_RATE_REMAINING,
    HEADER_RATE_RESET,
    HEADER_RETRY_AFTER,
    SIGNATURE_PREFIX,
    WEBHOOK_SECRET_PREFIX,
    CircuitState,
    DeliveryStatus,
    JobName,
    Stage,
)


@pytest.mark.unit
class TestStageConstants:
    def test_stage_values_are_unique(self):
        values = [stage.value for stage in Stage]
        assert len(set(values)) == len(values)

    def test_sequenced_stages_follow_format(self):
        sequenced = [s.value for s in Stage if s.value[0].isdigit()]

        assert sequenced == sorted(sequenced)
        for value in sequenced:
            number, _, name = value.partition("_")
            assert "." in number
            assert name.isupper()

    def test_stage_is_str(self):
        assert Stage.WEBHOOK_DELIVERY == "4.0_WEBHOOK_DELIVERY"


@pytest.mark.unit
class TestEnums:
    def test_circuit_states(self):
        assert [s.value for s in CircuitState] == ["CLOSED", "OPEN", "HALF_OPEN"]

    def test_terminal_delivery_statuses(self):
        assert DeliveryStatus("success") is DeliveryStatus.SUCCESS
        assert DeliveryStatus("failed") is DeliveryStatus.FAILED
        assert {s.value for s in DeliveryStatus} == {"pending", "success", "retrying", "failed"}

    def test_job_names(self):
        assert JobName.WEBHOOK_DISPATCH.value == "webhook.dispatch"
        assert JobName.WEBHOOK_DELIVER.value == "webhook.deliver"
        assert JobName.AGGREGATION_UPDATE_MONTHLY.value == "aggregation.updateMonthly"


@pytest.mark.unit
class TestHeaderConstants:
    def test_rate_limit_headers(self):
        assert (HEADER_RATE_LIMIT, HEADER_RATE_REMAINING, HEADER_RATE_RESET) == (
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        )
        assert HEADER_RETRY_AFTER == "Retry-After"

    def test_signing_prefixes(self):
        assert SIGNATURE_PREFIX == "sha256="
        assert WEBHOOK_SECRET_PREFIX == "whsec_"
