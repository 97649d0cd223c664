"""
Queue Job Contracts

One explicit payload model per job name, validated at the queue boundary so a
malformed payload never reaches a handler.

| Job name                  | Payload                                   | Idempotency key                  |
|---------------------------|-------------------------------------------|----------------------------------|
| webhook.dispatch          | {userId, event, data}                     | none (always runs)               |
| webhook.deliver           | {deliveryId, webhookId, userId, attempt}  | webhook-{deliveryId}-{attempt}   |
| aggregation.updateMonthly | {userId, year, month}                     | agg-{userId}-{year}-{month}      |

Payloads travel in camelCase; Python code uses the snake_case field names.

Author: Platform Team
Date: 2025-12-10
"""

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ledger_resilience.core.config.constants import JobName
from ledger_resilience.core.exceptions import JobValidationError, UnknownJobError


class JobPayload(BaseModel):
    """Base for job payloads: camelCase on the wire, strict about required fields."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    JOB_NAME: ClassVar[str] = ""
    # Debounce keys are freed once the job settles instead of at retention.
    RELEASE_KEY_ON_ACK: ClassVar[bool] = False

    def job_key(self) -> str | None:
        return None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class WebhookDispatchJob(JobPayload):
    JOB_NAME: ClassVar[str] = JobName.WEBHOOK_DISPATCH.value

    user_id: str = Field(min_length=1)
    event: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class WebhookDeliverJob(JobPayload):
    """
    Retry of one delivery. `attempt` is the number of attempts already made
    when the retry was scheduled; a job whose attempt no longer matches the
    delivery row is stale.
    """

    JOB_NAME: ClassVar[str] = JobName.WEBHOOK_DELIVER.value

    delivery_id: str = Field(min_length=1)
    webhook_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    attempt: int = Field(ge=0)

    def job_key(self) -> str:
        return f"webhook-{self.delivery_id}-{self.attempt}"


class AggregationUpdateJob(JobPayload):
    JOB_NAME: ClassVar[str] = JobName.AGGREGATION_UPDATE_MONTHLY.value
    RELEASE_KEY_ON_ACK: ClassVar[bool] = True

    user_id: str = Field(min_length=1)
    year: int = Field(ge=1900, le=9999)
    month: int = Field(ge=1, le=12)

    def job_key(self) -> str:
        return f"agg-{self.user_id}-{self.year}-{self.month}"


JOB_MODELS: dict[str, type[JobPayload]] = {
    JobName.WEBHOOK_DISPATCH.value: WebhookDispatchJob,
    JobName.WEBHOOK_DELIVER.value: WebhookDeliverJob,
    JobName.AGGREGATION_UPDATE_MONTHLY.value: AggregationUpdateJob,
}


def parse_job(
    name: str,
    payload: dict[str, Any],
    models: dict[str, type[JobPayload]] | None = None,
) -> JobPayload:
    """
    Validate a raw payload against the contract of `name`.

    Raises:
        UnknownJobError: No contract for this job name
        JobValidationError: Payload does not satisfy the contract
    """
    model = (JOB_MODELS if models is None else models).get(name)
    if model is None:
        raise UnknownJobError(f"Unknown job name: {name}", details={"job_name": name})
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise JobValidationError(
            f"Malformed {name} payload",
            details={"job_name": name, "errors": e.errors(include_url=False, include_context=False)},
        ) from e
