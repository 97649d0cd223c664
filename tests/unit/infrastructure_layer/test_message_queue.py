"""
Unit Tests for the Job Queues and Job Contracts

Both JobQueue strategies run the same contract tests; Redis-specific
behavior (key layout, orphan recovery, outage translation) is tested on its
own against the in-memory Redis stub.
"""

import pytest

from redis.exceptions import ConnectionError as RedisConnectionError

from ledger_resilience.core.config.constants import DEAD_LETTER_MAX, JobName
from ledger_resilience.core.exceptions import JobValidationError, QueueError, UnknownJobError
from ledger_resilience.core.interfaces.job_queue import Job, JobQueue
from ledger_resilience.infrastructure.message_queue.factory import build_job_queue
from ledger_resilience.infrastructure.message_queue.jobs import (
    AggregationUpdateJob,
    WebhookDeliverJob,
    WebhookDispatchJob,
    parse_job,
)
from ledger_resilience.infrastructure.message_queue.memory_queue import InMemoryJobQueue
from ledger_resilience.infrastructure.message_queue.producer import JobProducer
from ledger_resilience.infrastructure.message_queue.redis_queue import JobSerializer, RedisJobQueue


@pytest.fixture(params=["memory", "redis"])
def any_queue(request, clock, fake_redis):
    if request.param == "memory":
        return InMemoryJobQueue(clock=clock, key_retention_seconds=3600)
    return RedisJobQueue(fake_redis, prefix="jobs", key_retention_seconds=3600, clock=clock)


@pytest.fixture
def redis_queue(fake_redis, clock):
    return RedisJobQueue(fake_redis, prefix="jobs", key_retention_seconds=3600, clock=clock)


@pytest.mark.unit
class TestQueueContract:
    def test_satisfies_protocol(self, any_queue):
        assert isinstance(any_queue, JobQueue)

    @pytest.mark.asyncio
    async def test_fifo_order(self, any_queue):
        first = await any_queue.enqueue("webhook.dispatch", {"n": 1})
        second = await any_queue.enqueue("webhook.dispatch", {"n": 2})

        assert (await any_queue.reserve()).id == first
        assert (await any_queue.reserve()).id == second
        assert await any_queue.reserve() is None

    @pytest.mark.asyncio
    async def test_reserved_job_carries_payload(self, any_queue):
        await any_queue.enqueue("webhook.deliver", {"deliveryId": "whd_1"}, job_key="webhook-whd_1-1")

        job = await any_queue.reserve()
        assert job.name == "webhook.deliver"
        assert job.payload == {"deliveryId": "whd_1"}
        assert job.job_key == "webhook-whd_1-1"
        assert job.attempts_made == 0

    @pytest.mark.asyncio
    async def test_duplicate_job_key_collapses(self, any_queue):
        assert await any_queue.enqueue("agg", {}, job_key="agg-u1-2025-3") is not None
        assert await any_queue.enqueue("agg", {}, job_key="agg-u1-2025-3") is None

        await any_queue.reserve()
        assert await any_queue.reserve() is None

    @pytest.mark.asyncio
    async def test_job_key_expires_after_retention(self, any_queue, clock):
        await any_queue.enqueue("agg", {}, job_key="agg-u1-2025-3")
        clock.advance(3601)
        assert await any_queue.enqueue("agg", {}, job_key="agg-u1-2025-3") is not None

    @pytest.mark.asyncio
    async def test_delayed_job_not_ready_before_due(self, any_queue, clock):
        await any_queue.enqueue("webhook.deliver", {}, delay_seconds=60)

        clock.advance(59)
        assert await any_queue.reserve() is None

        clock.advance(1)
        assert await any_queue.reserve() is not None

    @pytest.mark.asyncio
    async def test_retry_increments_attempts_and_delays(self, any_queue, clock):
        await any_queue.enqueue("webhook.dispatch", {})
        job = await any_queue.reserve()

        await any_queue.retry(job, delay_seconds=10)
        assert await any_queue.reserve() is None

        clock.advance(10)
        again = await any_queue.reserve()
        assert again.id == job.id
        assert again.attempts_made == 1

    @pytest.mark.asyncio
    async def test_dead_letter_records_reason(self, any_queue):
        await any_queue.enqueue("webhook.deliver", {"deliveryId": "x"})
        job = await any_queue.reserve()

        await any_queue.dead_letter(job, "Malformed webhook.deliver payload")

        [dead] = await any_queue.dead_letters()
        assert dead["id"] == job.id
        assert dead["name"] == "webhook.deliver"
        assert dead["reason"] == "Malformed webhook.deliver payload"
        assert await any_queue.reserve() is None

    @pytest.mark.asyncio
    async def test_depth_per_job_name(self, any_queue):
        await any_queue.enqueue("webhook.dispatch", {})
        await any_queue.enqueue("webhook.dispatch", {})
        await any_queue.enqueue("webhook.deliver", {}, delay_seconds=60)

        assert await any_queue.depth() == {"webhook.dispatch": 2, "webhook.deliver": 1}

    @pytest.mark.asyncio
    async def test_ack_removes_job(self, any_queue):
        await any_queue.enqueue("webhook.dispatch", {})
        job = await any_queue.reserve()
        await any_queue.ack(job)

        assert (await any_queue.depth()).get("webhook.dispatch", 0) == 0

    @pytest.mark.asyncio
    async def test_ack_keeps_plain_job_key(self, any_queue):
        await any_queue.enqueue("webhook.deliver", {}, job_key="webhook-whd_1-1")
        await any_queue.ack(await any_queue.reserve())

        assert await any_queue.enqueue("webhook.deliver", {}, job_key="webhook-whd_1-1") is None

    @pytest.mark.asyncio
    async def test_ack_releases_debounce_key(self, any_queue):
        await any_queue.enqueue("agg", {}, job_key="agg-u1-2025-3", release_key=True)
        assert await any_queue.enqueue("agg", {}, job_key="agg-u1-2025-3", release_key=True) is None

        job = await any_queue.reserve()
        assert job.release_key is True
        await any_queue.ack(job)

        assert await any_queue.enqueue("agg", {}, job_key="agg-u1-2025-3", release_key=True) is not None

    @pytest.mark.asyncio
    async def test_dead_letter_releases_debounce_key(self, any_queue):
        await any_queue.enqueue("agg", {}, job_key="agg-u1-2025-3", release_key=True)
        await any_queue.dead_letter(await any_queue.reserve(), "Handler failed: boom")

        assert await any_queue.enqueue("agg", {}, job_key="agg-u1-2025-3", release_key=True) is not None

    @pytest.mark.asyncio
    async def test_retry_holds_debounce_key(self, any_queue):
        await any_queue.enqueue("agg", {}, job_key="agg-u1-2025-3", release_key=True)
        await any_queue.retry(await any_queue.reserve(), delay_seconds=5)

        assert await any_queue.enqueue("agg", {}, job_key="agg-u1-2025-3", release_key=True) is None


@pytest.mark.unit
class TestInMemoryQueue:
    @pytest.mark.asyncio
    async def test_scheduled_sorted_by_due_time(self, job_queue, clock):
        await job_queue.enqueue("b", {}, delay_seconds=120)
        await job_queue.enqueue("a", {}, delay_seconds=60)

        assert [job.name for _, job in job_queue.scheduled()] == ["a", "b"]
        assert job_queue.scheduled()[0][0] == clock() + 60

    @pytest.mark.asyncio
    async def test_expired_keys_are_purged(self, job_queue, clock):
        for n in range(500):
            await job_queue.enqueue("webhook.deliver", {}, job_key=f"webhook-whd_{n}-1")
            await job_queue.ack(await job_queue.reserve())

        clock.advance(86_401)
        await job_queue.enqueue("webhook.deliver", {}, job_key="webhook-whd_new-1")

        assert len(job_queue._keys) == 1

    @pytest.mark.asyncio
    async def test_dead_letters_are_capped(self, job_queue):
        for n in range(DEAD_LETTER_MAX + 5):
            await job_queue.enqueue("webhook.deliver", {"n": n})
            await job_queue.dead_letter(await job_queue.reserve(), "Handler failed")

        dead = await job_queue.dead_letters(limit=DEAD_LETTER_MAX * 2)
        assert len(dead) == DEAD_LETTER_MAX
        assert dead[0]["payload"] == {"n": DEAD_LETTER_MAX + 4}


@pytest.mark.unit
class TestRedisQueue:
    @pytest.mark.asyncio
    async def test_key_layout(self, redis_queue, fake_redis):
        job_id = await redis_queue.enqueue("webhook.deliver", {"a": 1}, job_key="k1", delay_seconds=5)

        assert f"jobs:data:{job_id}" in fake_redis.strings
        assert fake_redis.strings["jobs:key:k1"][0] == job_id
        assert job_id in fake_redis.zsets["jobs:delayed"]
        assert fake_redis.hashes["jobs:depth"] == {"webhook.deliver": "1"}

    @pytest.mark.asyncio
    async def test_requeue_orphans(self, redis_queue, fake_redis):
        await redis_queue.enqueue("webhook.dispatch", {})
        await redis_queue.enqueue("webhook.dispatch", {})
        await redis_queue.reserve()
        await redis_queue.reserve()
        assert len(fake_redis.lists["jobs:processing"]) == 2

        assert await redis_queue.requeue_orphans() == 2
        assert fake_redis.lists["jobs:processing"] == []
        assert await redis_queue.reserve() is not None

    @pytest.mark.asyncio
    async def test_missing_envelope_is_dropped(self, redis_queue, fake_redis):
        job_id = await redis_queue.enqueue("webhook.dispatch", {})
        del fake_redis.strings[f"jobs:data:{job_id}"]

        assert await redis_queue.reserve() is None
        assert fake_redis.lists["jobs:processing"] == []

    @pytest.mark.asyncio
    async def test_outage_raises_queue_error(self, redis_queue, fake_redis):
        fake_redis.go_down()
        with pytest.raises(QueueError) as exc_info:
            await redis_queue.enqueue("webhook.dispatch", {})
        assert exc_info.value.details["operation"] == "enqueue"

    @pytest.mark.asyncio
    async def test_failed_enqueue_releases_claimed_key(self, redis_queue, fake_redis):
        fake_redis.fail_pipelines_with = RedisConnectionError("Connection reset")
        with pytest.raises(QueueError):
            await redis_queue.enqueue("webhook.deliver", {}, job_key="webhook-whd_1-1")
        assert "jobs:key:webhook-whd_1-1" not in fake_redis.strings

        fake_redis.fail_pipelines_with = None
        job_id = await redis_queue.enqueue("webhook.deliver", {}, job_key="webhook-whd_1-1")
        assert job_id is not None
        assert (await redis_queue.reserve()).id == job_id

    @pytest.mark.asyncio
    async def test_ack_deletes_debounce_key(self, redis_queue, fake_redis):
        await redis_queue.enqueue("agg", {}, job_key="agg-u1-2025-3", release_key=True)
        await redis_queue.ack(await redis_queue.reserve())

        assert "jobs:key:agg-u1-2025-3" not in fake_redis.strings

    @pytest.mark.asyncio
    async def test_dead_letter_list_is_trimmed(self, redis_queue, fake_redis):
        for n in range(DEAD_LETTER_MAX + 3):
            await redis_queue.enqueue("webhook.deliver", {"n": n})
            await redis_queue.dead_letter(await redis_queue.reserve(), "Handler failed")

        assert len(fake_redis.lists["jobs:dead"]) == DEAD_LETTER_MAX

    def test_serializer_round_trip(self):
        job = JobSerializer.deserialize(
            '{"id":"j1","name":"webhook.deliver","payload":{"attempt":2},"attempts_made":1}'
        )
        assert job.payload == {"attempt": 2}
        assert job.attempts_made == 1
        assert job.job_key is None
        assert job.release_key is False

    def test_serializer_carries_release_flag(self):
        job = Job(id="j1", name="agg", payload={}, job_key="agg-u1-2025-3", release_key=True)
        assert JobSerializer.deserialize(JobSerializer.serialize(job)).release_key is True


@pytest.mark.unit
class TestQueueFactory:
    def test_memory_without_client(self, test_settings):
        assert build_job_queue(test_settings, None).kind == "memory"

    def test_redis_with_client(self, test_settings, fake_redis):
        assert build_job_queue(test_settings, fake_redis).kind == "redis"


@pytest.mark.unit
class TestJobContracts:
    def test_deliver_job_key(self):
        job = WebhookDeliverJob(delivery_id="whd_1", webhook_id="wh_1", user_id="u1", attempt=2)
        assert job.job_key() == "webhook-whd_1-2"

    def test_aggregation_job_key(self):
        job = AggregationUpdateJob(user_id="u1", year=2025, month=3)
        assert job.job_key() == "agg-u1-2025-3"

    def test_dispatch_job_has_no_key(self):
        assert WebhookDispatchJob(user_id="u1", event="invoice.paid").job_key() is None

    def test_wire_format_is_camel_case(self):
        job = WebhookDeliverJob(delivery_id="whd_1", webhook_id="wh_1", user_id="u1", attempt=1)
        assert job.to_wire() == {
            "deliveryId": "whd_1",
            "webhookId": "wh_1",
            "userId": "u1",
            "attempt": 1,
        }

    def test_parse_job_validates(self):
        job = parse_job(
            JobName.WEBHOOK_DISPATCH.value,
            {"userId": "u1", "event": "invoice.paid", "data": {"id": "inv_1"}},
        )
        assert isinstance(job, WebhookDispatchJob)
        assert job.data == {"id": "inv_1"}

    @pytest.mark.parametrize(
        "payload",
        [
            {"webhookId": "wh_1", "userId": "u1", "attempt": 1},
            {"deliveryId": "whd_1", "webhookId": "wh_1", "userId": "u1", "attempt": -1},
            {"deliveryId": "", "webhookId": "wh_1", "userId": "u1", "attempt": 1},
        ],
    )
    def test_parse_job_rejects_malformed(self, payload):
        with pytest.raises(JobValidationError):
            parse_job(JobName.WEBHOOK_DELIVER.value, payload)

    def test_parse_job_rejects_month_out_of_range(self):
        with pytest.raises(JobValidationError):
            parse_job(JobName.AGGREGATION_UPDATE_MONTHLY.value, {"userId": "u1", "year": 2025, "month": 13})

    def test_parse_job_unknown_name(self):
        with pytest.raises(UnknownJobError):
            parse_job("invoice.archive", {})


@pytest.mark.unit
class TestJobProducer:
    @pytest.mark.asyncio
    async def test_delivery_retry_is_idempotent(self, producer, job_queue):
        first = await producer.schedule_delivery_retry("whd_1", "wh_1", "u1", attempt=1, delay_seconds=60)
        second = await producer.schedule_delivery_retry("whd_1", "wh_1", "u1", attempt=1, delay_seconds=60)

        assert first is not None
        assert second is None
        assert await job_queue.depth() == {"webhook.deliver": 1}

    @pytest.mark.asyncio
    async def test_aggregation_is_debounced(self, producer, job_queue, clock):
        await producer.queue_aggregation_update("u1", 2025, 3)
        await producer.queue_aggregation_update("u1", 2025, 3)

        [(due, job)] = job_queue.scheduled()
        assert due == clock() + 5
        assert job.payload == {"userId": "u1", "year": 2025, "month": 3}

    @pytest.mark.asyncio
    async def test_aggregation_requeues_after_completion(self, producer, job_queue, clock):
        assert await producer.queue_aggregation_update("u1", 2025, 3) is not None
        clock.advance(5)
        await job_queue.ack(await job_queue.reserve())

        clock.advance(600)
        assert await producer.queue_aggregation_update("u1", 2025, 3) is not None
        assert await producer.queue_aggregation_update("u1", 2025, 3) is None

    @pytest.mark.asyncio
    async def test_dispatch_runs_immediately(self, producer, job_queue):
        await producer.dispatch_webhook_event("u1", "invoice.paid", {"id": "inv_1"})

        job = await job_queue.reserve()
        assert job.name == "webhook.dispatch"
        assert job.payload["event"] == "invoice.paid"
