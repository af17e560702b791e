"""
Module: test_retry.py
Description: Unit tests for retry chains.

Tests RetryDriver in-process chains (tenacity driven) and scheduled
chains (one attempt per call) against pytest-httpx mocked endpoints
and in-memory stores. Backoff waits are recorded, never slept.
"""

import asyncio
import json
from unittest.mock import MagicMock

import httpx
import pytest

from webhook_engine.delivery.push import DeliveryExecutor
from webhook_engine.delivery.retry import RetryDriver, outcome_from_entry
from webhook_engine.delivery.scheduler import InMemoryRetryScheduler
from webhook_engine.delivery.signing import SIGNATURE_HEADER, generate_hmac_signature
from webhook_engine.models.delivery import AttemptResult, DeliveryLogEntry, DeliveryStatus, ErrorType, RetryTask, utc_now
from webhook_engine.models.payload import build_webhook_payload, serialize_payload
from webhook_engine.storage.memory import InMemoryDeliveryLogStore

URL = "https://hooks.example.com/w1"


class FailingLogStore(InMemoryDeliveryLogStore):
    """Log store whose writes always fail."""

    async def record_delivery_attempt(self, entry):
        raise RuntimeError("log store unavailable")


class FlakyScheduler(InMemoryRetryScheduler):
    """Scheduler whose first schedule call fails."""

    def __init__(self):
        super().__init__()
        self.failures = 1

    async def schedule(self, task):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("sqs down")
        await super().schedule(task)


class TrackingExecutor:
    """Executor stand-in that counts concurrent attempts."""

    def __init__(self):
        self.in_flight = 0
        self.max_in_flight = 0

    async def execute(self, method, url, headers, body):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
        finally:
            self.in_flight -= 1
        now = utc_now()
        return AttemptResult(success=True, status_code=200, started_at=now, completed_at=now, duration_ms=0)


@pytest.fixture
def body():
    return serialize_payload(build_webhook_payload(
        "session_completed",
        {"session_id": "sess-1", "agent_id": "agent-1"}
    ))


@pytest.fixture
def task(hmac_subscriber, body):
    return RetryTask(
        webhook_id=hmac_subscriber.id,
        event="session_completed",
        body=body.decode("utf-8"),
        session_id="sess-1"
    )


@pytest.fixture
def metrics_client():
    return MagicMock()


@pytest.fixture
def driver(log_store, subscriber_store, metrics_client, no_sleep):
    return RetryDriver(
        executor=DeliveryExecutor(),
        log_store=log_store,
        status_store=subscriber_store,
        metrics_client=metrics_client,
        sleep=no_sleep
    )


class TestRunChain:
    """Test cases for in-process retry chains."""

    @pytest.mark.asyncio
    async def test_exhausted_chain_records_every_attempt(
        self, driver, hmac_subscriber, task, log_store, no_sleep, httpx_mock
    ):
        """max_retries=2 against a failing endpoint gives exactly 3 recorded attempts."""
        for _ in range(3):
            httpx_mock.add_response(url=URL, status_code=500, text="boom")

        outcome = await driver.run(hmac_subscriber, task)

        entries = log_store.entries
        assert [e.attempt_number for e in entries] == [1, 2, 3]
        assert [e.status for e in entries] == [DeliveryStatus.FAILED] * 3
        assert [e.will_retry for e in entries] == [True, True, False]
        assert entries[0].next_retry_at < entries[1].next_retry_at
        assert entries[2].next_retry_at is None

        assert outcome.success is False
        assert outcome.attempts == 3
        assert outcome.response_code == 500
        assert outcome.error == "HTTP 500"
        assert outcome.pending is False

        # Exponential backoff from 1000ms: waits of 1s then 2s
        assert no_sleep.calls == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_next_retry_at_follows_backoff(self, driver, hmac_subscriber, task, log_store, httpx_mock):
        """next_retry_at is the attempt's completion time plus the policy delay."""
        for _ in range(3):
            httpx_mock.add_response(url=URL, status_code=503)

        await driver.run(hmac_subscriber, task)

        first, second, _ = log_store.entries
        assert (first.next_retry_at - first.completed_at).total_seconds() == 1.0
        assert (second.next_retry_at - second.completed_at).total_seconds() == 2.0

    @pytest.mark.asyncio
    async def test_success_stops_chain(self, driver, hmac_subscriber, task, log_store, no_sleep, httpx_mock):
        """No attempt follows a success."""
        httpx_mock.add_response(url=URL, status_code=500)
        httpx_mock.add_response(url=URL, status_code=200, text="ok")

        outcome = await driver.run(hmac_subscriber, task)

        assert outcome.success is True
        assert outcome.attempts == 2
        assert outcome.response_code == 200
        assert outcome.error is None
        assert len(log_store.entries) == 2
        assert log_store.entries[-1].status == DeliveryStatus.SUCCESS
        assert log_store.entries[-1].will_retry is False
        assert no_sleep.calls == [1.0]

    @pytest.mark.asyncio
    async def test_network_error_is_retried(self, driver, hmac_subscriber, task, log_store, httpx_mock):
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"))
        httpx_mock.add_response(url=URL, status_code=200)

        outcome = await driver.run(hmac_subscriber, task)

        first = log_store.entries[0]
        assert first.error_type == ErrorType.NETWORK_ERROR
        assert first.response_code is None
        assert first.will_retry is True
        assert outcome.success is True

    @pytest.mark.asyncio
    async def test_zero_retries_single_attempt(self, driver, global_subscriber, body, log_store, httpx_mock):
        """max_retries=0 makes exactly one attempt."""
        httpx_mock.add_response(url=global_subscriber.url, status_code=500)
        task = RetryTask(webhook_id=global_subscriber.id, event="session_completed", body=body.decode())

        outcome = await driver.run(global_subscriber, task)

        assert outcome.attempts == 1
        assert len(log_store.entries) == 1
        assert log_store.entries[0].will_retry is False

    @pytest.mark.asyncio
    async def test_store_failure_aborts_chain(self, hmac_subscriber, subscriber_store, task, no_sleep, httpx_mock):
        """A log write failure ends the chain without raising."""
        httpx_mock.add_response(url=URL, status_code=500)
        driver = RetryDriver(
            executor=DeliveryExecutor(),
            log_store=FailingLogStore(),
            status_store=subscriber_store,
            sleep=no_sleep
        )

        outcome = await driver.run(hmac_subscriber, task)

        assert outcome.success is False
        assert outcome.error == "log store unavailable"
        assert len(httpx_mock.get_requests()) == 1
        assert no_sleep.calls == []


class TestAttempt:
    """Test cases for a single recorded attempt."""

    @pytest.mark.asyncio
    async def test_entry_captures_request(self, driver, hmac_subscriber, task, body, httpx_mock):
        """The log entry holds the exact payload and headers that were sent."""
        httpx_mock.add_response(url=URL, status_code=200, text="ok")

        entry = await driver.attempt(hmac_subscriber, task)

        assert entry.request_payload == json.loads(body)
        assert entry.request_headers[SIGNATURE_HEADER] == generate_hmac_signature(body, "s3cr3t")
        assert entry.session_id == "sess-1"
        assert entry.event == "session_completed"
        assert entry.response_body == "ok"

        request = httpx_mock.get_request()
        assert request.content == body
        assert request.headers[SIGNATURE_HEADER] == entry.request_headers[SIGNATURE_HEADER]

    @pytest.mark.asyncio
    async def test_success_updates_subscriber_status(
        self, driver, hmac_subscriber, task, subscriber_store, httpx_mock
    ):
        httpx_mock.add_response(url=URL, status_code=200)

        entry = await driver.attempt(hmac_subscriber, task)

        stored = await subscriber_store.get_subscriber(hmac_subscriber.id)
        assert stored.last_delivery_status == "success"
        assert stored.last_successful_delivery_at == entry.completed_at

    @pytest.mark.asyncio
    async def test_failure_keeps_last_success_time(
        self, driver, hmac_subscriber, task, subscriber_store, httpx_mock
    ):
        httpx_mock.add_response(url=URL, status_code=500)

        await driver.attempt(hmac_subscriber, task)

        stored = await subscriber_store.get_subscriber(hmac_subscriber.id)
        assert stored.last_delivery_status == "failed"
        assert stored.last_successful_delivery_at is None

    @pytest.mark.asyncio
    async def test_metrics_recorded_per_attempt(self, driver, hmac_subscriber, task, metrics_client, httpx_mock):
        httpx_mock.add_response(url=URL, status_code=200)

        entry = await driver.attempt(hmac_subscriber, task)

        metrics_client.record_delivery.assert_called_once_with(entry)

    @pytest.mark.asyncio
    async def test_max_attempts_override(self, driver, hmac_subscriber, task, httpx_mock):
        """max_attempts=1 turns off retries for this attempt."""
        httpx_mock.add_response(url=URL, status_code=500)

        entry = await driver.attempt(hmac_subscriber, task, max_attempts=1)

        assert entry.will_retry is False
        assert entry.next_retry_at is None

    @pytest.mark.asyncio
    async def test_missing_secret_fails_without_request(
        self, driver, hmac_subscriber, task, log_store, httpx_mock
    ):
        """A signing subscriber without a secret gets a terminal configuration error."""
        hmac_subscriber.auth_token = None

        outcome = await driver.run(hmac_subscriber, task)

        assert httpx_mock.get_requests() == []
        entry = log_store.entries[0]
        assert len(log_store.entries) == 1
        assert entry.status == DeliveryStatus.FAILED
        assert entry.error_type == ErrorType.CONFIGURATION_ERROR
        assert entry.will_retry is False
        assert entry.response_code is None
        assert outcome.success is False
        assert "no secret configured" in outcome.error


class TestScheduledChain:
    """Test cases for chains driven one attempt at a time."""

    @pytest.mark.asyncio
    async def test_advance_schedules_next_attempt(self, driver, hmac_subscriber, task, log_store, httpx_mock):
        httpx_mock.add_response(url=URL, status_code=500)
        scheduler = InMemoryRetryScheduler()

        outcome = await driver.advance(hmac_subscriber, task, scheduler)

        entry = log_store.entries[0]
        assert outcome.pending is True
        assert outcome.next_retry_at == entry.next_retry_at

        (scheduled,) = scheduler.pending
        assert scheduled.attempt_number == 2
        assert scheduled.run_at == entry.next_retry_at
        assert scheduled.body == task.body
        assert scheduled.session_id == task.session_id

    @pytest.mark.asyncio
    async def test_advance_success_schedules_nothing(self, driver, hmac_subscriber, task, httpx_mock):
        httpx_mock.add_response(url=URL, status_code=200)
        scheduler = InMemoryRetryScheduler()

        outcome = await driver.advance(hmac_subscriber, task, scheduler)

        assert outcome.success is True
        assert scheduler.pending == []

    @pytest.mark.asyncio
    async def test_last_attempt_schedules_nothing(self, driver, hmac_subscriber, task, httpx_mock):
        httpx_mock.add_response(url=URL, status_code=500)
        scheduler = InMemoryRetryScheduler()

        outcome = await driver.advance(hmac_subscriber, task.model_copy(update={"attempt_number": 3}), scheduler)

        assert outcome.attempts == 3
        assert outcome.pending is False
        assert scheduler.pending == []

    @pytest.mark.asyncio
    async def test_start_never_raises(self, hmac_subscriber, subscriber_store, task, httpx_mock):
        httpx_mock.add_response(url=URL, status_code=500)
        driver = RetryDriver(
            executor=DeliveryExecutor(),
            log_store=FailingLogStore(),
            status_store=subscriber_store
        )

        outcome = await driver.start(hmac_subscriber, task, InMemoryRetryScheduler())

        assert outcome.success is False
        assert outcome.error == "log store unavailable"


class TestOutcomeFromEntry:
    """Test cases for chain outcome summaries."""

    def test_http_failure_error_text(self):
        entry = DeliveryLogEntry(webhook_id="wh_1", status=DeliveryStatus.FAILED, response_code=404)

        assert outcome_from_entry(entry).error == "HTTP 404"

    def test_next_retry_only_when_retrying(self):
        entry = DeliveryLogEntry(webhook_id="wh_1", status=DeliveryStatus.SUCCESS, response_code=200)

        outcome = outcome_from_entry(entry)

        assert outcome.success is True
        assert outcome.next_retry_at is None


class TestConcurrencyBound:
    """Test cases for the bound on in-flight HTTP attempts."""

    def test_rejects_zero_concurrency(self, log_store, subscriber_store):
        with pytest.raises(ValueError, match="max_concurrency must be at least 1"):
            RetryDriver(
                executor=DeliveryExecutor(),
                log_store=log_store,
                status_store=subscriber_store,
                max_concurrency=0
            )

    @pytest.mark.asyncio
    async def test_attempts_are_bounded(self, global_subscriber, body, log_store, subscriber_store):
        executor = TrackingExecutor()
        driver = RetryDriver(
            executor=executor,
            log_store=log_store,
            status_store=subscriber_store,
            max_concurrency=2
        )
        tasks = [
            RetryTask(webhook_id=global_subscriber.id, event="session_completed", body=body.decode())
            for _ in range(6)
        ]

        await asyncio.gather(*(driver.attempt(global_subscriber, task) for task in tasks))

        assert executor.max_in_flight == 2
        assert len(log_store.entries) == 6

    @pytest.mark.asyncio
    async def test_backoff_does_not_hold_a_slot(
        self, hmac_subscriber, global_subscriber, body, log_store, subscriber_store, httpx_mock
    ):
        """With one slot, a healthy subscriber is delivered while a failing chain waits out its backoff."""
        order = []

        def respond(name, status_code):
            def callback(request):
                order.append(name)
                return httpx.Response(status_code)
            return callback

        for _ in range(3):
            httpx_mock.add_callback(respond("fail-request", 500), url=URL)
        httpx_mock.add_callback(respond("ok-request", 200), url=global_subscriber.url)

        async def backoff(seconds):
            order.append(f"backoff {seconds}s")
            await asyncio.sleep(0)

        driver = RetryDriver(
            executor=DeliveryExecutor(),
            log_store=log_store,
            status_store=subscriber_store,
            max_concurrency=1,
            sleep=backoff
        )

        def chain(subscriber):
            return driver.run(
                subscriber,
                RetryTask(webhook_id=subscriber.id, event="session_completed", body=body.decode())
            )

        failing, healthy = await asyncio.gather(chain(hmac_subscriber), chain(global_subscriber))

        assert failing.attempts == 3
        assert healthy.success is True
        assert order.count("fail-request") == 3
        second_failing_request = [i for i, name in enumerate(order) if name == "fail-request"][1]
        assert order.index("ok-request") < second_failing_request
        assert order.index("ok-request") < order.index("backoff 2.0s")


class TestRedeliveredTask:
    """Test cases for processing the same scheduled attempt twice."""

    @pytest.mark.asyncio
    async def test_schedule_failure_then_redelivery_sends_once(
        self, driver, hmac_subscriber, task, log_store, httpx_mock
    ):
        httpx_mock.add_response(url=URL, status_code=500)
        scheduler = FlakyScheduler()

        with pytest.raises(RuntimeError, match="sqs down"):
            await driver.advance(hmac_subscriber, task, scheduler)

        outcome = await driver.advance(hmac_subscriber, task, scheduler)

        assert len(httpx_mock.get_requests()) == 1
        assert [e.attempt_number for e in log_store.entries] == [1]
        assert log_store.entries[0].id == task.log_id
        assert outcome.pending is True
        (scheduled,) = scheduler.pending
        assert scheduled.attempt_number == 2
        assert scheduled.chain_id == task.chain_id
