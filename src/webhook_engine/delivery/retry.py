"""
Module: delivery/retry.py
Description: Retry chains for webhook delivery.

Drives one subscriber's chain of delivery attempts. Every attempt,
successful or not, is written to the delivery log and reflected in the
subscriber's delivery status before the chain moves on.

Two ways to drive a chain:
- run(): in-process, waiting out each backoff with tenacity
- start()/advance(): one attempt at a time, handing the next attempt
  to a RetryScheduler instead of waiting

Key Components:
- RetryDriver: Attempt execution, log recording and chain control
- outcome_from_entry(): ChainOutcome for the last recorded attempt
"""

import asyncio
import json
from datetime import timedelta
from typing import Awaitable, Callable, Dict, Optional

from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt

from webhook_engine.delivery.backoff import PolicyBackoffWait, calculate_retry_delay
from webhook_engine.delivery.push import DeliveryExecutor
from webhook_engine.delivery.scheduler import RetryScheduler
from webhook_engine.delivery.signing import build_request_headers
from webhook_engine.exceptions import ConfigurationError
from webhook_engine.models.delivery import (
    AttemptResult,
    ChainOutcome,
    DeliveryLogEntry,
    DeliveryStatus,
    ErrorType,
    RetryTask,
    utc_now,
)
from webhook_engine.models.subscriber import Subscriber
from webhook_engine.storage.base import DeliveryLogStore, SubscriberStatusStore
from webhook_engine.utils.logger import get_logger
from webhook_engine.utils.metrics import MetricsClient

logger = get_logger(__name__)


def outcome_from_entry(entry: DeliveryLogEntry) -> ChainOutcome:
    """Summarize a chain by its most recent attempt."""
    success = entry.status == DeliveryStatus.SUCCESS
    error = entry.error_message
    if not success and error is None and entry.response_code is not None:
        error = f"HTTP {entry.response_code}"

    return ChainOutcome(
        webhook_id=entry.webhook_id,
        success=success,
        attempts=entry.attempt_number,
        response_code=entry.response_code,
        error=error,
        next_retry_at=entry.next_retry_at if entry.will_retry else None
    )


class RetryDriver:
    """
    Executes and records delivery attempts for one subscriber at a time.

    The driver holds no per-chain state; everything a chain needs to
    continue lives in its RetryTask.
    """

    def __init__(
        self,
        executor: DeliveryExecutor,
        log_store: DeliveryLogStore,
        status_store: SubscriberStatusStore,
        metrics_client: Optional[MetricsClient] = None,
        max_concurrency: int = 10,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize the retry driver.

        Args:
            executor: Single-attempt HTTP executor
            log_store: Delivery log recorder
            status_store: Subscriber delivery-status updater
            metrics_client: Optional CloudWatch metrics client
            max_concurrency: Maximum HTTP attempts in flight at once
            sleep: Coroutine used to wait out backoff in run()

        Raises:
            ValueError: If max_concurrency is less than 1
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.executor = executor
        self.log_store = log_store
        self.status_store = status_store
        self.metrics_client = metrics_client
        self.max_concurrency = max_concurrency
        self._sleep = sleep
        # Held for the HTTP call only, never across a backoff
        self._slots = asyncio.Semaphore(max_concurrency)

    async def attempt(
        self,
        subscriber: Subscriber,
        task: RetryTask,
        max_attempts: Optional[int] = None
    ) -> DeliveryLogEntry:
        """
        Perform, record and report one delivery attempt.

        Args:
            subscriber: Target subscriber
            task: Chain state; task.attempt_number is this attempt's number
            max_attempts: Override of the policy's attempt budget (1 = no retries)

        Returns:
            The recorded log entry

        Raises:
            Exception: Whatever the log or status store raises
        """
        max_attempts = max_attempts or subscriber.retry_policy.max_attempts
        body = task.body_bytes

        try:
            headers = build_request_headers(subscriber, body)
        except ConfigurationError as e:
            logger.error(
                "Webhook misconfigured, delivery not attempted",
                webhook_id=subscriber.id,
                auth_type=subscriber.auth_type.value,
                error=str(e)
            )
            now = utc_now()
            entry = self._new_entry(
                subscriber,
                task,
                status=DeliveryStatus.FAILED,
                error_message=str(e),
                error_type=ErrorType.CONFIGURATION_ERROR,
                started_at=now,
                completed_at=now,
                duration_ms=0
            )
            return await self._record(entry)

        async with self._slots:
            result = await self.executor.execute(subscriber.method.value, subscriber.url, headers, body)
        entry = self._entry_from_result(subscriber, task, headers, result, max_attempts)
        return await self._record(entry)

    async def advance(
        self,
        subscriber: Subscriber,
        task: RetryTask,
        scheduler: RetryScheduler
    ) -> ChainOutcome:
        """
        Perform one attempt and schedule the next when one will follow.

        Safe to repeat for the same task: if this attempt was already
        recorded (a redelivered queue message), nothing is sent again
        and the chain continues from the recorded entry.

        Raises:
            Exception: Store or scheduler failures
        """
        entry = await self.log_store.get_delivery_log(task.log_id)
        if entry is None:
            entry = await self.attempt(subscriber, task)
        else:
            logger.warning(
                "Attempt already recorded, resuming chain",
                webhook_id=subscriber.id,
                log_id=entry.id,
                attempt_number=entry.attempt_number
            )
            await self.status_store.update_subscriber_delivery_status(
                entry.webhook_id,
                entry.status,
                entry.completed_at
            )

        if entry.will_retry:
            await scheduler.schedule(task.next_attempt(entry.next_retry_at))
        return outcome_from_entry(entry)

    async def start(
        self,
        subscriber: Subscriber,
        task: RetryTask,
        scheduler: RetryScheduler
    ) -> ChainOutcome:
        """Begin a scheduled chain. Never raises."""
        try:
            return await self.advance(subscriber, task, scheduler)
        except Exception as e:
            return self._failed_chain(subscriber, task.attempt_number, e)

    async def run(self, subscriber: Subscriber, task: RetryTask) -> ChainOutcome:
        """
        Run a whole chain in-process until success or exhaustion.

        Attempts are strictly sequential; attempt N is recorded before
        the wait that precedes attempt N + 1. Never raises.
        """
        policy = subscriber.retry_policy
        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=PolicyBackoffWait(policy),
            retry=retry_if_result(lambda entry: entry.will_retry),
            retry_error_callback=lambda state: state.outcome.result(),
            before_sleep=self._log_backoff,
            sleep=self._sleep,
        )

        entry: Optional[DeliveryLogEntry] = None
        attempt_number = task.attempt_number
        try:
            async for attempt in retrying:
                attempt_number = task.attempt_number + attempt.retry_state.attempt_number - 1
                with attempt:
                    entry = await self.attempt(
                        subscriber,
                        task.model_copy(update={"attempt_number": attempt_number})
                    )
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(entry)

        except Exception as e:
            return self._failed_chain(subscriber, attempt_number, e)

        outcome = outcome_from_entry(entry)
        logger.info(
            "Delivery chain finished",
            webhook_id=subscriber.id,
            success=outcome.success,
            attempts=outcome.attempts
        )
        return outcome

    def _entry_from_result(
        self,
        subscriber: Subscriber,
        task: RetryTask,
        headers: Dict[str, str],
        result: AttemptResult,
        max_attempts: int
    ) -> DeliveryLogEntry:
        will_retry = not result.success and task.attempt_number < max_attempts
        next_retry_at = None
        if will_retry:
            delay_ms = calculate_retry_delay(task.attempt_number, subscriber.retry_policy)
            next_retry_at = result.completed_at + timedelta(milliseconds=delay_ms)

        return self._new_entry(
            subscriber,
            task,
            status=DeliveryStatus.SUCCESS if result.success else DeliveryStatus.FAILED,
            response_code=result.status_code,
            response_body=result.response_body,
            response_headers=result.response_headers,
            error_message=result.error_message,
            error_type=result.error_type,
            request_headers=headers,
            started_at=result.started_at,
            completed_at=result.completed_at,
            duration_ms=result.duration_ms,
            will_retry=will_retry,
            next_retry_at=next_retry_at
        )

    def _new_entry(self, subscriber: Subscriber, task: RetryTask, **fields) -> DeliveryLogEntry:
        return DeliveryLogEntry(
            id=task.log_id,
            webhook_id=subscriber.id,
            session_id=task.session_id,
            event=task.event,
            attempt_number=task.attempt_number,
            request_payload=json.loads(task.body),
            **fields
        )

    async def _record(self, entry: DeliveryLogEntry) -> DeliveryLogEntry:
        stored = await self.log_store.record_delivery_attempt(entry)
        await self.status_store.update_subscriber_delivery_status(
            entry.webhook_id,
            entry.status,
            entry.completed_at
        )
        if self.metrics_client is not None:
            self.metrics_client.record_delivery(entry)

        logger.info(
            "Delivery attempt recorded",
            webhook_id=entry.webhook_id,
            log_id=entry.id,
            attempt_number=entry.attempt_number,
            status=entry.status.value,
            response_code=entry.response_code,
            error_type=entry.error_type.value if entry.error_type else None,
            will_retry=entry.will_retry,
            next_retry_at=entry.next_retry_at.isoformat() if entry.next_retry_at else None
        )
        return stored

    def _failed_chain(self, subscriber: Subscriber, attempt_number: int, error: Exception) -> ChainOutcome:
        logger.error(
            "Delivery chain aborted",
            webhook_id=subscriber.id,
            attempt_number=attempt_number,
            error=str(error),
            error_class=type(error).__name__
        )
        return ChainOutcome(
            webhook_id=subscriber.id,
            success=False,
            attempts=attempt_number,
            error=str(error) or type(error).__name__
        )

    @staticmethod
    def _log_backoff(retry_state: RetryCallState) -> None:
        entry = retry_state.outcome.result()
        logger.info(
            "Waiting before next delivery attempt",
            webhook_id=entry.webhook_id,
            attempt_number=entry.attempt_number,
            wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None
        )
