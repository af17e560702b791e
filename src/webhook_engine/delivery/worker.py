"""
Module: delivery/worker.py
Description: Retry worker resuming scheduled delivery chains.

Processes RetryTask messages from the SQS retry queue (or the
in-memory scheduler), performs the due attempt and schedules the one
after it. Reports unprocessable messages back to SQS as batch item
failures so they are redelivered.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from webhook_engine.config.settings import settings
from webhook_engine.delivery.engine import WebhookDeliveryEngine
from webhook_engine.delivery.rate_limit import SlidingWindowRateLimiter
from webhook_engine.delivery.retry import RetryDriver
from webhook_engine.delivery.scheduler import RetryScheduler
from webhook_engine.models.delivery import ChainOutcome, RetryTask
from webhook_engine.storage.base import SubscriberStore
from webhook_engine.utils.logger import get_logger

logger = get_logger(__name__)

# Messages may become visible slightly before run_at
EARLY_TOLERANCE = timedelta(seconds=1)

# Kept across invocations of a warm Lambda container
rate_limiter = SlidingWindowRateLimiter()


class RetryWorker:
    """
    Resumes retry chains from scheduled tasks.

    A task whose subscriber has been deleted, disabled or paused since
    it was scheduled ends the chain without another attempt. A first
    attempt deferred by the rate limiter is checked against the limiter
    again before it is sent.
    """

    def __init__(
        self,
        subscriber_store: SubscriberStore,
        driver: RetryDriver,
        scheduler: RetryScheduler,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None
    ):
        self.subscriber_store = subscriber_store
        self.driver = driver
        self.scheduler = scheduler
        self.rate_limiter = rate_limiter

    @classmethod
    def for_engine(cls, engine: WebhookDeliveryEngine) -> "RetryWorker":
        """Build a worker sharing an engine's stores, driver, scheduler and rate limiter."""
        if engine.scheduler is None:
            raise ValueError("engine has no retry scheduler configured")
        return cls(
            engine.subscriber_store,
            engine.driver,
            engine.scheduler,
            rate_limiter=engine.coordinator.rate_limiter
        )

    async def process_task(self, task: RetryTask) -> Optional[ChainOutcome]:
        """
        Run the attempt described by task, if it is due and still wanted.

        Returns:
            The chain outcome after this attempt, or None if nothing was sent

        Raises:
            Exception: Store or scheduler failures
        """
        now = datetime.now(timezone.utc)
        if task.run_at - now > EARLY_TOLERANCE:
            # Longer than one queue delay allows; wait another hop
            await self.scheduler.schedule(task)
            logger.info(
                "Retry not yet due, rescheduled",
                webhook_id=task.webhook_id,
                attempt_number=task.attempt_number,
                run_at=task.run_at.isoformat()
            )
            return None

        subscriber = await self.subscriber_store.get_subscriber(task.webhook_id)
        if subscriber is None or not subscriber.is_deliverable:
            logger.info(
                "Webhook no longer deliverable, dropping retry",
                webhook_id=task.webhook_id,
                attempt_number=task.attempt_number,
                reason="webhook_deleted" if subscriber is None else "webhook_inactive"
            )
            return None

        if task.attempt_number == 1 and self.rate_limiter is not None:
            result = self.rate_limiter.check(subscriber.id, subscriber.rate_limit_per_minute)
            if not result.allowed:
                await self.scheduler.schedule(task.model_copy(update={"run_at": result.reset_at}))
                logger.info(
                    "Deferred dispatch still rate limited, rescheduled",
                    webhook_id=task.webhook_id,
                    run_at=result.reset_at.isoformat()
                )
                return None

        return await self.driver.advance(subscriber, task, self.scheduler)

    async def process_records(self, records: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Process a batch of SQS records.

        Args:
            records: SQS records whose body is a serialized RetryTask

        Returns:
            Response with batch item failures (if any)
        """
        batch_failures = []

        for record in records:
            try:
                task = RetryTask.model_validate_json(record['body'])

            except ValidationError as e:
                # Malformed messages would fail forever; drop them
                logger.error(
                    "Discarding malformed retry message",
                    message_id=record.get('messageId'),
                    error=str(e)
                )
                continue

            try:
                logger.info(
                    "Processing retry from SQS",
                    webhook_id=task.webhook_id,
                    attempt_number=task.attempt_number
                )
                await self.process_task(task)

            except Exception as e:
                logger.error(
                    "Error processing retry message",
                    message_id=record.get('messageId'),
                    webhook_id=task.webhook_id,
                    error=str(e)
                )
                batch_failures.append({
                    'itemIdentifier': record['messageId']
                })

        return {'batchItemFailures': batch_failures}


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for SQS retry processing.

    Args:
        event: SQS event with batch of messages
        context: Lambda context

    Returns:
        Response with batch item failures (if any)
    """
    engine = WebhookDeliveryEngine.from_settings(settings, rate_limiter=rate_limiter)
    worker = RetryWorker.for_engine(engine)
    return asyncio.run(worker.process_records(event['Records']))
