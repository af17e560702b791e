"""
Module: delivery/engine.py
Description: Entry point to the webhook delivery engine.

Wires the resolver, retry driver and fan-out coordinator around
injected stores, HTTP executor and optional retry scheduler. Holds no
global state; build one per process or per invocation.

Key Components:
- WebhookDeliveryEngine.trigger(): Fan an event out to its subscribers
- WebhookDeliveryEngine.test_delivery(): One synchronous, unretried attempt
- WebhookDeliveryEngine.from_settings(): Production wiring
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from webhook_engine.config.settings import Settings
from webhook_engine.delivery.fanout import FanOutCoordinator
from webhook_engine.delivery.push import DeliveryExecutor
from webhook_engine.delivery.rate_limit import SlidingWindowRateLimiter
from webhook_engine.delivery.resolver import TriggerResolver
from webhook_engine.delivery.retry import RetryDriver
from webhook_engine.delivery.scheduler import RetryScheduler, SQSRetryScheduler
from webhook_engine.exceptions import SubscriberNotFoundError
from webhook_engine.models.delivery import ChainOutcome, DeliveryStatus, RetryTask, TestDeliveryResult
from webhook_engine.models.payload import (
    TEST_EVENT,
    build_test_payload,
    build_webhook_payload,
    serialize_payload,
)
from webhook_engine.sqs_queue.sqs import SQSClient
from webhook_engine.storage.base import DeliveryLogStore, SubscriberStatusStore, SubscriberStore
from webhook_engine.storage.dynamodb import DynamoDBDeliveryLogStore, DynamoDBSubscriberStore
from webhook_engine.utils.logger import get_logger
from webhook_engine.utils.metrics import MetricsClient

logger = get_logger(__name__)


class WebhookDeliveryEngine:
    """
    Outbound webhook delivery engine.

    Example:
        >>> engine = WebhookDeliveryEngine(subscriber_store, log_store)
        >>> outcomes = await engine.trigger(
        ...     "session_completed",
        ...     session={"session_id": "sess-1", "agent_id": "agent-1"},
        ...     agent_id="agent-1",
        ...     session_id="sess-1",
        ... )
    """

    def __init__(
        self,
        subscriber_store: SubscriberStore,
        log_store: DeliveryLogStore,
        status_store: Optional[SubscriberStatusStore] = None,
        executor: Optional[DeliveryExecutor] = None,
        scheduler: Optional[RetryScheduler] = None,
        metrics_client: Optional[MetricsClient] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        max_concurrency: int = 10,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize the engine.

        Args:
            subscriber_store: Subscriber reads
            log_store: Delivery log recorder
            status_store: Status updater; defaults to subscriber_store
            executor: HTTP executor; defaults to a DeliveryExecutor with default timeouts
            scheduler: Durable retry scheduler; None runs retries in-process
            metrics_client: Optional CloudWatch metrics client
            rate_limiter: Optional per-subscriber rate limiter
            max_concurrency: Maximum HTTP attempts in flight per engine
            sleep: Coroutine used for in-process waits
        """
        if status_store is None:
            if not isinstance(subscriber_store, SubscriberStatusStore):
                raise ValueError("status_store is required when subscriber_store cannot update status")
            status_store = subscriber_store

        self.subscriber_store = subscriber_store
        self.log_store = log_store
        self.scheduler = scheduler
        self.resolver = TriggerResolver(subscriber_store)
        self.driver = RetryDriver(
            executor=executor or DeliveryExecutor(),
            log_store=log_store,
            status_store=status_store,
            metrics_client=metrics_client,
            max_concurrency=max_concurrency,
            sleep=sleep
        )
        self.coordinator = FanOutCoordinator(
            resolver=self.resolver,
            driver=self.driver,
            scheduler=scheduler,
            rate_limiter=rate_limiter,
            sleep=sleep
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None
    ) -> "WebhookDeliveryEngine":
        """
        Build an engine backed by DynamoDB, SQS and CloudWatch.

        Rate limit windows live in the limiter, so callers building an
        engine per request pass the same process-wide limiter each time.
        """
        if not settings.enforce_rate_limits:
            rate_limiter = None
        elif rate_limiter is None:
            rate_limiter = SlidingWindowRateLimiter()

        subscriber_store = DynamoDBSubscriberStore(
            table_name=settings.webhooks_table_name,
            region_name=settings.aws_region
        )
        log_store = DynamoDBDeliveryLogStore(
            table_name=settings.delivery_logs_table_name,
            region_name=settings.aws_region
        )

        scheduler = None
        if settings.retry_queue_url:
            scheduler = SQSRetryScheduler(
                SQSClient(queue_url=settings.retry_queue_url, region_name=settings.aws_region)
            )

        return cls(
            subscriber_store=subscriber_store,
            log_store=log_store,
            executor=DeliveryExecutor(
                timeout_seconds=settings.delivery_timeout,
                connect_timeout_seconds=settings.connect_timeout,
                response_body_limit=settings.response_body_limit,
                client=client
            ),
            scheduler=scheduler,
            metrics_client=MetricsClient(
                namespace=settings.metrics_namespace,
                enabled=settings.metrics_enabled,
                region_name=settings.aws_region
            ),
            rate_limiter=rate_limiter,
            max_concurrency=settings.max_concurrent_deliveries
        )

    async def trigger(
        self,
        event: str,
        session: Dict[str, Any],
        agent: Optional[Dict[str, Any]] = None,
        agent_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> List[ChainOutcome]:
        """
        Deliver a lifecycle event to every eligible subscriber.

        The envelope is built and serialized once; every subscriber
        receives (and every signature covers) the same bytes.

        Args:
            event: Trigger name
            session: Session data for data.session
            agent: Optional agent data for data.agent
            agent_id: Agent scope for subscriber selection
            session_id: Correlation id for the delivery log

        Returns:
            One ChainOutcome per eligible subscriber

        Raises:
            Exception: If subscriber resolution fails
        """
        body = serialize_payload(build_webhook_payload(event, session, agent))

        logger.info(
            "Event triggered",
            trigger=event,
            agent_id=agent_id,
            session_id=session_id,
            body_bytes=len(body)
        )
        return await self.coordinator.dispatch(event, body, agent_id=agent_id, session_id=session_id)

    async def test_delivery(self, webhook_id: str) -> TestDeliveryResult:
        """
        Send a sample envelope to one subscriber, once, without retries.

        The attempt is recorded in the delivery log like any other.

        Raises:
            SubscriberNotFoundError: If no subscriber has this id
        """
        subscriber = await self.subscriber_store.get_subscriber(webhook_id)
        if subscriber is None:
            raise SubscriberNotFoundError(webhook_id)

        body = serialize_payload(build_test_payload(subscriber))
        task = RetryTask(webhook_id=subscriber.id, event=TEST_EVENT, body=body.decode("utf-8"))
        entry = await self.driver.attempt(subscriber, task, max_attempts=1)

        logger.info(
            "Test delivery finished",
            webhook_id=webhook_id,
            status=entry.status.value,
            response_code=entry.response_code
        )
        return TestDeliveryResult(
            success=entry.status == DeliveryStatus.SUCCESS,
            response_code=entry.response_code,
            response_body=entry.response_body,
            error=entry.error_message
        )
