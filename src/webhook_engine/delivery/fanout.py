"""
Module: delivery/fanout.py
Description: Concurrent dispatch of one event to every eligible subscriber.

Runs one retry chain per subscriber. The retry driver bounds how many
HTTP attempts are in flight, so a chain waiting out a backoff or a
rate limit window holds no slot. Chains are isolated: one subscriber's
failure never cancels, delays or changes another's outcome. Only a
failure to resolve subscribers reaches the caller.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from webhook_engine.delivery.rate_limit import SlidingWindowRateLimiter
from webhook_engine.delivery.resolver import TriggerResolver
from webhook_engine.delivery.retry import RetryDriver
from webhook_engine.delivery.scheduler import RetryScheduler
from webhook_engine.models.delivery import ChainOutcome, RetryTask
from webhook_engine.models.subscriber import Subscriber
from webhook_engine.utils.logger import get_logger

logger = get_logger(__name__)

RATE_LIMITED = "rate limited"


class FanOutCoordinator:
    """
    Dispatches an event to all eligible subscribers concurrently.

    With a scheduler, each chain performs its first attempt and hands
    any retry to the scheduler; without one, each chain runs to
    completion in-process.
    """

    def __init__(
        self,
        resolver: TriggerResolver,
        driver: RetryDriver,
        scheduler: Optional[RetryScheduler] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize the coordinator.

        Args:
            resolver: Trigger resolver
            driver: Retry driver shared by every chain
            scheduler: Retry scheduler; None runs chains in-process
            rate_limiter: Optional per-subscriber rate limiter
            sleep: Coroutine used to wait for a rate limit window without a scheduler
        """
        self.resolver = resolver
        self.driver = driver
        self.scheduler = scheduler
        self.rate_limiter = rate_limiter
        self._sleep = sleep

    async def dispatch(
        self,
        event: str,
        body: bytes,
        agent_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> List[ChainOutcome]:
        """
        Deliver a serialized envelope to every eligible subscriber.

        Args:
            event: Trigger name
            body: Exact envelope bytes
            agent_id: Agent scope; None selects global subscribers only
            session_id: Correlation id recorded on every attempt

        Returns:
            One ChainOutcome per eligible subscriber

        Raises:
            Exception: If subscriber resolution fails
        """
        subscribers = await self.resolver.resolve(event, agent_id)
        if not subscribers:
            logger.info("No subscribers for event", trigger=event, agent_id=agent_id)
            return []

        text = body.decode("utf-8")
        chains = [
            self._run_chain(
                subscriber,
                RetryTask(webhook_id=subscriber.id, event=event, body=text, session_id=session_id)
            )
            for subscriber in subscribers
        ]
        results = await asyncio.gather(*chains, return_exceptions=True)

        outcomes: List[ChainOutcome] = []
        for subscriber, result in zip(subscribers, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Delivery chain raised",
                    webhook_id=subscriber.id,
                    error=str(result),
                    error_class=type(result).__name__
                )
                result = ChainOutcome(webhook_id=subscriber.id, success=False, error=str(result))
            outcomes.append(result)

        logger.info(
            "Event fan-out finished",
            trigger=event,
            agent_id=agent_id,
            subscribers=len(outcomes),
            succeeded=sum(1 for o in outcomes if o.success),
            pending_retries=sum(1 for o in outcomes if o.pending)
        )
        return outcomes

    async def _run_chain(self, subscriber: Subscriber, task: RetryTask) -> ChainOutcome:
        deferred = await self._apply_rate_limit(subscriber, task)
        if deferred is not None:
            return deferred

        if self.scheduler is not None:
            return await self.driver.start(subscriber, task, self.scheduler)
        return await self.driver.run(subscriber, task)

    async def _apply_rate_limit(self, subscriber: Subscriber, task: RetryTask) -> Optional[ChainOutcome]:
        """Return an outcome when the first attempt was deferred, else None."""
        if self.rate_limiter is None:
            return None

        while True:
            result = self.rate_limiter.check(subscriber.id, subscriber.rate_limit_per_minute)
            if result.allowed:
                return None

            if self.scheduler is not None:
                await self.scheduler.schedule(task.model_copy(update={"run_at": result.reset_at}))
                return ChainOutcome(
                    webhook_id=subscriber.id,
                    success=False,
                    attempts=0,
                    error=RATE_LIMITED,
                    next_retry_at=result.reset_at
                )

            wait_seconds = (result.reset_at - datetime.now(timezone.utc)).total_seconds()
            await self._sleep(max(wait_seconds, 0.0))
