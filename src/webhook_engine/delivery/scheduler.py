"""
Module: delivery/scheduler.py
Description: Durable and local scheduling of retry attempts.

A retry chain does not wait out its backoff in a coroutine. After a
failed attempt the next attempt is handed to a RetryScheduler as a
RetryTask due at next_retry_at, and a worker resumes the chain when
the task comes due.

Key Components:
- RetryScheduler: Interface used by the retry driver
- SQSRetryScheduler: Durable scheduling through the SQS retry queue
- InMemoryRetryScheduler: Timer-heap scheduler for local runs and tests
"""

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Tuple

from webhook_engine.models.delivery import RetryTask
from webhook_engine.sqs_queue.sqs import SQSClient, clamp_delay_seconds
from webhook_engine.utils.logger import get_logger

logger = get_logger(__name__)

TaskHandler = Callable[[RetryTask], Awaitable[object]]


class RetryScheduler(ABC):
    """Accepts retry tasks and makes them available once due."""

    @abstractmethod
    async def schedule(self, task: RetryTask) -> None:
        """Schedule task to run at task.run_at."""


class SQSRetryScheduler(RetryScheduler):
    """
    Schedules retry tasks as delayed SQS messages.

    SQS caps a message delay at 15 minutes; longer waits are sent with
    the maximum delay and re-enqueued by the worker until run_at.
    """

    def __init__(self, sqs_client: SQSClient, clock: Optional[Callable[[], datetime]] = None):
        self.sqs_client = sqs_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def schedule(self, task: RetryTask) -> None:
        delay_seconds = clamp_delay_seconds((task.run_at - self._clock()).total_seconds())
        await self.sqs_client.send_message(
            webhook_id=task.webhook_id,
            message_data=task.model_dump(mode="json"),
            delay_seconds=delay_seconds
        )

        logger.info(
            "Retry scheduled",
            webhook_id=task.webhook_id,
            attempt_number=task.attempt_number,
            run_at=task.run_at.isoformat(),
            delay_seconds=delay_seconds
        )


class InMemoryRetryScheduler(RetryScheduler):
    """
    Timer-driven delay queue held in process memory.

    Tasks sit in a heap ordered by run_at. A single processing loop
    sleeps until the earliest task is due (or a new task arrives) and
    hands due tasks to the bound handler. Not durable across restarts.

    Usage:
        scheduler = InMemoryRetryScheduler()
        scheduler.bind(worker.process_task)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        handler: Optional[TaskHandler] = None,
        clock: Optional[Callable[[], datetime]] = None
    ) -> None:
        self._handler = handler
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._heap: List[Tuple[datetime, int, RetryTask]] = []
        self._counter = itertools.count()
        self._wakeup: Optional[asyncio.Event] = None
        self._processor_task: Optional[asyncio.Task] = None
        self._running = False

    def bind(self, handler: TaskHandler) -> None:
        """Set the coroutine that processes due tasks."""
        self._handler = handler

    @property
    def pending(self) -> List[RetryTask]:
        """Scheduled tasks, earliest first."""
        return [task for _, _, task in sorted(self._heap)]

    @property
    def is_running(self) -> bool:
        return self._running

    async def schedule(self, task: RetryTask) -> None:
        heapq.heappush(self._heap, (task.run_at, next(self._counter), task))
        if self._wakeup is not None:
            self._wakeup.set()

        logger.debug(
            "Retry scheduled in memory",
            webhook_id=task.webhook_id,
            attempt_number=task.attempt_number,
            run_at=task.run_at.isoformat()
        )

    async def run_due(self, now: Optional[datetime] = None) -> int:
        """
        Process every task due at or before now.

        Due tasks for different webhooks run concurrently; a handler
        failure is logged and does not affect the other tasks.

        Returns:
            Number of tasks handed to the handler
        """
        if self._handler is None:
            raise RuntimeError("No handler bound to the retry scheduler")

        now = now or self._clock()
        due: List[RetryTask] = []
        while self._heap and self._heap[0][0] <= now:
            due.append(heapq.heappop(self._heap)[2])

        if not due:
            return 0

        results = await asyncio.gather(*(self._handler(task) for task in due), return_exceptions=True)
        for task, result in zip(due, results):
            if isinstance(result, Exception):
                logger.error(
                    "Scheduled retry failed",
                    webhook_id=task.webhook_id,
                    attempt_number=task.attempt_number,
                    error=str(result),
                    error_class=type(result).__name__
                )
        return len(due)

    async def start(self) -> None:
        """Start the processing loop."""
        if self._running:
            logger.warning("InMemoryRetryScheduler already running")
            return
        if self._handler is None:
            raise RuntimeError("No handler bound to the retry scheduler")

        self._running = True
        self._wakeup = asyncio.Event()
        self._processor_task = asyncio.create_task(self._process_loop())
        logger.info("InMemoryRetryScheduler started")

    async def stop(self) -> None:
        """Stop the processing loop. Pending tasks stay in the heap."""
        self._running = False
        if self._processor_task:
            self._processor_task.cancel()
            try:
                await self._processor_task
            except asyncio.CancelledError:
                pass
            self._processor_task = None
        logger.info("InMemoryRetryScheduler stopped", pending=len(self._heap))

    async def _process_loop(self) -> None:
        while self._running:
            timeout = None
            if self._heap:
                timeout = max(0.0, (self._heap[0][0] - self._clock()).total_seconds())

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()

            await self.run_due()
