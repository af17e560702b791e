"""
Module: storage/memory.py
Description: In-memory implementations of the persistence interfaces.

Used for local development and tests. Not durable.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from webhook_engine.models.delivery import DeliveryLogEntry, DeliveryStatus
from webhook_engine.models.subscriber import Subscriber
from webhook_engine.storage.base import DeliveryLogStore, SubscriberStatusStore, SubscriberStore
from webhook_engine.utils.logger import get_logger

logger = get_logger(__name__)


class InMemorySubscriberStore(SubscriberStore, SubscriberStatusStore):
    """Subscribers held in a dict keyed by id."""

    def __init__(self, subscribers: Optional[Iterable[Subscriber]] = None) -> None:
        self._subscribers: Dict[str, Subscriber] = {}
        self._lock = asyncio.Lock()
        for subscriber in subscribers or []:
            self._subscribers[subscriber.id] = subscriber

    def put_subscriber(self, subscriber: Subscriber) -> None:
        self._subscribers[subscriber.id] = subscriber

    async def get_subscriber(self, webhook_id: str) -> Optional[Subscriber]:
        return self._subscribers.get(webhook_id)

    async def list_subscribers_for_trigger(self, event: str) -> List[Subscriber]:
        return [s for s in self._subscribers.values() if event in s.triggers]

    async def update_subscriber_delivery_status(
        self,
        webhook_id: str,
        status: DeliveryStatus,
        timestamp: Optional[datetime] = None
    ) -> None:
        async with self._lock:
            subscriber = self._subscribers.get(webhook_id)
            if subscriber is None:
                logger.warning("Status update for unknown webhook", webhook_id=webhook_id)
                return

            update = {"last_delivery_status": status.value}
            if status == DeliveryStatus.SUCCESS:
                update["last_successful_delivery_at"] = timestamp or datetime.now(timezone.utc)
            self._subscribers[webhook_id] = subscriber.model_copy(update=update)


class InMemoryDeliveryLogStore(DeliveryLogStore):
    """Delivery attempts kept in insertion order."""

    def __init__(self) -> None:
        self._entries: Dict[str, DeliveryLogEntry] = {}

    @property
    def entries(self) -> List[DeliveryLogEntry]:
        return list(self._entries.values())

    async def record_delivery_attempt(self, entry: DeliveryLogEntry) -> DeliveryLogEntry:
        self._entries[entry.id] = entry
        return entry

    async def get_delivery_log(self, log_id: str) -> Optional[DeliveryLogEntry]:
        return self._entries.get(log_id)

    async def list_delivery_logs(
        self,
        webhook_id: Optional[str] = None,
        session_id: Optional[str] = None,
        status: Optional[DeliveryStatus] = None,
        limit: int = 20
    ) -> List[DeliveryLogEntry]:
        matches = [
            entry for entry in reversed(list(self._entries.values()))
            if (webhook_id is None or entry.webhook_id == webhook_id)
            and (session_id is None or entry.session_id == session_id)
            and (status is None or entry.status == status)
        ]
        return matches[:limit]
