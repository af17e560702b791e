"""
Module: storage/base.py
Description: Persistence interfaces the delivery engine depends on.

The engine never touches a storage schema directly. It reads
subscribers, records delivery attempts and updates the two
delivery-status fields through these narrow interfaces.

Key Components:
- SubscriberStore: Read access to configured subscribers
- SubscriberStatusStore: Atomic update of delivery-status fields
- DeliveryLogStore: Append-only delivery attempt log
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from webhook_engine.models.delivery import DeliveryLogEntry, DeliveryStatus
from webhook_engine.models.subscriber import Subscriber


class SubscriberStore(ABC):
    """Read access to configured subscribers."""

    @abstractmethod
    async def get_subscriber(self, webhook_id: str) -> Optional[Subscriber]:
        """Return the subscriber with this id, or None."""

    @abstractmethod
    async def list_subscribers_for_trigger(self, event: str) -> List[Subscriber]:
        """
        Return candidate subscribers for a trigger.

        Implementations may pre-filter on enabled/status/trigger; callers
        still apply the full eligibility predicate.
        """


class SubscriberStatusStore(ABC):
    """Delivery-status side effects on subscribers."""

    @abstractmethod
    async def update_subscriber_delivery_status(
        self,
        webhook_id: str,
        status: DeliveryStatus,
        timestamp: Optional[datetime] = None
    ) -> None:
        """
        Record the latest delivery status for a subscriber.

        A success also sets last_successful_delivery_at to timestamp.
        Each call is atomic at field granularity; last write wins.
        """


class DeliveryLogStore(ABC):
    """Append-only store of delivery attempts."""

    @abstractmethod
    async def record_delivery_attempt(self, entry: DeliveryLogEntry) -> DeliveryLogEntry:
        """Persist one attempt and return the stored entry."""

    @abstractmethod
    async def get_delivery_log(self, log_id: str) -> Optional[DeliveryLogEntry]:
        """Return one log entry, or None."""

    @abstractmethod
    async def list_delivery_logs(
        self,
        webhook_id: Optional[str] = None,
        session_id: Optional[str] = None,
        status: Optional[DeliveryStatus] = None,
        limit: int = 20
    ) -> List[DeliveryLogEntry]:
        """Return log entries matching the filters, newest first."""
