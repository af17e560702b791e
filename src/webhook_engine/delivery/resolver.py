"""
Module: delivery/resolver.py
Description: Selection of the subscribers eligible for an event.
"""

from typing import List, Optional

from webhook_engine.models.subscriber import Subscriber
from webhook_engine.storage.base import SubscriberStore
from webhook_engine.utils.logger import get_logger

logger = get_logger(__name__)


def subscriber_matches(subscriber: Subscriber, event: str, agent_id: Optional[str] = None) -> bool:
    """
    Eligibility predicate for one subscriber.

    Global subscribers match every query. Agent-scoped subscribers match
    only queries for the same agent, so a query without an agent id
    matches global subscribers only.
    """
    if not subscriber.is_deliverable:
        return False
    if event not in subscriber.triggers:
        return False
    if subscriber.is_global:
        return True
    return agent_id is not None and subscriber.agent_id == agent_id


class TriggerResolver:
    """Resolves (event, agent scope) to the set of eligible subscribers."""

    def __init__(self, subscriber_store: SubscriberStore):
        self.subscriber_store = subscriber_store

    async def resolve(self, event: str, agent_id: Optional[str] = None) -> List[Subscriber]:
        """
        Return enabled, active subscribers of event within the agent scope.

        No ordering is guaranteed. Store failures propagate.
        """
        candidates = await self.subscriber_store.list_subscribers_for_trigger(event)
        eligible = [s for s in candidates if subscriber_matches(s, event, agent_id)]

        logger.info(
            "Subscribers resolved",
            trigger=event,
            agent_id=agent_id,
            candidates=len(candidates),
            eligible=len(eligible)
        )
        return eligible
