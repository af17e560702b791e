"""
Module: payload.py
Description: Outbound webhook envelope construction.

The envelope is serialized exactly once; the resulting bytes are both
signed and sent, so field order never causes a signature mismatch.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from webhook_engine.models.subscriber import Subscriber

TEST_EVENT = "test"
TEST_SESSION_ID = "test-session-id"


def isoformat_utc(value: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def build_webhook_payload(
    event: str,
    session: Dict[str, Any],
    agent: Optional[Dict[str, Any]] = None,
    timestamp: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Build the webhook envelope for a lifecycle event.

    Args:
        event: Trigger name (session_started, session_completed, ...)
        session: Session data
        agent: Agent data, omitted from the envelope when not given
        timestamp: Event time, defaults to now

    Returns:
        {"event": ..., "timestamp": ..., "data": {"session": ..., "agent"?: ...}}
    """
    data: Dict[str, Any] = {"session": session}
    if agent:
        data["agent"] = agent

    return {
        "event": event,
        "timestamp": isoformat_utc(timestamp or datetime.now(timezone.utc)),
        "data": data,
    }


def build_test_payload(subscriber: Subscriber) -> Dict[str, Any]:
    """Build the sample envelope sent by an interactive test delivery."""
    return {
        "event": TEST_EVENT,
        "webhook_id": subscriber.id,
        "timestamp": isoformat_utc(datetime.now(timezone.utc)),
        "data": {
            "session_id": TEST_SESSION_ID,
            "agent_id": subscriber.agent_id,
            "test": True,
        },
    }


def serialize_payload(payload: Dict[str, Any]) -> bytes:
    """Serialize an envelope to the exact bytes that are signed and sent."""
    return json.dumps(payload, separators=(",", ":"), default=str).encode("utf-8")
