"""
Module: test_payload.py
Description: Unit tests for webhook envelopes and trigger requests.
"""

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from webhook_engine.models.payload import (
    TEST_EVENT,
    TEST_SESSION_ID,
    build_test_payload,
    build_webhook_payload,
    isoformat_utc,
    serialize_payload,
)
from webhook_engine.models.request import TriggerEventRequest
from webhook_engine.models.subscriber import Subscriber


class TestWebhookPayload:
    """Test cases for envelope construction."""

    def test_envelope_shape(self):
        timestamp = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
        session = {"session_id": "sess-1", "agent_id": "agent-1"}

        payload = build_webhook_payload("session_completed", session, timestamp=timestamp)

        assert payload == {
            "event": "session_completed",
            "timestamp": "2024-05-01T12:30:00Z",
            "data": {"session": session},
        }

    def test_agent_included_when_given(self):
        payload = build_webhook_payload("session_started", {"id": "s"}, agent={"id": "agent-1"})

        assert payload["data"]["agent"] == {"id": "agent-1"}

    def test_naive_timestamp_treated_as_utc(self):
        assert isoformat_utc(datetime(2024, 1, 1, 0, 0)) == "2024-01-01T00:00:00Z"

    def test_test_payload(self):
        subscriber = Subscriber(id="wh_1", url="https://h.example.com", agent_id="agent-1")

        payload = build_test_payload(subscriber)

        assert payload["event"] == TEST_EVENT
        assert payload["webhook_id"] == "wh_1"
        assert payload["data"] == {"session_id": TEST_SESSION_ID, "agent_id": "agent-1", "test": True}

    def test_serialization_is_compact_and_stable(self):
        payload = {"event": "x", "data": {"b": 1, "a": [1, 2]}}

        body = serialize_payload(payload)

        assert body == b'{"event":"x","data":{"b":1,"a":[1,2]}}'
        assert serialize_payload(payload) == body
        assert json.loads(body) == payload


class TestTriggerEventRequest:
    """Test cases for TriggerEventRequest validation."""

    def test_valid_request(self):
        request = TriggerEventRequest(
            event="session_completed",
            session={"session_id": "sess-1"},
            agent_id="agent-1"
        )

        assert request.scope() == "agent-1"
        assert request.correlation_id() == "sess-1"

    def test_falls_back_to_session_fields(self):
        request = TriggerEventRequest(event="session_completed", session={"id": 42, "agent_id": "agent-9"})

        assert request.correlation_id() == "42"
        assert request.scope() == "agent-9"

    def test_explicit_ids_win(self):
        request = TriggerEventRequest(
            event="session_completed",
            session={"session_id": "sess-1", "agent_id": "agent-1"},
            session_id="corr-1",
            agent_id="agent-2"
        )

        assert request.correlation_id() == "corr-1"
        assert request.scope() == "agent-2"

    @pytest.mark.parametrize("event", ["session-started", "session-completed", "field-collected", "Session_Completed"])
    def test_any_event_name_accepted(self, event):
        """Trigger names are matched against subscribers, not a fixed vocabulary."""
        assert TriggerEventRequest(event=event, session={}).event == event

    @pytest.mark.parametrize("event", ["", "   ", "x" * 101])
    def test_invalid_event_name(self, event):
        with pytest.raises(ValidationError):
            TriggerEventRequest(event=event, session={})
