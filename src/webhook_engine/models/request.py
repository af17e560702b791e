"""
Module: request.py
Description: API request models for the webhook engine.

Defines request models for incoming API calls. These models handle
input validation and transformation for API endpoints.

Key Components:
- TriggerEventRequest: Model for POST /events/trigger requests

Dependencies: pydantic, typing
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TriggerEventRequest(BaseModel):
    """
    Request model for triggering a lifecycle event.

    Event producers call this with the trigger name and the session
    (and optionally agent) data that becomes the envelope's data.

    Attributes:
        event: Trigger name (e.g. 'session_completed' or 'field-collected');
            any name is accepted and matched against subscriber triggers
        session: Session data placed under data.session
        agent: Optional agent data placed under data.agent
        agent_id: Agent scope used to select subscribers
        session_id: Correlation id recorded on every delivery log entry
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True
    )

    event: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Trigger name"
    )
    session: Dict[str, Any] = Field(
        ...,
        description="Session data"
    )
    agent: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Optional agent data"
    )
    agent_id: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Agent scope for subscriber selection"
    )
    session_id: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Correlation id (defaults to session.session_id or session.id)"
    )

    def correlation_id(self) -> Optional[str]:
        """Correlation id for delivery logs, falling back to the session data."""
        if self.session_id:
            return self.session_id
        candidate = self.session.get("session_id") or self.session.get("id")
        return str(candidate) if candidate is not None else None

    def scope(self) -> Optional[str]:
        """Agent scope, falling back to the session's agent_id."""
        if self.agent_id:
            return self.agent_id
        candidate = self.session.get("agent_id")
        return str(candidate) if candidate is not None else None
