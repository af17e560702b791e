"""
Module: response.py
Description: API response models for the webhook engine.

Defines response models for outgoing API calls. These models structure
the JSON responses returned by API endpoints.

Key Components:
- TriggerAcceptedResponse: Response for POST /events/trigger
- DeliveryLogListResponse: Page of delivery log entries

Dependencies: pydantic, typing
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from webhook_engine.models.delivery import DeliveryLogEntry


class TriggerAcceptedResponse(BaseModel):
    """
    Response model for an accepted trigger.

    Delivery runs in the background; outcomes are visible only
    through the delivery log.
    """

    event: str = Field(..., description="Trigger name")
    agent_id: Optional[str] = Field(default=None, description="Agent scope used")
    session_id: Optional[str] = Field(default=None, description="Correlation id")
    message: str = Field(default="Event accepted for delivery", description="Status message")


class DeliveryLogListResponse(BaseModel):
    """Page of delivery log entries, newest first."""

    logs: List[DeliveryLogEntry] = Field(default_factory=list)
    count: int = Field(default=0, ge=0, description="Number of entries in this page")
    limit: int = Field(..., ge=1, description="Requested page size")
