"""
Module: subscriber.py
Description: Webhook subscriber data models.

Defines the configured webhook endpoint (Subscriber) and its retry
policy. Subscribers are authored elsewhere; the engine reads them
and only updates their delivery-status fields.

Key Components:
- Subscriber: Webhook endpoint with trigger filters and auth scheme
- RetryPolicy: Max retries, backoff kind and initial delay
- AuthType, BackoffType, SubscriberStatus, HttpMethod: Enumerations

Dependencies: pydantic, datetime, enum, typing
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

GLOBAL_SCOPE = "global"

class AuthType(str, Enum):
    """Authentication scheme applied to outbound requests."""

    NONE = "none"
    BEARER = "bearer"
    BASIC = "basic"
    HMAC = "hmac"


class BackoffType(str, Enum):
    """Wait-time policy between retry attempts."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"


class SubscriberStatus(str, Enum):
    """Lifecycle status of a subscriber."""

    ACTIVE = "active"
    PAUSED = "paused"
    DELETED = "deleted"


class HttpMethod(str, Enum):
    """HTTP methods a subscriber may be configured with."""

    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"


class RetryPolicy(BaseModel):
    """
    Retry policy for a subscriber.

    Attributes:
        max_retries: Retries after the initial attempt (0 = single attempt)
        backoff_type: exponential or linear
        initial_delay_ms: Base delay in milliseconds
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0, le=20, description="Retries after the first attempt")
    backoff_type: BackoffType = Field(default=BackoffType.EXPONENTIAL, description="Backoff kind")
    initial_delay_ms: int = Field(default=1000, gt=0, description="Initial delay in milliseconds")

    @property
    def max_attempts(self) -> int:
        """Total attempts in a chain, the initial attempt included."""
        return self.max_retries + 1


class Subscriber(BaseModel):
    """
    Configured webhook endpoint.

    Attributes:
        id: Subscriber identifier
        user_id: Owning tenant (optional)
        agent_id: Agent scope; None means global (matches every agent)
        url: Target URL
        method: HTTP method
        headers: Static headers sent with every request
        auth_type: Authentication scheme
        auth_token: Secret or token for the auth scheme
        triggers: Event names this subscriber receives
        retry_policy: Retry policy
        rate_limit_per_minute: Maximum dispatches per rolling minute
        enabled: Whether the subscriber receives events
        status: Lifecycle status
        last_successful_delivery_at: Set by the engine on success
        last_delivery_status: Set by the engine after every attempt
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(..., min_length=1, description="Subscriber identifier")
    user_id: Optional[str] = Field(default=None, description="Owning tenant")
    agent_id: Optional[str] = Field(default=None, description="Agent scope (None = global)")
    url: str = Field(..., description="Target URL")
    method: HttpMethod = Field(default=HttpMethod.POST, description="HTTP method")
    headers: Dict[str, str] = Field(default_factory=dict, description="Static headers")
    auth_type: AuthType = Field(default=AuthType.NONE, description="Authentication scheme")
    auth_token: Optional[str] = Field(default=None, description="Secret or token", repr=False)
    triggers: List[str] = Field(default_factory=list, description="Subscribed trigger names")
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy, description="Retry policy")
    rate_limit_per_minute: int = Field(default=60, ge=1, description="Events per minute")
    enabled: bool = Field(default=True, description="Whether deliveries are enabled")
    status: SubscriberStatus = Field(default=SubscriberStatus.ACTIVE, description="Lifecycle status")
    last_successful_delivery_at: Optional[datetime] = Field(default=None)
    last_delivery_status: Optional[str] = Field(default=None)
    created_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate the target is an HTTP/HTTPS URL."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError("url must be a valid HTTP/HTTPS URL")
        return v

    @field_validator('agent_id', mode='before')
    @classmethod
    def normalize_agent_scope(cls, v):
        """Store the global scope as None, whether given as blank or 'global'."""
        if isinstance(v, str) and v.strip().lower() in ('', GLOBAL_SCOPE):
            return None
        return v

    @field_validator('auth_token', mode='before')
    @classmethod
    def blank_token_to_none(cls, v):
        """Treat an empty secret as unset."""
        if isinstance(v, str) and not v:
            return None
        return v

    @property
    def is_global(self) -> bool:
        """True when the subscriber matches every agent."""
        return self.agent_id is None

    @property
    def is_deliverable(self) -> bool:
        """True when the subscriber is enabled and active."""
        return self.enabled and self.status == SubscriberStatus.ACTIVE
