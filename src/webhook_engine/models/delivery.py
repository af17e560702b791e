"""
Module: delivery.py
Description: Delivery attempt data models.

Defines the delivery log entry written once per HTTP try, the raw
result of a single attempt, the per-subscriber chain outcome and
the durable retry task used to resume a chain later.

Key Components:
- DeliveryLogEntry: Persisted record of one delivery attempt
- AttemptResult: Structured outcome of one HTTP attempt
- ChainOutcome: Result of one subscriber's retry chain
- TestDeliveryResult: Synchronous result of a test delivery
- RetryTask: Serializable description of the next attempt in a chain

Dependencies: pydantic, datetime, enum, hashlib, typing, uuid
"""

import hashlib
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def generate_log_id() -> str:
    """Generate a delivery log identifier (dlv_ + 24 hex chars)."""
    return f"dlv_{uuid4().hex[:24]}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryStatus(str, Enum):
    """Status of a delivery log entry."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    RETRYING = "retrying"


class ErrorType(str, Enum):
    """Error kinds recorded on failed attempts. HTTP failures carry none."""

    NETWORK_ERROR = "network_error"
    CONFIGURATION_ERROR = "configuration_error"


class AttemptResult(BaseModel):
    """
    Outcome of exactly one HTTP attempt.

    A transport failure has no status code and error_type network_error;
    an HTTP failure has a status code and no error_type.
    """

    success: bool
    status_code: Optional[int] = None
    response_headers: Dict[str, str] = Field(default_factory=dict)
    response_body: Optional[str] = None
    error_message: Optional[str] = None
    error_type: Optional[ErrorType] = None
    started_at: datetime
    completed_at: datetime
    duration_ms: int = Field(..., ge=0)


class DeliveryLogEntry(BaseModel):
    """
    Persisted record of one delivery attempt.

    Entries are immutable once recorded and are never deleted by the
    engine; retention is an external data-lifecycle policy.

    Attributes:
        id: Log entry identifier
        webhook_id: Subscriber the attempt was made for
        session_id: Correlation id (e.g. the session that fired the event)
        event: Trigger name the attempt delivered
        status: success or failed (pending/retrying reserved for producers)
        attempt_number: 1-indexed attempt number within the chain
        response_code: HTTP status code, absent on transport errors
        response_body: Response body, truncated
        response_headers: Response headers
        error_message: Error description when applicable
        error_type: network_error or configuration_error
        request_payload: JSON object parsed from the exact bytes sent
        request_headers: Exact headers sent
        started_at: Attempt start time
        completed_at: Attempt completion time
        duration_ms: Wall-clock duration
        will_retry: Whether another attempt follows
        next_retry_at: When the next attempt is due
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_log_id, pattern=r"^dlv_[a-f0-9]{24}$")
    webhook_id: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    event: Optional[str] = None
    status: DeliveryStatus
    attempt_number: int = Field(default=1, ge=1)
    response_code: Optional[int] = None
    response_body: Optional[str] = None
    response_headers: Dict[str, str] = Field(default_factory=dict)
    error_message: Optional[str] = None
    error_type: Optional[ErrorType] = None
    request_payload: Dict[str, Any] = Field(default_factory=dict)
    request_headers: Dict[str, str] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = Field(default=None, ge=0)
    will_retry: bool = False
    next_retry_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)


class ChainOutcome(BaseModel):
    """Result of one subscriber's retry chain, as collected by the fan-out."""

    webhook_id: str
    success: bool
    attempts: int = Field(default=0, ge=0)
    response_code: Optional[int] = None
    error: Optional[str] = None
    next_retry_at: Optional[datetime] = None

    @property
    def pending(self) -> bool:
        """True when a further attempt has been scheduled."""
        return self.next_retry_at is not None


class TestDeliveryResult(BaseModel):
    """Synchronous result of an interactive test delivery."""

    __test__ = False

    success: bool
    response_code: Optional[int] = None
    response_body: Optional[str] = None
    error: Optional[str] = None


class RetryTask(BaseModel):
    """
    Durable description of the next attempt in a retry chain.

    Carries the exact body text so the resumed attempt signs and sends
    the same bytes as the first one. Every attempt of a chain shares
    chain_id, which together with attempt_number fixes the attempt's
    delivery log id.
    """

    chain_id: str = Field(default_factory=lambda: uuid4().hex, min_length=1)
    webhook_id: str = Field(..., min_length=1)
    event: str = Field(..., min_length=1)
    body: str = Field(..., description="Exact serialized envelope")
    attempt_number: int = Field(default=1, ge=1)
    session_id: Optional[str] = None
    run_at: datetime = Field(default_factory=utc_now)

    @property
    def body_bytes(self) -> bytes:
        return self.body.encode("utf-8")

    @property
    def log_id(self) -> str:
        """Delivery log id of this attempt; the same on every redelivery."""
        digest = hashlib.sha256(f"{self.chain_id}:{self.attempt_number}".encode("utf-8")).hexdigest()
        return f"dlv_{digest[:24]}"

    def next_attempt(self, run_at: datetime) -> "RetryTask":
        """Return the task for the following attempt, due at run_at."""
        return self.model_copy(update={
            "attempt_number": self.attempt_number + 1,
            "run_at": run_at,
        })
