"""
Module: models
Description: Package initialization for Pydantic data models.

This package contains all data models used by the webhook engine:
- Subscriber / RetryPolicy: Configured webhook endpoints
- DeliveryLogEntry: Recorded delivery attempts
- RetryTask: Durable next-attempt description
- Request and response models for the HTTP API

All models are exported here for convenient importing.
"""

from .delivery import (
    AttemptResult,
    ChainOutcome,
    DeliveryLogEntry,
    DeliveryStatus,
    ErrorType,
    RetryTask,
    TestDeliveryResult,
)
from .request import TriggerEventRequest
from .response import DeliveryLogListResponse, TriggerAcceptedResponse
from .subscriber import AuthType, BackoffType, RetryPolicy, Subscriber, SubscriberStatus

__all__ = [
    "AttemptResult",
    "AuthType",
    "BackoffType",
    "ChainOutcome",
    "DeliveryLogEntry",
    "DeliveryLogListResponse",
    "DeliveryStatus",
    "ErrorType",
    "RetryPolicy",
    "RetryTask",
    "Subscriber",
    "SubscriberStatus",
    "TestDeliveryResult",
    "TriggerAcceptedResponse",
    "TriggerEventRequest",
]
