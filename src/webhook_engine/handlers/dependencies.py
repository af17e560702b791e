"""
Module: dependencies.py
Description: FastAPI dependencies shared by the route handlers.
"""

from webhook_engine.config.settings import settings
from webhook_engine.delivery.engine import WebhookDeliveryEngine
from webhook_engine.delivery.rate_limit import SlidingWindowRateLimiter

# Rate limit windows must outlive a single request
rate_limiter = SlidingWindowRateLimiter()


def get_engine() -> WebhookDeliveryEngine:
    """
    Dependency to get the webhook delivery engine.

    Creates an engine wired to DynamoDB, SQS and CloudWatch from
    the global settings, sharing the process-wide rate limiter.

    Returns:
        Configured WebhookDeliveryEngine instance
    """
    return WebhookDeliveryEngine.from_settings(settings, rate_limiter=rate_limiter)
