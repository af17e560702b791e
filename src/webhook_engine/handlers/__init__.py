"""
Module: handlers
Description: Package initialization for API endpoint handlers.

This package contains FastAPI route handlers for the webhook engine:
- events: Lifecycle event trigger endpoint
- webhooks: Test delivery and delivery log endpoints

All handlers use dependency injection for the delivery engine.
"""

__all__ = []
