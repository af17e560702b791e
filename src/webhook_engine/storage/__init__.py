"""
Module: storage
Description: Package initialization for data persistence layer.

This package contains the persistence interfaces the delivery engine
depends on and their implementations:
- base: Subscriber, status and delivery log interfaces
- dynamodb: DynamoDB-backed stores for production
- memory: In-memory stores for local runs and tests

All storage implementations follow async interfaces for consistency.
"""

__all__ = []
