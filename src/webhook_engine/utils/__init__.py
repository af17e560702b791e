"""
Module: utils
Description: Package initialization for utility functions.

This package contains shared helpers used throughout the webhook
engine.

Current utilities:
- logger: Structured logging configuration and helpers
- metrics: CloudWatch delivery metrics
"""

__all__ = []
