"""
Package: webhook_engine
Description: Outbound webhook delivery engine.

Delivers agent lifecycle events (session started, field collected,
session completed) to configured webhook subscribers with request
signing, retry/backoff and a durable delivery log.
"""

__version__ = "0.3.0"
