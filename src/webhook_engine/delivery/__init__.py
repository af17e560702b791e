"""
Package: delivery
Description: Webhook delivery engine.

Provides request signing, backoff calculation, single-attempt HTTP
delivery, retry chains, trigger resolution and concurrent fan-out
to every eligible subscriber.
"""
