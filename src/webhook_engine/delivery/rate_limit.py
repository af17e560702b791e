"""
Module: delivery/rate_limit.py
Description: Per-subscriber dispatch rate limiting.

Enforces each subscriber's rate_limit_per_minute with an in-memory
sliding window. State is per process; deferred dispatches go through
the retry scheduler so nothing is dropped.
"""

import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, List, NamedTuple

from webhook_engine.utils.logger import get_logger

logger = get_logger(__name__)


class RateLimitResult(NamedTuple):
    """Result of a rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime


class SlidingWindowRateLimiter:
    """
    In-memory sliding window rate limiter keyed by webhook id.

    Tracks dispatch timestamps within a rolling window; timestamps that
    fall outside the window are pruned on every check.
    """

    def __init__(self, window_seconds: int = 60, clock: Callable[[], float] = time.time) -> None:
        """
        Initialize the rate limiter.

        Args:
            window_seconds: Size of the sliding window in seconds
            clock: Time source returning epoch seconds
        """
        self._window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, List[float]] = defaultdict(list)

    def check(self, webhook_id: str, limit: int) -> RateLimitResult:
        """
        Check, and on success record, one dispatch for a webhook.

        Args:
            webhook_id: Subscriber identifier
            limit: Maximum dispatches allowed in the window

        Returns:
            RateLimitResult; reset_at is when the oldest dispatch leaves the window
        """
        now = self._clock()
        window_start = now - self._window_seconds
        requests = [ts for ts in self._windows[webhook_id] if ts > window_start]

        allowed = len(requests) < limit
        if allowed:
            requests.append(now)
        self._windows[webhook_id] = requests

        oldest = min(requests) if requests else now
        reset_at = datetime.fromtimestamp(oldest + self._window_seconds, tz=timezone.utc)

        if not allowed:
            logger.info(
                "Webhook rate limit reached",
                webhook_id=webhook_id,
                limit=limit,
                reset_at=reset_at.isoformat()
            )

        return RateLimitResult(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - len(requests)),
            reset_at=reset_at
        )

    def reset(self, webhook_id: str) -> None:
        """Forget all recorded dispatches for a webhook."""
        self._windows.pop(webhook_id, None)
