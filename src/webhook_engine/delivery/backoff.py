"""
Module: delivery/backoff.py
Description: Backoff delay calculation for retry chains.

The attempt number passed in is the number of the attempt that just
failed: the wait before attempt N uses N - 1.
"""

from tenacity import RetryCallState
from tenacity.wait import wait_base

from webhook_engine.models.subscriber import BackoffType, RetryPolicy


def calculate_exponential_backoff(attempt_number: int, initial_delay_ms: int) -> int:
    """initial_delay_ms * 2^(attempt_number - 1)"""
    return initial_delay_ms * 2 ** (attempt_number - 1)


def calculate_linear_backoff(attempt_number: int, initial_delay_ms: int) -> int:
    """initial_delay_ms * attempt_number"""
    return initial_delay_ms * attempt_number


def calculate_retry_delay(attempt_number: int, retry_policy: RetryPolicy) -> int:
    """
    Calculate the delay in milliseconds after a failed attempt.

    Args:
        attempt_number: Number of the preceding attempt (1-indexed)
        retry_policy: Subscriber's retry policy

    Returns:
        Delay in milliseconds
    """
    if attempt_number < 1:
        raise ValueError("attempt_number must be >= 1")

    if retry_policy.backoff_type == BackoffType.EXPONENTIAL:
        return calculate_exponential_backoff(attempt_number, retry_policy.initial_delay_ms)
    return calculate_linear_backoff(attempt_number, retry_policy.initial_delay_ms)


class PolicyBackoffWait(wait_base):
    """tenacity wait strategy driven by a subscriber's retry policy."""

    def __init__(self, retry_policy: RetryPolicy):
        self.retry_policy = retry_policy

    def __call__(self, retry_state: RetryCallState) -> float:
        return calculate_retry_delay(retry_state.attempt_number, self.retry_policy) / 1000.0
