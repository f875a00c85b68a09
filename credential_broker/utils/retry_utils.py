"""
Retry helpers for token acquisition.

Holds the single failure-routing function used by the token broker and the
backoff calculation it sleeps on.
"""

import random
from typing import Callable, Optional

from ..constants import AUTH_FAILURE_MARKERS, NETWORK_FAILURE_MARKERS, FailureKind


def classify_failure(message: Optional[str]) -> FailureKind:
    """
    Classify a failure message for retry routing.

    Matching is case-insensitive against a fixed vocabulary. Auth markers are
    checked first so a message such as "401 Unauthorized (connection closed)"
    routes to AUTH rather than NETWORK.

    Args:
        message: Failure text as produced at the I/O boundary

    Returns:
        FailureKind.AUTH, FailureKind.NETWORK or FailureKind.OTHER
    """
    if not message:
        return FailureKind.OTHER

    text = message.lower()
    if any(marker in text for marker in AUTH_FAILURE_MARKERS):
        return FailureKind.AUTH
    if any(marker in text for marker in NETWORK_FAILURE_MARKERS):
        return FailureKind.NETWORK
    return FailureKind.OTHER


def calculate_exponential_backoff(
    retry_count: int,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    multiplier: float = 2.0,
    jitter_ratio: float = 0.1,
    random_fn: Callable[[], float] = random.random,
) -> float:
    """
    Calculate exponential backoff delay with additive jitter.

    Args:
        retry_count: Current retry attempt (0-based)
        base_delay: Base delay in seconds (default: 1)
        max_delay: Maximum delay in seconds before jitter (default: 10)
        multiplier: Exponential multiplier (default: 2.0)
        jitter_ratio: Upper bound of added jitter as a fraction of the delay
        random_fn: Source of uniform values in [0, 1)

    Returns:
        Delay in seconds before next retry

    Example (base 1s, cap 10s, jitter off):
        retry_count=0: 1s
        retry_count=1: 2s
        retry_count=2: 4s
        retry_count=3: 8s
        retry_count=4: 10s (capped at max_delay)
    """
    if retry_count < 0:
        return base_delay

    delay = min(base_delay * (multiplier ** retry_count), max_delay)

    if jitter_ratio > 0:
        delay += random_fn() * jitter_ratio * delay

    return delay
