"""
Retry configuration and backoff calculation for resilient operations.
"""

import random
from dataclasses import dataclass
from typing import Optional


class RetryConfig:
    """Configuration for retry behavior.

    ``max_attempts`` counts retries after the first call, so the default of 2
    allows up to three calls in total. ``max_delay`` caps a single wait and
    is off by default, so linear backoff stays ``base_delay * retry_number``
    for any configured base delay.
    """

    def __init__(self,
                 max_attempts: int = 2,
                 base_delay: float = 1.0,
                 max_delay: Optional[float] = None,
                 exponential_base: float = 2.0,
                 jitter: bool = False,
                 backoff_strategy: str = "linear"):
        if max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy


@dataclass
class RetryState:
    """Per-invocation retry bookkeeping. Never shared between requests."""

    max_attempts: int
    base_delay: float
    attempt: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


def calculate_delay(retry_number: int, config: RetryConfig) -> float:
    """Calculate the wait before retry number ``retry_number`` (1-based)."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (retry_number - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * retry_number
    else:
        delay = config.base_delay

    if config.max_delay is not None:
        delay = min(delay, config.max_delay)

    # Add jitter if enabled
    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)
