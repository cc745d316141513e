"""
Reconnect backoff for bus subscribers.

Each channel subscriber waits ``initial_delay * backoff_base ** n`` seconds
after its n-th consecutive failure, capped at ``max_delay`` and spread by a
random jitter so several gateway processes do not hammer a restarting
Redis in lockstep.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Final

# Exponents above this already exceed any sane max_delay
_MAX_EXPONENT: Final[int] = 64


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Backoff parameters. Validated on construction."""

    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_base: float = 2.0
    jitter_factor: float = 0.25
    max_attempts: int = 10

    def __post_init__(self) -> None:
        problems = []
        if self.initial_delay <= 0:
            problems.append("initial_delay must be positive")
        if self.max_delay < self.initial_delay:
            problems.append("max_delay cannot be smaller than initial_delay")
        if self.backoff_base < 1:
            problems.append("backoff_base cannot be below 1")
        if not 0 <= self.jitter_factor <= 1:
            problems.append("jitter_factor must lie in [0, 1]")
        if self.max_attempts < 1:
            problems.append("max_attempts must be at least 1")
        if problems:
            raise ValueError("; ".join(problems))

    def ceiling(self, attempt: int) -> float:
        """Delay for ``attempt`` before jitter is applied."""
        exponent = min(max(attempt, 0), _MAX_EXPONENT)
        return min(self.initial_delay * self.backoff_base**exponent, self.max_delay)


def calculate_delay_with_jitter(attempt: int, config: RetryConfig | None = None) -> float:
    """
    Seconds to sleep before retry ``attempt`` (0 is the first retry).

    The result lies within ``ceiling(attempt) * (1 +/- jitter_factor)``
    and is never negative.
    """
    config = config or RetryConfig()
    delay = config.ceiling(attempt)
    spread = delay * config.jitter_factor
    if spread:
        delay += random.uniform(-spread, spread)
    return max(delay, 0.0)


def create_redis_retry_config(max_delay: float = 30.0, max_attempts: int = 10) -> RetryConfig:
    return RetryConfig(max_delay=max_delay, max_attempts=max_attempts)
