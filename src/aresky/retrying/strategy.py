r"""Retry strategy for calculating backoff delays.

This module provides the RetryStrategy class for calculating retry
delays from a retry policy.
"""

from __future__ import annotations

__all__ = ["RetryStrategy"]

import math
import random
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aresky.core.config import RetryPolicy


class RetryStrategy:
    """Strategy for calculating retry delays with backoff and jitter.

    The delay of retry ``n`` is ``policy.delay(n)``, transformed by the
    jitter of the policy and capped to ``policy.backoff_limit``.

    Args:
        policy: The retry policy.

    Example:
        ```pycon
        >>> from aresky.core.config import RetryPolicy
        >>> from aresky.retrying import RetryStrategy
        >>> strategy = RetryStrategy(RetryPolicy(backoff_limit=1000))
        >>> strategy.calculate_delay(1)
        300.0
        >>> strategy.calculate_delay(4)
        1000

        ```
    """

    def __init__(self, policy: RetryPolicy) -> None:
        self.policy = policy

    def apply_jitter(self, delay: float) -> float:
        """Apply the jitter of the policy to a delay.

        ``True`` picks a uniform delay between 0 and ``delay``. A custom
        jitter function returning a negative or non-finite value is
        ignored.

        Args:
            delay: The delay in milliseconds.

        Returns:
            The jittered delay in milliseconds.
        """
        jitter = self.policy.jitter
        if jitter is True:
            return random.random() * delay  # noqa: S311
        if callable(jitter):
            jittered = jitter(delay)
            if not isinstance(jittered, (int, float)) or not math.isfinite(jittered) or jittered < 0:
                return delay
            return jittered
        return delay

    def calculate_delay(self, retry_count: int) -> float:
        """Calculate delay before a retry.

        Args:
            retry_count: The retry number, starting at 1.

        Returns:
            Delay in milliseconds.
        """
        return min(self.policy.backoff_limit, self.apply_jitter(self.policy.delay(retry_count)))
