r"""Retry decision logic for failed attempts.

This module provides the RetryDecider class that decides whether a
failed attempt is retried and how long to wait before the retry, based
on the retry policy, the error and the server hints.
"""

from __future__ import annotations

__all__ = ["RetryDecider"]

import inspect
import logging
from typing import TYPE_CHECKING

from aresky.exceptions import AbortError, ForceRetryError, HTTPError, RequestTimeoutError
from aresky.retrying.strategy import RetryStrategy
from aresky.utils.retry_after import get_retry_after_header, parse_retry_after

if TYPE_CHECKING:
    from aresky.core.config import RetryPolicy

logger: logging.Logger = logging.getLogger(__name__)


class RetryDecider:
    """Decides whether a failed attempt should be retried.

    The checks run in this order:

    1. the retry limit, which bounds every retry including forced ones;
    2. a forced retry (``ForceRetryError``) is always retried;
    3. ``should_retry``: exactly ``True`` retries, exactly ``False``
       gives up, any other value falls through;
    4. a timeout is retried only with ``retry_on_timeout``;
    5. an ``AbortError`` is never retried;
    6. an ``HTTPError`` needs a retryable status code. The delay comes
       from a ``Retry-After``-style header for the ``after_status_codes``,
       and a 413 without such a header is not retried.

    Anything else is retried with the backoff delay of the strategy.

    Args:
        policy: The retry policy.
        strategy: Optional strategy computing the backoff delays.
    """

    def __init__(self, policy: RetryPolicy, strategy: RetryStrategy | None = None) -> None:
        self.policy = policy
        self.strategy = strategy if strategy is not None else RetryStrategy(policy)

    async def compute_delay(self, error: BaseException, retry_count: int) -> float | None:
        """Compute the delay before the next attempt.

        Args:
            error: The error of the failed attempt.
            retry_count: The retry number, already incremented for this
                failure.

        Returns:
            The delay in milliseconds, or ``None`` if the error must be
            raised instead.
        """
        if retry_count > self.policy.limit:
            logger.debug(f"Retry limit reached ({self.policy.limit})")
            return None

        if isinstance(error, ForceRetryError):
            logger.debug(f"Forced retry (code={error.code})")
            if error.custom_delay is not None:
                return max(0.0, error.custom_delay)
            return self.strategy.calculate_delay(retry_count)

        if self.policy.should_retry is not None:
            result = self.policy.should_retry(error, retry_count)
            if inspect.isawaitable(result):
                result = await result
            if result is False:
                logger.debug("should_retry returned False")
                return None
            if result is True:
                return self.strategy.calculate_delay(retry_count)

        if isinstance(error, RequestTimeoutError) and not self.policy.retry_on_timeout:
            logger.debug("Timed out attempts are not retried")
            return None

        if isinstance(error, AbortError):
            return None

        if isinstance(error, HTTPError):
            return self._compute_http_error_delay(error, retry_count)

        return self.strategy.calculate_delay(retry_count)

    def _compute_http_error_delay(self, error: HTTPError, retry_count: int) -> float | None:
        status_code = error.status_code
        if status_code not in self.policy.status_codes:
            logger.debug(f"Status {status_code} is not retryable")
            return None

        header = get_retry_after_header(error.response)
        if header is not None and status_code in self.policy.after_status_codes:
            after = parse_retry_after(header)
            if after is not None:
                # Server hints are used as is, without jitter
                return min(after, self.policy.max_retry_after)

        if status_code == 413:
            logger.debug("Status 413 without Retry-After is not retried")
            return None
        return self.strategy.calculate_delay(retry_count)
