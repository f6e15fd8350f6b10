r"""Configuration defaults and the retry policy dataclass.

All durations are expressed in milliseconds.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_RETRY_LIMIT",
    "DEFAULT_TIMEOUT",
    "MAX_SAFE_TIMEOUT",
    "REQUEST_METHODS",
    "RESPONSE_TYPES",
    "RETRY_AFTER_STATUS_CODES",
    "RETRY_METHODS",
    "RETRY_STATUS_CODES",
    "STOP",
    "RetryPolicy",
    "default_delay",
]

import math
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


# Default timeout of a single attempt in milliseconds
DEFAULT_TIMEOUT = 10_000

# The maximum value of a 32-bit signed integer. Larger timer delays are not
# represented reliably, so timeouts and retry delays are capped to it.
MAX_SAFE_TIMEOUT = 2_147_483_647

# Verbs that are uppercased during normalization. Any other method is passed
# through unchanged.
REQUEST_METHODS = ("get", "post", "put", "patch", "head", "delete")

# Default number of retries after the initial attempt
DEFAULT_RETRY_LIMIT = 2

RETRY_METHODS = ("get", "put", "head", "delete", "options", "trace")

# 408: Request Timeout
# 413: Payload Too Large (only retried when Retry-After is present)
# 429: Too Many Requests
# 500, 502, 503, 504: transient server errors
RETRY_STATUS_CODES = (408, 413, 429, 500, 502, 503, 504)

# Status codes whose Retry-After header is honored
RETRY_AFTER_STATUS_CODES = (413, 429, 503)

# Accept header used by each body shortcut of ``ResponsePromise``
RESPONSE_TYPES = {
    "json": "application/json",
    "text": "text/*",
    "form_data": "multipart/form-data",
    "array_buffer": "*/*",
    "blob": "*/*",
    "bytes": "*/*",
}


class _StopType:
    """Sentinel type returned by before-retry hooks to stop retrying."""

    _instance: _StopType | None = None

    def __new__(cls) -> _StopType:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "STOP"

    def __reduce__(self) -> str:
        return "STOP"


STOP = _StopType()


def default_delay(attempt_count: int) -> float:
    r"""Compute the default exponential backoff delay.

    Args:
        attempt_count: The retry number, starting at 1.

    Returns:
        The delay in milliseconds: ``300 * 2 ** (attempt_count - 1)``.

    Example:
        ```pycon
        >>> from aresky.core.config import default_delay
        >>> default_delay(1)
        300.0
        >>> default_delay(3)
        1200.0

        ```
    """
    return 0.3 * (2 ** (attempt_count - 1)) * 1000


@dataclass(frozen=True)
class RetryPolicy:
    r"""Retry policy of a call.

    Args:
        limit: Number of retries after the first attempt. ``0`` disables
            retries.
        methods: Lowercase HTTP methods allowed to retry.
        status_codes: HTTP status codes allowed to retry.
        after_status_codes: Status codes for which a ``Retry-After`` header
            gives the delay.
        max_retry_after: Upper bound in milliseconds of a server-hinted delay.
        backoff_limit: Upper bound in milliseconds of a computed delay.
        delay: Function returning the delay in milliseconds for a retry
            number (starting at 1).
        jitter: ``True`` for full jitter, a function to transform the delay,
            or ``None`` to disable jitter.
        retry_on_timeout: Whether timed out attempts are retried.
        should_retry: Optional predicate called with
            ``(error, retry_count)``. ``True`` forces a retry, ``False``
            forbids it and any other value falls back to the default checks.

    Example:
        ```pycon
        >>> from aresky.core.config import RetryPolicy
        >>> policy = RetryPolicy()
        >>> policy.limit
        2
        >>> policy.merge(limit=5).limit
        5

        ```
    """

    limit: int = DEFAULT_RETRY_LIMIT
    methods: tuple[str, ...] = RETRY_METHODS
    status_codes: tuple[int, ...] = RETRY_STATUS_CODES
    after_status_codes: tuple[int, ...] = RETRY_AFTER_STATUS_CODES
    max_retry_after: float = math.inf
    backoff_limit: float = math.inf
    delay: Callable[[int], float] = field(default=default_delay)
    jitter: bool | Callable[[float], float] | None = None
    retry_on_timeout: bool = False
    should_retry: (
        Callable[[BaseException, int], bool | None | Awaitable[bool | None]] | None
    ) = None

    def merge(self, **overrides: Any) -> RetryPolicy:
        """Create a new policy with the given fields replaced.

        ``None`` values are ignored so that partial policies can be layered.

        Args:
            **overrides: Fields to override.

        Returns:
            A new ``RetryPolicy``.
        """
        filtered_overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **filtered_overrides)

    def allows_method(self, method: str) -> bool:
        return method.lower() in self.methods
