r"""Retry-After header parsing utilities.

Servers announce when a request may be retried with ``Retry-After`` (RFC
7231) or one of the rate limit headers used by popular APIs. The value is
either a number of seconds, an HTTP-date, or a Unix timestamp.
"""

from __future__ import annotations

__all__ = ["RETRY_AFTER_HEADERS", "TIMESTAMP_THRESHOLD", "get_retry_after_header", "parse_retry_after"]

import logging
import time
from contextlib import suppress
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

logger: logging.Logger = logging.getLogger(__name__)

# Checked in order, the first present header wins
RETRY_AFTER_HEADERS = (
    "Retry-After",
    "RateLimit-Reset",
    "X-RateLimit-Retry-After",  # Symfony-based services
    "X-RateLimit-Reset",  # GitHub
    "X-Rate-Limit-Reset",  # Twitter
)

# Numeric values (in milliseconds) at or after this date are absolute
# timestamps rather than delays. A fixed date protects against clock skew.
TIMESTAMP_THRESHOLD = datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp() * 1000


def get_retry_after_header(response: httpx.Response) -> str | None:
    """Return the first retry hint header found in ``response``."""
    for name in RETRY_AFTER_HEADERS:
        value = response.headers.get(name)
        if value:
            return value
    return None


def parse_retry_after(retry_after_header: str | None) -> float | None:
    """Parse a retry hint header value into a delay in milliseconds.

    The value can be:
    1. A number of seconds (e.g., "120")
    2. An HTTP-date in RFC 5322 format (e.g., "Wed, 21 Oct 2015 07:28:00 GMT")
    3. A Unix timestamp in seconds, recognized when it falls at or after
       2024-01-01

    Args:
        retry_after_header: The header value, or None if the header is not
            present in the response.

    Returns:
        The delay in milliseconds (never negative), or None if the header is
        absent or cannot be parsed.

    Example:
        ```pycon
        >>> from aresky.utils.retry_after import parse_retry_after
        >>> parse_retry_after("2")
        2000.0
        >>> parse_retry_after("0")
        0.0
        >>> parse_retry_after(None) is None
        True
        >>> parse_retry_after("invalid") is None
        True

        ```
    """
    if retry_after_header is None:
        return None

    with suppress(ValueError):
        after = float(retry_after_header) * 1000
        if after >= TIMESTAMP_THRESHOLD:
            after -= time.time() * 1000
        return max(0.0, after)

    try:
        retry_date: datetime = parsedate_to_datetime(retry_after_header)
        now = datetime.now(timezone.utc)
        delta_ms = (retry_date - now).total_seconds() * 1000
        return max(0.0, delta_ms)
    except (ValueError, TypeError, OverflowError):
        logger.debug(f"Failed to parse Retry-After header: {retry_after_header!r}")
        return None
