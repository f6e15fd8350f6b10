r"""Validation of the call-time arguments.

Every function here raises before any network activity happens.
"""

from __future__ import annotations

__all__ = [
    "validate_body_for_method",
    "validate_callback",
    "validate_input",
    "validate_options",
    "validate_prefix_input",
    "validate_retry_options",
    "validate_timeout",
]

from collections.abc import Mapping
from typing import Any

import httpx

from aresky.core.config import MAX_SAFE_TIMEOUT

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def validate_options(options: Any) -> None:
    """Validate that an options argument is a mapping.

    Args:
        options: The value to check. ``None`` is accepted.

    Raises:
        TypeError: If ``options`` is neither ``None`` nor a mapping.

    Example:
        ```pycon
        >>> from aresky.core.validation import validate_options
        >>> validate_options({"timeout": 1000})
        >>> validate_options(None)

        ```
    """
    if options is not None and not isinstance(options, Mapping):
        msg = f"The `options` argument must be a mapping, got {type(options).__name__}"
        raise TypeError(msg)


def validate_input(input: Any) -> None:  # noqa: A002
    """Validate the request input.

    Args:
        input: The value to check.

    Raises:
        TypeError: If ``input`` is not a ``str``, ``httpx.URL`` or
            ``httpx.Request``.
    """
    if not isinstance(input, (str, httpx.URL, httpx.Request)):
        msg = "`input` must be a string, URL, or Request"
        raise TypeError(msg)


def validate_prefix_input(input: Any, prefix_url: str) -> None:  # noqa: A002
    """Reject a string input with a leading slash when a prefix is set.

    Args:
        input: The request input.
        prefix_url: The configured prefix URL (may be empty).

    Raises:
        ValueError: If ``prefix_url`` is set and ``input`` starts with ``/``.

    Example:
        ```pycon
        >>> from aresky.core.validation import validate_prefix_input
        >>> validate_prefix_input("users", "https://example.com/api")
        >>> validate_prefix_input("/users", "https://example.com/api")  # doctest: +SKIP
        Traceback (most recent call last):
        ...
        ValueError: `input` must not begin with a slash when using `prefix_url`

        ```
    """
    if prefix_url and isinstance(input, str) and input.startswith("/"):
        msg = "`input` must not begin with a slash when using `prefix_url`"
        raise ValueError(msg)


def validate_timeout(timeout: Any) -> None:
    """Validate the timeout option.

    Args:
        timeout: Milliseconds, or ``False``/``None`` to disable the timeout.

    Raises:
        TypeError: If the timeout is not a number.
        ValueError: If the timeout is negative or greater than
            ``MAX_SAFE_TIMEOUT``.

    Example:
        ```pycon
        >>> from aresky.core.validation import validate_timeout
        >>> validate_timeout(10_000)
        >>> validate_timeout(False)
        >>> validate_timeout(2_147_483_648)  # doctest: +SKIP
        Traceback (most recent call last):
        ...
        ValueError: The `timeout` option cannot be greater than 2147483647

        ```
    """
    if timeout is None or timeout is False:
        return
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        msg = f"The `timeout` option must be a number or False, got {timeout!r}"
        raise TypeError(msg)
    if timeout > MAX_SAFE_TIMEOUT:
        msg = f"The `timeout` option cannot be greater than {MAX_SAFE_TIMEOUT}"
        raise ValueError(msg)
    if timeout < 0:
        msg = f"The `timeout` option must be >= 0, got {timeout}"
        raise ValueError(msg)


def validate_retry_options(retry: Mapping[str, Any]) -> None:
    """Validate a partial retry policy given as a mapping.

    Args:
        retry: The retry options.

    Raises:
        TypeError: If ``methods`` or ``status_codes`` is given but is not a
            sequence.
        ValueError: If ``limit`` is negative.
    """
    methods = retry.get("methods")
    if methods is not None and not isinstance(methods, _SEQUENCE_TYPES):
        msg = "retry.methods must be a list"
        raise TypeError(msg)
    status_codes = retry.get("status_codes")
    if status_codes is not None and not isinstance(status_codes, _SEQUENCE_TYPES):
        msg = "retry.status_codes must be a list"
        raise TypeError(msg)
    limit = retry.get("limit")
    if limit is not None and limit < 0:
        msg = f"retry.limit must be >= 0, got {limit}"
        raise ValueError(msg)


def validate_body_for_method(method: str, has_body: bool) -> None:
    """Reject a request body on GET and HEAD requests.

    Args:
        method: The normalized HTTP method.
        has_body: Whether a ``body`` or ``json`` option was given.

    Raises:
        TypeError: If a body is given for a GET or HEAD request.
    """
    if has_body and method.upper() in {"GET", "HEAD"}:
        msg = f"Request with {method.upper()} method cannot have body."
        raise TypeError(msg)


def validate_callback(name: str, callback: Any) -> None:
    """Validate that an optional callback option is callable.

    Args:
        name: The option name, used in the error message.
        callback: The value to check. ``None`` is accepted.

    Raises:
        TypeError: If ``callback`` is set and is not callable.
    """
    if callback is not None and not callable(callback):
        msg = f"The `{name}` option must be a function"
        raise TypeError(msg)
