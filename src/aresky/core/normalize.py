r"""Normalization of the dynamic option shapes.

Number-or-mapping retry options and the different search params shapes
are resolved here into a single canonical representation so that the
rest of the pipeline never branches on them.
"""

from __future__ import annotations

__all__ = [
    "join_prefix_url",
    "normalize_request_method",
    "normalize_retry_options",
    "normalize_search_params",
    "replace_search_params",
]

import re
from collections.abc import Mapping
from typing import Any

import httpx

from aresky.core.config import REQUEST_METHODS, RetryPolicy
from aresky.core.validation import validate_prefix_input, validate_retry_options

_QUERY_PATTERN = re.compile(r"(?:\?.*?)?(?=#|$)")


def normalize_request_method(method: str) -> str:
    """Uppercase the standard HTTP verbs.

    Args:
        method: The HTTP method given by the caller.

    Returns:
        The uppercased method if it is a standard verb, otherwise the
        method unchanged.

    Example:
        ```pycon
        >>> from aresky.core.normalize import normalize_request_method
        >>> normalize_request_method("post")
        'POST'
        >>> normalize_request_method("PropFind")
        'PropFind'

        ```
    """
    if method.lower() in REQUEST_METHODS:
        return method.upper()
    return method


def normalize_retry_options(retry: int | Mapping[str, Any] | RetryPolicy | None = None) -> RetryPolicy:
    """Resolve the ``retry`` option into a full ``RetryPolicy``.

    Args:
        retry: A retry limit, a partial policy mapping, a ``RetryPolicy``
            or ``None`` for the defaults.

    Returns:
        The retry policy with every field populated.

    Raises:
        TypeError: If ``methods`` or ``status_codes`` is not a sequence.
        ValueError: If the limit is negative.

    Example:
        ```pycon
        >>> from aresky.core.normalize import normalize_retry_options
        >>> normalize_retry_options(5).limit
        5
        >>> normalize_retry_options({"methods": ["get"]}).methods
        ('get',)

        ```
    """
    if retry is None:
        return RetryPolicy()
    if isinstance(retry, RetryPolicy):
        return retry
    if isinstance(retry, bool) or not isinstance(retry, (int, Mapping)):
        msg = f"The `retry` option must be a number or a mapping, got {type(retry).__name__}"
        raise TypeError(msg)
    if isinstance(retry, int):
        validate_retry_options({"limit": retry})
        return RetryPolicy(limit=retry)

    validate_retry_options(retry)
    overrides = dict(retry)
    for key in ("methods", "status_codes", "after_status_codes"):
        if overrides.get(key) is not None:
            overrides[key] = tuple(overrides[key])
    if overrides.get("methods") is not None:
        overrides["methods"] = tuple(method.lower() for method in overrides["methods"])
    return RetryPolicy().merge(**overrides)


def normalize_search_params(search_params: Any) -> str | None:
    """Encode the ``search_params`` option as a query string.

    Args:
        search_params: A query string (a leading ``?`` is stripped), a
            sequence of key/value pairs, a mapping (``None`` values are
            dropped, list values repeat the key) or ``httpx.QueryParams``.

    Returns:
        The encoded query string without the leading ``?``, or ``None`` if
        no search params were given.

    Example:
        ```pycon
        >>> from aresky.core.normalize import normalize_search_params
        >>> normalize_search_params("?a=1")
        'a=1'
        >>> normalize_search_params({"a": 1, "b": None, "c": True})
        'a=1&c=true'
        >>> normalize_search_params([("k", "1"), ("k", "2")])
        'k=1&k=2'

        ```
    """
    if search_params is None:
        return None
    if isinstance(search_params, str):
        return search_params.removeprefix("?")
    if isinstance(search_params, httpx.QueryParams):
        return str(search_params)
    if isinstance(search_params, Mapping):
        pairs = []
        for key, value in search_params.items():
            if value is None:
                continue
            values = value if isinstance(value, (list, tuple)) else [value]
            pairs.extend((key, item) for item in values)
        return str(httpx.QueryParams(pairs))
    return str(httpx.QueryParams([tuple(pair) for pair in search_params]))


def replace_search_params(url: str, query: str) -> str:
    """Replace the query string of an URL, keeping its fragment.

    Example:
        ```pycon
        >>> from aresky.core.normalize import replace_search_params
        >>> replace_search_params("https://example.com/a?x=1#top", "y=2")
        'https://example.com/a?y=2#top'

        ```
    """
    return _QUERY_PATTERN.sub(lambda _: f"?{query}", url, count=1)


def join_prefix_url(input: Any, prefix_url: str) -> Any:  # noqa: A002
    """Join a string input with the prefix URL.

    Args:
        input: The request input. Only strings are joined.
        prefix_url: The prefix URL. An empty prefix leaves the input as is.

    Returns:
        The joined URL, or ``input`` unchanged.

    Raises:
        ValueError: If ``input`` starts with a slash.

    Example:
        ```pycon
        >>> from aresky.core.normalize import join_prefix_url
        >>> join_prefix_url("users", "https://example.com/api")
        'https://example.com/api/users'
        >>> join_prefix_url("users", "https://example.com/api//")
        'https://example.com/api/users'

        ```
    """
    validate_prefix_input(input, prefix_url)
    if not prefix_url or not isinstance(input, str):
        return input
    return prefix_url.rstrip("/") + "/" + input
