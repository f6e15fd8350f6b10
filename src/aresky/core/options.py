r"""Normalized per-call options.

``normalize_options`` validates the merged option mapping of a call and
resolves it once into a frozen ``NormalizedOptions`` snapshot. Options
that aresky does not recognize are kept in ``extra`` and passed through
to the transport.
"""

from __future__ import annotations

__all__ = ["KNOWN_OPTIONS", "NormalizedOptions", "normalize_options"]

import logging
from collections.abc import AsyncIterable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import httpx

from aresky.core.config import DEFAULT_TIMEOUT, RetryPolicy
from aresky.core.normalize import (
    normalize_request_method,
    normalize_retry_options,
    normalize_search_params,
)
from aresky.core.validation import (
    validate_body_for_method,
    validate_callback,
    validate_input,
    validate_options,
    validate_timeout,
)
from aresky.fetch import HttpxFetch
from aresky.hooks import Hooks
from aresky.utils.abort import AbortSignal
from aresky.utils.merge import merge_headers

if TYPE_CHECKING:
    from collections.abc import Callable

logger: logging.Logger = logging.getLogger(__name__)

KNOWN_OPTIONS = frozenset(
    {
        "method",
        "headers",
        "json",
        "body",
        "parse_json",
        "stringify_json",
        "search_params",
        "prefix_url",
        "retry",
        "timeout",
        "hooks",
        "throw_http_errors",
        "on_download_progress",
        "on_upload_progress",
        "fetch",
        "signal",
        "context",
    }
)


@dataclass(frozen=True)
class NormalizedOptions:
    r"""Read-only snapshot of the options of one call.

    Attributes:
        method: The HTTP method, uppercased for the standard verbs.
        headers: A private copy of the merged headers.
        prefix_url: The prefix joined with string inputs, or ``""``.
        retry: The retry policy.
        timeout: The per-attempt timeout in milliseconds, ``None`` when
            disabled.
        hooks: The lifecycle hooks.
        throw_http_errors: Whether a non-2xx response raises ``HTTPError``,
            or a predicate called with the status code.
        json: JSON payload, serialized into the request body.
        body: Raw request body.
        parse_json: Optional custom JSON parser.
        stringify_json: Optional custom JSON serializer.
        search_params: Encoded query string replacing the input query.
        on_download_progress: Optional download progress callback.
        on_upload_progress: Optional upload progress callback.
        fetch: The transport.
        signal: Optional caller signal cancelling the call.
        context: Arbitrary caller data made available to the hooks.
        duplex: ``"half"`` when the body is a stream.
        extra: The unrecognized options passed to the transport.
    """

    method: str
    headers: httpx.Headers
    prefix_url: str = ""
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    timeout: float | None = DEFAULT_TIMEOUT
    hooks: Hooks = field(default_factory=Hooks)
    throw_http_errors: bool | Callable[[int], bool] = True
    json: Any = None
    body: Any = None
    parse_json: Callable[[str], Any] | None = None
    stringify_json: Callable[[Any], str] | None = None
    search_params: str | None = None
    on_download_progress: Callable[..., Any] | None = None
    on_upload_progress: Callable[..., Any] | None = None
    fetch: Callable[..., Any] = field(default_factory=HttpxFetch)
    signal: AbortSignal | None = None
    context: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    duplex: str | None = None
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def should_throw(self, status_code: int) -> bool:
        """Return whether a non-2xx ``status_code`` raises ``HTTPError``."""
        if callable(self.throw_http_errors):
            return bool(self.throw_http_errors(status_code))
        return bool(self.throw_http_errors)


def _is_stream(body: Any) -> bool:
    if isinstance(body, (str, bytes, bytearray, memoryview, Mapping)):
        return False
    return isinstance(body, (AsyncIterable, Iterable, httpx.AsyncByteStream))


def normalize_options(input: Any, options: Mapping[str, Any] | None = None) -> NormalizedOptions:  # noqa: A002
    r"""Validate the merged options of a call and build the snapshot.

    Args:
        input: The request input (``str``, ``httpx.URL`` or
            ``httpx.Request``).
        options: The merged option mapping.

    Returns:
        The normalized options.

    Raises:
        TypeError: If an argument or option has the wrong type.
        ValueError: If an option has an invalid value.

    Example:
        ```pycon
        >>> from aresky.core.options import normalize_options
        >>> options = normalize_options("https://example.com", {"method": "post", "retry": 5})
        >>> options.method
        'POST'
        >>> options.retry.limit
        5
        >>> options.timeout
        10000

        ```
    """
    validate_options(options)
    validate_input(input)
    options = options or {}

    timeout = options.get("timeout", DEFAULT_TIMEOUT)
    validate_timeout(timeout)
    if timeout is False:
        timeout = None

    for name in ("parse_json", "stringify_json", "on_download_progress", "on_upload_progress", "fetch"):
        validate_callback(name, options.get(name))

    throw_http_errors = options.get("throw_http_errors", True)
    if throw_http_errors is None:
        throw_http_errors = True
    if not isinstance(throw_http_errors, bool) and not callable(throw_http_errors):
        msg = "The `throw_http_errors` option must be a boolean or a function"
        raise TypeError(msg)

    signal = options.get("signal")
    if signal is None and isinstance(input, httpx.Request):
        signal = input.extensions.get("signal")
    if signal is not None and not isinstance(signal, AbortSignal):
        msg = f"The `signal` option must be an AbortSignal, got {type(signal).__name__}"
        raise TypeError(msg)

    context = options.get("context")
    if context is not None and not isinstance(context, Mapping):
        msg = f"The `context` option must be a mapping, got {type(context).__name__}"
        raise TypeError(msg)

    method = options.get("method")
    if method is None:
        method = input.method if isinstance(input, httpx.Request) else "GET"
    method = normalize_request_method(method)

    body = options.get("body")
    json = options.get("json")
    validate_body_for_method(method, body is not None or json is not None)

    headers = merge_headers(
        input.headers if isinstance(input, httpx.Request) else None, options.get("headers")
    )

    extra = {key: value for key, value in options.items() if key not in KNOWN_OPTIONS}
    if extra:
        logger.debug(f"Passing unknown options to the transport: {sorted(extra)}")

    return NormalizedOptions(
        method=method,
        headers=headers,
        prefix_url=str(options.get("prefix_url") or ""),
        retry=normalize_retry_options(options.get("retry")),
        timeout=timeout,
        hooks=Hooks.from_value(options.get("hooks")),
        throw_http_errors=throw_http_errors,
        json=json,
        body=body,
        parse_json=options.get("parse_json"),
        stringify_json=options.get("stringify_json"),
        search_params=normalize_search_params(options.get("search_params")),
        on_download_progress=options.get("on_download_progress"),
        on_upload_progress=options.get("on_upload_progress"),
        fetch=options.get("fetch") or HttpxFetch(),
        signal=signal,
        context=MappingProxyType(dict(context or {})),
        duplex="half" if json is None and _is_stream(body) else None,
        extra=MappingProxyType(extra),
    )
