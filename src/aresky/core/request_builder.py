r"""Construction and cloning of the ``httpx.Request`` of a call."""

from __future__ import annotations

__all__ = ["build_request", "clone_request"]

import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import httpx

from aresky.core.normalize import join_prefix_url, replace_search_params

if TYPE_CHECKING:
    from aresky.core.options import NormalizedOptions

logger: logging.Logger = logging.getLogger(__name__)


def _body_kwargs(options: NormalizedOptions, headers: httpx.Headers) -> dict[str, Any]:
    if options.json is not None:
        if options.stringify_json is not None:
            content = options.stringify_json(options.json)
        else:
            content = json.dumps(options.json)
        if "content-type" not in headers:
            headers["content-type"] = "application/json"
        return {"content": content}
    if options.body is None:
        return {}
    if isinstance(options.body, Mapping):
        return {"data": options.body}
    return {"content": options.body}


def build_request(input: str | httpx.URL | httpx.Request, options: NormalizedOptions) -> httpx.Request:  # noqa: A002
    r"""Build the request of a call from its input and options.

    A string input is joined with ``options.prefix_url``. The search
    params, when given, replace the whole query string. A ``json`` payload
    takes precedence over ``body`` and sets ``Content-Type:
    application/json`` unless the caller set a content type. Without a new
    body, the body of an input request is reused.

    Args:
        input: The request input.
        options: The normalized options of the call.

    Returns:
        The request to send.

    Raises:
        ValueError: If ``input`` starts with a slash while a prefix URL
            is set.

    Example:
        ```pycon
        >>> from aresky.core.options import normalize_options
        >>> from aresky.core.request_builder import build_request
        >>> options = normalize_options(
        ...     "users",
        ...     {"prefix_url": "https://example.com/api", "search_params": {"page": 2}},
        ... )
        >>> request = build_request("users", options)
        >>> str(request.url)
        'https://example.com/api/users?page=2'

        ```
    """
    headers = httpx.Headers(options.headers)
    if isinstance(input, httpx.Request):
        url = str(input.url)
    else:
        url = str(join_prefix_url(input, options.prefix_url))

    if options.search_params is not None:
        url = replace_search_params(url, options.search_params)

    body = _body_kwargs(options, headers)
    if isinstance(input, httpx.Request):
        if not body:
            body = {"stream": input.stream}
        body["extensions"] = dict(input.extensions)
    logger.debug(f"Built {options.method} request to {url}")
    return httpx.Request(options.method, url, headers=headers, **body)


def clone_request(request: httpx.Request) -> httpx.Request:
    r"""Copy a request so that a later attempt can be sent.

    The clone has its own headers and extensions. The body stream is
    shared: a buffered body can be replayed by every clone, a streamed
    body can only be sent once.

    Args:
        request: The request to copy.

    Returns:
        The copy.

    Example:
        ```pycon
        >>> import httpx
        >>> from aresky.core.request_builder import clone_request
        >>> request = httpx.Request("POST", "https://example.com", content=b"abc")
        >>> clone = clone_request(request)
        >>> clone is request, clone.read()
        (False, b'abc')

        ```
    """
    return httpx.Request(
        request.method,
        request.url,
        headers=httpx.Headers(request.headers),
        stream=request.stream,
        extensions=dict(request.extensions),
    )
