r"""Default transport built on ``httpx.AsyncClient``.

A transport is any async callable ``(request, **init) -> httpx.Response``.
The extra ``init`` keyword arguments are the call options that aresky
does not recognize.
"""

from __future__ import annotations

__all__ = ["HttpxFetch"]

import logging
from typing import Any

import httpx

logger: logging.Logger = logging.getLogger(__name__)


class HttpxFetch:
    r"""Send requests with ``httpx.AsyncClient``.

    Without a client, a new ``httpx.AsyncClient`` is opened for every call
    and closed once the body is read. With a caller-owned client the
    request is sent with ``client.send`` and the client is never closed,
    so ``stream=True`` can be passed through the call options to stream
    the response body.

    Args:
        client: Optional caller-owned client.
        **client_kwargs: Keyword arguments for the per-call client
            (ignored when ``client`` is given). The client timeout is
            disabled by default because aresky enforces its own.

    Example:
        ```pycon
        >>> import httpx
        >>> import aresky
        >>> transport = httpx.MockTransport(lambda request: httpx.Response(200, text="ok"))
        >>> fetch = aresky.HttpxFetch(transport=transport)
        >>> async def main():  # doctest: +SKIP
        ...     return await aresky.get("https://example.com", fetch=fetch).text()
        ...

        ```
    """

    def __init__(self, client: httpx.AsyncClient | None = None, **client_kwargs: Any) -> None:
        self._client = client
        self._client_kwargs = {"timeout": None, **client_kwargs}

    @property
    def client(self) -> httpx.AsyncClient | None:
        return self._client

    async def __call__(self, request: httpx.Request, **init: Any) -> httpx.Response:
        if self._client is not None:
            logger.debug(f"Sending {request.method} request to {request.url} with the shared client")
            return await self._client.send(request, **init)

        init.pop("stream", None)
        logger.debug(f"Sending {request.method} request to {request.url}")
        async with httpx.AsyncClient(**self._client_kwargs) as client:
            return await client.send(request, **init)
