r"""Shared test helpers for the request engine tests.

The tests never touch the network: requests are sent to handlers through
``httpx.MockTransport``.
"""

from __future__ import annotations

__all__ = ["URL", "RecordingHandler", "echo", "make_fetch", "sequence"]

import asyncio
import json
from typing import TYPE_CHECKING

import httpx

from aresky import HttpxFetch

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

URL = "https://example.com/api"


def echo(request: httpx.Request) -> httpx.Response:
    """Answer with the method, URL, headers and body of the request."""
    body = request.content.decode()
    return httpx.Response(
        200,
        json={
            "method": request.method,
            "url": str(request.url),
            "headers": dict(request.headers),
            "body": body,
            "json": json.loads(body) if body and "json" in request.headers.get("content-type", "") else None,
        },
    )


class RecordingHandler:
    """MockTransport handler recording every request it receives.

    Args:
        handler: Function (sync or async) answering a request.
        delay: Optional delay in seconds before answering.
    """

    def __init__(
        self,
        handler: Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]],
        delay: float = 0.0,
    ) -> None:
        self.handler = handler
        self.delay = delay
        self.requests: list[httpx.Request] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.handler(request)
        if not isinstance(response, httpx.Response):
            response = await response
        return response


def sequence(*responses: httpx.Response) -> Callable[[httpx.Request], httpx.Response]:
    """Create a handler returning ``responses`` in order, then the last one
    forever."""
    remaining = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        if len(remaining) > 1:
            return remaining.pop(0)
        return remaining[0]

    return handler


def make_fetch(
    handler: Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]],
    delay: float = 0.0,
) -> tuple[HttpxFetch, RecordingHandler]:
    """Create a transport backed by a recording handler."""
    recorder = RecordingHandler(handler, delay=delay)
    return HttpxFetch(transport=httpx.MockTransport(recorder)), recorder
