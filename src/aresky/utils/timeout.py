r"""Deadline for a single transport call."""

from __future__ import annotations

__all__ = ["timeout"]

import asyncio
import logging
from typing import TYPE_CHECKING

from aresky.exceptions import RequestTimeoutError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    import httpx

    from aresky.utils.abort import AbortController

logger: logging.Logger = logging.getLogger(__name__)


async def timeout(
    request: httpx.Request,
    abort_controller: AbortController,
    *,
    send: Callable[[httpx.Request], Awaitable[httpx.Response]],
    timeout: float,
) -> httpx.Response:
    r"""Run one transport call under a deadline.

    When the deadline expires first, ``abort_controller`` is aborted, the
    pending call is cancelled and drained, and ``RequestTimeoutError`` is
    raised. Otherwise the transport result or error propagates. Only one
    of the two outcomes is ever observable.

    Args:
        request: The request to send.
        abort_controller: The controller aborted when the deadline expires.
        send: The transport call.
        timeout: The deadline in milliseconds.

    Returns:
        The transport response.

    Raises:
        RequestTimeoutError: If the deadline expires first.
    """
    task = asyncio.ensure_future(send(request))
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout / 1000)
    except asyncio.CancelledError:
        task.cancel()
        raise
    if task in done:
        return task.result()

    logger.debug(f"{request.method} request to {request.url} timed out after {timeout}ms")
    error = RequestTimeoutError(request)
    abort_controller.abort(error)
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise error
