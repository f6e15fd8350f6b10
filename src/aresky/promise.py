r"""Awaitable result of a call with body shortcut methods."""

from __future__ import annotations

__all__ = ["ResponsePromise"]

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from aresky.core.config import RESPONSE_TYPES

if TYPE_CHECKING:
    from collections.abc import Generator

    from aresky.core.engine import RequestEngine
    from aresky.response import Blob, ResponseEnvelope

logger: logging.Logger = logging.getLogger(__name__)


class ResponsePromise:
    r"""Awaitable result of a call.

    The call starts the first time the promise is awaited or one of its
    body shortcuts is called, and runs only once. Each shortcut first sets
    the ``Accept`` header of the pending request (unless the caller set
    one) and then extracts the body from the shared result. If the call
    fails, every shortcut raises the same error.

    Example:
        ```pycon
        >>> import aresky
        >>> async def main():  # doctest: +SKIP
        ...     response = await aresky.get("https://example.com/data")
        ...     data = await aresky.get("https://example.com/data").json()
        ...

        ```
    """

    def __init__(self, engine: RequestEngine) -> None:
        self._engine = engine
        self._task: asyncio.Future[ResponseEnvelope | None] | None = None

    @property
    def engine(self) -> RequestEngine:
        return self._engine

    def _ensure_task(self) -> asyncio.Future[ResponseEnvelope | None]:
        if self._task is None:
            self._task = asyncio.ensure_future(self._engine.run())
        return self._task

    def __await__(self) -> Generator[Any, None, ResponseEnvelope | None]:
        return self._ensure_task().__await__()

    def _set_accept(self, response_type: str) -> None:
        headers = self._engine.request.headers
        if not headers.get("accept"):
            headers["accept"] = RESPONSE_TYPES[response_type]

    async def _response(self, response_type: str) -> ResponseEnvelope | None:
        self._set_accept(response_type)
        return await self._ensure_task()

    async def json(self) -> Any:
        """Parse the body as JSON.

        Returns ``""`` for a 204 response or an empty body.
        """
        response = await self._response("json")
        if response is None:
            return None
        if response.status_code == 204:
            return ""
        text = await response.text()
        if text == "":
            return ""
        return response.parse_json(text)

    async def text(self) -> str | None:
        response = await self._response("text")
        return None if response is None else await response.text()

    async def bytes(self) -> bytes | None:
        response = await self._response("bytes")
        return None if response is None else await response.bytes()

    async def array_buffer(self) -> bytearray | None:
        response = await self._response("array_buffer")
        return None if response is None else await response.array_buffer()

    async def blob(self) -> Blob | None:
        response = await self._response("blob")
        return None if response is None else await response.blob()

    async def form_data(self) -> list[tuple[str, str | bytes]] | None:
        response = await self._response("form_data")
        return None if response is None else await response.form_data()
