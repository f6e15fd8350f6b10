r"""Response envelope with async body extraction methods."""

from __future__ import annotations

__all__ = ["Blob", "ResponseEnvelope", "parse_form_data"]

import json
import logging
from dataclasses import dataclass
from email.parser import BytesParser
from email.policy import HTTP
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl

if TYPE_CHECKING:
    from collections.abc import Callable

    import httpx

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Blob:
    """Raw body bytes with their media type."""

    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)


def parse_form_data(content: bytes, content_type: str) -> list[tuple[str, str | bytes]]:
    r"""Parse a ``multipart/form-data`` or urlencoded body.

    File parts are returned as bytes, other parts as text.

    Args:
        content: The body bytes.
        content_type: The ``Content-Type`` header of the response.

    Returns:
        The form fields as ``(name, value)`` pairs in body order.

    Raises:
        TypeError: If the content type is not a form encoding.

    Example:
        ```pycon
        >>> from aresky.response import parse_form_data
        >>> parse_form_data(b"a=1&a=2", "application/x-www-form-urlencoded")
        [('a', '1'), ('a', '2')]

        ```
    """
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type == "application/x-www-form-urlencoded":
        return parse_qsl(content.decode(), keep_blank_values=True)
    if media_type != "multipart/form-data":
        msg = f"Could not parse content as form data: unsupported content type {content_type!r}"
        raise TypeError(msg)

    header = f"Content-Type: {content_type}\r\n\r\n".encode()
    message = BytesParser(policy=HTTP).parsebytes(header + content)
    fields: list[tuple[str, str | bytes]] = []
    for part in message.iter_parts():
        name = part.get_param("name", header="content-disposition")
        payload = part.get_payload(decode=True) or b""
        if part.get_filename() is None:
            fields.append((name, payload.decode(part.get_content_charset() or "utf-8")))
        else:
            fields.append((name, payload))
    return fields


class ResponseEnvelope:
    r"""Wrap an ``httpx.Response`` with async body extraction methods.

    Attribute access is delegated to the wrapped response, so
    ``status_code``, ``headers`` or ``is_success`` work as usual. Each
    extraction method reads the body first: a buffered body returns the
    same data every time, a streamed body that was already consumed
    raises ``httpx.StreamConsumed``.

    Args:
        response: The wrapped response.
        parse_json: Optional custom JSON parser applied to the body text.

    Example:
        ```pycon
        >>> import asyncio
        >>> import httpx
        >>> from aresky.response import ResponseEnvelope
        >>> envelope = ResponseEnvelope(httpx.Response(200, json={"a": 1}))
        >>> envelope.status_code
        200
        >>> asyncio.run(envelope.json())
        {'a': 1}

        ```
    """

    def __init__(
        self,
        response: httpx.Response,
        parse_json: Callable[[str], Any] | None = None,
    ) -> None:
        self._response = response
        self._parse_json = parse_json

    @property
    def raw(self) -> httpx.Response:
        """The wrapped ``httpx.Response``."""
        return self._response

    def __getattr__(self, name: str) -> Any:
        return getattr(self._response, name)

    def __repr__(self) -> str:
        return f"<ResponseEnvelope [{self._response.status_code} {self._response.reason_phrase}]>"

    async def bytes(self) -> bytes:
        return await self._response.aread()

    async def text(self) -> str:
        await self._response.aread()
        return self._response.text

    async def json(self) -> Any:
        return self.parse_json(await self.text())

    def parse_json(self, text: str) -> Any:
        if self._parse_json is not None:
            return self._parse_json(text)
        return json.loads(text)

    async def array_buffer(self) -> bytearray:
        return bytearray(await self.bytes())

    async def blob(self) -> Blob:
        content = await self.bytes()
        return Blob(content=content, content_type=self._response.headers.get("content-type", ""))

    async def form_data(self) -> list[tuple[str, str | bytes]]:
        content = await self.bytes()
        return parse_form_data(content, self._response.headers.get("content-type", ""))
