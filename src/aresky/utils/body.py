r"""Body streams reporting transfer progress.

``stream_response`` and ``stream_request`` replace the body of a
response or request with a ``ProgressStream`` that calls a progress
callback for every chunk it forwards.
"""

from __future__ import annotations

__all__ = [
    "Progress",
    "ProgressStream",
    "get_body_size",
    "invoke_progress",
    "stream_request",
    "stream_response",
]

import inspect
import logging
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    ProgressCallback = Callable[["Progress", bytes], Any]

logger: logging.Logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

# Highest percent reported before the stream actually ends
_ALMOST_DONE = 1 - sys.float_info.epsilon


@dataclass(frozen=True)
class Progress:
    """Progress information passed to the progress callbacks.

    Attributes:
        percent: Transferred fraction between 0 and 1. It only reaches 1
            when the stream ends.
        transferred_bytes: Number of bytes transferred so far.
        total_bytes: Expected body size, ``0`` when unknown.
    """

    percent: float
    transferred_bytes: int
    total_bytes: int


async def invoke_progress(callback: ProgressCallback, progress: Progress, chunk: bytes) -> None:
    """Invoke a progress callback, awaiting it if it is asynchronous."""
    result = callback(progress, chunk)
    if inspect.isawaitable(result):
        await result


class ProgressStream(httpx.AsyncByteStream):
    r"""Async byte stream reporting progress for every forwarded chunk.

    The progress of a chunk is reported when the next chunk arrives, so
    that ``percent`` only reaches 1 once the source is exhausted.

    Args:
        chunks: The source chunks.
        total_bytes: Expected number of bytes, ``0`` when unknown.
        on_progress: Callback called with ``(progress, chunk)``.
        on_close: Optional coroutine function called when the stream is
            closed.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        total_bytes: int,
        on_progress: ProgressCallback,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._chunks = chunks
        self._total_bytes = total_bytes
        self._on_progress = on_progress
        self._on_close = on_close

    async def __aiter__(self) -> AsyncIterator[bytes]:
        previous: bytes | None = None
        transferred = 0
        async for chunk in self._chunks:
            if previous is not None:
                transferred += len(previous)
                percent = 0.0 if self._total_bytes == 0 else transferred / self._total_bytes
                percent = min(percent, _ALMOST_DONE)
                await invoke_progress(
                    self._on_progress,
                    Progress(percent, transferred, max(self._total_bytes, transferred)),
                    previous,
                )
            yield chunk
            previous = chunk

        if previous is not None:
            transferred += len(previous)
            await invoke_progress(
                self._on_progress,
                Progress(1.0, transferred, max(self._total_bytes, transferred)),
                previous,
            )

    async def aclose(self) -> None:
        if self._on_close is not None:
            await self._on_close()


async def _iter_chunks(content: bytes) -> AsyncIterator[bytes]:
    for start in range(0, len(content), CHUNK_SIZE):
        yield content[start : start + CHUNK_SIZE]


def _content_length(headers: httpx.Headers) -> int:
    try:
        return max(0, int(headers.get("content-length", 0)))
    except ValueError:
        return 0


def get_body_size(request: httpx.Request) -> int:
    """Return the size of a request body, ``0`` when it is unknown.

    Example:
        ```pycon
        >>> import httpx
        >>> from aresky.utils.body import get_body_size
        >>> get_body_size(httpx.Request("POST", "https://example.com", content=b"abc"))
        3
        >>> get_body_size(httpx.Request("GET", "https://example.com"))
        0

        ```
    """
    return _content_length(request.headers)


def _get_request(response: httpx.Response) -> httpx.Request | None:
    try:
        return response.request
    except RuntimeError:
        return None


async def stream_response(response: httpx.Response, on_download_progress: ProgressCallback) -> httpx.Response:
    r"""Replace the body of ``response`` with a progress reporting stream.

    A 204 response reports a single final progress with an empty chunk
    and is returned with an empty body.

    Args:
        response: The response to instrument.
        on_download_progress: The progress callback.

    Returns:
        A new response reading its body through a ``ProgressStream``.
    """
    headers = httpx.Headers(response.headers)
    request = _get_request(response)

    if response.status_code == 204:
        if not response.is_stream_consumed:
            await response.aclose()
        await invoke_progress(on_download_progress, Progress(1.0, 0, 0), b"")
        return httpx.Response(
            204, headers=headers, content=b"", request=request, extensions=response.extensions
        )

    total_bytes = _content_length(response.headers)
    if response.is_stream_consumed:
        # The body is already buffered and decoded
        content = response.content
        chunks = _iter_chunks(content)
        on_close = None
        headers.pop("content-encoding", None)
        headers["content-length"] = str(len(content))
    else:
        chunks = response.aiter_raw()
        on_close = response.aclose

    logger.debug(f"Reporting download progress (total_bytes={total_bytes})")
    return httpx.Response(
        response.status_code,
        headers=headers,
        stream=ProgressStream(chunks, total_bytes, on_download_progress, on_close),
        request=request,
        extensions=response.extensions,
    )


async def stream_request(request: httpx.Request, on_upload_progress: ProgressCallback) -> httpx.Request:
    r"""Replace the body of ``request`` with a progress reporting stream.

    The body is buffered first so that its size is known and the request
    can be rebuilt for later attempts.

    Args:
        request: The request to instrument.
        on_upload_progress: The progress callback.

    Returns:
        A new request, or ``request`` itself if it has no body.
    """
    content = await request.aread()
    if not content:
        return request
    headers = httpx.Headers(request.headers)
    headers["content-length"] = str(len(content))
    return httpx.Request(
        request.method,
        request.url,
        headers=headers,
        stream=ProgressStream(_iter_chunks(content), len(content), on_upload_progress),
        extensions=request.extensions,
    )
