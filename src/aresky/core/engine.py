r"""Request engine running one call from options to final response.

A ``RequestEngine`` is created for every call. It normalizes the options
and builds the request immediately, so that invalid arguments raise
before any network activity, and runs the attempts when ``run`` is
awaited. ``create`` wraps a new engine into a ``ResponsePromise``.
"""

from __future__ import annotations

__all__ = ["RequestEngine", "create"]

import logging
from typing import TYPE_CHECKING, Any

from aresky.core.options import normalize_options
from aresky.core.request_builder import build_request, clone_request
from aresky.exceptions import ForceRetryError, HTTPError
from aresky.promise import ResponsePromise
from aresky.response import ResponseEnvelope
from aresky.retrying import AsyncRetryExecutor, HookManager
from aresky.utils.abort import AbortController, abortable
from aresky.utils.body import stream_request, stream_response
from aresky.utils.timeout import timeout

if TYPE_CHECKING:
    from collections.abc import Mapping

    import httpx

logger: logging.Logger = logging.getLogger(__name__)


class RequestEngine:
    r"""Run one call: hooks, transport, timeout, retries and errors.

    Args:
        input: The request input, a URL string, ``httpx.URL`` or
            ``httpx.Request``.
        options: The merged options of the call.

    Attributes:
        options: The normalized options of the call.
        request: The request of the next attempt.

    Raises:
        TypeError: If an argument or option has the wrong type.
        ValueError: If an option has an invalid value.

    Example:
        ```pycon
        >>> import asyncio
        >>> import httpx
        >>> from aresky.core.engine import RequestEngine
        >>> from aresky.fetch import HttpxFetch
        >>> fetch = HttpxFetch(transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[1])))
        >>> engine = RequestEngine("https://example.com", {"fetch": fetch})
        >>> response = asyncio.run(engine.run())
        >>> response.status_code
        200

        ```
    """

    def __init__(self, input: Any, options: Mapping[str, Any] | None = None) -> None:  # noqa: A002
        self.options = normalize_options(input, options)
        self.request: httpx.Request = build_request(input, self.options)
        self._hooks = HookManager(self.options.hooks)
        self._executor = AsyncRetryExecutor(self.options.retry, self._hooks, self.options.signal)
        self._abort_controller = AbortController()
        self._last_attempt_error: BaseException | None = None

    @property
    def retry_count(self) -> int:
        return self._executor.retry_count

    def _forward_abort(self, reason: Any) -> None:
        self._abort_controller.abort(reason)

    def _link_signal(self) -> None:
        if self.options.signal is not None:
            self.options.signal.add_listener(self._forward_abort)

    def _unlink_signal(self) -> None:
        if self.options.signal is not None:
            self.options.signal.remove_listener(self._forward_abort)

    def _reset_abort_controller(self) -> None:
        # A timed out attempt aborts the internal controller, a retry needs
        # a fresh one. A caller abort is kept.
        user_signal = self.options.signal
        if self._abort_controller.signal.aborted and not (user_signal is not None and user_signal.aborted):
            logger.debug("Resetting the abort controller before the next attempt")
            self._abort_controller = AbortController()

    async def _send(self, request: httpx.Request) -> httpx.Response:
        fetch = self.options.fetch
        init = dict(self.options.extra)
        signal = self._abort_controller.signal

        async def send(request: httpx.Request) -> httpx.Response:
            return await abortable(fetch(request, **init), signal)

        if self.options.timeout is None:
            return await send(request)
        return await timeout(request, self._abort_controller, send=send, timeout=self.options.timeout)

    async def attempt(self) -> httpx.Response:
        """Send one attempt and return its response.

        Runs the before_request hooks, sends the request under the
        timeout, runs the after_response hooks and raises ``HTTPError``
        for a non-2xx response when ``throw_http_errors`` asks for it.

        Raises:
            HTTPError: If the response is not successful.
            RequestTimeoutError: If the attempt timed out.
            ForceRetryError: If an after_response hook asked for a retry.
        """
        self._reset_abort_controller()
        retry_count = self.retry_count

        self.request, response = await self._hooks.run_before_request(
            self.request, self.options, retry_count
        )
        if response is None:
            # The request is consumed by the transport, the clone is kept
            # for the next attempt
            sent = self.request
            self.request = clone_request(sent)
            if self.options.on_upload_progress is not None:
                sent = await stream_request(sent, self.options.on_upload_progress)
            try:
                response = await self._send(sent)
            except Exception as exc:
                self._last_attempt_error = exc
                raise

        try:
            response = await self._hooks.run_after_response(
                self.request, self.options, response, retry_count
            )
        except ForceRetryError as exc:
            self._last_attempt_error = exc
            raise

        if not response.is_success and self.options.should_throw(response.status_code):
            await response.aread()
            error = HTTPError(response, self.request, self.options)
            logger.debug(f"{error} (retry_count={retry_count})")
            self._last_attempt_error = error
            raise error

        if self.options.on_download_progress is not None:
            response = await stream_response(response, self.options.on_download_progress)
        return response

    async def run(self) -> ResponseEnvelope | None:
        """Run the call until it settles.

        Only the methods listed in the retry policy are retried. The
        before_error hooks see the terminal error when it comes from an
        attempt (HTTP, timeout, transport or forced retry errors), and
        their result is raised instead.

        Returns:
            The final response, or ``None`` if a before_retry hook
            returned ``STOP``.
        """
        self._link_signal()
        try:
            if self.options.retry.allows_method(self.request.method):
                response = await self._executor.execute(self)
            else:
                response = await self.attempt()
        except Exception as error:
            if error is not self._last_attempt_error or not self.options.hooks.before_error:
                raise
            final_error = await self._hooks.run_before_error(error, self.retry_count)
            if final_error is error:
                raise
            raise final_error from error
        finally:
            self._unlink_signal()

        if response is None:
            return None
        return ResponseEnvelope(response, self.options.parse_json)


def create(input: Any, options: Mapping[str, Any] | None = None) -> ResponsePromise:  # noqa: A002
    r"""Create the promise of a call.

    The options are validated immediately. The call itself starts when
    the promise is first awaited.

    Args:
        input: The request input.
        options: The merged options of the call.

    Returns:
        The response promise.
    """
    return ResponsePromise(RequestEngine(input, options))
