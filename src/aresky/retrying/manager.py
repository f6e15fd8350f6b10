r"""Hook manager for orchestrating the request lifecycle hooks.

This module provides the HookManager class that runs the user hooks of
each lifecycle stage and interprets what they return.
"""

from __future__ import annotations

__all__ = ["HookManager", "invoke_hook"]

import inspect
import logging
from typing import TYPE_CHECKING, Any

from aresky.exceptions import ForceRetryError, NonError
from aresky.hooks import (
    AfterResponseState,
    BeforeErrorState,
    BeforeRequestState,
    HookAction,
    HookResult,
    classify_hook_result,
)
from aresky.response import ResponseEnvelope

if TYPE_CHECKING:
    from collections.abc import Callable

    import httpx

    from aresky.core.options import NormalizedOptions
    from aresky.hooks import BeforeRetryState, Hooks

logger: logging.Logger = logging.getLogger(__name__)


async def invoke_hook(hook: Callable[..., Any], *args: Any) -> Any:
    """Call a hook and await its result if it is awaitable."""
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class HookManager:
    """Runs the hooks of each stage of the request lifecycle.

    Hooks of a stage run sequentially in registration order. Each return
    value is classified once with ``classify_hook_result`` and the
    resulting ``HookAction`` decides what happens next.

    Attributes:
        hooks: The hooks of the call.
    """

    def __init__(self, hooks: Hooks) -> None:
        self.hooks = hooks

    async def run_before_request(
        self,
        request: httpx.Request,
        options: NormalizedOptions,
        retry_count: int,
    ) -> tuple[httpx.Request, httpx.Response | None]:
        """Run the before_request hooks.

        A returned request replaces the current one and the remaining
        hooks run with it. A returned response ends the stage and is used
        instead of sending the request.

        Args:
            request: The request about to be sent.
            options: The normalized options of the call.
            retry_count: ``0`` for the initial attempt, then the retry
                number.

        Returns:
            The request to send and, if a hook returned one, the response
            to use instead.
        """
        state = BeforeRequestState(retry_count=retry_count)
        for hook in self.hooks.before_request:
            result = classify_hook_result(await invoke_hook(hook, request, options, state))
            if result.action is HookAction.REPLACE_REQUEST:
                logger.debug("before_request hook replaced the request")
                request = result.value
            elif result.action is HookAction.REPLACE_RESPONSE:
                logger.debug("before_request hook returned a response, skipping the transport")
                return request, result.value
        return request, None

    async def run_before_retry(self, state: BeforeRetryState) -> HookResult:
        """Run the before_retry hooks.

        The stage ends at the first hook returning ``STOP``, a request or a
        response.

        Args:
            state: The state of the retry.

        Returns:
            The classified result ending the stage, ``CONTINUE`` if every
            hook ran.
        """
        for hook in self.hooks.before_retry:
            result = classify_hook_result(await invoke_hook(hook, state))
            if result.action in {HookAction.STOP, HookAction.REPLACE_REQUEST, HookAction.REPLACE_RESPONSE}:
                logger.debug(f"before_retry hook ended the stage ({result.action.value})")
                return result
        return HookResult(HookAction.CONTINUE)

    async def run_after_response(
        self,
        request: httpx.Request,
        options: NormalizedOptions,
        response: httpx.Response,
        retry_count: int,
    ) -> httpx.Response:
        """Run the after_response hooks.

        Every hook runs and sees the latest response. The last returned
        response wins.

        Args:
            request: The request that was sent.
            options: The normalized options of the call.
            response: The response of the attempt.
            retry_count: ``0`` for the initial attempt, then the retry
                number.

        Returns:
            The response of the attempt, possibly replaced.

        Raises:
            ForceRetryError: If a hook returned a ``retry`` marker.
        """
        state = AfterResponseState(retry_count=retry_count)
        for hook in self.hooks.after_response:
            envelope = ResponseEnvelope(response, options.parse_json)
            result = classify_hook_result(await invoke_hook(hook, request, options, envelope, state))
            if result.action is HookAction.REPLACE_RESPONSE:
                response = result.value
            elif result.action is HookAction.FORCE_RETRY:
                marker = result.value
                raise ForceRetryError(
                    delay=marker.delay, code=marker.code, request=marker.request, cause=marker.cause
                )
        return response

    async def run_before_error(self, error: BaseException, retry_count: int) -> BaseException:
        """Run the before_error hooks.

        Each hook receives the error returned by the previous one. A hook
        returning ``None`` keeps the current error and any other
        non-exception value is wrapped in ``NonError``.

        Args:
            error: The terminal error of the call.
            retry_count: Number of retries made.

        Returns:
            The error to raise.
        """
        state = BeforeErrorState(retry_count=retry_count)
        for hook in self.hooks.before_error:
            result = await invoke_hook(hook, error, state)
            if result is None:
                continue
            error = result if isinstance(result, BaseException) else NonError(result)
        return error
