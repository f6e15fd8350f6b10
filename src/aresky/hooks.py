r"""Hook types and data structures.

Hooks let callers take part in the request lifecycle. There are four
stages:
- before_request: called before each attempt is sent
- before_retry: called before each retry, after the retry delay
- after_response: called with the response of each attempt
- before_error: called with the terminal error before it is raised

Hooks may be plain functions or coroutine functions. Whatever a hook
returns is classified once into a ``HookAction`` by
``classify_hook_result``, and only that classification is interpreted
downstream.

Example:
    ```pycon
    >>> import aresky
    >>> def add_token(request, options, state):
    ...     request.headers["Authorization"] = "Bearer token"
    ...
    >>> api = aresky.aresky.extend(hooks={"before_request": [add_token]})

    ```
"""

from __future__ import annotations

__all__ = [
    "AfterResponseState",
    "BeforeErrorState",
    "BeforeRequestState",
    "BeforeRetryState",
    "HookAction",
    "HookResult",
    "Hooks",
    "RetryMarker",
    "classify_hook_result",
    "retry",
]

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any

import httpx

from aresky.core.config import STOP
from aresky.response import ResponseEnvelope

if TYPE_CHECKING:
    from collections.abc import Callable

    from aresky.core.options import NormalizedOptions

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BeforeRequestState:
    """State passed to before_request hooks.

    Attributes:
        retry_count: ``0`` for the initial attempt, then the retry number.
    """

    retry_count: int


@dataclass(frozen=True)
class BeforeRetryState:
    """State passed to before_retry hooks.

    Attributes:
        request: The request that will be sent for the retry.
        options: The normalized options of the call.
        error: The error that triggered the retry.
        retry_count: The retry number, always ``>= 1``.
    """

    request: httpx.Request
    options: NormalizedOptions
    error: BaseException
    retry_count: int


@dataclass(frozen=True)
class AfterResponseState:
    """State passed to after_response hooks.

    Attributes:
        retry_count: ``0`` for the initial attempt, then the retry number.
    """

    retry_count: int


@dataclass(frozen=True)
class BeforeErrorState:
    """State passed to before_error hooks.

    Attributes:
        retry_count: Number of retries made before the error was raised.
    """

    retry_count: int


@dataclass(frozen=True)
class Hooks:
    r"""The hooks of a call, one tuple per stage.

    Example:
        ```pycon
        >>> from aresky.hooks import Hooks
        >>> hooks = Hooks.from_value({"before_request": [print]})
        >>> len(hooks.before_request)
        1
        >>> hooks.after_response
        ()

        ```
    """

    before_request: tuple[Callable[..., Any], ...] = ()
    before_retry: tuple[Callable[..., Any], ...] = ()
    after_response: tuple[Callable[..., Any], ...] = ()
    before_error: tuple[Callable[..., Any], ...] = ()

    @classmethod
    def from_value(cls, hooks: Hooks | Mapping[str, Any] | None) -> Hooks:
        """Build ``Hooks`` from a mapping of stage names to hook lists.

        Raises:
            TypeError: If a stage name is unknown or a hook is not callable.
        """
        if hooks is None:
            return cls()
        if isinstance(hooks, Hooks):
            return hooks
        if not isinstance(hooks, Mapping):
            msg = f"The `hooks` option must be a mapping, got {type(hooks).__name__}"
            raise TypeError(msg)
        names = {field.name for field in fields(cls)}
        unknown = set(hooks) - names
        if unknown:
            msg = f"Unknown hook stage(s): {sorted(unknown)}"
            raise TypeError(msg)
        stages = {}
        for name, stage in hooks.items():
            stage = tuple(stage or ())
            for hook in stage:
                if not callable(hook):
                    msg = f"Hooks in `{name}` must be callable, got {hook!r}"
                    raise TypeError(msg)
            stages[name] = stage
        return cls(**stages)


@dataclass(frozen=True)
class RetryMarker:
    """Value returned by an after_response hook to force a retry.

    Use ``retry`` to create it.
    """

    delay: float | None = None
    code: str | None = None
    request: httpx.Request | None = None
    cause: Any = None


def retry(
    *,
    delay: float | None = None,
    code: str | None = None,
    request: httpx.Request | None = None,
    cause: Any = None,
) -> RetryMarker:
    r"""Ask for a retry from an after_response hook.

    The forced retry ignores the retry methods, status codes and
    ``should_retry`` but still counts against the retry limit.

    Args:
        delay: Optional delay in milliseconds before the retry. The retry
            policy delay is used when omitted.
        code: Optional short reason, available on the resulting error.
        request: Optional request to send instead of the current one.
        cause: Optional underlying cause.

    Returns:
        The marker to return from the hook.

    Example:
        ```pycon
        >>> from aresky.hooks import retry
        >>> def refresh_on_401(request, options, response, state):
        ...     if response.status_code == 401:
        ...         return retry(code="TOKEN_EXPIRED", delay=0)
        ...

        ```
    """
    return RetryMarker(delay=delay, code=code, request=request, cause=cause)


class HookAction(enum.Enum):
    """What the engine does after a hook returned."""

    CONTINUE = "continue"
    REPLACE_REQUEST = "replace_request"
    REPLACE_RESPONSE = "replace_response"
    FORCE_RETRY = "force_retry"
    STOP = "stop"


@dataclass(frozen=True)
class HookResult:
    """Classified return value of a hook."""

    action: HookAction
    value: Any = None


def classify_hook_result(value: Any) -> HookResult:
    r"""Classify the value returned by a hook.

    Args:
        value: The hook return value.

    Returns:
        The classified result. Unrecognized values continue the stage.

    Example:
        ```pycon
        >>> import httpx
        >>> from aresky.hooks import classify_hook_result
        >>> classify_hook_result(None).action
        <HookAction.CONTINUE: 'continue'>
        >>> classify_hook_result(httpx.Response(200)).action
        <HookAction.REPLACE_RESPONSE: 'replace_response'>

        ```
    """
    if value is None:
        return HookResult(HookAction.CONTINUE)
    if value is STOP:
        return HookResult(HookAction.STOP)
    if isinstance(value, httpx.Request):
        return HookResult(HookAction.REPLACE_REQUEST, value)
    if isinstance(value, ResponseEnvelope):
        return HookResult(HookAction.REPLACE_RESPONSE, value.raw)
    if isinstance(value, httpx.Response):
        return HookResult(HookAction.REPLACE_RESPONSE, value)
    if isinstance(value, RetryMarker):
        return HookResult(HookAction.FORCE_RETRY, value)
    logger.debug(f"Ignoring unsupported hook return value of type {type(value).__name__}")
    return HookResult(HookAction.CONTINUE)
