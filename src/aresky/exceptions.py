r"""Exceptions raised by aresky.

All the errors that the request engine raises on its own derive from
``AreskyError``. Validation problems with the call-time arguments are
reported with the builtin ``TypeError`` and ``ValueError`` instead.
"""

from __future__ import annotations

__all__ = [
    "AbortError",
    "AreskyError",
    "ForceRetryError",
    "HTTPError",
    "NonError",
    "RequestTimeoutError",
]

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import httpx

    from aresky.core.options import NormalizedOptions


class AreskyError(Exception):
    """Base class for all aresky errors."""


class HTTPError(AreskyError):
    r"""Raised when the final response has a non-2xx status code.

    Args:
        response: The HTTP response that triggered the error.
        request: The request that was sent.
        options: The normalized options of the call.

    Example:
        ```pycon
        >>> import httpx
        >>> from aresky.exceptions import HTTPError
        >>> request = httpx.Request("GET", "https://example.com")
        >>> response = httpx.Response(404, request=request)
        >>> error = HTTPError(response, request, None)
        >>> str(error)
        'Request failed with status code 404 Not Found: GET https://example.com'

        ```
    """

    def __init__(
        self,
        response: httpx.Response,
        request: httpx.Request,
        options: NormalizedOptions | None,
    ) -> None:
        code = response.status_code if response.status_code is not None else ""
        title = response.reason_phrase or ""
        status = f"{code} {title}".strip()
        reason = f"status code {status}" if status else "an unknown error"
        super().__init__(f"Request failed with {reason}: {request.method} {request.url}")
        self.response = response
        self.request = request
        self.options = options

    @property
    def status_code(self) -> int:
        return self.response.status_code


class RequestTimeoutError(AreskyError):
    r"""Raised when a single attempt exceeds the configured timeout.

    Args:
        request: The request that timed out.
    """

    def __init__(self, request: httpx.Request) -> None:
        super().__init__(f"Request timed out: {request.method} {request.url}")
        self.request = request


class AbortError(AreskyError):
    r"""Raised when a call is cancelled through an ``AbortSignal``.

    Args:
        reason: The abort reason given to ``AbortController.abort``.
    """

    def __init__(self, reason: Any = None) -> None:
        super().__init__(reason if isinstance(reason, str) else "The operation was aborted.")
        self.reason = reason


class NonError(AreskyError):
    r"""Wrap a value that was handed back where an exception was expected.

    Args:
        value: The wrapped value.

    Example:
        ```pycon
        >>> from aresky.exceptions import NonError
        >>> str(NonError("oops"))
        'oops'
        >>> NonError(42).value
        42

        ```
    """

    def __init__(self, value: Any) -> None:
        message = "Non-error value was thrown"
        if isinstance(value, str):
            message = value
        elif isinstance(getattr(value, "message", None), str):
            message = value.message
        super().__init__(message)
        self.value = value


class ForceRetryError(AreskyError):
    r"""Raised internally when an after-response hook asks for a retry.

    Args:
        delay: Optional custom delay in milliseconds for the next attempt.
        code: Optional short code describing why the retry was forced.
        request: Optional request to send instead of the current one.
        cause: Optional underlying error.
    """

    def __init__(
        self,
        delay: float | None = None,
        code: str | None = None,
        request: httpx.Request | None = None,
        cause: Any = None,
    ) -> None:
        super().__init__(f"Forced retry: {code}" if code else "Forced retry")
        if cause is not None and not isinstance(cause, BaseException):
            cause = NonError(cause)
        self.__cause__ = cause
        self.custom_delay = delay
        self.code = code
        self.custom_request = request
