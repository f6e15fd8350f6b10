r"""aresky - Elegant async HTTP requests with retries, timeouts and hooks.

This package wraps an async transport (``httpx.AsyncClient`` by default)
with a request engine that adds automatic retries with backoff, a
per-attempt timeout, cancellation through abort signals, lifecycle hooks,
JSON helpers and progress reporting. Calls return an awaitable
``ResponsePromise`` whose shortcuts (``json``, ``text``, ``bytes``, ...)
read the body directly.

Key Features:
    - Retries of idempotent requests on transient status codes, with
      exponential backoff, jitter and ``Retry-After`` support
    - Per-attempt timeout raising ``RequestTimeoutError``
    - Non-2xx responses raise ``HTTPError``
    - Hooks before each request, before each retry, after each response
      and before an error is raised
    - Instances with layered defaults through ``create`` and ``extend``
    - Upload and download progress callbacks

Example:
    ```pycon
    >>> import aresky
    >>> async def main():  # doctest: +SKIP
    ...     data = await aresky.post("https://example.com/api", json={"a": 1}).json()
    ...     api = aresky.create(prefix_url="https://example.com/api", retry=5)
    ...     users = await api.get("users", search_params={"page": 2}).json()
    ...

    ```
"""

from __future__ import annotations

__all__ = [
    "STOP",
    "AbortController",
    "AbortError",
    "AbortSignal",
    "Aresky",
    "AreskyError",
    "ForceRetryError",
    "HTTPError",
    "Hooks",
    "HttpxFetch",
    "NonError",
    "Progress",
    "RequestTimeoutError",
    "ResponseEnvelope",
    "ResponsePromise",
    "RetryPolicy",
    "__version__",
    "aresky",
    "create",
    "delete",
    "extend",
    "get",
    "head",
    "patch",
    "post",
    "put",
    "request",
    "retry",
    "stop",
]

from importlib.metadata import PackageNotFoundError, version

from aresky.client import Aresky
from aresky.core.config import STOP, RetryPolicy
from aresky.exceptions import (
    AbortError,
    AreskyError,
    ForceRetryError,
    HTTPError,
    NonError,
    RequestTimeoutError,
)
from aresky.fetch import HttpxFetch
from aresky.hooks import Hooks, retry
from aresky.promise import ResponsePromise
from aresky.response import ResponseEnvelope
from aresky.utils.abort import AbortController, AbortSignal
from aresky.utils.body import Progress

# Default instance, without defaults
aresky = Aresky()

request = aresky.__call__
get = aresky.get
post = aresky.post
put = aresky.put
patch = aresky.patch
head = aresky.head
delete = aresky.delete
create = aresky.create
extend = aresky.extend
stop = STOP

try:
    __version__ = version(__name__)
except PackageNotFoundError:  # pragma: no cover
    # Package is not installed, fallback if needed
    __version__ = "0.0.0"
