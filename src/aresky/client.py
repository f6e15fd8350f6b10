r"""Aresky instances holding layered default options.

An ``Aresky`` instance is callable like a function and exposes one
shortcut per HTTP verb. ``create`` builds a fresh instance and
``extend`` derives a child instance whose defaults are merged on top of
the parent ones. Used as an async context manager, an instance shares
one ``httpx.AsyncClient`` between all its calls.
"""

from __future__ import annotations

__all__ = ["Aresky"]

import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import httpx

from aresky.core.config import STOP
from aresky.core.engine import create
from aresky.core.validation import validate_options
from aresky.fetch import HttpxFetch
from aresky.utils.merge import validate_and_merge

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from types import TracebackType
    from typing import Self

    from aresky.promise import ResponsePromise

logger: logging.Logger = logging.getLogger(__name__)


class Aresky:
    r"""Callable HTTP client with default options.

    Args:
        defaults: Default options of every call made with the instance.

    Example:
        ```pycon
        >>> import aresky
        >>> api = aresky.create(prefix_url="https://api.example.com", retry=5)
        >>> api.defaults["prefix_url"]
        'https://api.example.com'
        >>> child = api.extend(headers={"x-token": "secret"})
        >>> child.defaults["retry"], child.defaults["headers"]["x-token"]
        (5, 'secret')
        >>> async def main():  # doctest: +SKIP
        ...     async with api:
        ...         users = await api.get("users").json()
        ...         await api.post("users", json={"name": "ada"})
        ...

        ```
    """

    stop = STOP

    def __init__(self, defaults: Mapping[str, Any] | None = None) -> None:
        validate_options(defaults)
        self._defaults = validate_and_merge(defaults)
        self._client: httpx.AsyncClient | None = None

    @property
    def defaults(self) -> Mapping[str, Any]:
        """The merged default options (read-only)."""
        return MappingProxyType(self._defaults)

    def __repr__(self) -> str:
        return f"{self.__class__.__qualname__}(defaults={sorted(self._defaults)})"

    async def __aenter__(self) -> Self:
        """Open the ``httpx.AsyncClient`` shared by the calls of the
        instance.

        The shared client is only used by calls without a ``fetch`` option.
        """
        self._client = httpx.AsyncClient(timeout=None)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def __call__(self, input: Any, **options: Any) -> ResponsePromise:  # noqa: A002
        """Start a call with the default options merged with ``options``.

        Args:
            input: The request URL, ``httpx.URL`` or ``httpx.Request``.
            **options: Options of this call.

        Returns:
            The awaitable response promise.

        Raises:
            TypeError: If an argument or option has the wrong type.
            ValueError: If an option has an invalid value.
        """
        base = self._defaults
        if self._client is not None and base.get("fetch") is None:
            base = {"fetch": HttpxFetch(self._client), **base}
        return create(input, validate_and_merge(base, options))

    def _verb(self, method: str, input: Any, options: dict[str, Any]) -> ResponsePromise:  # noqa: A002
        options["method"] = method
        return self(input, **options)

    def get(self, input: Any, **options: Any) -> ResponsePromise:  # noqa: A002
        return self._verb("GET", input, options)

    def post(self, input: Any, **options: Any) -> ResponsePromise:  # noqa: A002
        return self._verb("POST", input, options)

    def put(self, input: Any, **options: Any) -> ResponsePromise:  # noqa: A002
        return self._verb("PUT", input, options)

    def patch(self, input: Any, **options: Any) -> ResponsePromise:  # noqa: A002
        return self._verb("PATCH", input, options)

    def head(self, input: Any, **options: Any) -> ResponsePromise:  # noqa: A002
        return self._verb("HEAD", input, options)

    def delete(self, input: Any, **options: Any) -> ResponsePromise:  # noqa: A002
        return self._verb("DELETE", input, options)

    def create(self, **defaults: Any) -> Aresky:
        """Create a new instance with its own defaults.

        The defaults of this instance are not inherited.
        """
        return Aresky(defaults)

    def extend(
        self,
        defaults: Mapping[str, Any] | Callable[[Mapping[str, Any]], Mapping[str, Any]] | None = None,
        /,
        **options: Any,
    ) -> Aresky:
        r"""Create a child instance inheriting the defaults of this one.

        Headers are merged, hook lists are appended after the parent
        hooks and other options override the parent values.

        Args:
            defaults: Defaults to merge, or a function receiving the
                parent defaults and returning the defaults to merge.
            **options: More defaults to merge.

        Returns:
            The child instance.
        """
        if callable(defaults):
            defaults = defaults(self.defaults)
        logger.debug("Extending an aresky instance")
        return Aresky(validate_and_merge(self._defaults, defaults, options))
