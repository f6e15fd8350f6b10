r"""Cancellation primitives for asyncio.

An ``AbortController`` owns an ``AbortSignal``. Aborting the controller
wakes every task waiting on the signal and runs the registered listeners
once. ``abortable`` runs an awaitable until it completes or the signal
fires, whichever comes first.
"""

from __future__ import annotations

__all__ = ["AbortController", "AbortSignal", "abortable"]

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from aresky.exceptions import AbortError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")


class AbortSignal:
    r"""Signal telling an operation that it has to stop.

    A signal created by ``AbortSignal.any`` follows its source signals.
    It is registered on them only while it has listeners or waiters, so
    a combined signal that nothing watches any more does not stay
    reachable from long-lived sources.

    Args:
        sources: The source signals of a combined signal.

    Example:
        ```pycon
        >>> from aresky.utils.abort import AbortController
        >>> controller = AbortController()
        >>> controller.signal.aborted
        False
        >>> controller.abort("bye")
        >>> controller.signal.aborted
        True
        >>> controller.signal.reason
        'bye'

        ```
    """

    def __init__(self, sources: Iterable[AbortSignal] = ()) -> None:
        self._aborted = False
        self._reason: Any = None
        self._event: asyncio.Event | None = None
        self._listeners: list[Callable[[Any], None]] = []
        self._sources: tuple[AbortSignal, ...] = tuple(sources)
        self._waiters = 0
        self._attached = False

    @property
    def aborted(self) -> bool:
        self._poll_sources()
        return self._aborted

    @property
    def reason(self) -> Any:
        self._poll_sources()
        return self._reason

    def add_listener(self, listener: Callable[[Any], None]) -> None:
        """Register a listener called once with the abort reason.

        A listener added to an already aborted signal is called
        immediately.
        """
        if self.aborted:
            listener(self._reason)
            return
        self._listeners.append(listener)
        self._update_attachment()

    def remove_listener(self, listener: Callable[[Any], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
        self._update_attachment()

    def error(self) -> BaseException:
        """Return the exception that represents the abort reason."""
        reason = self.reason
        if isinstance(reason, BaseException):
            return reason
        return AbortError(reason)

    def throw_if_aborted(self) -> None:
        if self.aborted:
            raise self.error()

    async def wait(self) -> None:
        """Wait until the signal is aborted."""
        if self.aborted:
            return
        if self._event is None:
            self._event = asyncio.Event()
        self._waiters += 1
        self._update_attachment()
        try:
            await self._event.wait()
        finally:
            self._waiters -= 1
            self._update_attachment()

    def _poll_sources(self) -> None:
        if self._aborted:
            return
        for source in self._sources:
            if source.aborted:
                self._abort(source.reason)
                return

    def _update_attachment(self) -> None:
        watched = not self._aborted and (bool(self._listeners) or self._waiters > 0)
        if watched and not self._attached:
            self._attached = True
            for source in self._sources:
                source.add_listener(self._abort)
        elif not watched and self._attached:
            self._attached = False
            for source in self._sources:
                source.remove_listener(self._abort)

    def _abort(self, reason: Any) -> None:
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason
        if self._event is not None:
            self._event.set()
        listeners, self._listeners = self._listeners, []
        self._update_attachment()
        for listener in listeners:
            listener(reason)

    @classmethod
    def any(cls, signals: Iterable[AbortSignal]) -> AbortSignal:
        r"""Create a signal aborted as soon as one of ``signals`` is.

        Args:
            signals: The source signals.

        Returns:
            The combined signal.

        Example:
            ```pycon
            >>> from aresky.utils.abort import AbortController, AbortSignal
            >>> first, second = AbortController(), AbortController()
            >>> combined = AbortSignal.any([first.signal, second.signal])
            >>> second.abort("second")
            >>> combined.reason
            'second'

            ```
        """
        return cls(signals)


class AbortController:
    """Controller owning an ``AbortSignal``."""

    def __init__(self) -> None:
        self.signal = AbortSignal()

    def abort(self, reason: Any = None) -> None:
        """Abort the signal. Calling it again has no effect."""
        self.signal._abort(reason)  # noqa: SLF001


async def abortable(awaitable: Awaitable[T], signal: AbortSignal | None) -> T:
    r"""Await ``awaitable`` unless ``signal`` aborts first.

    When the signal wins, the pending operation is cancelled and the abort
    reason is raised (an ``AbortError`` if the reason is not an exception).

    Args:
        awaitable: The operation to run.
        signal: The signal to watch, or ``None`` to await directly.

    Returns:
        The result of ``awaitable``.

    Raises:
        BaseException: The abort reason when the signal fires first.
    """
    if signal is None:
        return await awaitable
    if signal.aborted:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise signal.error()

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        await asyncio.gather(waiter, return_exceptions=True)
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
    if task not in done:
        logger.debug(f"Operation aborted: {signal.reason!r}")
        raise signal.error()
    return task.result()
