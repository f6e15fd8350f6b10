r"""Abortable sleep used between retry attempts."""

from __future__ import annotations

__all__ = ["delay"]

import asyncio
import logging
from typing import TYPE_CHECKING

from aresky.core.config import MAX_SAFE_TIMEOUT
from aresky.utils.abort import abortable

if TYPE_CHECKING:
    from aresky.utils.abort import AbortSignal

logger: logging.Logger = logging.getLogger(__name__)


async def delay(ms: float, signal: AbortSignal | None = None) -> None:
    r"""Sleep for ``ms`` milliseconds unless ``signal`` aborts first.

    Args:
        ms: The delay in milliseconds. Negative values sleep for 0 ms and
            values above ``MAX_SAFE_TIMEOUT`` are capped.
        signal: Optional signal that interrupts the sleep.

    Raises:
        BaseException: The abort reason if ``signal`` is or becomes aborted.

    Example:
        ```pycon
        >>> import asyncio
        >>> from aresky.utils.delay import delay
        >>> asyncio.run(delay(1))

        ```
    """
    seconds = min(max(ms, 0.0), MAX_SAFE_TIMEOUT) / 1000
    logger.debug(f"Waiting {seconds:.3f}s before retry")
    await abortable(asyncio.sleep(seconds), signal)
