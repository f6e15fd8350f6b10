r"""Structured logging utilities for machine-readable log output.

The retry executor emits its retry and settle events with
``log_structured``, so that the method, URL, retry count and delay of
each event are available as separate fields. ``StructuredFormatter``
renders them as JSON lines. Nothing is configured by default: attach the
formatter to a handler of the ``aresky`` logger to opt in.

Example:
    ```python
    import logging
    from aresky.utils.structured_logging import StructuredFormatter, correlation_id

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logger = logging.getLogger("aresky")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)

    with correlation_id("request-123"):
        data = await aresky.get("https://api.example.com/data").json()
    ```
"""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "clear_correlation_id",
    "correlation_id",
    "get_correlation_id",
    "log_structured",
    "set_correlation_id",
]

import contextlib
import contextvars
import json
import logging
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Generator

# Context variable holding the correlation ID of the current task
_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "aresky_correlation_id", default=None
)

# Attributes of every LogRecord, excluded from the extra fields
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()) | {
    "message",
    "asctime",
}


def get_correlation_id() -> str | None:
    """Get the correlation ID of the current context.

    Example:
        ```pycon
        >>> from aresky.utils.structured_logging import get_correlation_id, set_correlation_id
        >>> set_correlation_id("req-123")
        >>> get_correlation_id()
        'req-123'

        ```
    """
    return _correlation_id.get()


def set_correlation_id(value: str) -> None:
    """Set the correlation ID of the current context.

    The ID is stored in a context variable, so concurrent asyncio tasks
    each see their own value.

    Args:
        value: The correlation ID, for example a request or trace ID.
    """
    _correlation_id.set(value)


def clear_correlation_id() -> None:
    """Clear the correlation ID of the current context."""
    _correlation_id.set(None)


@contextlib.contextmanager
def correlation_id(value: str) -> Generator[None, None, None]:
    """Set a correlation ID for the duration of a ``with`` block.

    Example:
        ```pycon
        >>> from aresky.utils.structured_logging import (
        ...     correlation_id,
        ...     get_correlation_id,
        ...     set_correlation_id,
        ... )
        >>> set_correlation_id("outer")
        >>> with correlation_id("batch-7"):
        ...     get_correlation_id()
        ...
        'batch-7'
        >>> get_correlation_id()
        'outer'

        ```
    """
    token = _correlation_id.set(value)
    try:
        yield
    finally:
        _correlation_id.reset(token)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Each record becomes one JSON object with the fields ``timestamp``,
    ``level``, ``logger``, ``message``, ``module``, ``function`` and
    ``line``, plus ``correlation_id`` when set, ``exception`` when the
    record carries exception info, and every field passed with ``extra``.
    Values that are not JSON serializable are rendered with ``str``.

    Example:
        ```pycon
        >>> import json
        >>> import logging
        >>> from aresky.utils.structured_logging import StructuredFormatter
        >>> record = logging.LogRecord("aresky", logging.DEBUG, "x.py", 1, "retrying", (), None)
        >>> record.retry_count = 1
        >>> data = json.loads(StructuredFormatter().format(record))
        >>> data["message"], data["retry_count"]
        ('retrying', 1)

        ```
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        current_id = get_correlation_id()
        if current_id is not None:
            log_data["correlation_id"] = current_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRIBUTES:
                log_data[key] = value

        return json.dumps(log_data, default=str)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        """Format the record time as ISO 8601 UTC with milliseconds."""
        return (
            time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
            + f".{int(record.msecs):03d}Z"
        )


def log_structured(logger: logging.Logger, level: int, message: str, **extra: Any) -> None:
    """Log a message with structured fields.

    The fields are skipped entirely when ``level`` is not enabled.

    Args:
        logger: Logger to use.
        level: Log level (e.g., logging.DEBUG).
        message: Log message.
        **extra: Structured fields added to the record.
    """
    if logger.isEnabledFor(level):
        logger.log(level, message, extra=extra)
