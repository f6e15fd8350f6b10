r"""Asynchronous retry executor for aresky calls.

This module provides the AsyncRetryExecutor class that runs the attempts
of a call with automatic retry logic, as an explicit state machine.
"""

from __future__ import annotations

__all__ = ["AsyncRetryExecutor", "RetryState"]

import enum
import logging
import time
from typing import TYPE_CHECKING

from aresky.core.config import MAX_SAFE_TIMEOUT
from aresky.exceptions import ForceRetryError
from aresky.hooks import BeforeRetryState, HookAction
from aresky.retrying.decider import RetryDecider
from aresky.retrying.manager import HookManager
from aresky.retrying.strategy import RetryStrategy
from aresky.utils.delay import delay
from aresky.utils.structured_logging import log_structured

if TYPE_CHECKING:
    import httpx

    from aresky.core.config import RetryPolicy
    from aresky.core.engine import RequestEngine
    from aresky.utils.abort import AbortSignal

logger: logging.Logger = logging.getLogger(__name__)


class RetryState(enum.Enum):
    """States of the retry loop."""

    EXECUTING = "executing"
    EVALUATING_FAILURE = "evaluating_failure"
    DELAYING = "delaying"
    RETRYING = "retrying"
    SETTLED = "settled"


class AsyncRetryExecutor:
    """Executes the attempts of a call with automatic retry logic.

    The executor moves through ``RetryState`` until the call settles:

    - ``EXECUTING``: run one attempt. Success settles the call.
    - ``EVALUATING_FAILURE``: ask the decider for the delay of the next
      retry. No delay means the error is raised, otherwise the retry is
      counted.
    - ``DELAYING``: sleep, interrupted only by the caller signal.
    - ``RETRYING``: run the before_retry hooks, then execute again.

    The executor orchestrates the following components:
    - RetryStrategy: Calculates backoff delays between retries
    - RetryDecider: Determines whether a failure is retried
    - HookManager: Invokes the before_retry hooks

    Args:
        policy: The retry policy of the call.
        hooks: The hook manager of the call.
        signal: Optional caller signal interrupting the retry delays.

    Attributes:
        retry_count: Number of retries counted so far.
        state: The current state.

    Example:
        ```pycon
        >>> import aresky
        >>> async def main():  # doctest: +SKIP
        ...     return await aresky.get("https://api.example.com/data", retry={"limit": 3}).json()
        ...

        ```
    """

    def __init__(
        self,
        policy: RetryPolicy,
        hooks: HookManager,
        signal: AbortSignal | None = None,
    ) -> None:
        self.policy = policy
        self.strategy: RetryStrategy = RetryStrategy(policy)
        self.decider: RetryDecider = RetryDecider(policy, self.strategy)
        self.hooks = hooks
        self.signal = signal
        self.retry_count = 0
        self.state = RetryState.EXECUTING

    async def execute(self, engine: RequestEngine) -> httpx.Response | None:
        """Run the attempts of ``engine`` until the call settles.

        Args:
            engine: The engine of the call. Its ``attempt`` method sends one
                attempt and its ``request`` is replaced by the retries.

        Returns:
            The final response, or ``None`` if a before_retry hook
            returned ``STOP``.

        Raises:
            Exception: The error of the last attempt when it is not
                retried, or the error raised by a before_retry hook.
        """
        start_time = time.time()
        error: Exception | None = None
        delay_ms = 0.0
        self.state = RetryState.EXECUTING

        while True:
            if self.state is RetryState.EXECUTING:
                try:
                    response = await engine.attempt()
                except Exception as exc:  # noqa: BLE001
                    error = exc
                    self.state = RetryState.EVALUATING_FAILURE
                    continue
                return self._settle(engine, response, start_time)

            if self.state is RetryState.EVALUATING_FAILURE:
                next_delay = await self.decider.compute_delay(error, self.retry_count + 1)
                if next_delay is None:
                    self.state = RetryState.SETTLED
                    log_structured(
                        logger,
                        logging.DEBUG,
                        f"{engine.request.method} request to {engine.request.url} failed: {error}",
                        method=engine.request.method,
                        url=str(engine.request.url),
                        retry_count=self.retry_count,
                        error_type=type(error).__name__,
                        total_time=time.time() - start_time,
                    )
                    raise error
                self.retry_count += 1
                if isinstance(error, ForceRetryError) and error.custom_request is not None:
                    engine.request = error.custom_request
                delay_ms = min(next_delay, MAX_SAFE_TIMEOUT)
                self.state = RetryState.DELAYING

            elif self.state is RetryState.DELAYING:
                log_structured(
                    logger,
                    logging.DEBUG,
                    f"{engine.request.method} request to {engine.request.url}: "
                    f"retry {self.retry_count}/{self.policy.limit} in {delay_ms:.0f}ms",
                    method=engine.request.method,
                    url=str(engine.request.url),
                    retry_count=self.retry_count,
                    delay_ms=delay_ms,
                    error_type=type(error).__name__,
                )
                await delay(delay_ms, self.signal)
                self.state = RetryState.RETRYING

            elif self.state is RetryState.RETRYING:
                result = await self.hooks.run_before_retry(
                    BeforeRetryState(
                        request=engine.request,
                        options=engine.options,
                        error=error,
                        retry_count=self.retry_count,
                    )
                )
                if result.action is HookAction.STOP:
                    logger.debug("Retry stopped by a before_retry hook")
                    return self._settle(engine, None, start_time)
                if result.action is HookAction.REPLACE_RESPONSE:
                    return self._settle(engine, result.value, start_time)
                if result.action is HookAction.REPLACE_REQUEST:
                    engine.request = result.value
                self.state = RetryState.EXECUTING

    def _settle(
        self, engine: RequestEngine, response: httpx.Response | None, start_time: float
    ) -> httpx.Response | None:
        self.state = RetryState.SETTLED
        log_structured(
            logger,
            logging.DEBUG,
            f"{engine.request.method} request to {engine.request.url} settled "
            f"after {self.retry_count} retries",
            method=engine.request.method,
            url=str(engine.request.url),
            retry_count=self.retry_count,
            status_code=None if response is None else response.status_code,
            total_time=time.time() - start_time,
        )
        return response
