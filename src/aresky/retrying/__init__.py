r"""Retry package implementing class-based composition pattern.

Public API:
    - RetryStrategy: Strategy for calculating retry delays
    - RetryDecider: Logic for deciding whether to retry
    - HookManager: Manager for the lifecycle hook invocations
    - AsyncRetryExecutor: Asynchronous retry executor
    - RetryState: States of the retry loop
"""

from __future__ import annotations

__all__ = [
    "AsyncRetryExecutor",
    "HookManager",
    "RetryDecider",
    "RetryState",
    "RetryStrategy",
]

from aresky.retrying.decider import RetryDecider
from aresky.retrying.executor_async import AsyncRetryExecutor, RetryState
from aresky.retrying.manager import HookManager
from aresky.retrying.strategy import RetryStrategy
