r"""Utility functions for cancellation, delays, timeouts, body streams,
option merging, ``Retry-After`` parsing and structured logging."""

from __future__ import annotations

__all__ = [
    "AbortController",
    "AbortSignal",
    "Progress",
    "abortable",
    "deep_merge",
    "merge_headers",
    "merge_hooks",
    "parse_retry_after",
    "validate_and_merge",
]

from aresky.utils.abort import AbortController, AbortSignal, abortable
from aresky.utils.body import Progress
from aresky.utils.merge import deep_merge, merge_headers, merge_hooks, validate_and_merge
from aresky.utils.retry_after import parse_retry_after
