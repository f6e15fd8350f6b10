r"""Core logic of the request engine.

This package contains the configuration defaults, the validation and
normalization of the call options, the request builder and the request
engine itself.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_TIMEOUT",
    "MAX_SAFE_TIMEOUT",
    "RetryPolicy",
    "normalize_request_method",
    "normalize_retry_options",
    "normalize_search_params",
    "validate_input",
    "validate_options",
    "validate_timeout",
]

from aresky.core.config import DEFAULT_TIMEOUT, MAX_SAFE_TIMEOUT, RetryPolicy
from aresky.core.normalize import (
    normalize_request_method,
    normalize_retry_options,
    normalize_search_params,
)
from aresky.core.validation import validate_input, validate_options, validate_timeout
