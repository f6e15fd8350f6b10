r"""Merging of layered option sets.

Instance defaults and per-call options are combined left to right with
``validate_and_merge``. Headers are merged case-insensitively into a
fresh ``httpx.Headers`` (a ``None`` value removes a header), hook lists
are concatenated, and signals from several sources are combined.
"""

from __future__ import annotations

__all__ = ["deep_merge", "merge_headers", "merge_hooks", "validate_and_merge"]

from collections.abc import Mapping
from dataclasses import fields, is_dataclass
from typing import Any

import httpx

from aresky.core.validation import validate_options
from aresky.utils.abort import AbortSignal

HOOK_STAGES = ("before_request", "before_retry", "after_response", "before_error")


def _as_mapping(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {field.name: getattr(value, field.name) for field in fields(value)}
    return value


def _header_items(headers: Any) -> list[tuple[str, Any]]:
    if headers is None:
        return []
    if isinstance(headers, httpx.Headers):
        return headers.multi_items()
    if isinstance(headers, Mapping):
        return list(headers.items())
    return [tuple(pair) for pair in headers]


def merge_headers(source1: Any = None, source2: Any = None) -> httpx.Headers:
    r"""Merge two header sets into a new ``httpx.Headers``.

    Neither source is modified. A ``None`` value in ``source2`` removes
    the header.

    Args:
        source1: The base headers.
        source2: The overriding headers.

    Returns:
        The merged headers.

    Example:
        ```pycon
        >>> from aresky.utils.merge import merge_headers
        >>> headers = merge_headers({"A": "1", "B": "2"}, {"b": None, "C": "3"})
        >>> dict(headers)
        {'a': '1', 'c': '3'}

        ```
    """
    result = httpx.Headers([(key, value) for key, value in _header_items(source1) if value is not None])
    for key, value in _header_items(source2):
        if value is None:
            result.pop(key, None)
        else:
            result[key] = value
    return result


def merge_hooks(original: Any = None, incoming: Any = None) -> dict[str, list[Any]]:
    r"""Concatenate the hook lists of two hook sets.

    An explicit ``None`` stage in ``incoming`` clears that stage.

    Example:
        ```pycon
        >>> from aresky.utils.merge import merge_hooks
        >>> merged = merge_hooks({"before_request": [1]}, {"before_request": [2]})
        >>> merged["before_request"]
        [1, 2]
        >>> merge_hooks({"before_retry": [1]}, {"before_retry": None})["before_retry"]
        []

        ```
    """
    original = _as_mapping(original) or {}
    incoming = _as_mapping(incoming) or {}
    merged = {}
    for stage in HOOK_STAGES:
        if stage in incoming and incoming[stage] is None:
            merged[stage] = []
        else:
            merged[stage] = [*(original.get(stage) or ()), *(incoming.get(stage) or ())]
    return merged


def _merge_retry(previous: Any, value: Any) -> Any:
    previous = _as_mapping(previous)
    value = _as_mapping(value)
    if isinstance(value, Mapping):
        if isinstance(previous, Mapping):
            return {**previous, **value}
        if isinstance(previous, int):
            return {"limit": previous, **value}
        return dict(value)
    if isinstance(value, int) and isinstance(previous, Mapping):
        return {**previous, "limit": value}
    return value


def deep_merge(*sources: Mapping[str, Any] | None) -> dict[str, Any]:
    r"""Deep-merge option mappings from left to right.

    Args:
        *sources: The option mappings. ``None`` entries are skipped.

    Returns:
        A new mapping. Nested mappings are merged recursively, ``headers``
        with ``merge_headers``, ``hooks`` with ``merge_hooks``, ``retry``
        limits and partial policies are combined, and several ``signal``
        values are combined with ``AbortSignal.any``.

    Example:
        ```pycon
        >>> from aresky.utils.merge import deep_merge
        >>> merged = deep_merge({"retry": 3, "context": {"a": 1}}, {"retry": {"backoff_limit": 1000}, "context": {"b": 2}})
        >>> merged["retry"]
        {'limit': 3, 'backoff_limit': 1000}
        >>> merged["context"]
        {'a': 1, 'b': 2}

        ```
    """
    result: dict[str, Any] = {}
    signals: list[AbortSignal] = []

    for source in sources:
        if source is None:
            continue
        for key, value in source.items():
            if key == "signal" and isinstance(value, AbortSignal):
                signals.append(value)
            elif key == "headers":
                if value is not None:
                    result["headers"] = merge_headers(result.get("headers"), value)
            elif key == "hooks":
                if value is not None:
                    result["hooks"] = merge_hooks(result.get("hooks"), value)
            elif key == "retry":
                result["retry"] = _merge_retry(result.get("retry"), value)
            elif isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
                result[key] = deep_merge(result[key], value)
            else:
                result[key] = value

    if len(signals) == 1:
        result["signal"] = signals[0]
    elif signals:
        result["signal"] = AbortSignal.any(signals)
    return result


def validate_and_merge(*sources: Mapping[str, Any] | None) -> dict[str, Any]:
    """Validate that every source is a mapping and deep-merge them.

    Raises:
        TypeError: If a source is neither ``None`` nor a mapping.
    """
    for source in sources:
        validate_options(source)
    return deep_merge(*sources)
