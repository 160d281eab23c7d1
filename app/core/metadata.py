"""Helpers for session metadata sent to the gateway."""

from __future__ import annotations

from typing import Any, Mapping, Union

MAX_METADATA_DEPTH = 5
DEPTH_EXCEEDED_SENTINEL = {"error": "Maximum recursion depth exceeded"}

Nested = Union[Mapping[str, Any], list, tuple]


def _items(value: Nested):
    if isinstance(value, Mapping):
        return value.items()
    return enumerate(value)


def flatten_metadata(metadata: Nested, depth: int = 0) -> dict[str, str]:
    """
    Flatten nested metadata into dot-joined string keys with string values.

    The gateway only accepts flat string-to-string metadata. Lists and tuples are
    flattened by index (``tags.0``, ``tags.1``). Nesting deeper than
    MAX_METADATA_DEPTH is replaced by DEPTH_EXCEEDED_SENTINEL under that branch.
    """
    if depth > MAX_METADATA_DEPTH:
        return dict(DEPTH_EXCEEDED_SENTINEL)

    flattened: dict[str, str] = {}
    for key, value in _items(metadata):
        if isinstance(value, (Mapping, list, tuple)):
            for nested_key, nested_value in flatten_metadata(value, depth + 1).items():
                flattened[f"{key}.{nested_key}"] = str(nested_value)
        elif value is None:
            flattened[str(key)] = ""
        else:
            flattened[str(key)] = str(value)
    return flattened
