"""
Structural change detection between two JSON values.

Paths are dotted (``settings.theme``, ``users.0.name``); a change at the top
level is reported as ``root``.
"""

from __future__ import annotations

from typing import Any

ROOT_PATH = "root"


def json_kind(value: Any) -> str:
    """Classify a value by its JSON type."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def diff(old: Any, new: Any) -> list[str]:
    """Report the paths at which two values differ.

    Args:
        old: Previous version of the value.
        new: Incoming version of the value.

    Returns:
        Deduplicated changed paths in the order they were found.
    """
    changes: dict[str, None] = {}
    _compare(old, new, "", changes)
    return list(changes)


def _join(path: str, segment: Any) -> str:
    return f"{path}.{segment}" if path else str(segment)


def _compare(old: Any, new: Any, path: str, changes: dict[str, None]) -> None:
    here = path or ROOT_PATH
    kind = json_kind(old)

    if kind != json_kind(new):
        changes[here] = None
        return

    if kind == "array":
        if len(old) != len(new):
            changes[here] = None
            return
        for index, (left, right) in enumerate(zip(old, new)):
            if left != right:
                _compare(left, right, _join(path, index), changes)
        # Nested indices are reported above; the array itself is one more signal
        if list(old) != list(new):
            changes[here] = None
        return

    if kind == "object":
        for key in {**old, **new}:
            child = _join(path, key)
            if key not in old or key not in new:
                changes[child] = None
            else:
                _compare(old[key], new[key], child, changes)
        return

    if old != new:
        changes[here] = None
