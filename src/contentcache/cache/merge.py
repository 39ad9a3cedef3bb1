"""
Merge engine: reconciles a cached value with an incoming one.

Strategies:
- replace: the incoming value wins wholesale
- merge: recursive deep merge of objects; arrays are replaced, never merged
- append: list concatenation (old first), otherwise replace
- custom: caller-supplied combinator; falls back to replace when missing
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from contentcache.exceptions import MergeError
from contentcache.logging import get_logger
from contentcache.types import ConflictResolution, DataMergeStrategy, MergeType

logger = get_logger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class MergeResult:
    """Merged value plus whether a fallback to replace was taken."""

    value: Any
    strategy: MergeType
    fell_back: bool = False
    reason: str | None = None


def resolve_conflict(old: Any, new: Any, resolution: ConflictResolution) -> Any:
    """Pick the value that survives at a conflicting leaf.

    Only "latest" has an algorithm; "priority" and "manual" resolve the same
    way until source priorities are threaded through merges.
    """
    return new


def deep_merge(
    old: Any,
    new: Any,
    resolution: ConflictResolution = ConflictResolution.LATEST,
) -> Any:
    """Recursively merge two objects without mutating either."""
    if not isinstance(old, dict) or not isinstance(new, dict):
        return resolve_conflict(old, new, resolution)

    result = dict(old)
    for key, value in new.items():
        existing = result.get(key, _MISSING)
        if isinstance(value, dict) and isinstance(existing, dict):
            result[key] = deep_merge(existing, value, resolution)
        elif existing is _MISSING:
            result[key] = value
        else:
            result[key] = resolve_conflict(existing, value, resolution)
    return result


def append(old: Any, new: Any) -> Any:
    """Concatenate two lists, old elements first; otherwise return new."""
    if isinstance(old, list) and isinstance(new, list):
        return [*old, *new]
    return new


def merge_values(old: Any, new: Any, strategy: DataMergeStrategy) -> MergeResult:
    """Apply a merge strategy.

    Args:
        old: Currently cached value, or None when nothing is cached.
        new: Incoming value.
        strategy: Merge policy.

    Returns:
        MergeResult with the value to persist.
    """
    if old is None or strategy.type == MergeType.REPLACE:
        return MergeResult(value=new, strategy=MergeType.REPLACE)

    if strategy.type == MergeType.MERGE:
        return MergeResult(
            value=deep_merge(old, new, strategy.conflict_resolution),
            strategy=MergeType.MERGE,
        )

    if strategy.type == MergeType.APPEND:
        return MergeResult(value=append(old, new), strategy=MergeType.APPEND)

    if strategy.custom_merger is not None:
        try:
            merged = strategy.custom_merger(old, new)
        except Exception as e:
            raise MergeError(
                "Custom merger failed",
                {"strategy": MergeType.CUSTOM.value, "reason": str(e)},
            ) from e
        return MergeResult(value=merged, strategy=MergeType.CUSTOM)

    logger.warning("Custom merge strategy has no merger, replacing value")
    return MergeResult(
        value=new,
        strategy=MergeType.REPLACE,
        fell_back=True,
        reason="custom merge strategy without a merger",
    )


def merge(old: Any, new: Any, strategy: DataMergeStrategy) -> Any:
    """Apply a merge strategy and return only the merged value."""
    return merge_values(old, new, strategy).value
