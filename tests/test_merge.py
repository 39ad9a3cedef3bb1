"""
Tests for the merge engine.
"""

from __future__ import annotations

import copy

import pytest

from contentcache.cache.merge import deep_merge, merge, merge_values
from contentcache.exceptions import MergeError
from contentcache.types import DataMergeStrategy, MergeType


class TestDeepMerge:
    """Tests for recursive object merging."""

    def test_arrays_replaced_objects_merged(self) -> None:
        """Test that arrays are replaced while nested objects merge."""
        old = {"users": ["a"], "settings": {"theme": "dark"}}
        new = {"users": ["b"], "settings": {"lang": "en"}}

        result = merge(old, new, DataMergeStrategy.deep_merge())

        assert result == {"users": ["b"], "settings": {"theme": "dark", "lang": "en"}}

    def test_inputs_not_mutated(self) -> None:
        old = {"a": {"b": 1}}
        new = {"a": {"c": 2}}
        old_copy, new_copy = copy.deepcopy(old), copy.deepcopy(new)

        deep_merge(old, new)

        assert old == old_copy
        assert new == new_copy

    def test_conflicting_leaf_takes_latest(self) -> None:
        assert deep_merge({"a": 1, "b": 2}, {"a": 3}) == {"a": 3, "b": 2}

    def test_object_replaced_by_scalar(self) -> None:
        assert deep_merge({"a": {"b": 1}}, {"a": None}) == {"a": None}

    def test_non_objects_take_new(self) -> None:
        assert deep_merge([1], [2]) == [2]


class TestMergeValues:
    """Tests for strategy dispatch."""

    def test_replace(self) -> None:
        result = merge_values({"a": 1}, {"b": 2}, DataMergeStrategy.replace())

        assert result.value == {"b": 2}
        assert result.strategy == MergeType.REPLACE
        assert result.fell_back is False

    def test_nothing_cached_returns_new(self) -> None:
        """Test that every strategy returns the new value when old is None."""
        for strategy in (
            DataMergeStrategy.replace(),
            DataMergeStrategy.deep_merge(),
            DataMergeStrategy.append(),
            DataMergeStrategy.custom(None),
        ):
            assert merge_values(None, {"x": 1}, strategy).value == {"x": 1}

    def test_append_lists(self) -> None:
        result = merge_values([1, 2], [3], DataMergeStrategy.append())

        assert result.value == [1, 2, 3]
        assert result.strategy == MergeType.APPEND

    def test_append_non_lists_replaces(self) -> None:
        assert merge([1], {"a": 1}, DataMergeStrategy.append()) == {"a": 1}

    def test_custom_merger(self) -> None:
        strategy = DataMergeStrategy.custom(lambda old, new: old + new)

        result = merge_values(1, 2, strategy)

        assert result.value == 3
        assert result.strategy == MergeType.CUSTOM

    def test_custom_without_merger_falls_back(self) -> None:
        """Test that a custom strategy without a merger replaces and flags it."""
        result = merge_values({"a": 1}, {"b": 2}, DataMergeStrategy.custom(None))

        assert result.value == {"b": 2}
        assert result.strategy == MergeType.REPLACE
        assert result.fell_back is True
        assert result.reason

    def test_failing_custom_merger(self) -> None:
        def explode(old: object, new: object) -> object:
            raise ValueError("cannot combine")

        with pytest.raises(MergeError, match="Custom merger failed") as exc_info:
            merge_values({"a": 1}, {"b": 2}, DataMergeStrategy.custom(explode))

        assert exc_info.value.context["reason"] == "cannot combine"
        assert isinstance(exc_info.value.__cause__, ValueError)
