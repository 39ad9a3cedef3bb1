"""
Rule-based invalidation.

Rules are evaluated per key; the engine only decides which rules fire. Acting
on them (deleting, compressing, or queueing a refresh) belongs to the caller.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from contentcache.types import (
    CacheInvalidationRule,
    InvalidationAction,
    InvalidationCondition,
    utc_now,
)


def matches_pattern(name: str, pattern: str | re.Pattern[str]) -> bool:
    """Match a key against a rule pattern.

    Plain strings match as substrings, compiled patterns with re.search.
    """
    if isinstance(pattern, re.Pattern):
        return pattern.search(name) is not None
    return pattern in name


@dataclass(frozen=True)
class EntryFacts:
    """What the engine needs to know about one stored entry."""

    key: str
    modified_at: datetime
    size: int
    dependency_refreshed: bool = False


class InvalidationEngine:
    """Evaluates invalidation rules against stored entries."""

    def __init__(self, rules: list[CacheInvalidationRule] | None = None) -> None:
        self._rules: list[CacheInvalidationRule] = list(rules or [])

    @property
    def rules(self) -> tuple[CacheInvalidationRule, ...]:
        return tuple(self._rules)

    def add_rule(self, rule: CacheInvalidationRule) -> None:
        """Register a rule. Rules are immutable once registered."""
        self._rules.append(rule)

    def evaluate(
        self,
        facts: EntryFacts,
        now: datetime | None = None,
    ) -> list[CacheInvalidationRule]:
        """Return every registered rule that fires for an entry."""
        now = now or utc_now()
        return [
            rule
            for rule in self._rules
            if matches_pattern(facts.key, rule.pattern) and self._fires(rule, facts, now)
        ]

    def should_invalidate(self, facts: EntryFacts, now: datetime | None = None) -> bool:
        """Check whether any delete rule fires for an entry."""
        return any(
            rule.action == InvalidationAction.DELETE for rule in self.evaluate(facts, now)
        )

    @staticmethod
    def _fires(rule: CacheInvalidationRule, facts: EntryFacts, now: datetime) -> bool:
        if rule.condition == InvalidationCondition.TIME:
            if rule.threshold is None:
                return False
            age = (now - facts.modified_at).total_seconds()
            return age > rule.threshold

        if rule.condition == InvalidationCondition.SIZE:
            if rule.threshold is None:
                return False
            return facts.size > rule.threshold

        if rule.condition == InvalidationCondition.DEPENDENCY:
            return facts.dependency_refreshed

        # Manual rules are triggered explicitly by the caller
        return False


def default_rules() -> list[CacheInvalidationRule]:
    """Rules registered by a fresh CacheManager."""
    return [
        CacheInvalidationRule(
            pattern=re.compile(r"^github-"),
            condition=InvalidationCondition.TIME,
            threshold=6 * 60 * 60,
            action=InvalidationAction.REFRESH,
        ),
        CacheInvalidationRule(
            pattern=re.compile(r"^blog-"),
            condition=InvalidationCondition.TIME,
            threshold=2 * 60 * 60,
            action=InvalidationAction.REFRESH,
        ),
        CacheInvalidationRule(
            pattern=re.compile(r"^status-"),
            condition=InvalidationCondition.TIME,
            threshold=15 * 60,
            action=InvalidationAction.REFRESH,
        ),
        CacheInvalidationRule(
            pattern=re.compile(r"^seo-"),
            condition=InvalidationCondition.DEPENDENCY,
            action=InvalidationAction.REFRESH,
        ),
        CacheInvalidationRule(
            pattern=re.compile(r".*"),
            condition=InvalidationCondition.SIZE,
            threshold=10 * 1024 * 1024,
            action=InvalidationAction.COMPRESS,
        ),
    ]
