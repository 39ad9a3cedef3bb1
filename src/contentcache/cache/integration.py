"""
Helpers for putting the cache in front of data fetchers.

Fetchers are plain zero-argument async callables; this module never performs
network I/O itself.

Usage:
    fetcher = CachedDataFetcher(cache)
    repos = await fetcher.get_or_fetch(
        CacheKeys.GITHUB_REPOSITORIES,
        fetch_repositories,
        profile=CACHE_PROFILES["github"],
    )
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

from contentcache.cache.diff import diff
from contentcache.cache.manager import CacheManager
from contentcache.logging import get_logger, log_context
from contentcache.types import (
    CacheHealthCheck,
    CacheOperation,
    CachePerformanceMetrics,
    CacheStats,
    DataMergeStrategy,
    HealthStatus,
    utc_now,
)

logger = get_logger(__name__)

Fetcher = Callable[[], Awaitable[Any]]

HIGH_MISS_RATE = 0.5
MAX_EXPIRED_ENTRIES = 10


class CacheKeys:
    """Well-known cache keys."""

    GITHUB_REPOSITORIES = "github-repositories"
    GITHUB_MEMBERS = "github-members"
    GITHUB_STATS = "github-stats"
    GITHUB_PROJECTS = "github-projects"

    BLOG_POSTS = "blog-posts"
    BLOG_AUTHORS = "blog-authors"
    BLOG_CATEGORIES = "blog-categories"
    BLOG_TAGS = "blog-tags"
    BLOG_STATS = "blog-stats"

    STATUS_DATA = "status-data"
    SEO_METADATA = "seo-metadata"
    FETCH_RESULTS = "fetch-results"


@dataclass(frozen=True)
class CacheProfile:
    """Per-source write settings: TTL, provenance and default merge policy."""

    name: str
    key_prefix: str
    max_age: float  # seconds
    source: str
    version: str = "1.0.0"
    merge_strategy: DataMergeStrategy | None = None

    def metadata_overrides(self) -> dict[str, Any]:
        """Keyword overrides for CacheManager.set()."""
        return {"max_age": self.max_age, "source": self.source, "version": self.version}

    def key_pattern(self) -> re.Pattern[str]:
        """Pattern matching every key of this profile."""
        return re.compile(f"^{re.escape(self.key_prefix)}")


CACHE_PROFILES: dict[str, CacheProfile] = {
    "github": CacheProfile(
        name="github",
        key_prefix="github-",
        max_age=6 * 60 * 60,
        source="github-api",
        merge_strategy=DataMergeStrategy.deep_merge(),
    ),
    "wordpress": CacheProfile(
        name="wordpress",
        key_prefix="blog-",
        max_age=2 * 60 * 60,
        source="wordpress-api",
        merge_strategy=DataMergeStrategy.replace(),
    ),
    "status": CacheProfile(
        name="status",
        key_prefix="status-",
        max_age=15 * 60,
        source="status-api",
    ),
    "seo": CacheProfile(
        name="seo",
        key_prefix="seo-",
        max_age=24 * 60 * 60,
        source="seo-generator",
    ),
}

# Key warmed for each profile by CachedDataFetcher.warm()
WARM_KEYS: dict[str, str] = {
    "github": CacheKeys.GITHUB_REPOSITORIES,
    "wordpress": CacheKeys.BLOG_POSTS,
    "status": CacheKeys.STATUS_DATA,
    "seo": CacheKeys.SEO_METADATA,
}


@dataclass
class FetchSpec:
    """One item of a batch fetch."""

    key: str
    fetcher: Fetcher
    profile: CacheProfile | None = None
    force_refresh: bool = False


class CachedDataFetcher:
    """Cache-aside access to fetched data."""

    def __init__(self, cache: CacheManager) -> None:
        self.cache = cache

    async def get_or_fetch(
        self,
        key: str,
        fetcher: Fetcher,
        profile: CacheProfile | None = None,
        force_refresh: bool = False,
        merge_strategy: DataMergeStrategy | None = None,
    ) -> Any:
        """Return the cached value, fetching and caching it on a miss.

        With a merge strategy (explicit or from the profile), a cached value
        whose source is due for a refetch is refreshed incrementally: the new
        data is merged into the cached value under the key lock instead of
        replacing it. Each successful write advances the owning data source's
        fetch schedule.

        Args:
            key: Cache key.
            fetcher: Async callable producing fresh data.
            profile: Write settings (TTL, source, version, merge policy).
            force_refresh: Skip the cache lookup and always fetch.
            merge_strategy: Overrides the profile's merge policy.

        Returns:
            Cached, fetched or merged data.

        Raises:
            Whatever the fetcher raises; cache failures never propagate.
        """
        strategy = merge_strategy or (profile.merge_strategy if profile else None)
        overrides = profile.metadata_overrides() if profile else {}

        cached = None
        if not force_refresh:
            cached = await self.cache.get(key)
            if cached is not None:
                if strategy is None or not await self.cache.needs_incremental_update(key):
                    return cached

        with log_context(cache_key=key, operation="fetch"):
            started = time.perf_counter()
            data = await fetcher()
            logger.debug(
                "Fetched fresh data",
                duration_ms=round((time.perf_counter() - started) * 1000, 3),
            )

            if strategy is not None and cached is not None:
                changed = diff(cached, data)
                if changed:
                    stored = await self.cache.update(key, data, strategy, **overrides)
                    if stored:
                        logger.info("Merged incremental changes", fields=len(changed))
                        merged = await self.cache.get(key)
                        data = data if merged is None else merged
                else:
                    data = cached
                    stored = await self.cache.set(key, data, **overrides)
            else:
                stored = await self.cache.set(key, data, **overrides)

            if stored:
                self._advance_source(key)
            else:
                logger.warning("Fetched data could not be cached")
        return data

    def _advance_source(self, key: str) -> None:
        source = self.cache.get_data_source(key)
        if source is not None:
            self.cache.mark_source_fetched(source.name)

    async def batch_fetch(self, specs: dict[str, FetchSpec]) -> dict[str, Any]:
        """Run several get_or_fetch calls concurrently.

        Returns:
            Results keyed like specs.

        Raises:
            The first fetcher exception, as asyncio.gather does.
        """
        names = list(specs)
        results = await asyncio.gather(
            *(
                self.get_or_fetch(
                    specs[name].key,
                    specs[name].fetcher,
                    profile=specs[name].profile,
                    force_refresh=specs[name].force_refresh,
                )
                for name in names
            )
        )
        return dict(zip(names, results))

    async def warm_cache(
        self,
        key: str,
        fetcher: Fetcher,
        profile: CacheProfile | None = None,
    ) -> Any:
        """Fetch and cache a key regardless of its cached state."""
        return await self.get_or_fetch(key, fetcher, profile=profile, force_refresh=True)

    async def warm(self, fetchers: dict[str, Fetcher]) -> dict[str, bool]:
        """Warm the primary key of each named profile.

        Fetcher failures are logged and reported, never raised.

        Args:
            fetchers: Profile name ("github", "wordpress", "status", "seo")
                to fetcher.

        Returns:
            Profile name to whether warming succeeded.
        """
        names = [name for name in fetchers if name in WARM_KEYS]
        for unknown in set(fetchers) - set(names):
            logger.warning("No cache key to warm for profile", profile=unknown)

        logger.info("Warming caches", profiles=names)
        outcomes = await asyncio.gather(
            *(
                self.warm_cache(WARM_KEYS[name], fetchers[name], profile=CACHE_PROFILES[name])
                for name in names
            ),
            return_exceptions=True,
        )

        results: dict[str, bool] = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Cache warming failed", profile=name, error=str(outcome))
                results[name] = False
            else:
                results[name] = True
        logger.info("Cache warming completed", succeeded=sum(results.values()))
        return results

    async def invalidate_related(self, pattern: str | re.Pattern[str]) -> int:
        return await self.cache.invalidate_cache(pattern)

    async def invalidate_profile(self, name: str) -> int:
        """Delete every key of a named profile.

        Raises:
            KeyError: If the profile is unknown.
        """
        return await self.cache.invalidate_cache(CACHE_PROFILES[name].key_pattern())


@dataclass
class CacheStatusReport:
    """Snapshot returned by CacheMonitor.get_status()."""

    health: CacheHealthCheck
    stats: CacheStats
    recent_operations: list[CacheOperation]
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "health": self.health.to_dict(),
            "stats": self.stats.to_dict(),
            "recentOperations": [op.to_dict() for op in self.recent_operations],
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class MaintenanceResult:
    """Outcome of CacheMonitor.perform_maintenance()."""

    initial_health: CacheHealthCheck
    final_health: CacheHealthCheck
    metrics: CachePerformanceMetrics
    duration_ms: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "initialHealth": self.initial_health.to_dict(),
            "finalHealth": self.final_health.to_dict(),
            "metrics": self.metrics.to_dict(),
            "durationMs": round(self.duration_ms, 3),
        }


class CacheMonitor:
    """Health reporting and on-demand maintenance."""

    def __init__(self, cache: CacheManager) -> None:
        self.cache = cache

    async def get_status(self, recent: int = 50) -> CacheStatusReport:
        health = await self.cache.get_health_status()
        return CacheStatusReport(
            health=health,
            stats=self.cache.get_stats(),
            recent_operations=self.cache.get_recent_operations(recent),
        )

    async def needs_maintenance(self) -> bool:
        """Check for critical health, a high miss rate or many expired entries."""
        health = await self.cache.get_health_status()
        if health.status == HealthStatus.CRITICAL:
            return True
        stats = self.cache.get_stats()
        return stats.miss_rate > HIGH_MISS_RATE or stats.expired_entries > MAX_EXPIRED_ENTRIES

    async def perform_maintenance(self) -> MaintenanceResult:
        """Optimize the cache, reporting health before and after.

        Raises:
            CacheError: If the optimization sweep fails.
        """
        started = time.perf_counter()
        initial = await self.cache.get_health_status()
        logger.info("Starting cache maintenance", status=initial.status.value)

        metrics = await self.cache.optimize_cache()

        final = await self.cache.get_health_status()
        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Cache maintenance completed",
            status=final.status.value,
            duration_ms=round(duration_ms, 3),
        )
        return MaintenanceResult(
            initial_health=initial,
            final_health=final,
            metrics=metrics,
            duration_ms=duration_ms,
        )
