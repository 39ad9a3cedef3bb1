"""
Registry of logical data feeds and the cache keys they own.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from contentcache.logging import get_logger
from contentcache.types import DataSource, SourcePriority, utc_now

logger = get_logger(__name__)

HOUR = 60 * 60


def default_sources(now: datetime | None = None) -> list[DataSource]:
    """Sources registered at manager start-up."""
    now = now or utc_now()
    return [
        DataSource.create(
            name="github",
            display_name="GitHub Data",
            fetch_interval=6 * HOUR,
            priority=SourcePriority.HIGH,
            key_prefixes=["github-"],
            now=now,
        ),
        DataSource.create(
            name="wordpress",
            display_name="WordPress Blog",
            fetch_interval=2 * HOUR,
            priority=SourcePriority.MEDIUM,
            key_prefixes=["blog-"],
            now=now,
        ),
        DataSource.create(
            name="status",
            display_name="Status Monitoring",
            fetch_interval=15 * 60,
            priority=SourcePriority.HIGH,
            key_prefixes=["status-"],
            now=now,
        ),
        DataSource.create(
            name="seo",
            display_name="SEO Metadata",
            fetch_interval=24 * HOUR,
            priority=SourcePriority.LOW,
            dependencies=["github", "wordpress"],
            key_prefixes=["seo-"],
            now=now,
        ),
    ]


class SourceRegistry:
    """Name -> DataSource map with key ownership lookup."""

    def __init__(self, sources: list[DataSource] | None = None) -> None:
        self._sources: dict[str, DataSource] = {}
        for source in sources or []:
            self.register(source)

    def __contains__(self, name: str) -> bool:
        return name in self._sources

    def __iter__(self):
        return iter(self._sources.values())

    def register(self, source: DataSource) -> None:
        self._sources[source.name] = source

    def get(self, name: str) -> DataSource | None:
        return self._sources.get(name)

    def for_key(self, key: str) -> DataSource | None:
        """Find the source that owns a cache key.

        An exact name match wins over a prefix match.
        """
        if key in self._sources:
            return self._sources[key]
        for source in self._sources.values():
            if source.owns_key(key):
                return source
        return None

    def mark_fetched(self, name: str, now: datetime | None = None) -> DataSource:
        """Advance a source's schedule after a successful fetch.

        Raises:
            KeyError: If no source has that name.
        """
        source = self._sources[name]
        source.mark_fetched(now)
        logger.debug("Source fetched", source=name, next_fetch=source.next_fetch.isoformat())
        return source

    def dependency_refreshed_since(self, key: str, since: datetime) -> bool:
        """Check whether any dependency of the key's source fetched after since."""
        source = self.for_key(key)
        if source is None:
            return False
        for dep_name in source.dependencies:
            dep = self._sources.get(dep_name)
            if dep is not None and dep.last_fetch > since:
                return True
        return False

    def to_dict(self) -> dict[str, Any]:
        return {name: source.to_dict() for name, source in self._sources.items()}

    def restore(self, data: dict[str, Any]) -> int:
        """Merge persisted scheduling state into the registry.

        Malformed records are skipped.

        Returns:
            Number of sources restored.
        """
        restored = 0
        for name, raw in data.items():
            try:
                source = DataSource.from_dict({"name": name, **raw})
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed data source", source=name, error=str(e))
                continue
            self._sources[name] = source
            restored += 1
        return restored
