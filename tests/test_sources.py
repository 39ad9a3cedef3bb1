"""
Tests for the data source registry.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from contentcache.cache.sources import SourceRegistry, default_sources
from contentcache.types import DataSource, SourcePriority, utc_now


class TestDefaultSources:
    """Tests for the sources registered at start-up."""

    def test_default_schedule(self) -> None:
        now = utc_now()
        sources = {s.name: s for s in default_sources(now)}

        assert set(sources) == {"github", "wordpress", "status", "seo"}
        assert sources["github"].fetch_interval == 6 * 3600
        assert sources["github"].priority == SourcePriority.HIGH
        assert sources["wordpress"].fetch_interval == 2 * 3600
        assert sources["status"].fetch_interval == 15 * 60
        assert sources["seo"].dependencies == ("github", "wordpress")
        assert sources["seo"].priority == SourcePriority.LOW
        assert sources["status"].next_fetch == now + timedelta(minutes=15)


class TestSourceRegistry:
    """Tests for key ownership and scheduling."""

    @pytest.fixture
    def registry(self) -> SourceRegistry:
        return SourceRegistry(default_sources())

    def test_for_key_by_prefix(self, registry: SourceRegistry) -> None:
        assert registry.for_key("github-repositories").name == "github"
        assert registry.for_key("blog-posts").name == "wordpress"
        assert registry.for_key("unrelated") is None

    def test_for_key_exact_name(self, registry: SourceRegistry) -> None:
        assert registry.for_key("status").name == "status"

    def test_mark_fetched(self, registry: SourceRegistry) -> None:
        now = utc_now() + timedelta(hours=1)

        source = registry.mark_fetched("github", now)

        assert source.last_fetch == now
        assert source.next_fetch == now + timedelta(hours=6)
        assert source.is_due(now) is False
        assert source.is_due(now + timedelta(hours=6)) is True

    def test_mark_unknown_source(self, registry: SourceRegistry) -> None:
        with pytest.raises(KeyError):
            registry.mark_fetched("nope")

    def test_dependency_refreshed_since(self, registry: SourceRegistry) -> None:
        """Test that seo keys see refreshes of github or wordpress."""
        written_at = utc_now() + timedelta(minutes=1)

        assert registry.dependency_refreshed_since("seo-metadata", written_at) is False

        registry.mark_fetched("wordpress", written_at + timedelta(seconds=1))

        assert registry.dependency_refreshed_since("seo-metadata", written_at) is True
        assert registry.dependency_refreshed_since("github-repos", written_at) is False

    def test_restore_round_trip(self, registry: SourceRegistry) -> None:
        later = utc_now() + timedelta(days=1)
        registry.mark_fetched("status", later)
        persisted = registry.to_dict()

        fresh = SourceRegistry(default_sources())
        restored = fresh.restore(persisted)

        assert restored == 4
        assert fresh.get("status").last_fetch == later

    def test_restore_skips_malformed(self, registry: SourceRegistry) -> None:
        restored = registry.restore(
            {
                "github": {"lastFetch": "not a date", "nextFetch": "x", "fetchInterval": 1},
                "custom": DataSource.create("custom", "Custom", 60).to_dict(),
            }
        )

        assert restored == 1
        assert "custom" in registry
        assert registry.get("github").fetch_interval == 6 * 3600
