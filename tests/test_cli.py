"""
Tests for the command-line interface.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import orjson
import pytest
from typer.testing import CliRunner

from contentcache import __version__
from contentcache.cache.manager import CacheManager
from contentcache.cli.main import MAINTENANCE_REPORT_NAME, app
from contentcache.exceptions import CacheIOError
from contentcache.types import CacheConfig

runner = CliRunner()


def seed(root: Path, entries: dict[str, Any]) -> None:
    """Write entries through a short-lived manager."""

    async def _seed() -> None:
        async with CacheManager(root, config=CacheConfig(auto_cleanup=False)) as cache:
            for key, value in entries.items():
                await cache.set(key, value)

    asyncio.run(_seed())


@pytest.fixture
def cache_dir(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = temp_dir / "cache"
    monkeypatch.setenv("CACHE_DIR", str(root))
    monkeypatch.setenv("CACHE_AUTO_CLEANUP", "false")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    return root


class TestInfoCommands:
    """Tests for version and config."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_config(self, cache_dir: Path) -> None:
        result = runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "CACHE_DIR" in result.output

    def test_invalid_config(self, cache_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CACHE_MAX_SIZE_BYTES", "10")

        result = runner.invoke(app, ["config"])

        assert result.exit_code == 1


class TestCacheCommands:
    """Tests for commands that read or change the cache."""

    def test_get_hit(self, cache_dir: Path) -> None:
        seed(cache_dir, {"blog-posts": {"title": "hello"}})

        result = runner.invoke(app, ["get", "blog-posts"])

        assert result.exit_code == 0
        assert '"title": "hello"' in result.output

    def test_get_miss(self, cache_dir: Path) -> None:
        result = runner.invoke(app, ["get", "missing"])

        assert result.exit_code == 1

    def test_stats(self, cache_dir: Path) -> None:
        seed(cache_dir, {"a": 1, "b": 2})

        result = runner.invoke(app, ["stats"])

        assert result.exit_code == 0
        assert "Entries" in result.output

    def test_invalidate_regex(self, cache_dir: Path) -> None:
        seed(cache_dir, {"github-repos": 1, "github-members": 2, "blog-posts": 3})

        result = runner.invoke(app, ["invalidate", "^github-", "--regex"])

        assert result.exit_code == 0
        assert "Deleted: 2 entries" in result.output
        assert sorted(p.name for p in cache_dir.glob("*.json") if not p.name.startswith(".")) == [
            "blog-posts.json"
        ]

    def test_invalidate_bad_regex(self, cache_dir: Path) -> None:
        result = runner.invoke(app, ["invalidate", "([", "--regex"])

        assert result.exit_code != 0

    def test_health_json(self, cache_dir: Path) -> None:
        seed(cache_dir, {"a": 1})

        result = runner.invoke(app, ["health", "--json"])

        assert result.exit_code == 0
        assert '"status": "healthy"' in result.output

    def test_health_reports_corruption(self, cache_dir: Path) -> None:
        seed(cache_dir, {"a": 1})
        path = cache_dir / "a.json"
        outer = orjson.loads(path.read_bytes())
        outer["checksum"] = "bad"
        path.write_bytes(orjson.dumps(outer))

        result = runner.invoke(app, ["health"])

        assert result.exit_code == 0
        assert "corruption" in result.output

    def test_optimize(self, cache_dir: Path) -> None:
        seed(cache_dir, {"a": {"text": "x" * 100}})

        result = runner.invoke(app, ["optimize"])

        assert result.exit_code == 0
        assert "Disk usage" in result.output

    def test_maintain_writes_report(self, cache_dir: Path) -> None:
        seed(cache_dir, {"a": 1})

        result = runner.invoke(app, ["maintain", "--force"])

        assert result.exit_code == 0
        report = orjson.loads((cache_dir / MAINTENANCE_REPORT_NAME).read_bytes())
        assert report["success"] is True
        assert report["metrics"]["needsMaintenance"] is True
        assert "Cache maintenance" in report["operations"]
        assert "performance" in report["metrics"]

    def test_maintain_skips_healthy_cache(self, cache_dir: Path, temp_dir: Path) -> None:
        seed(cache_dir, {"a": 1})
        report_path = temp_dir / "report.json"

        result = runner.invoke(app, ["maintain", "--report", str(report_path)])

        assert result.exit_code == 0
        report = orjson.loads(report_path.read_bytes())
        assert report["operations"] == ["Health check", "Health check only"]


class TestStorageFailures:
    """Tests that storage errors end a command with an error message."""

    @pytest.fixture
    def broken_storage(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def fail(self: CacheManager, *args: Any) -> Any:
            raise CacheIOError("Failed to read entry", {"operation": "read"})

        monkeypatch.setattr(CacheManager, "get_health_status", fail)
        monkeypatch.setattr(CacheManager, "invalidate_cache", fail)

    def test_health(self, cache_dir: Path, broken_storage: None) -> None:
        result = runner.invoke(app, ["health"])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)

    def test_invalidate(self, cache_dir: Path, broken_storage: None) -> None:
        result = runner.invoke(app, ["invalidate", "blog-"])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
