"""
Pytest configuration and fixtures for content cache tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest

from contentcache.cache.manager import CacheManager
from contentcache.cache.store import EntryStore
from contentcache.config import Settings, clear_settings_cache
from contentcache.types import CacheConfig


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "CACHE_DIR": ".test_cache",
        "CACHE_MAX_AGE_SECONDS": "3600",
        "CACHE_COMPRESSION_ENABLED": "true",
        "CACHE_AUTO_CLEANUP": "false",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str], temp_dir: Path) -> Generator[Settings, None, None]:
    """Provide a Settings instance whose cache directory is under temp_dir."""
    with patch.dict(os.environ, {"CACHE_DIR": str(temp_dir / "cache")}):
        clear_settings_cache()
        from contentcache.config import get_settings

        settings = get_settings()
        settings.ensure_directories()
        yield settings
        clear_settings_cache()


@pytest.fixture
def cache_config() -> CacheConfig:
    """Cache tunables with the maintenance timer disabled."""
    return CacheConfig(auto_cleanup=False)


@pytest.fixture
def entry_store(temp_dir: Path) -> EntryStore:
    """Provide an entry store rooted in a fresh directory."""
    return EntryStore(temp_dir / "cache")


@pytest.fixture
async def cache_manager(temp_dir: Path, cache_config: CacheConfig) -> CacheManager:
    """Create a started cache manager for testing."""
    manager = CacheManager(temp_dir / "cache", config=cache_config)
    await manager.start()
    yield manager
    await manager.close()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
