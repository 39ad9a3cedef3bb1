"""
Tests for configuration module.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from contentcache.cache.manager import CacheManager, create_cache_manager
from contentcache.config import Settings, clear_settings_cache, get_settings
from contentcache.types import ChecksumAlgorithm


class TestSettingsValidation:
    """Tests for Settings validation."""

    def test_settings_loads_from_env(self, mock_env_vars: dict[str, str]) -> None:
        """Test that settings correctly loads from environment variables."""
        settings = get_settings()

        assert settings.CACHE_DIR == Path(".test_cache")
        assert settings.CACHE_MAX_AGE_SECONDS == 3600
        assert settings.CACHE_COMPRESSION_ENABLED is True
        assert settings.CACHE_AUTO_CLEANUP is False
        assert settings.LOG_LEVEL == "DEBUG"

    def test_defaults(self) -> None:
        """Test default values when nothing is set."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.CACHE_DIR == Path("data")
        assert settings.CACHE_MAX_AGE_SECONDS == 24 * 60 * 60
        assert settings.CACHE_MAX_SIZE_BYTES == 100 * 1024 * 1024
        assert settings.CACHE_COMPRESSION_THRESHOLD_BYTES == 10 * 1024
        assert settings.CACHE_CHECKSUM_ALGORITHM == "sha256"
        assert settings.CACHE_CLEANUP_INTERVAL_SECONDS == 60 * 60
        assert settings.LOG_FILE is None

    def test_threshold_must_be_below_ceiling(self) -> None:
        """Test that the compression threshold must be below the size ceiling."""
        env_vars = {
            "CACHE_MAX_SIZE_BYTES": "1000",
            "CACHE_COMPRESSION_THRESHOLD_BYTES": "1000",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

        assert "CACHE_COMPRESSION_THRESHOLD_BYTES" in str(exc_info.value)

    def test_cleanup_interval_minimum(self) -> None:
        """Test that sub-second sweep intervals are rejected."""
        with patch.dict(os.environ, {"CACHE_CLEANUP_INTERVAL_SECONDS": "0.5"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_unknown_checksum_algorithm_rejected(self) -> None:
        """Test that only md5 and sha256 are accepted."""
        with patch.dict(os.environ, {"CACHE_CHECKSUM_ALGORITHM": "crc32"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_invalid_log_level(self) -> None:
        """Test that invalid log levels are rejected."""
        with patch.dict(os.environ, {"LOG_LEVEL": "VERBOSE"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)


class TestSettingsCache:
    """Tests for the lru_cache'd settings accessor."""

    def test_get_settings_is_cached(self, mock_env_vars: dict[str, str]) -> None:
        """Test that get_settings returns the same instance."""
        assert get_settings() is get_settings()

    def test_clear_settings_cache(self, mock_env_vars: dict[str, str]) -> None:
        """Test that clearing the cache picks up new environment values."""
        first = get_settings()
        with patch.dict(os.environ, {"CACHE_MAX_AGE_SECONDS": "60"}):
            clear_settings_cache()
            second = get_settings()

        assert first is not second
        assert second.CACHE_MAX_AGE_SECONDS == 60


class TestSettingsConversion:
    """Tests for building cache tunables from settings."""

    def test_cache_config(self, mock_settings: Settings) -> None:
        """Test that cache_config mirrors the settings."""
        config = mock_settings.cache_config()

        assert config.max_age == 3600
        assert config.compression_enabled is True
        assert config.auto_cleanup is False
        assert config.checksum_algorithm == ChecksumAlgorithm.SHA256

    def test_incremental_config(self, mock_settings: Settings) -> None:
        """Test that incremental_config mirrors the settings."""
        config = mock_settings.incremental_config()

        assert config.enabled is True
        assert config.check_interval == mock_settings.INCREMENTAL_CHECK_INTERVAL_SECONDS

    def test_ensure_directories(self, mock_settings: Settings) -> None:
        """Test that the cache directory is created."""
        assert mock_settings.CACHE_DIR.is_dir()

    def test_display_includes_every_setting(self, mock_settings: Settings) -> None:
        """Test that display lists cache and logging settings."""
        shown = mock_settings.display()

        assert shown["CACHE_DIR"] == str(mock_settings.CACHE_DIR)
        assert "CACHE_CHECKSUM_ALGORITHM" in shown
        assert "LOG_LEVEL" in shown

    def test_create_cache_manager(self, mock_settings: Settings) -> None:
        """Test that a manager is built from settings."""
        manager = create_cache_manager(mock_settings)

        assert isinstance(manager, CacheManager)
        assert manager.cache_dir == mock_settings.CACHE_DIR
        assert manager.config.max_age == 3600
        assert manager.scheduler.running is False
