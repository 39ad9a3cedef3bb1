"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates cache tunables and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from contentcache.types import CacheConfig, ChecksumAlgorithm, IncrementalUpdateConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional:
        CACHE_DIR: Directory holding one JSON file per cache key
        CACHE_MAX_AGE_SECONDS: Default TTL added to the write time
        CACHE_MAX_SIZE_BYTES: Size ceiling reported by the health check
        CACHE_COMPRESSION_ENABLED: Compress large entries on write and during maintenance
        CACHE_COMPRESSION_THRESHOLD_BYTES: Entries above this size get compressed
        CACHE_CHECKSUM_ALGORITHM: md5 or sha256
        CACHE_AUTO_CLEANUP: Run the maintenance scheduler when the manager starts
        CACHE_CLEANUP_INTERVAL_SECONDS: Period of the maintenance scheduler
        INCREMENTAL_UPDATES_ENABLED: Allow needs_incremental_update() to report True
        LOG_LEVEL: Logging level
        LOG_FILE: Optional JSON Lines log file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    CACHE_DIR: Path = Field(default=Path("data"), description="Cache directory")
    CACHE_MAX_AGE_SECONDS: float = Field(
        default=24 * 60 * 60, gt=0, description="Default entry lifetime in seconds"
    )
    CACHE_MAX_SIZE_BYTES: int = Field(
        default=100 * 1024 * 1024, gt=0, description="Cache size ceiling in bytes"
    )

    # Compression and integrity
    CACHE_COMPRESSION_ENABLED: bool = Field(
        default=True, description="Compress entries above the threshold"
    )
    CACHE_COMPRESSION_THRESHOLD_BYTES: int = Field(
        default=10 * 1024, ge=0, description="Minimum entry size for compression"
    )
    CACHE_CHECKSUM_ALGORITHM: Literal["md5", "sha256"] = Field(
        default="sha256", description="Digest algorithm for entry checksums"
    )

    # Maintenance
    CACHE_AUTO_CLEANUP: bool = Field(
        default=True, description="Start the maintenance scheduler with the manager"
    )
    CACHE_CLEANUP_INTERVAL_SECONDS: float = Field(
        default=60 * 60, description="Maintenance sweep interval in seconds"
    )

    # Incremental updates
    INCREMENTAL_UPDATES_ENABLED: bool = Field(
        default=True, description="Enable incremental update detection"
    )
    INCREMENTAL_CHECK_INTERVAL_SECONDS: float = Field(
        default=5 * 60, gt=0, description="How often producers should poll for updates"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON Lines log file")

    @field_validator("CACHE_CLEANUP_INTERVAL_SECONDS")
    @classmethod
    def validate_cleanup_interval(cls, v: float) -> float:
        """Reject sweep intervals that would spin the event loop."""
        if v < 1:
            raise ValueError("CACHE_CLEANUP_INTERVAL_SECONDS must be at least 1 second")
        return v

    @model_validator(mode="after")
    def validate_threshold_below_ceiling(self) -> Settings:
        """Ensure the compression threshold is below the size ceiling."""
        if self.CACHE_COMPRESSION_THRESHOLD_BYTES >= self.CACHE_MAX_SIZE_BYTES:
            raise ValueError(
                "CACHE_COMPRESSION_THRESHOLD_BYTES must be smaller than CACHE_MAX_SIZE_BYTES"
            )
        return self

    @property
    def cache_dir(self) -> Path:
        """Get cache directory (lowercase alias)."""
        return self.CACHE_DIR

    def cache_config(self) -> CacheConfig:
        """Build the CacheConfig used by CacheManager."""
        return CacheConfig(
            max_age=self.CACHE_MAX_AGE_SECONDS,
            max_size=self.CACHE_MAX_SIZE_BYTES,
            compression_enabled=self.CACHE_COMPRESSION_ENABLED,
            compression_threshold=self.CACHE_COMPRESSION_THRESHOLD_BYTES,
            checksum_algorithm=ChecksumAlgorithm(self.CACHE_CHECKSUM_ALGORITHM),
            auto_cleanup=self.CACHE_AUTO_CLEANUP,
            cleanup_interval=self.CACHE_CLEANUP_INTERVAL_SECONDS,
        )

    def incremental_config(self) -> IncrementalUpdateConfig:
        """Build the IncrementalUpdateConfig used by CacheManager."""
        return IncrementalUpdateConfig(
            enabled=self.INCREMENTAL_UPDATES_ENABLED,
            check_interval=self.INCREMENTAL_CHECK_INTERVAL_SECONDS,
        )

    def ensure_directories(self) -> None:
        """Create the cache directory if it doesn't exist."""
        self.CACHE_DIR.mkdir(parents=True, exist_ok=True)

    def display(self) -> dict[str, str | int | float | bool | None]:
        """Return settings as a flat dict for display."""
        return {
            "CACHE_DIR": str(self.CACHE_DIR),
            "CACHE_MAX_AGE_SECONDS": self.CACHE_MAX_AGE_SECONDS,
            "CACHE_MAX_SIZE_BYTES": self.CACHE_MAX_SIZE_BYTES,
            "CACHE_COMPRESSION_ENABLED": self.CACHE_COMPRESSION_ENABLED,
            "CACHE_COMPRESSION_THRESHOLD_BYTES": self.CACHE_COMPRESSION_THRESHOLD_BYTES,
            "CACHE_CHECKSUM_ALGORITHM": self.CACHE_CHECKSUM_ALGORITHM,
            "CACHE_AUTO_CLEANUP": self.CACHE_AUTO_CLEANUP,
            "CACHE_CLEANUP_INTERVAL_SECONDS": self.CACHE_CLEANUP_INTERVAL_SECONDS,
            "INCREMENTAL_UPDATES_ENABLED": self.INCREMENTAL_UPDATES_ENABLED,
            "INCREMENTAL_CHECK_INTERVAL_SECONDS": self.INCREMENTAL_CHECK_INTERVAL_SECONDS,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
