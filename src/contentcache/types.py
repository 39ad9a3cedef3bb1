"""
Core types for the content cache.

This module defines the fundamental data structures used throughout the system:
- Enums for compression, operations, invalidation and merge policies
- Frozen dataclasses for immutable records (CacheEntry, CacheMetadata, CacheOperation)
- Mutable dataclasses for state tracking (DataSource, CacheStats)
- Report dataclasses (CacheHealthCheck, CachePerformanceMetrics)
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from uuid6 import uuid7


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "op", "report")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO 8601 timestamp, assuming UTC when no offset is given.

    Raises:
        TypeError: If value is neither a string nor a datetime.
        ValueError: If the string is not ISO 8601.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        # Python < 3.11 does not accept a trailing "Z"
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        parsed = datetime.fromisoformat(text)
    else:
        raise TypeError(f"Expected an ISO 8601 string, got {type(value).__name__}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CompressionType(str, Enum):
    """Compression applied to the payload of a persisted entry."""

    NONE = "none"
    GZIP = "gzip"
    BROTLI = "brotli"


class ChecksumAlgorithm(str, Enum):
    """Digest algorithms accepted for entry checksums."""

    MD5 = "md5"
    SHA256 = "sha256"


class OperationType(str, Enum):
    """Kinds of operations recorded in the operation log."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    CLEANUP = "cleanup"


class InvalidationCondition(str, Enum):
    """Trigger condition of an invalidation rule."""

    TIME = "time"
    DEPENDENCY = "dependency"
    MANUAL = "manual"
    SIZE = "size"


class InvalidationAction(str, Enum):
    """What happens to an entry when an invalidation rule fires."""

    DELETE = "delete"
    REFRESH = "refresh"
    COMPRESS = "compress"


class MergeType(str, Enum):
    """How a new value is reconciled with the cached one."""

    REPLACE = "replace"
    MERGE = "merge"
    APPEND = "append"
    CUSTOM = "custom"


class ConflictResolution(str, Enum):
    """Leaf-level conflict policy for merges."""

    LATEST = "latest"
    PRIORITY = "priority"
    MANUAL = "manual"


class SourcePriority(str, Enum):
    """Refresh priority of a data source."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class HealthStatus(str, Enum):
    """Overall cache health."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class IssueType(str, Enum):
    """Category of a health issue."""

    CORRUPTION = "corruption"
    EXPIRY = "expiry"
    SIZE = "size"
    PERFORMANCE = "performance"


class IssueSeverity(str, Enum):
    """Severity of a health issue."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class CacheMetadata:
    """Metadata stored alongside every cached payload.

    Replaced wholesale on every write, never mutated in place.
    """

    last_updated: datetime
    expires_at: datetime
    version: str = "1.0.0"
    source: str = "cache-manager"
    size: int = 0  # Byte length of the canonical serialization of the payload
    compression_type: CompressionType = CompressionType.NONE

    def __post_init__(self) -> None:
        if self.expires_at < self.last_updated:
            raise ValueError(
                f"expires_at ({self.expires_at.isoformat()}) precedes "
                f"last_updated ({self.last_updated.isoformat()})"
            )

    @classmethod
    def create(
        cls,
        size: int,
        max_age: float,
        now: datetime | None = None,
        **overrides: Any,
    ) -> CacheMetadata:
        """Factory method to build metadata for a fresh write.

        Args:
            size: Serialized payload size in bytes.
            max_age: Base TTL in seconds, used when no expires_at override is given.
            now: Write time (defaults to the current UTC time).
            **overrides: Field overrides (expires_at, version, source, ...).

        Returns:
            A new CacheMetadata instance.
        """
        now = now or utc_now()
        values: dict[str, Any] = {
            "last_updated": now,
            "expires_at": now + timedelta(seconds=max_age),
            "size": size,
        }
        for name, value in overrides.items():
            if value is None:
                continue
            if name in ("last_updated", "expires_at"):
                value = parse_timestamp(value)
            elif name == "compression_type":
                value = CompressionType(value)
            values[name] = value
        return cls(**values)

    def with_compression(self, compression_type: CompressionType) -> CacheMetadata:
        """Return a copy with a different compression type."""
        return replace(self, compression_type=compression_type)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk representation."""
        return {
            "lastUpdated": self.last_updated.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "version": self.version,
            "source": self.source,
            "size": self.size,
            "compressionType": self.compression_type.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheMetadata:
        """Deserialize from the on-disk representation."""
        return cls(
            last_updated=parse_timestamp(data["lastUpdated"]),
            expires_at=parse_timestamp(data["expiresAt"]),
            version=str(data.get("version", "1.0.0")),
            source=str(data.get("source", "cache-manager")),
            size=int(data.get("size", 0)),
            compression_type=CompressionType(data.get("compressionType") or "none"),
        )


@dataclass(frozen=True)
class CacheEntry:
    """The unit of storage: payload, metadata and integrity digest."""

    data: Any
    metadata: CacheMetadata
    checksum: str


@dataclass
class DataSource:
    """Scheduling record for a logical feed (github, wordpress, status, seo).

    last_fetch/next_fetch are advanced by the fetch orchestrator through
    mark_fetched(); the cache only reads them.
    """

    name: str
    display_name: str
    source_type: str
    last_fetch: datetime
    next_fetch: datetime
    fetch_interval: float  # seconds
    priority: SourcePriority = SourcePriority.MEDIUM
    dependencies: tuple[str, ...] = ()
    key_prefixes: tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        name: str,
        display_name: str,
        fetch_interval: float,
        priority: SourcePriority = SourcePriority.MEDIUM,
        dependencies: list[str] | None = None,
        key_prefixes: list[str] | None = None,
        source_type: str | None = None,
        now: datetime | None = None,
    ) -> DataSource:
        """Factory method to create a source that was just fetched."""
        now = now or utc_now()
        return cls(
            name=name,
            display_name=display_name,
            source_type=source_type or name,
            last_fetch=now,
            next_fetch=now + timedelta(seconds=fetch_interval),
            fetch_interval=fetch_interval,
            priority=priority,
            dependencies=tuple(dependencies or ()),
            key_prefixes=tuple(key_prefixes or ()),
        )

    def mark_fetched(self, now: datetime | None = None) -> None:
        """Record a successful fetch and schedule the next one."""
        now = now or utc_now()
        self.last_fetch = now
        self.next_fetch = now + timedelta(seconds=self.fetch_interval)

    def is_due(self, now: datetime | None = None) -> bool:
        """Check whether the next fetch time has been reached."""
        return (now or utc_now()) >= self.next_fetch

    def owns_key(self, key: str) -> bool:
        """Check whether a cache key belongs to this source."""
        return key == self.name or any(key.startswith(p) for p in self.key_prefixes)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for persistence."""
        return {
            "name": self.name,
            "displayName": self.display_name,
            "type": self.source_type,
            "lastFetch": self.last_fetch.isoformat(),
            "nextFetch": self.next_fetch.isoformat(),
            "fetchInterval": self.fetch_interval,
            "priority": self.priority.value,
            "dependencies": list(self.dependencies),
            "keyPrefixes": list(self.key_prefixes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DataSource:
        """Create from a persisted dictionary."""
        return cls(
            name=data["name"],
            display_name=data.get("displayName", data["name"]),
            source_type=data.get("type", data["name"]),
            last_fetch=parse_timestamp(data["lastFetch"]),
            next_fetch=parse_timestamp(data["nextFetch"]),
            fetch_interval=float(data["fetchInterval"]),
            priority=SourcePriority(data.get("priority", "medium")),
            dependencies=tuple(data.get("dependencies", ())),
            key_prefixes=tuple(data.get("keyPrefixes", ())),
        )


@dataclass(frozen=True)
class CacheInvalidationRule:
    """Declarative rule evaluated against every key matching pattern.

    Plain string patterns match by substring, compiled regexes by search.
    threshold is in seconds for time rules and bytes for size rules.
    """

    pattern: str | re.Pattern[str]
    condition: InvalidationCondition
    action: InvalidationAction
    threshold: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display."""
        pattern = self.pattern.pattern if isinstance(self.pattern, re.Pattern) else self.pattern
        return {
            "pattern": pattern,
            "regex": isinstance(self.pattern, re.Pattern),
            "condition": self.condition.value,
            "threshold": self.threshold,
            "action": self.action.value,
        }


@dataclass(frozen=True)
class DataMergeStrategy:
    """Merge policy supplied at call time; never persisted."""

    type: MergeType = MergeType.REPLACE
    conflict_resolution: ConflictResolution = ConflictResolution.LATEST
    custom_merger: Callable[[Any, Any], Any] | None = None

    @classmethod
    def replace(cls) -> DataMergeStrategy:
        return cls(type=MergeType.REPLACE)

    @classmethod
    def deep_merge(cls) -> DataMergeStrategy:
        return cls(type=MergeType.MERGE)

    @classmethod
    def append(cls) -> DataMergeStrategy:
        return cls(type=MergeType.APPEND)

    @classmethod
    def custom(cls, merger: Callable[[Any, Any], Any] | None) -> DataMergeStrategy:
        return cls(type=MergeType.CUSTOM, custom_merger=merger)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "conflictResolution": self.conflict_resolution.value,
            "hasCustomMerger": self.custom_merger is not None,
        }


@dataclass(frozen=True)
class CacheOperation:
    """Immutable log record of a single cache operation."""

    operation_id: str
    type: OperationType
    key: str
    timestamp: datetime
    success: bool
    duration_ms: float
    error: str | None = None

    @classmethod
    def create(
        cls,
        op_type: OperationType,
        key: str,
        started_at: datetime,
        duration_ms: float,
        success: bool,
        error: str | None = None,
    ) -> CacheOperation:
        """Factory method to create an operation record with auto-generated ID."""
        return cls(
            operation_id=generate_id("op"),
            type=op_type,
            key=key,
            timestamp=started_at,
            success=success,
            duration_ms=duration_ms,
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "operationId": self.operation_id,
            "type": self.type.value,
            "key": self.key,
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
            "durationMs": round(self.duration_ms, 3),
            "error": self.error,
        }


@dataclass
class CacheStats:
    """Aggregate reporting view; not authoritative state."""

    total_entries: int = 0
    total_size: int = 0
    hit_rate: float = 0.0
    miss_rate: float = 0.0
    last_cleanup: datetime = field(default_factory=utc_now)
    expired_entries: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalEntries": self.total_entries,
            "totalSize": self.total_size,
            "hitRate": self.hit_rate,
            "missRate": self.miss_rate,
            "lastCleanup": self.last_cleanup.isoformat(),
            "expiredEntries": self.expired_entries,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheStats:
        stats = cls()
        stats.total_entries = int(data.get("totalEntries", 0))
        stats.total_size = int(data.get("totalSize", 0))
        stats.hit_rate = float(data.get("hitRate", 0.0))
        stats.miss_rate = float(data.get("missRate", 0.0))
        stats.expired_entries = int(data.get("expiredEntries", 0))
        if data.get("lastCleanup"):
            stats.last_cleanup = parse_timestamp(data["lastCleanup"])
        return stats


@dataclass(frozen=True)
class CachePerformanceMetrics:
    """Snapshot returned by optimize_cache()."""

    average_read_time_ms: float
    average_write_time_ms: float
    compression_ratio: float  # Share of on-disk bytes held by compressed entries
    memory_usage: int  # Bytes held by the operation log
    disk_usage: int
    network_savings: int  # Estimated bytes not refetched

    def to_dict(self) -> dict[str, Any]:
        return {
            "averageReadTimeMs": round(self.average_read_time_ms, 3),
            "averageWriteTimeMs": round(self.average_write_time_ms, 3),
            "compressionRatio": round(self.compression_ratio, 4),
            "memoryUsage": self.memory_usage,
            "diskUsage": self.disk_usage,
            "networkSavings": self.network_savings,
        }


@dataclass(frozen=True)
class CacheIssue:
    """A single finding of a health check."""

    type: IssueType
    severity: IssueSeverity
    description: str
    affected_keys: tuple[str, ...] = ()
    suggested_action: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "description": self.description,
            "affectedKeys": list(self.affected_keys),
            "suggestedAction": self.suggested_action,
        }


@dataclass(frozen=True)
class CacheHealthCheck:
    """Result of get_health_status()."""

    status: HealthStatus
    issues: tuple[CacheIssue, ...]
    recommendations: tuple[str, ...]
    last_check: datetime

    @classmethod
    def from_issues(
        cls,
        issues: list[CacheIssue],
        recommendations: list[str],
    ) -> CacheHealthCheck:
        """Derive the overall status from issue severities."""
        if any(i.severity == IssueSeverity.CRITICAL for i in issues):
            status = HealthStatus.CRITICAL
        elif any(i.severity == IssueSeverity.HIGH for i in issues):
            status = HealthStatus.WARNING
        else:
            status = HealthStatus.HEALTHY
        return cls(
            status=status,
            issues=tuple(issues),
            recommendations=tuple(recommendations),
            last_check=utc_now(),
        )

    def issue(self, issue_type: IssueType) -> CacheIssue | None:
        """Get the first issue of a given type, if any."""
        for item in self.issues:
            if item.type == issue_type:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "issues": [i.to_dict() for i in self.issues],
            "recommendations": list(self.recommendations),
            "lastCheck": self.last_check.isoformat(),
        }


@dataclass(frozen=True)
class IncrementalChanges:
    """Result of detect_incremental_changes()."""

    has_changes: bool
    changed_fields: tuple[str, ...]
    merge_strategy: DataMergeStrategy


@dataclass(frozen=True)
class CacheConfig:
    """Tunables of a CacheManager. Durations are seconds, sizes bytes."""

    max_age: float = 24 * 60 * 60
    max_size: int = 100 * 1024 * 1024
    compression_enabled: bool = True
    compression_threshold: int = 10 * 1024
    checksum_algorithm: ChecksumAlgorithm = ChecksumAlgorithm.SHA256
    auto_cleanup: bool = True
    cleanup_interval: float = 60 * 60


@dataclass(frozen=True)
class IncrementalUpdateConfig:
    """Tunables of incremental update detection."""

    enabled: bool = True
    check_interval: float = 5 * 60
    batch_size: int = 10
    max_retries: int = 3
    retry_delay: float = 1.0
