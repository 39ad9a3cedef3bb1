"""
Cache manager: the public façade over storage, codec, merge and maintenance.

Every get/set/delete is timed and recorded in a bounded in-memory operation
log. Failures never escape the public methods (except optimize_cache); they
become a miss, False or 0, with the cause logged and recorded.

Usage:
    async with CacheManager("data") as cache:
        await cache.set("github-repos", repos)
        repos = await cache.get("github-repos")
"""

from __future__ import annotations

import asyncio
import re
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import orjson

from contentcache.cache import codec
from contentcache.cache.diff import diff
from contentcache.cache.integrity import (
    canonical_json,
    digest,
    is_expired,
    require_valid,
    verify,
)
from contentcache.cache.invalidation import (
    EntryFacts,
    InvalidationEngine,
    default_rules,
    matches_pattern,
)
from contentcache.cache.maintenance import MaintenanceScheduler, SweepReport
from contentcache.cache.merge import merge_values
from contentcache.cache.sources import SourceRegistry, default_sources
from contentcache.cache.store import EntryStore
from contentcache.config import Settings, get_settings
from contentcache.exceptions import (
    CacheError,
    CacheIOError,
    ConfigurationError,
    EntryDecodeError,
    IntegrityError,
)
from contentcache.logging import get_logger, log_context
from contentcache.types import (
    CacheConfig,
    CacheEntry,
    CacheHealthCheck,
    CacheInvalidationRule,
    CacheIssue,
    CacheMetadata,
    CacheOperation,
    CachePerformanceMetrics,
    CacheStats,
    CompressionType,
    DataMergeStrategy,
    DataSource,
    IncrementalChanges,
    IncrementalUpdateConfig,
    InvalidationAction,
    IssueSeverity,
    IssueType,
    MergeType,
    OperationType,
    utc_now,
)

logger = get_logger(__name__)

OPERATION_LOG_LIMIT = 1000
OPERATION_LOG_TRIM_TO = 500

LOW_HIT_RATE = 0.8
UNCOMPRESSED_SIZE_WARNING = 50 * 1024 * 1024
SLOW_READ_MS = 250.0
NETWORK_SAVINGS_FACTOR = 0.8

# Key prefix -> default merge type for incremental updates
MERGE_CONVENTIONS: dict[str, MergeType] = {
    "github-": MergeType.MERGE,
}


def default_merge_strategy(key: str) -> DataMergeStrategy:
    """Pick the merge strategy a key's naming convention implies."""
    for prefix, merge_type in MERGE_CONVENTIONS.items():
        if key.startswith(prefix):
            return DataMergeStrategy(type=merge_type)
    return DataMergeStrategy.replace()


def _validate_config(config: CacheConfig) -> None:
    """Reject tunables the cache cannot operate with.

    Raises:
        ConfigurationError: Naming the first offending field.
    """
    checks = (
        ("max_age", config.max_age > 0),
        ("max_size", config.max_size > 0),
        ("compression_threshold", config.compression_threshold >= 0),
        ("cleanup_interval", config.cleanup_interval > 0),
    )
    for field, ok in checks:
        if not ok:
            raise ConfigurationError(
                "Invalid cache configuration",
                {"field": field, "value": getattr(config, field)},
            )


class _Timer:
    """Wall-clock start plus monotonic duration of one operation."""

    def __init__(self) -> None:
        self.started_at = utc_now()
        self._t0 = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._t0) * 1000


class CacheManager:
    """Persistent, file-backed JSON cache.

    Same-key operations are serialized through the store's per-key locks;
    operations on different keys interleave freely.
    """

    def __init__(
        self,
        cache_dir: str | Path = "data",
        config: CacheConfig | None = None,
        incremental_config: IncrementalUpdateConfig | None = None,
        sources: list[DataSource] | None = None,
        rules: list[CacheInvalidationRule] | None = None,
    ) -> None:
        """Initialize the manager. Nothing touches disk until start().

        Args:
            cache_dir: Root directory of the cache.
            config: Cache tunables (defaults to CacheConfig()).
            incremental_config: Incremental update tunables.
            sources: Data sources to register (defaults to default_sources()).
            rules: Invalidation rules (defaults to default_rules()).
        """
        self.config = config or CacheConfig()
        _validate_config(self.config)
        self.incremental_config = incremental_config or IncrementalUpdateConfig()
        self.cache_dir = Path(cache_dir)
        self.store = EntryStore(self.cache_dir)
        self.sources = SourceRegistry(default_sources() if sources is None else sources)
        self.invalidation = InvalidationEngine(default_rules() if rules is None else rules)
        self.scheduler = MaintenanceScheduler(
            self.store, self.config, on_sweep=self._on_sweep
        )

        self._stats = CacheStats()
        self._operations: list[CacheOperation] = []
        self._refresh_requests: set[str] = set()
        self._merge_fallbacks: dict[str, str] = {}
        self._background: set[asyncio.Task[None]] = set()
        self._gauge_task: asyncio.Task[None] | None = None
        self._gauge_dirty = False
        self._started = False

    @classmethod
    def from_settings(cls, settings: Settings) -> CacheManager:
        """Build a manager from application settings."""
        return cls(
            cache_dir=settings.CACHE_DIR,
            config=settings.cache_config(),
            incremental_config=settings.incremental_config(),
        )

    async def __aenter__(self) -> CacheManager:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Create the cache directory, load the metadata index and start maintenance."""
        if self._started:
            return
        try:
            await self.store.ensure_root()
        except CacheIOError as e:
            logger.warning("Cache directory unavailable", error=str(e), path=str(self.cache_dir))
        await self._load_metadata()
        if self.config.auto_cleanup:
            await self.scheduler.start()
        self._started = True
        logger.info(
            "Cache manager started",
            cache_dir=str(self.cache_dir),
            auto_cleanup=self.config.auto_cleanup,
        )

    async def close(self) -> None:
        """Stop maintenance, drain background tasks and persist the metadata index."""
        await self.scheduler.stop()

        pending = list(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._background.clear()

        await self._save_metadata()
        self._started = False
        logger.info("Cache manager closed", operations=len(self._operations))

    async def _load_metadata(self) -> None:
        try:
            raw = await self.store.read_index()
        except OSError as e:
            logger.warning("Failed to read cache metadata, using defaults", error=str(e))
            return
        if raw is None:
            return

        try:
            data = orjson.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("metadata index is not an object")
            if isinstance(data.get("stats"), dict):
                merged = {**self._stats.to_dict(), **data["stats"]}
                self._stats = CacheStats.from_dict(merged)
            restored = 0
            if isinstance(data.get("dataSources"), dict):
                restored = self.sources.restore(data["dataSources"])
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed cache metadata, using defaults", error=str(e))
            return
        logger.debug("Loaded cache metadata", sources_restored=restored)

    async def _save_metadata(self) -> None:
        self._update_rates()
        payload = orjson.dumps(
            {
                "stats": self._stats.to_dict(),
                "dataSources": self.sources.to_dict(),
                "savedAt": utc_now().isoformat(),
            },
            option=orjson.OPT_INDENT_2,
        )
        try:
            await self.store.write_index(payload)
        except OSError as e:
            logger.warning("Failed to save cache metadata", error=str(e))

    # =========================================================================
    # Core operations
    # =========================================================================

    async def get(self, key: str) -> Any:
        """Read a value.

        Returns:
            The cached value, or None on a miss (absent, expired, corrupt,
            unreadable or invalid key).
        """
        timer = _Timer()
        with log_context(cache_key=key, operation="read"):
            try:
                async with self.store.lock(key):
                    value, reason = await self._read_value(key)
            except CacheError as e:
                value, reason = None, str(e)
                logger.warning("Cache read failed", error=reason)

            hit = reason is None
            if hit:
                logger.debug("Cache hit")
            else:
                logger.debug("Cache miss", reason=reason)
        self._record(OperationType.READ, key, timer, hit, reason)
        return value

    async def set(self, key: str, data: Any, **metadata_overrides: Any) -> bool:
        """Write a value.

        Args:
            key: Cache key.
            data: JSON-serializable value.
            **metadata_overrides: CacheMetadata field overrides (expires_at,
                source, version, compression_type, ...). max_age overrides
                the configured TTL for this write.

        Returns:
            True if the entry was persisted.
        """
        timer = _Timer()
        with log_context(cache_key=key, operation="write"):
            try:
                async with self.store.lock(key):
                    await self._write_value(key, data, metadata_overrides)
                success, error = True, None
            except (CacheError, TypeError, ValueError) as e:
                success, error = False, str(e)
                logger.warning("Cache write failed", error=error)
        self._record(OperationType.WRITE, key, timer, success, error)
        if success:
            self._refresh_requests.discard(key)
            self._update_stats()
        return success

    async def delete(self, key: str) -> bool:
        """Delete a value. Deleting an absent key succeeds.

        Returns:
            False only if the file exists and could not be removed.
        """
        timer = _Timer()
        with log_context(cache_key=key, operation="delete"):
            try:
                async with self.store.lock(key):
                    await self.store.remove(key)
                success, error = True, None
            except CacheError as e:
                success, error = False, str(e)
                logger.warning("Cache delete failed", error=error)
        self._record(OperationType.DELETE, key, timer, success, error)
        if success:
            self._schedule_gauge_refresh()
        return success

    async def update(
        self,
        key: str,
        new_data: Any,
        strategy: DataMergeStrategy | None = None,
        **metadata_overrides: Any,
    ) -> bool:
        """Merge new_data into the cached value and write the result.

        The read, merge and write happen under one key lock, so concurrent
        updates of the same key never lose each other's changes.

        Args:
            key: Cache key.
            new_data: Incoming value.
            strategy: Merge policy (defaults to the key's naming convention).
            **metadata_overrides: Passed through as in set().

        Returns:
            True if the merged entry was persisted.
        """
        strategy = strategy or default_merge_strategy(key)
        timer = _Timer()
        with log_context(cache_key=key, operation="update"):
            try:
                async with self.store.lock(key):
                    existing, _ = await self._read_value(key)
                    result = merge_values(existing, new_data, strategy)
                    if result.fell_back:
                        self._merge_fallbacks[key] = result.reason or "fallback"
                    await self._write_value(key, result.value, metadata_overrides)
                success, error = True, None
            except (CacheError, TypeError, ValueError) as e:
                success, error = False, str(e)
                logger.warning("Cache update failed", error=error)
        self._record(OperationType.WRITE, key, timer, success, error)
        if success:
            self._refresh_requests.discard(key)
            self._update_stats()
        return success

    async def _read_entry(self, key: str) -> CacheEntry | None:
        # Caller holds the key lock. Raises EntryDecodeError/CacheIOError.
        raw = await self.store.read(key)
        if raw is None:
            return None
        return codec.decode(raw)

    async def _read_value(self, key: str) -> tuple[Any, str | None]:
        """Read and validate an entry. Returns (value, miss reason)."""
        try:
            entry = await self._read_entry(key)
        except EntryDecodeError as e:
            logger.warning("Undecodable cache entry", error=str(e))
            return None, f"Decode failed: {e.message}"
        if entry is None:
            return None, "File not found"
        if is_expired(entry.metadata):
            return None, "Entry expired"
        try:
            require_valid(entry, self.config.checksum_algorithm, key)
        except IntegrityError as e:
            logger.warning("Corrupt cache entry", **e.context)
            return None, e.message
        return entry.data, None

    async def _write_value(self, key: str, data: Any, overrides: dict[str, Any]) -> None:
        # Caller holds the key lock
        overrides = dict(overrides)
        max_age = overrides.pop("max_age", None)
        payload = canonical_json(data)
        if (
            overrides.get("compression_type") is None
            and self.config.compression_enabled
            and len(payload) > self.config.compression_threshold
        ):
            overrides["compression_type"] = CompressionType.GZIP

        metadata = CacheMetadata.create(
            size=len(payload),
            max_age=self.config.max_age if max_age is None else max_age,
            **overrides,
        )
        entry = CacheEntry(
            data=data,
            metadata=metadata,
            checksum=digest(data, self.config.checksum_algorithm),
        )
        written = await self.store.write(key, codec.encode(entry))
        logger.debug(
            "Entry written",
            bytes=written,
            compression=metadata.compression_type.value,
        )

    async def _peek_entry(self, key: str) -> CacheEntry | None:
        """Decode an entry without expiry or checksum checks. None if unreadable."""
        try:
            return await self._peek_or_raise(key)
        except CacheError:
            return None

    async def _peek_or_raise(self, key: str) -> CacheEntry | None:
        async with self.store.lock(key):
            return await self._read_entry(key)

    # =========================================================================
    # Incremental updates
    # =========================================================================

    async def needs_incremental_update(self, key: str) -> bool:
        """Check whether a key's source is due for a refetch."""
        if not self.incremental_config.enabled:
            return False
        if await self._peek_entry(key) is None:
            return True
        source = self.sources.for_key(key)
        if source is None:
            return False
        return source.is_due()

    async def detect_incremental_changes(self, key: str, new_data: Any) -> IncrementalChanges:
        """Compare incoming data with the cached value."""
        existing = await self.get(key)
        if existing is None:
            return IncrementalChanges(
                has_changes=True,
                changed_fields=("*",),
                merge_strategy=DataMergeStrategy.replace(),
            )
        changed = diff(existing, new_data)
        return IncrementalChanges(
            has_changes=bool(changed),
            changed_fields=tuple(changed),
            merge_strategy=default_merge_strategy(key),
        )

    async def merge_data(
        self,
        key: str,
        new_data: Any,
        strategy: DataMergeStrategy | None = None,
    ) -> Any:
        """Merge new_data with the cached value without writing it back.

        Raises:
            MergeError: If a custom merger fails.
        """
        strategy = strategy or default_merge_strategy(key)
        existing = await self.get(key)
        result = merge_values(existing, new_data, strategy)
        if result.fell_back:
            self._merge_fallbacks[key] = result.reason or "fallback"
        return result.value

    def get_data_source(self, key: str) -> DataSource | None:
        """Get the data source that owns a key."""
        return self.sources.for_key(key)

    def mark_source_fetched(self, name: str) -> DataSource:
        """Record a successful fetch of a data source.

        Raises:
            KeyError: If no source has that name.
        """
        return self.sources.mark_fetched(name)

    # =========================================================================
    # Invalidation
    # =========================================================================

    def add_invalidation_rule(self, rule: CacheInvalidationRule) -> None:
        self.invalidation.add_rule(rule)

    def get_refresh_requests(self) -> list[str]:
        """Keys flagged by refresh rules and not rewritten since."""
        return sorted(self._refresh_requests)

    async def invalidate_cache(self, pattern: str | re.Pattern[str] | None = None) -> int:
        """Invalidate entries.

        With a pattern, every matching key is deleted. Without one, the
        registered rules are evaluated per key and their actions applied.
        A key that cannot be evaluated is logged and skipped.

        Returns:
            Number of deleted entries.
        """
        timer = _Timer()
        deleted = 0
        failed: list[str] = []
        with log_context(operation="invalidation"):
            try:
                keys = await self.store.keys()
            except OSError as e:
                logger.warning("Invalidation failed", error=str(e))
                self._record(OperationType.CLEANUP, "invalidation", timer, False, str(e))
                return 0

            now = utc_now()
            for key in keys:
                if pattern is not None:
                    if matches_pattern(key, pattern) and await self.delete(key):
                        deleted += 1
                    continue
                try:
                    if await self._apply_rules(key, now):
                        deleted += 1
                except CacheError as e:
                    logger.warning("Skipping entry during invalidation", key=key, error=str(e))
                    failed.append(key)

            logger.info(
                "Cache invalidated",
                deleted=deleted,
                failed=len(failed),
                refresh_requests=len(self._refresh_requests),
            )
        error = f"Failed to evaluate rules for: {', '.join(failed)}" if failed else None
        self._record(OperationType.CLEANUP, "invalidation", timer, not failed, error)
        return deleted

    async def _apply_rules(self, key: str, now: datetime) -> bool:
        """Apply the actions of every rule that fires for a key.

        Returns:
            True if the entry was deleted.
        """
        actions = {rule.action for rule in await self._fired_rules(key, now)}
        if InvalidationAction.DELETE in actions:
            return await self.delete(key)
        if InvalidationAction.COMPRESS in actions:
            await self.scheduler.compress_entry(key)
        if InvalidationAction.REFRESH in actions:
            self._refresh_requests.add(key)
        return False

    async def _fired_rules(self, key: str, now: datetime) -> list[CacheInvalidationRule]:
        st = await self.store.stat(key)
        if st is None:
            return []
        modified_at = datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
        facts = EntryFacts(
            key=key,
            modified_at=modified_at,
            size=st.st_size,
            dependency_refreshed=self.sources.dependency_refreshed_since(key, modified_at),
        )
        return self.invalidation.evaluate(facts, now)

    # =========================================================================
    # Maintenance, health and stats
    # =========================================================================

    async def optimize_cache(self) -> CachePerformanceMetrics:
        """Run one maintenance sweep and report performance.

        Raises:
            CacheError: If the sweep cannot run; the failure is also recorded.
        """
        timer = _Timer()
        try:
            await self.scheduler.run_once()
            metrics = await self._performance_metrics()
        except CacheError as e:
            logger.error("Cache optimization failed", error=str(e))
            self._record(OperationType.CLEANUP, "optimization", timer, False, str(e))
            raise
        self._record(OperationType.CLEANUP, "optimization", timer, True)
        return metrics

    def _on_sweep(self, report: SweepReport) -> None:
        self._stats.last_cleanup = utc_now()
        self._stats.expired_entries = 0
        self._schedule_gauge_refresh()

    async def _performance_metrics(self) -> CachePerformanceMetrics:
        reads = [
            op.duration_ms
            for op in self._operations
            if op.type == OperationType.READ and op.success
        ]
        writes = [
            op.duration_ms
            for op in self._operations
            if op.type == OperationType.WRITE and op.success
        ]

        disk_usage = 0
        compressed_bytes = 0
        for key in await self.store.keys():
            try:
                st = await self.store.stat(key)
            except CacheError as e:
                logger.warning("Failed to stat entry", key=key, error=str(e))
                continue
            if st is None:
                continue
            disk_usage += st.st_size
            entry = await self._peek_entry(key)
            if entry is not None and entry.metadata.compression_type != CompressionType.NONE:
                compressed_bytes += st.st_size

        return CachePerformanceMetrics(
            average_read_time_ms=sum(reads) / len(reads) if reads else 0.0,
            average_write_time_ms=sum(writes) / len(writes) if writes else 0.0,
            compression_ratio=compressed_bytes / disk_usage if disk_usage else 0.0,
            memory_usage=sys.getsizeof(self._operations)
            + sum(sys.getsizeof(op) for op in self._operations),
            disk_usage=disk_usage,
            network_savings=int(disk_usage * NETWORK_SAVINGS_FACTOR),
        )

    async def get_health_status(self) -> CacheHealthCheck:
        """Scan every entry and report corruption, expiry and size issues."""
        now = utc_now()
        corrupted: list[str] = []
        expired: list[str] = []

        for key in await self.store.keys():
            try:
                entry = await self._peek_or_raise(key)
            except CacheError:
                corrupted.append(key)
                continue
            if entry is None:
                continue
            if not verify(entry, self.config.checksum_algorithm):
                corrupted.append(key)
            elif is_expired(entry.metadata, now):
                expired.append(key)

        total_size = await self.store.total_size()
        self._stats.total_size = total_size
        self._stats.expired_entries = len(expired)
        self._update_rates()

        issues: list[CacheIssue] = []
        if corrupted:
            issues.append(
                CacheIssue(
                    type=IssueType.CORRUPTION,
                    severity=IssueSeverity.HIGH,
                    description=f"Found {len(corrupted)} corrupted cache entries",
                    affected_keys=tuple(corrupted),
                    suggested_action="Run invalidate on the affected keys and refetch",
                )
            )
        if expired:
            issues.append(
                CacheIssue(
                    type=IssueType.EXPIRY,
                    severity=IssueSeverity.MEDIUM,
                    description=f"Found {len(expired)} expired cache entries",
                    affected_keys=tuple(expired),
                    suggested_action="Run optimize to remove expired entries",
                )
            )
        if total_size > self.config.max_size:
            issues.append(
                CacheIssue(
                    type=IssueType.SIZE,
                    severity=IssueSeverity.HIGH,
                    description=(
                        f"Cache size ({total_size} bytes) exceeds the limit "
                        f"({self.config.max_size} bytes)"
                    ),
                    suggested_action="Reduce max_age or enable compression",
                )
            )

        average_read = self._average_duration(OperationType.READ)
        if average_read > SLOW_READ_MS:
            issues.append(
                CacheIssue(
                    type=IssueType.PERFORMANCE,
                    severity=IssueSeverity.LOW,
                    description=f"Average read time is {average_read:.1f} ms",
                    suggested_action="Check disk latency of the cache directory",
                )
            )

        recommendations: list[str] = []
        has_reads = any(op.type == OperationType.READ for op in self._operations)
        if has_reads and self._stats.hit_rate < LOW_HIT_RATE:
            recommendations.append(
                "Consider increasing cache TTL or improving cache warming strategy"
            )
        if not self.config.compression_enabled and total_size > UNCOMPRESSED_SIZE_WARNING:
            recommendations.append("Enable compression to reduce disk usage")
        if self._merge_fallbacks:
            keys = ", ".join(sorted(self._merge_fallbacks))
            recommendations.append(
                f"Custom merge strategy without a merger fell back to replace for: {keys}"
            )
        if self._refresh_requests:
            recommendations.append(
                f"{len(self._refresh_requests)} entries are flagged for refresh"
            )

        health = CacheHealthCheck.from_issues(issues, recommendations)
        logger.info(
            "Health check complete",
            status=health.status.value,
            corrupted=len(corrupted),
            expired=len(expired),
        )
        return health

    def get_stats(self) -> CacheStats:
        """Get a snapshot of the cache statistics."""
        self._update_rates()
        return CacheStats.from_dict(self._stats.to_dict())

    def get_recent_operations(self, limit: int = 100) -> list[CacheOperation]:
        """Get the most recent operations, oldest first."""
        if limit <= 0:
            return []
        return self._operations[-limit:]

    def _record(
        self,
        op_type: OperationType,
        key: str,
        timer: _Timer,
        success: bool,
        error: str | None = None,
    ) -> None:
        self._operations.append(
            CacheOperation.create(
                op_type=op_type,
                key=key,
                started_at=timer.started_at,
                duration_ms=timer.elapsed_ms,
                success=success,
                error=error,
            )
        )
        if len(self._operations) > OPERATION_LOG_LIMIT:
            self._operations = self._operations[-OPERATION_LOG_TRIM_TO:]

    def _average_duration(self, op_type: OperationType) -> float:
        durations = [op.duration_ms for op in self._operations if op.type == op_type]
        return sum(durations) / len(durations) if durations else 0.0

    def _update_rates(self) -> None:
        reads = [op for op in self._operations if op.type == OperationType.READ]
        if not reads:
            return
        hits = sum(1 for op in reads if op.success)
        self._stats.hit_rate = hits / len(reads)
        self._stats.miss_rate = 1 - self._stats.hit_rate

    def _update_stats(self) -> None:
        self._update_rates()
        self._schedule_gauge_refresh()

    def _schedule_gauge_refresh(self) -> None:
        """Refresh total_entries/total_size in the background.

        At most one refresh task runs; requests arriving while it scans make
        it scan again, so the last scan always follows the last change.
        """
        self._gauge_dirty = True
        if self._gauge_task is not None and not self._gauge_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._refresh_gauges())
        self._gauge_task = task
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_gauges(self) -> None:
        while self._gauge_dirty:
            self._gauge_dirty = False
            try:
                keys = await self.store.keys()
                total = 0
                for key in keys:
                    st = await self.store.stat(key)
                    if st is not None:
                        total += st.st_size
            except (CacheError, OSError) as e:
                logger.debug("Failed to refresh size gauge", error=str(e))
                return
            self._stats.total_entries = len(keys)
            self._stats.total_size = total

    async def wait_for_background(self) -> None:
        """Wait until pending gauge refreshes have finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)


def create_cache_manager(settings: Settings | None = None) -> CacheManager:
    """Build a CacheManager from settings (defaults to get_settings())."""
    return CacheManager.from_settings(settings or get_settings())
