"""
Periodic maintenance of the cache directory.

A sweep runs three phases in order:
1. Compress entries above the compression threshold that are stored uncompressed
2. Delete expired entries
3. Defragment: rewrite every remaining entry through the codec

Sweeps never overlap. A timer tick that finds a sweep in progress is skipped.
The scheduler is an explicit handle: nothing runs until start() is awaited,
and stop() cancels the timer task.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from contentcache.cache import codec
from contentcache.cache.integrity import is_expired
from contentcache.cache.store import EntryStore
from contentcache.exceptions import CacheError
from contentcache.logging import get_logger, log_context
from contentcache.types import CacheConfig, CacheEntry, CompressionType, utc_now

logger = get_logger(__name__)


@dataclass
class SweepReport:
    """Counts of entries affected by one maintenance sweep."""

    compressed: int = 0
    expired: int = 0
    defragmented: int = 0
    failed: list[str] = field(default_factory=list)
    expired_keys: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "compressed": self.compressed,
            "expired": self.expired,
            "defragmented": self.defragmented,
            "failed": list(self.failed),
            "durationMs": round(self.duration_ms, 3),
        }


class MaintenanceScheduler:
    """Runs maintenance sweeps on a fixed interval.

    Usage:
        scheduler = MaintenanceScheduler(store, config)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        store: EntryStore,
        config: CacheConfig,
        interval: float | None = None,
        on_sweep: Callable[[SweepReport], None] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Storage shared with the cache manager.
            config: Compression settings and default interval.
            interval: Seconds between sweeps (defaults to config.cleanup_interval).
            on_sweep: Called with the report of every completed sweep.
        """
        self.store = store
        self.config = config
        self.interval = interval if interval is not None else config.cleanup_interval
        self._on_sweep = on_sweep
        self._sweep_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self.sweeps_completed = 0
        self.ticks_skipped = 0

    @property
    def running(self) -> bool:
        """Whether the timer task is active."""
        return self._task is not None and not self._task.done()

    @property
    def sweep_in_progress(self) -> bool:
        return self._sweep_lock.locked()

    async def start(self) -> None:
        """Start the timer task. Calling start() twice is a no-op."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run_loop(), name="cache-maintenance")
        logger.info("Maintenance scheduler started", interval_seconds=self.interval)

    async def stop(self) -> None:
        """Cancel the timer task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Maintenance scheduler stopped", sweeps=self.sweeps_completed)

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once(wait=False)
            except CacheError:
                logger.exception("Maintenance sweep failed")

    async def run_once(self, wait: bool = True) -> SweepReport | None:
        """Run one sweep.

        Args:
            wait: If False, return None immediately when a sweep is running.

        Returns:
            The sweep report, or None if the sweep was skipped.
        """
        if not wait and self._sweep_lock.locked():
            self.ticks_skipped += 1
            logger.debug("Maintenance tick skipped, sweep already running")
            return None

        async with self._sweep_lock:
            with log_context(operation="maintenance"):
                report = await self._sweep()

        self.sweeps_completed += 1
        if self._on_sweep is not None:
            self._on_sweep(report)
        return report

    async def _sweep(self) -> SweepReport:
        started = time.perf_counter()
        report = SweepReport()

        if self.config.compression_enabled:
            await self.compress_large_entries(report)
        await self.cleanup_expired_entries(report)
        await self.defragment(report)

        report.duration_ms = (time.perf_counter() - started) * 1000
        logger.info("Maintenance sweep complete", **report.to_dict())
        return report

    async def compress_large_entries(self, report: SweepReport | None = None) -> int:
        """Gzip entries whose file exceeds the compression threshold."""
        report = report or SweepReport()
        for key in await self.store.keys():
            async with self.store.lock(key):
                try:
                    st = await self.store.stat(key)
                    if st is None or st.st_size <= self.config.compression_threshold:
                        continue
                    if await self._compress(key):
                        report.compressed += 1
                except CacheError as e:
                    logger.warning("Failed to compress entry", key=key, error=str(e))
                    report.failed.append(key)
        logger.info("Compressed large entries", count=report.compressed)
        return report.compressed

    async def compress_entry(
        self,
        key: str,
        compression_type: CompressionType = CompressionType.GZIP,
    ) -> bool:
        """Compress one stored entry regardless of its size.

        Returns:
            True if the entry was rewritten, False if it was missing or
            already compressed.

        Raises:
            CacheError: If the entry cannot be read, decoded or written.
        """
        async with self.store.lock(key):
            return await self._compress(key, compression_type)

    async def _compress(
        self,
        key: str,
        compression_type: CompressionType = CompressionType.GZIP,
    ) -> bool:
        # Caller holds the key lock
        raw = await self.store.read(key)
        if raw is None:
            return False
        entry = codec.decode(raw)
        if entry.metadata.compression_type != CompressionType.NONE:
            return False
        compressed = CacheEntry(
            data=entry.data,
            metadata=entry.metadata.with_compression(compression_type),
            checksum=entry.checksum,
        )
        await self.store.write(key, codec.encode(compressed))
        return True

    async def cleanup_expired_entries(self, report: SweepReport | None = None) -> int:
        """Delete entries past their expiry timestamp."""
        report = report or SweepReport()
        now = utc_now()
        for key in await self.store.keys():
            async with self.store.lock(key):
                try:
                    raw = await self.store.read(key)
                    if raw is None:
                        continue
                    entry = codec.decode(raw)
                    if is_expired(entry.metadata, now):
                        await self.store.remove(key)
                        report.expired += 1
                        report.expired_keys.append(key)
                except CacheError as e:
                    logger.warning("Failed to check expiry", key=key, error=str(e))
                    if key not in report.failed:
                        report.failed.append(key)
        logger.info("Cleaned up expired entries", count=report.expired)
        return report.expired

    async def defragment(self, report: SweepReport | None = None) -> int:
        """Rewrite every entry through the codec.

        Only entries whose normalized bytes differ are written, so a second
        pass leaves every file untouched.
        """
        report = report or SweepReport()
        for key in await self.store.keys():
            async with self.store.lock(key):
                try:
                    raw = await self.store.read(key)
                    if raw is None:
                        continue
                    normalized = codec.encode(codec.decode(raw))
                    if normalized != raw:
                        await self.store.write(key, normalized)
                        report.defragmented += 1
                except CacheError as e:
                    logger.warning("Failed to defragment entry", key=key, error=str(e))
                    if key not in report.failed:
                        report.failed.append(key)
        logger.info("Defragmented entries", count=report.defragmented)
        return report.defragmented
