"""
File-per-key storage for encoded cache entries.

Each key maps to ``<root>/<key>.json``; keys may contain ``/`` to nest.
All file I/O goes through aiofiles, so every read, write, stat and delete
yields to the event loop. Writes are atomic (temp file + replace).
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path, PurePosixPath

import aiofiles
import aiofiles.os

from contentcache.exceptions import CacheIOError, InvalidKeyError
from contentcache.logging import get_logger

logger = get_logger(__name__)

ENTRY_SUFFIX = ".json"
METADATA_INDEX_NAME = ".cache-metadata.json"


class EntryStore:
    """Maps cache keys to files under a root directory.

    Also owns the per-key locks used to serialize same-key operations.
    Locks are created lazily and never dropped, one per key ever touched.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.index_path = self.root / METADATA_INDEX_NAME
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, key: str) -> asyncio.Lock:
        """Get the lock that serializes operations on one key."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def path_for(self, key: str) -> Path:
        """Resolve the file path of a key.

        Raises:
            InvalidKeyError: If the key is empty, absolute, or escapes the root.
        """
        if not key or not key.strip():
            raise InvalidKeyError("Cache key is empty")
        if "\\" in key or "\x00" in key:
            raise InvalidKeyError("Cache key contains forbidden characters", {"key": key})
        posix = PurePosixPath(key)
        if posix.is_absolute():
            raise InvalidKeyError("Cache key must be relative", {"key": key})
        for part in posix.parts:
            if part in ("", ".", "..") or part.startswith("."):
                raise InvalidKeyError("Cache key has an invalid path segment", {"key": key})
        return self.root.joinpath(*posix.parts[:-1], posix.parts[-1] + ENTRY_SUFFIX)

    async def ensure_root(self) -> None:
        """Create the root directory."""
        try:
            await aiofiles.os.makedirs(self.root, exist_ok=True)
        except OSError as e:
            raise CacheIOError(
                "Failed to create cache directory",
                {"path": str(self.root), "operation": "mkdir", "reason": str(e)},
            ) from e

    async def read(self, key: str) -> bytes | None:
        """Read an encoded entry, or None if the key has no file."""
        path = self.path_for(key)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheIOError(
                "Failed to read entry", {"path": str(path), "operation": "read", "reason": str(e)}
            ) from e

    async def write(self, key: str, payload: bytes) -> int:
        """Atomically write an encoded entry, creating parent directories.

        Returns:
            Number of bytes written.
        """
        path = self.path_for(key)
        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(payload)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            raise CacheIOError(
                "Failed to write entry",
                {"path": str(path), "operation": "write", "reason": str(e)},
            ) from e
        return len(payload)

    async def remove(self, key: str) -> bool:
        """Delete a key's file.

        Returns:
            True if a file was removed, False if there was none.
        """
        path = self.path_for(key)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CacheIOError(
                "Failed to delete entry",
                {"path": str(path), "operation": "delete", "reason": str(e)},
            ) from e
        return True

    async def stat(self, key: str) -> os.stat_result | None:
        """Stat a key's file, or None if it does not exist."""
        path = self.path_for(key)
        try:
            return await aiofiles.os.stat(path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheIOError(
                "Failed to stat entry", {"path": str(path), "operation": "stat", "reason": str(e)}
            ) from e

    async def keys(self) -> list[str]:
        """List stored keys, sorted.

        Hidden files and files whose names are not valid keys are not entries.
        """
        return await asyncio.to_thread(self._scan_keys)

    def _scan_keys(self) -> list[str]:
        if not self.root.is_dir():
            return []
        found: list[str] = []
        for path in self.root.rglob(f"*{ENTRY_SUFFIX}"):
            relative = path.relative_to(self.root)
            if any(part.startswith(".") for part in relative.parts) or not path.is_file():
                continue
            key = relative.as_posix()[: -len(ENTRY_SUFFIX)]
            try:
                self.path_for(key)
            except InvalidKeyError:
                logger.debug("Ignoring file that is not a cache entry", path=str(path))
                continue
            found.append(key)
        return sorted(found)

    async def total_size(self) -> int:
        """Sum of on-disk bytes of all entries."""
        total = 0
        for key in await self.keys():
            st = await self.stat(key)
            if st is not None:
                total += st.st_size
        return total

    async def read_index(self) -> bytes | None:
        """Read the metadata index file, if present."""
        try:
            async with aiofiles.open(self.index_path, "rb") as f:
                return await f.read()
        except FileNotFoundError:
            return None

    async def write_index(self, payload: bytes) -> None:
        """Atomically replace the metadata index file."""
        tmp_path = self.index_path.with_name(f"{METADATA_INDEX_NAME}.tmp")
        await aiofiles.os.makedirs(self.root, exist_ok=True)
        async with aiofiles.open(tmp_path, "wb") as f:
            await f.write(payload)
        await aiofiles.os.replace(tmp_path, self.index_path)
