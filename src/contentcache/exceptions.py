"""
Custom exception hierarchy for the content cache.

All exceptions inherit from CacheError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class CacheError(Exception):
    """Base exception for all content cache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(CacheError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Unsupported checksum algorithm
        - Non-positive cleanup interval
    """

    pass


class EntryDecodeError(CacheError):
    """Raised when a persisted entry cannot be decoded.

    Context should include:
        - format: The detected entry format, if any
        - reason: What failed (outer parse, decompression, payload parse)
    """

    pass


class IntegrityError(CacheError):
    """Raised when an entry violates an integrity invariant.

    Context should include:
        - key: The cache key
        - expected: The stored checksum
        - actual: The recomputed checksum
    """

    pass


class CacheIOError(CacheError):
    """Raised when reading or writing the cache directory fails.

    Context should include:
        - path: The file or directory involved
        - operation: read, write, delete or scan
    """

    pass


class InvalidKeyError(CacheError):
    """Raised when a cache key cannot be mapped to a file path.

    Examples:
        - Empty key
        - Absolute path or ".." segment
    """

    pass


class MergeError(CacheError):
    """Raised when a merge strategy cannot be applied.

    Context should include:
        - strategy: The merge strategy type
        - key: The cache key, if known
    """

    pass
