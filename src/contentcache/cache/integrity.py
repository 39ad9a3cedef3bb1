"""
Integrity and expiry checks for cache entries.

Pure functions: the checksum is computed over the canonical serialization of
the payload (orjson with sorted keys), so key order in the stored file never
affects verification.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Any

import orjson

from contentcache.exceptions import IntegrityError
from contentcache.types import CacheEntry, CacheMetadata, ChecksumAlgorithm, utc_now


def canonical_json(data: Any) -> bytes:
    """Serialize a payload to its canonical byte form.

    Raises:
        TypeError: If the payload is not JSON-serializable.
    """
    return orjson.dumps(data, option=orjson.OPT_SORT_KEYS)


def digest(
    data: Any,
    algorithm: ChecksumAlgorithm | str = ChecksumAlgorithm.SHA256,
) -> str:
    """Compute the hex digest of a payload."""
    name = ChecksumAlgorithm(algorithm).value
    return hashlib.new(name, canonical_json(data)).hexdigest()


def verify(
    entry: CacheEntry,
    algorithm: ChecksumAlgorithm | str = ChecksumAlgorithm.SHA256,
) -> bool:
    """Check that an entry's checksum matches its payload."""
    try:
        return digest(entry.data, algorithm) == entry.checksum
    except TypeError:
        return False


def require_valid(
    entry: CacheEntry,
    algorithm: ChecksumAlgorithm | str = ChecksumAlgorithm.SHA256,
    key: str | None = None,
) -> None:
    """Raise if an entry's checksum does not match its payload.

    Raises:
        IntegrityError: With the stored and recomputed digests as context.
    """
    try:
        actual = digest(entry.data, algorithm)
    except TypeError:
        actual = None
    if actual != entry.checksum:
        raise IntegrityError(
            "Checksum mismatch",
            {"key": key, "expected": entry.checksum, "actual": actual},
        )


def is_expired(metadata: CacheMetadata, now: datetime | None = None) -> bool:
    """Check whether an entry is past its expiry timestamp."""
    return (now or utc_now()) > metadata.expires_at
