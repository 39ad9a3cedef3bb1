"""
Entry codec: CacheEntry <-> bytes.

Encoded entries are a JSON envelope tagged with an explicit format version:

    {"format": 1, "data": ..., "metadata": {...}, "checksum": "..."}

When the metadata declares a compression type, "data" holds the base64 of the
compressed canonical payload so the envelope stays parseable on its own.

Readable formats:
- ENVELOPE_V1: the tagged envelope above (the only format written)
- ENVELOPE_V0: the same envelope without a "format" field
- LEGACY_BLOB: a whole entry as base64-encoded gzip with no envelope
"""

from __future__ import annotations

import base64
import binascii
import gzip
import zlib
from enum import Enum
from typing import Any

import brotli
import orjson

from contentcache.cache.integrity import canonical_json
from contentcache.exceptions import EntryDecodeError
from contentcache.types import CacheEntry, CacheMetadata, CompressionType

CURRENT_FORMAT_VERSION = 1

GZIP_MAGIC = b"\x1f\x8b"

_DECOMPRESSION_ERRORS = (OSError, EOFError, zlib.error, brotli.error)


class EntryFormat(str, Enum):
    """On-disk layouts the decoder understands."""

    ENVELOPE_V1 = "envelope-v1"
    ENVELOPE_V0 = "envelope-v0"
    LEGACY_BLOB = "legacy-blob"


_ENVELOPE_VERSIONS: dict[int, EntryFormat] = {
    0: EntryFormat.ENVELOPE_V0,
    1: EntryFormat.ENVELOPE_V1,
}


def compress(payload: bytes, compression_type: CompressionType) -> bytes:
    """Compress a payload. Output is deterministic for a given input."""
    if compression_type == CompressionType.GZIP:
        return gzip.compress(payload, compresslevel=9, mtime=0)
    if compression_type == CompressionType.BROTLI:
        return brotli.compress(payload)
    return payload


def decompress(blob: bytes, compression_type: CompressionType) -> bytes:
    """Reverse compress()."""
    if compression_type == CompressionType.GZIP:
        return gzip.decompress(blob)
    if compression_type == CompressionType.BROTLI:
        return brotli.decompress(blob)
    return blob


def encode(entry: CacheEntry) -> bytes:
    """Serialize an entry to its on-disk form.

    Args:
        entry: Entry holding the plain (uncompressed) payload.

    Returns:
        UTF-8 bytes of the tagged JSON envelope.

    Raises:
        TypeError: If the payload is not JSON-serializable.
    """
    compression_type = entry.metadata.compression_type
    data: Any = entry.data
    if compression_type != CompressionType.NONE:
        blob = compress(canonical_json(entry.data), compression_type)
        data = base64.b64encode(blob).decode("ascii")

    envelope = {
        "format": CURRENT_FORMAT_VERSION,
        "data": data,
        "metadata": entry.metadata.to_dict(),
        "checksum": entry.checksum,
    }
    return orjson.dumps(envelope, option=orjson.OPT_INDENT_2)


def detect_format(raw: bytes) -> tuple[EntryFormat, dict[str, Any] | None]:
    """Identify the layout of an encoded entry.

    Returns:
        The format and, for envelopes, the parsed outer object.

    Raises:
        EntryDecodeError: If the bytes match no known layout.
    """
    try:
        outer = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return EntryFormat.LEGACY_BLOB, None

    if not isinstance(outer, dict):
        raise EntryDecodeError(
            "Entry is not a JSON object", {"type": type(outer).__name__}
        )

    version = outer.get("format", 0)
    fmt = _ENVELOPE_VERSIONS.get(version) if isinstance(version, int) else None
    if fmt is None:
        raise EntryDecodeError("Unknown entry format", {"format": version})
    return fmt, outer


def decode(raw: bytes) -> CacheEntry:
    """Parse an encoded entry and return it with its plain payload.

    Raises:
        EntryDecodeError: If the entry cannot be parsed or decompressed.
    """
    fmt, outer = detect_format(raw)
    if outer is None:
        return _decode_legacy_blob(raw)
    return _decode_envelope(outer, fmt)


def _decode_envelope(outer: dict[str, Any], fmt: EntryFormat) -> CacheEntry:
    try:
        metadata = CacheMetadata.from_dict(outer["metadata"])
        checksum = outer["checksum"]
        data = outer["data"]
    except (KeyError, TypeError, ValueError) as e:
        raise EntryDecodeError(
            "Malformed entry envelope", {"format": fmt.value, "reason": str(e)}
        ) from e

    if not isinstance(checksum, str):
        raise EntryDecodeError("Checksum is not a string", {"format": fmt.value})

    if metadata.compression_type != CompressionType.NONE:
        if not isinstance(data, str):
            raise EntryDecodeError(
                "Compressed payload is not a base64 string",
                {"format": fmt.value, "compression": metadata.compression_type.value},
            )
        try:
            blob = base64.b64decode(data, validate=True)
            data = orjson.loads(decompress(blob, metadata.compression_type))
        except (binascii.Error, orjson.JSONDecodeError, *_DECOMPRESSION_ERRORS) as e:
            raise EntryDecodeError(
                "Failed to decompress payload",
                {"format": fmt.value, "compression": metadata.compression_type.value},
            ) from e

    return CacheEntry(data=data, metadata=metadata, checksum=checksum)


def _decode_legacy_blob(raw: bytes) -> CacheEntry:
    try:
        blob = base64.b64decode(raw.strip(), validate=True)
    except binascii.Error as e:
        raise EntryDecodeError(
            "Entry is neither JSON nor a base64 blob",
            {"format": EntryFormat.LEGACY_BLOB.value},
        ) from e

    if not blob.startswith(GZIP_MAGIC):
        raise EntryDecodeError(
            "Legacy blob is not gzip data", {"format": EntryFormat.LEGACY_BLOB.value}
        )

    try:
        inner = orjson.loads(gzip.decompress(blob))
    except (orjson.JSONDecodeError, *_DECOMPRESSION_ERRORS) as e:
        raise EntryDecodeError(
            "Failed to decompress legacy blob",
            {"format": EntryFormat.LEGACY_BLOB.value},
        ) from e

    if not isinstance(inner, dict):
        raise EntryDecodeError(
            "Legacy blob does not hold an entry", {"format": EntryFormat.LEGACY_BLOB.value}
        )
    return _decode_envelope(inner, EntryFormat.LEGACY_BLOB)
