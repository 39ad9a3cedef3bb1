"""
Cache package for persisted content.

This package provides:
- Entry codec (codec.py): on-disk envelope formats and compression
- Integrity checks (integrity.py): checksums and expiry
- Change detection and merging (diff.py, merge.py)
- Invalidation rules and data sources (invalidation.py, sources.py)
- File storage and maintenance (store.py, maintenance.py)
- The CacheManager façade (manager.py) and fetch helpers (integration.py)
"""
