"""
Persistent content cache.

Disk-backed JSON cache with expiry, integrity checks, incremental change
detection, merge strategies, rule-based invalidation and maintenance.
"""

__version__ = "0.1.0"
