"""Single-flight snapshot caching."""

from arena.cache.snapshot import CacheEntry, CacheState, SnapshotCache

__all__ = ["CacheEntry", "CacheState", "SnapshotCache"]
