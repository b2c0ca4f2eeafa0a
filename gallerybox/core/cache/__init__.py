"""Blob cache system for Gallerybox.

Provides the disk-backed image blob store, LRU eviction against a byte
budget, and debounced aggregate size monitoring.
"""

from pathlib import Path

from gallerybox.core.cache.blob_store import BlobCacheStore
from gallerybox.core.cache.eviction import LRUEvictionPolicy
from gallerybox.core.cache.models import (
    CacheEntryInfo,
    CacheKey,
    CacheSizeSample,
    CacheStats,
    EvictionResult,
)
from gallerybox.core.cache.size_monitor import CacheSizeMonitor
from gallerybox.core.clock import Clock


def create_blob_cache(cache_root: Path) -> BlobCacheStore:
    """Create a blob store rooted at ``cache_root``.

    Args:
        cache_root: Directory for cached blobs and metadata

    Returns:
        Blob store with its directory layout created
    """
    return BlobCacheStore(cache_root)


def create_size_monitor(
    store: BlobCacheStore,
    debounce_interval_ms: int = 100,
    history_capacity: int = 50,
    staleness_seconds: float = 2.0,
    clock: Clock | None = None,
) -> CacheSizeMonitor:
    """Create a size monitor that scans ``store``.

    Args:
        store: Blob store whose size is tracked
        debounce_interval_ms: Minimum spacing between recomputes
        history_capacity: Number of samples kept in the history
        staleness_seconds: Republish ceiling for unchanged sizes
        clock: Time source, defaults to the monotonic clock

    Returns:
        Configured size monitor
    """
    return CacheSizeMonitor(
        store.size_bytes,
        clock=clock,
        debounce_interval=debounce_interval_ms / 1000.0,
        history_capacity=history_capacity,
        staleness_seconds=staleness_seconds,
    )


__all__ = [
    "BlobCacheStore",
    "CacheEntryInfo",
    "CacheKey",
    "CacheSizeMonitor",
    "CacheSizeSample",
    "CacheStats",
    "EvictionResult",
    "LRUEvictionPolicy",
    "create_blob_cache",
    "create_size_monitor",
]
