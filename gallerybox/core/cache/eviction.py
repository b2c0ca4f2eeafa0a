"""Size-budget eviction for the blob cache."""

import logging
import threading

from gallerybox.core.cache.blob_store import BlobCacheStore
from gallerybox.core.cache.models import EvictionResult


logger = logging.getLogger(__name__)


class LRUEvictionPolicy:
    """Delete least recently used files until the cache fits a byte budget.

    Recency is the file modification time maintained by the store. After each
    deletion the total is recomputed with a full directory scan instead of
    subtracting the deleted size, so files written or removed by other
    threads while the run is in progress are accounted for.

    Runs are mutually exclusive: a cleanup requested while another is in
    progress returns a skipped result immediately. Callers rely on the next
    trigger to run again if the cache is still over budget.
    """

    def __init__(self, store: BlobCacheStore):
        self.store = store
        self._running = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    def cleanup(self, budget_bytes: int) -> EvictionResult:
        """Evict oldest entries until the aggregate size is within budget.

        Args:
            budget_bytes: Maximum aggregate cache size in bytes

        Returns:
            Summary of the run; ``skipped`` is set when another run was active

        Raises:
            ValueError: If the budget is negative
            CacheFailure: On disk I/O errors other than files already gone
        """
        if budget_bytes < 0:
            raise ValueError(f"Cache budget must be non-negative, got {budget_bytes}")

        if not self._running.acquire(blocking=False):
            logger.debug("Cache cleanup already in progress, skipping request")
            return EvictionResult(skipped=True)

        try:
            return self._evict(budget_bytes)
        finally:
            self._running.release()

    def _evict(self, budget_bytes: int) -> EvictionResult:
        current_size = self.store.size_bytes()
        result = EvictionResult(size_before=current_size, size_after=current_size)

        if current_size <= budget_bytes:
            logger.debug(
                "Cache size %d within budget %d, nothing to evict",
                current_size,
                budget_bytes,
            )
            return result

        logger.info(
            "Running cache cleanup: %.1fMB over %.1fMB budget",
            current_size / (1024 * 1024),
            budget_bytes / (1024 * 1024),
        )

        entries = sorted(self.store.entries(), key=lambda entry: entry.mtime)
        for entry in entries:
            if current_size <= budget_bytes:
                break

            if not self.store.remove_path(entry.path):
                # Deleted concurrently by someone else
                current_size = self.store.size_bytes()
                continue

            result.removed_count += 1
            result.removed_bytes += entry.size_bytes
            if entry.key is not None:
                result.removed_keys.append(entry.key)
            logger.debug(
                "Evicted %s (%.1fKB)", entry.path.name, entry.size_bytes / 1024
            )

            current_size = self.store.size_bytes()

        result.size_after = current_size
        logger.info(
            "Cache cleanup removed %d entries, new size %.1fMB",
            result.removed_count,
            current_size / (1024 * 1024),
        )
        return result
