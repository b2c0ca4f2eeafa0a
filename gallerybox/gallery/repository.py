"""Image repository coordinating the remote source and the blob cache."""

import logging
import re
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from datetime import datetime
from pathlib import Path
from typing import Any

from gallerybox.core.cache.blob_store import BlobCacheStore
from gallerybox.core.cache.eviction import LRUEvictionPolicy
from gallerybox.core.cache.models import EvictionResult, url_suffix
from gallerybox.core.cache.size_monitor import CacheSizeMonitor
from gallerybox.gallery.cache_index import CachedImageIndex
from gallerybox.models.image import ImageRecord
from gallerybox.protocols import ImageSourceProtocol


logger = logging.getLogger(__name__)

DEFAULT_BULK_PAGE_SIZE = 30
DEFAULT_MAX_CACHE_BYTES = 1024 * 1024 * 1024

_PICSUM_SIZED_URL = re.compile(r"^https://picsum\.photos/id/(\d+)/(\d+)/(\d+)")


def small_thumbnail_url(url: str) -> str:
    """Half-size variant of a Picsum ``/id/<n>/<w>/<h>`` URL.

    Other URLs are returned unchanged.
    """
    match = _PICSUM_SIZED_URL.match(url)
    if match is None:
        return url
    image_id, width, height = match.groups()
    return (
        f"https://picsum.photos/id/{image_id}/"
        f"{round(int(width) * 0.5)}/{round(int(height) * 0.5)}"
    )


class ImageRepository:
    """Serve image pages from cache or the remote source.

    Two request modes exist:

    * Bulk (infinite scroll), used for ``limit >= bulk_page_size``: a page is
      served from cache only when the whole window is cached; otherwise it is
      fetched remotely and returned without caching anything. Images are
      cached later, one at a time, when the UI renders them through
      ``get_single_file``.
    * Paginated, used for smaller pages: single images are looked up in the
      cache first; remote results are cached in the background.

    Failures from the remote source or the cache are raised unchanged.
    Background caching failures are logged and never reach the caller.
    """

    def __init__(
        self,
        source: ImageSourceProtocol,
        store: BlobCacheStore,
        eviction: LRUEvictionPolicy | None = None,
        monitor: CacheSizeMonitor | None = None,
        bulk_page_size: int = DEFAULT_BULK_PAGE_SIZE,
        max_cache_bytes: int = DEFAULT_MAX_CACHE_BYTES,
        executor: Executor | None = None,
        background_workers: int = 4,
    ):
        self.source = source
        self.store = store
        self.eviction = eviction or LRUEvictionPolicy(store)
        self.monitor = monitor
        self.index = CachedImageIndex(store)
        self.bulk_page_size = bulk_page_size
        self.max_cache_bytes = max_cache_bytes

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=background_workers, thread_name_prefix="gallerybox-cache"
        )
        self._lock = threading.Lock()
        self._inflight: dict[str, Future[Path]] = {}
        self._background: set[Future[Any]] = set()

    # Page requests

    def get_images(self, page: int = 1, limit: int | None = None) -> list[ImageRecord]:
        """Route a page request to the mode matching its size."""
        limit = limit or self.bulk_page_size
        if limit < self.bulk_page_size:
            return self.get_paginated_images(page=page, limit=limit)
        return self.get_infinite_scroll_images(page=page, limit=limit)

    def get_infinite_scroll_images(
        self, page: int = 1, limit: int = DEFAULT_BULK_PAGE_SIZE
    ) -> list[ImageRecord]:
        """Bulk mode page request.

        Raises:
            CacheFailure: If the cache cannot be read
            NetworkFailure, ServerFailure, UnknownFailure: From the remote source
        """
        offset = (page - 1) * limit
        logger.debug("Fetching infinite scroll images page %d, limit %d", page, limit)

        cached = self.index.get_range(offset, limit)
        if len(cached) >= limit:
            logger.info("Page %d served from cache (%d images)", page, len(cached))
            return cached[:limit]

        logger.info(
            "Loading page %d from API (cache had only %d images)", page, len(cached)
        )
        records = self._with_positions(self.source.fetch_page(page, limit), offset)

        # No caching here: images are cached when they are rendered
        logger.debug("Loaded %d images for infinite scroll without caching", len(records))
        return records

    def get_paginated_images(self, page: int = 1, limit: int = 1) -> list[ImageRecord]:
        """Paginated mode page request.

        With ``limit == 1`` the page number is the image id and the cache is
        consulted first. A cache hit is returned at once and re-warmed in the
        background; remote results are cached in the background.

        Raises:
            CacheFailure: If the cache cannot be read
            NetworkFailure, ServerFailure, UnknownFailure: From the remote source
        """
        logger.debug("Fetching paginated images page %d, limit %d", page, limit)

        if limit == 1:
            cached = self.get_cached_image(str(page))
            if cached is not None:
                logger.info("Image %d served from disk cache", page)
                self._submit_background(self._refresh_in_background, cached)
                return [cached]
            logger.debug("Image %d not in cache, fetching from API", page)

        offset = (page - 1) * limit
        records = self._with_positions(self.source.fetch_page(page, limit), offset)

        for record in records:
            self._submit_background(self._cache_in_background, record)

        logger.info(
            "Fetched %d images, background caching started for each", len(records)
        )
        return records

    @staticmethod
    def _with_positions(records: list[ImageRecord], offset: int) -> list[ImageRecord]:
        return [
            record
            if record.position is not None
            else record.model_copy(update={"position": offset + index})
            for index, record in enumerate(records)
        ]

    # Cache reads

    def get_cached_image(self, image_id: str) -> ImageRecord | None:
        """Cached record whose backing file exists, or None."""
        return self.index.get(image_id)

    def get_cached_images(self, offset: int = 0, limit: int = 30) -> list[ImageRecord]:
        """Contiguous cached records starting at ``offset``."""
        return self.index.get_range(offset, limit)

    def is_image_cached(self, image_id: str) -> bool:
        return self.index.contains(image_id)

    def get_single_file(self, record: ImageRecord) -> Path:
        """Return a local file for ``record``, downloading it on a cache miss.

        This is the render-time entry point of bulk mode: an image is cached
        only once the UI actually displays it.

        Raises:
            CacheFailure: If the blob cannot be stored
            NetworkFailure, ServerFailure, UnknownFailure: From the download
        """
        key = self.store.key_for(record.thumbnail_url)
        cached_path = self.store.get(key)
        if cached_path is not None:
            logger.debug("Cache hit for %s", record.thumbnail_url)
            return cached_path
        return self._download_and_store(record, record.thumbnail_url)

    # Cache writes

    def cache_image(self, record: ImageRecord, small: bool = False) -> ImageRecord:
        """Make sure ``record`` is cached and return it with cache fields set.

        A record that already points at an existing file only has its entry
        refreshed. Otherwise its thumbnail (half-size when ``small``) is
        downloaded and stored.
        """
        if record.is_cached:
            return self._refresh_entry(record)

        url = small_thumbnail_url(record.thumbnail_url) if small else record.thumbnail_url
        path = self._download_and_store(record, url)
        return record.with_cache(path, path.stat().st_size)

    def _refresh_entry(self, record: ImageRecord) -> ImageRecord:
        if record.cached_path is None:
            raise ValueError(f"Image {record.id} has no cached file to refresh")
        key = Path(record.cached_path).name.split(".", 1)[0]
        path = self.store.get(key)
        if path is None:
            # Evicted since it was read; cache it again
            return self.cache_image(record.without_cache())
        self.store.write_metadata(key, self._metadata_for(record))
        if self.store.remove_metadata(key):
            # Blob evicted while the sidecar was written
            return self.cache_image(record.without_cache())
        return record

    @staticmethod
    def _metadata_for(record: ImageRecord) -> dict[str, Any]:
        # The index attaches the real blob path on read
        return record.model_copy(update={"cached_path": None}).to_dict()

    def _download_and_store(self, record: ImageRecord, url: str) -> Path:
        key = self.store.key_for(url)

        with self._lock:
            inflight = self._inflight.get(key)
            if inflight is None:
                future: Future[Path] = Future()
                self._inflight[key] = future

        if inflight is not None:
            logger.debug("Download of %s already in progress, waiting", url)
            return inflight.result()

        try:
            data = self.source.download(url)
            cached = record.model_copy(
                update={"cached_at": datetime.now(), "file_size": len(data)}
            )
            path = self.store.put(
                key, data, metadata=self._metadata_for(cached), suffix=url_suffix(url)
            )
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(path)
        finally:
            with self._lock:
                self._inflight.pop(key, None)

        logger.debug("Saved image %s to disk (%.1fKB)", record.id, len(data) / 1024)
        self._after_write()
        return path

    def _after_write(self) -> None:
        if self.monitor is not None:
            self.monitor.trigger("put")
        self._submit_background(self._enforce_budget_in_background)

    # Background tasks

    def _submit_background(self, fn: Any, *args: Any) -> Future[Any] | None:
        try:
            task = self._executor.submit(fn, *args)
        except RuntimeError:
            logger.debug("Background executor shut down, dropping task %s", fn.__name__)
            return None

        with self._lock:
            self._background.add(task)
        task.add_done_callback(self._forget_task)
        return task

    def _forget_task(self, task: Future[Any]) -> None:
        with self._lock:
            self._background.discard(task)

    def _cache_in_background(self, record: ImageRecord) -> None:
        try:
            self.cache_image(record, small=True)
            logger.debug("Image %s cached in background", record.id)
        except Exception as e:
            logger.warning("Failed to cache image %s in background: %s", record.id, e)

    def _refresh_in_background(self, record: ImageRecord) -> None:
        try:
            self._refresh_entry(record)
        except Exception as e:
            logger.warning("Failed to refresh cached image %s: %s", record.id, e)

    def _enforce_budget_in_background(self) -> None:
        try:
            self.enforce_budget()
        except Exception as e:
            logger.warning("Background cache cleanup failed: %s", e)

    def wait_for_background(self, timeout: float | None = None) -> bool:
        """Block until queued background tasks finish.

        Returns:
            True if every task finished within ``timeout``
        """
        while True:
            with self._lock:
                pending = set(self._background)
            if not pending:
                return True
            _done, not_done = wait_futures(pending, timeout=timeout)
            if not_done:
                return False

    # Size and eviction

    def get_cache_size(self) -> int:
        """Aggregate cache size from a full scan."""
        return self.store.size_bytes()

    def enforce_budget(self) -> EvictionResult:
        """Evict down to ``max_cache_bytes`` unless a cleanup is already running."""
        result = self.eviction.cleanup(self.max_cache_bytes)
        if result.removed_count and self.monitor is not None:
            self.monitor.trigger("cleanup")
        return result

    def clear_cache_to_limit(self, max_size_bytes: int) -> EvictionResult | None:
        """Shrink the cache; ``0`` deletes everything.

        Raises:
            CacheFailure: If files cannot be deleted
        """
        if max_size_bytes == 0:
            logger.info("Clearing all cache")
            self.store.clear()
            if self.monitor is not None:
                self.monitor.trigger("clear")
            return None

        logger.info("Running cleanup to %dMB limit", max_size_bytes // (1024 * 1024))
        result = self.eviction.cleanup(max_size_bytes)
        if self.monitor is not None:
            self.monitor.trigger("cleanup")
        return result

    def shutdown(self, wait: bool = True) -> None:
        """Stop background work owned by this repository."""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
