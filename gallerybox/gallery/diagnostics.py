"""Bulk cache fill and populate diagnostics used to exercise eviction."""

import errno
import logging
from collections.abc import Callable
from dataclasses import dataclass

from gallerybox.core.cache.blob_store import BlobCacheStore
from gallerybox.core.cache.eviction import LRUEvictionPolicy
from gallerybox.core.cache.models import EvictionResult
from gallerybox.core.errors import CacheFailure, GalleryFailure
from gallerybox.gallery.repository import ImageRepository


logger = logging.getLogger(__name__)

DEFAULT_BLOB_SIZE = 512 * 1024
DEFAULT_TARGET_BYTES = 200 * 1024 * 1024
DEFAULT_PROGRESS_INTERVAL = 50
FAKE_URL_TEMPLATE = "https://fake-cache-fill.example.com/fake_{index:06d}.jpg"

DEFAULT_POPULATE_IMAGE_COUNT = 100
DEFAULT_POPULATE_TARGET_BYTES = 900 * 1024 * 1024
DEFAULT_POPULATE_LIMIT_BYTES = 1024 * 1024 * 1024
DEFAULT_POPULATE_PAGE_SIZE = 30
DEFAULT_SIZE_CHECK_INTERVAL = 10

ProgressCallback = Callable[[int, int], None]


@dataclass
class FillResult:
    """Outcome of a bulk fill."""

    written: int = 0
    bytes_written: int = 0
    final_size: int = 0
    stopped_reason: str = "target_reached"
    eviction: EvictionResult | None = None


def _is_disk_full(error: CacheFailure) -> bool:
    cause = error.__cause__
    return isinstance(cause, OSError) and cause.errno == errno.ENOSPC


class CacheFiller:
    """Write synthetic blobs into the cache until a target size is reached."""

    def __init__(
        self,
        store: BlobCacheStore,
        eviction: LRUEvictionPolicy,
        max_cache_bytes: int,
        blob_size: int = DEFAULT_BLOB_SIZE,
        target_bytes: int = DEFAULT_TARGET_BYTES,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    ):
        if blob_size < 1:
            raise ValueError("blob_size must be positive")
        if progress_interval < 1:
            raise ValueError("progress_interval must be positive")

        self.store = store
        self.eviction = eviction
        self.max_cache_bytes = max_cache_bytes
        self.blob_size = blob_size
        self.target_bytes = target_bytes
        self.progress_interval = progress_interval

    def fill(self, on_progress: ProgressCallback | None = None) -> FillResult:
        """Fill the cache, then evict down to ``max_cache_bytes``.

        Args:
            on_progress: Called with ``(written, cache_size)`` at every
                progress check

        Returns:
            Summary of the fill and the eviction run

        Raises:
            CacheFailure: On disk errors other than a full disk
        """
        result = FillResult()
        max_blobs = -(-self.target_bytes // self.blob_size)
        logger.info(
            "Starting cache fill: %d blobs of %dKB (target %.0fMB)",
            max_blobs,
            self.blob_size // 1024,
            self.target_bytes / (1024 * 1024),
        )

        for index in range(max_blobs):
            url = FAKE_URL_TEMPLATE.format(index=index)
            data = bytes([index % 256]) * self.blob_size
            try:
                self.store.put(
                    self.store.key_for(url),
                    data,
                    metadata={"url": url, "synthetic": True},
                    suffix=".jpg",
                )
            except CacheFailure as e:
                if not _is_disk_full(e):
                    raise
                logger.warning("Disk full after %d blobs, stopping fill", result.written)
                result.stopped_reason = "disk_full"
                break

            result.written += 1
            result.bytes_written += len(data)

            if result.written % self.progress_interval == 0:
                size = self.store.size_bytes()
                logger.debug(
                    "Fill progress: %d blobs, cache %.1fMB",
                    result.written,
                    size / (1024 * 1024),
                )
                if on_progress is not None:
                    on_progress(result.written, size)
                if size >= self.target_bytes:
                    break

        result.eviction = self.eviction.cleanup(self.max_cache_bytes)
        result.final_size = self.store.size_bytes()
        logger.info(
            "Cache fill finished (%s): %d blobs written, final size %.1fMB",
            result.stopped_reason,
            result.written,
            result.final_size / (1024 * 1024),
        )
        return result


@dataclass
class PopulateResult:
    """Outcome of populating the cache with real images."""

    cached: int = 0
    failed: int = 0
    pages: int = 0
    size_checks: int = 0
    final_size: int = 0
    stopped_reason: str = "image_count_reached"
    eviction: EvictionResult | None = None


class CachePopulator:
    """Download and cache real images page by page until a size target.

    Unlike ``CacheFiller`` every image goes through the repository, so the
    populated cache holds indexed records the gallery can serve.
    """

    def __init__(
        self,
        repository: ImageRepository,
        image_count: int = DEFAULT_POPULATE_IMAGE_COUNT,
        target_bytes: int = DEFAULT_POPULATE_TARGET_BYTES,
        limit_bytes: int = DEFAULT_POPULATE_LIMIT_BYTES,
        page_size: int = DEFAULT_POPULATE_PAGE_SIZE,
        check_interval: int = DEFAULT_SIZE_CHECK_INTERVAL,
    ):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        if check_interval < 1:
            raise ValueError("check_interval must be positive")

        self.repository = repository
        self.image_count = image_count
        self.target_bytes = target_bytes
        self.limit_bytes = limit_bytes
        self.page_size = page_size
        self.check_interval = check_interval

    def _cache_size(self, fallback: int) -> int:
        try:
            return self.repository.get_cache_size()
        except (GalleryFailure, OSError) as e:
            logger.warning("Cache size check failed, keeping %d bytes: %s", fallback, e)
            return fallback

    def populate(self, on_progress: ProgressCallback | None = None) -> PopulateResult:
        """Cache up to ``image_count`` images, stopping early at the target size.

        The size is checked every ``check_interval`` images. A page that
        cannot be fetched or comes back empty ends the run. Images that fail
        to cache are counted and skipped. When the final size reaches the
        target the cache is shrunk to ``limit_bytes``.

        Args:
            on_progress: Called with ``(processed, cache_size)`` at every
                size check

        Returns:
            Summary of the run and of the final cleanup

        Raises:
            CacheFailure: If the final size scan or the cleanup fails
        """
        result = PopulateResult()
        size = self._cache_size(0)
        processed = 0
        page = 0
        logger.info(
            "Populating cache with up to %d images (target %.0fMB, now %.1fMB)",
            self.image_count,
            self.target_bytes / (1024 * 1024),
            size / (1024 * 1024),
        )

        while size < self.target_bytes and processed < self.image_count:
            page += 1
            try:
                records = self.repository.get_images(page=page, limit=self.page_size)
            except GalleryFailure as e:
                logger.warning("Failed to fetch page %d, stopping populate: %s", page, e)
                result.stopped_reason = "fetch_failed"
                break
            result.pages += 1
            if not records:
                result.stopped_reason = "source_exhausted"
                break

            for record in records:
                try:
                    self.repository.cache_image(record)
                    result.cached += 1
                except GalleryFailure as e:
                    logger.warning("Failed to cache image %s: %s", record.id, e)
                    result.failed += 1
                processed += 1

                if processed % self.check_interval == 0:
                    size = self._cache_size(size)
                    result.size_checks += 1
                    logger.debug(
                        "Populate progress: %d images, cache %.1fMB",
                        processed,
                        size / (1024 * 1024),
                    )
                    if on_progress is not None:
                        on_progress(processed, size)
                    if size >= self.target_bytes:
                        break
                if processed >= self.image_count:
                    break
        else:
            if size >= self.target_bytes:
                result.stopped_reason = "target_reached"

        result.final_size = self.repository.get_cache_size()
        if result.final_size >= self.target_bytes:
            result.eviction = self.repository.clear_cache_to_limit(self.limit_bytes)
            result.final_size = self.repository.get_cache_size()

        logger.info(
            "Cache populate finished (%s): %d images cached, %d failed, final size %.1fMB",
            result.stopped_reason,
            result.cached,
            result.failed,
            result.final_size / (1024 * 1024),
        )
        return result
