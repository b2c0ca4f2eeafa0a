"""Explicit wiring of the gallery components."""

import logging
from dataclasses import dataclass

from gallerybox.config.models import GallerySettings
from gallerybox.core.cache import (
    BlobCacheStore,
    CacheSizeMonitor,
    LRUEvictionPolicy,
    create_blob_cache,
    create_size_monitor,
)
from gallerybox.core.clock import Clock
from gallerybox.gallery.controller import GalleryController
from gallerybox.gallery.diagnostics import CacheFiller
from gallerybox.gallery.remote.client import PicsumClient
from gallerybox.gallery.repository import ImageRepository
from gallerybox.protocols import ImageSourceProtocol


logger = logging.getLogger(__name__)


@dataclass
class GalleryDependencies:
    """Every long-lived component, built once at startup and passed down."""

    settings: GallerySettings
    store: BlobCacheStore
    eviction: LRUEvictionPolicy
    monitor: CacheSizeMonitor
    source: ImageSourceProtocol
    repository: ImageRepository
    filler: CacheFiller

    def create_controller(self) -> GalleryController:
        return GalleryController(
            self.repository,
            monitor=self.monitor,
            page_size=self.settings.page_size,
            filler=self.filler,
        )

    def close(self) -> None:
        """Stop background work and release network resources."""
        self.monitor.close()
        self.repository.shutdown(wait=True)
        close_source = getattr(self.source, "close", None)
        if callable(close_source):
            close_source()


def build_dependencies(
    settings: GallerySettings,
    source: ImageSourceProtocol | None = None,
    clock: Clock | None = None,
) -> GalleryDependencies:
    """Construct the component graph for ``settings``.

    Raises:
        CacheFailure: If the cache directory cannot be created
    """
    store = create_blob_cache(settings.cache_path)
    eviction = LRUEvictionPolicy(store)
    monitor = create_size_monitor(
        store,
        debounce_interval_ms=settings.debounce_interval_ms,
        history_capacity=settings.history_capacity,
        staleness_seconds=settings.staleness_seconds,
        clock=clock,
    )
    if source is None:
        source = PicsumClient(
            base_url=settings.api_base_url,
            timeout=settings.request_timeout_seconds,
        )
    repository = ImageRepository(
        source,
        store,
        eviction=eviction,
        monitor=monitor,
        bulk_page_size=settings.page_size,
        max_cache_bytes=settings.max_cache_bytes,
        background_workers=settings.background_workers,
    )
    filler = CacheFiller(store, eviction, max_cache_bytes=settings.max_cache_bytes)

    logger.debug("Built gallery dependencies for cache at %s", settings.cache_path)
    return GalleryDependencies(
        settings=settings,
        store=store,
        eviction=eviction,
        monitor=monitor,
        source=source,
        repository=repository,
        filler=filler,
    )
