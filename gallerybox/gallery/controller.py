"""Pagination controller driving the gallery state machine."""

import logging
import threading
from collections.abc import Callable

from gallerybox.core.cache.models import CacheSizeSample
from gallerybox.core.cache.size_monitor import CacheSizeMonitor
from gallerybox.core.errors import CacheFailure, GalleryFailure, UnknownFailure
from gallerybox.gallery.diagnostics import CacheFiller, FillResult
from gallerybox.gallery.repository import ImageRepository
from gallerybox.gallery.state import (
    CacheSizeChanged,
    ClearFailed,
    GalleryError,
    GalleryEvent,
    GalleryInitial,
    GalleryLoading,
    GalleryLoadingMore,
    GalleryState,
    LoadFailed,
    LoadInitialStarted,
    LoadMoreStarted,
    PageLoaded,
    reduce_state,
)
from gallerybox.models.image import ImageRecord


logger = logging.getLogger(__name__)

StateListener = Callable[[GalleryState], None]


class GalleryController:
    """Own the gallery state and run page requests against the repository.

    Requests run on the calling thread. Starting a request and moving into a
    loading state happen atomically, so concurrent ``load_more`` calls
    collapse into one remote request and the losers return immediately.

    Each request remembers the generation it was started in. A reload or
    ``close()`` starts a new generation, and results from an older one are
    dropped instead of being applied to a state they no longer belong to.
    """

    def __init__(
        self,
        repository: ImageRepository,
        monitor: CacheSizeMonitor | None = None,
        page_size: int = 30,
        filler: CacheFiller | None = None,
    ):
        self.repository = repository
        self.monitor = monitor
        self.page_size = page_size
        self.filler = filler

        self._lock = threading.RLock()
        self._state: GalleryState = GalleryInitial(
            cache_size_bytes=monitor.size_bytes if monitor is not None else 0
        )
        self._generation = 0
        self._closed = False
        self._listeners: list[StateListener] = []
        self._unsubscribe_monitor = (
            monitor.subscribe(self._on_cache_size) if monitor is not None else None
        )

    # Read-only views

    @property
    def state(self) -> GalleryState:
        return self._state

    @property
    def images(self) -> list[ImageRecord]:
        return list(self._state.images)

    @property
    def has_more_data(self) -> bool:
        return self._state.has_more_data

    @property
    def current_page(self) -> int:
        return self._state.current_page

    @property
    def cache_size_bytes(self) -> int:
        return self._state.cache_size_bytes

    @property
    def cache_history(self) -> tuple[CacheSizeSample, ...]:
        return self.monitor.history if self.monitor is not None else ()

    @property
    def is_closed(self) -> bool:
        return self._closed

    # Subscription

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener called with every new state.

        Returns:
            Callable that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _apply(self, event: GalleryEvent) -> GalleryState:
        # Caller holds self._lock
        self._state = reduce_state(self._state, event)
        return self._state

    def _publish(self, state: GalleryState) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(state)
            except Exception as e:
                logger.warning("Gallery state listener failed: %s", e)

    def _dispatch(self, event: GalleryEvent, generation: int | None = None) -> bool:
        """Apply ``event`` unless closed or issued by a stale request."""
        with self._lock:
            if self._closed:
                return False
            if generation is not None and generation != self._generation:
                logger.debug("Discarding stale %s", type(event).__name__)
                return False
            state = self._apply(event)
        self._publish(state)
        return True

    def _fetch(self, page: int) -> list[ImageRecord] | GalleryFailure:
        try:
            return self.repository.get_images(page=page, limit=self.page_size)
        except GalleryFailure as e:
            logger.warning("Failed to load page %d: %s", page, e)
            return e
        except Exception as e:
            logger.exception("Unexpected error loading page %d", page)
            return UnknownFailure(str(e))

    # Commands

    def load_initial(self) -> bool:
        """Load the first page, replacing any loaded images.

        Returns:
            True if a request was issued, False if one was already loading
        """
        with self._lock:
            if self._closed or isinstance(self._state, GalleryLoading):
                return False
            self._generation += 1
            generation = self._generation
            state = self._apply(LoadInitialStarted())
        self._publish(state)

        logger.debug("Loading initial images")
        result = self._fetch(1)
        if isinstance(result, GalleryFailure):
            self._dispatch(LoadFailed(result), generation)
            return True

        if self._dispatch(PageLoaded(tuple(result)), generation):
            logger.info("Loaded %d initial images", len(result))
            self._trigger_size_update("load_images")
        return True

    def load_more(self) -> bool:
        """Append the next page.

        Returns:
            True if a request was issued, False if the call was a no-op
        """
        with self._lock:
            state = self._state
            if (
                self._closed
                or not state.has_more_data
                or not state.images
                or isinstance(state, GalleryInitial | GalleryLoading | GalleryLoadingMore)
            ):
                return False
            generation = self._generation
            next_page = state.current_page + 1
            state = self._apply(LoadMoreStarted())
        self._publish(state)

        logger.debug("Loading page %d", next_page)
        result = self._fetch(next_page)
        if isinstance(result, GalleryFailure):
            self._dispatch(LoadFailed(result), generation)
            return True

        if self._dispatch(PageLoaded(tuple(result)), generation):
            if result:
                logger.info("Loaded %d more images (page %d)", len(result), next_page)
                self._trigger_size_update("load_more")
            else:
                logger.info("No more images after page %d", next_page - 1)
        return True

    def retry(self) -> bool:
        """Re-issue the request that put the controller into the error state.

        Returns:
            True if a request was issued
        """
        state = self._state
        if not isinstance(state, GalleryError):
            return False
        logger.debug("Retrying %s after %s error", state.retry, state.kind)
        if state.retry == "more":
            return self.load_more()
        if state.retry == "clear":
            return self.clear_cache()
        return self.load_initial()

    def clear_cache(self) -> bool:
        """Delete the whole cache and reload the first page.

        On failure the controller enters an error state of kind ``cache``
        that keeps the loaded images.

        Returns:
            True if the cache was cleared
        """
        with self._lock:
            if self._closed or isinstance(self._state, GalleryLoading):
                return False

        logger.info("Clearing image cache")
        try:
            self.repository.clear_cache_to_limit(0)
        except CacheFailure as e:
            logger.warning("Failed to clear cache: %s", e)
            with self._lock:
                if self._closed:
                    return False
                # A page still loading belongs to the state this error replaces
                self._generation += 1
                state = self._apply(ClearFailed(e))
            self._publish(state)
            return False

        if self.monitor is not None:
            # Publishes the zero size through _on_cache_size
            self.monitor.reset(0, "clear")
        self._dispatch(CacheSizeChanged(0))

        self.load_initial()
        return True

    def fill_cache(self) -> FillResult:
        """Run the bulk-fill diagnostic and refresh the cache size.

        Raises:
            RuntimeError: If no filler was configured
            CacheFailure: If the cache cannot be written
        """
        if self.filler is None:
            raise RuntimeError("No cache filler configured")
        result = self.filler.fill()
        if self.monitor is not None:
            self.monitor.refresh("fast_fill")
        else:
            self._dispatch(CacheSizeChanged(result.final_size))
        return result

    def refresh_cache_size(self, operation: str = "manual_refresh") -> int:
        """Recompute the cache size immediately."""
        if self.monitor is None:
            size = self.repository.get_cache_size()
            self._dispatch(CacheSizeChanged(size))
            return size
        return self.monitor.refresh(operation)

    def _trigger_size_update(self, operation: str) -> None:
        if self.monitor is not None:
            self.monitor.trigger(operation)

    def _on_cache_size(self, sample: CacheSizeSample) -> None:
        self._dispatch(CacheSizeChanged(sample.size_bytes))

    def close(self) -> None:
        """Stop publishing; results of in-flight requests are discarded."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._generation += 1
            self._listeners.clear()
        if self._unsubscribe_monitor is not None:
            self._unsubscribe_monitor()
        logger.debug("Gallery controller closed")
