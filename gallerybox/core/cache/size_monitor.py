"""Debounced aggregate cache size tracking."""

import logging
import threading
from collections import deque
from collections.abc import Callable
from datetime import datetime

from gallerybox.core.clock import Clock, MonotonicClock, ScheduledCall
from gallerybox.core.cache.models import CacheSizeSample
from gallerybox.core.errors import GalleryFailure


logger = logging.getLogger(__name__)

SizeListener = Callable[[CacheSizeSample], None]

DEFAULT_DEBOUNCE_INTERVAL = 0.1
DEFAULT_HISTORY_CAPACITY = 50
DEFAULT_STALENESS_SECONDS = 2.0


class _Scheduling:
    """Placeholder held in the pending slot while a call is being scheduled."""

    def cancel(self) -> None:
        pass


_SCHEDULING = _Scheduling()


class CacheSizeMonitor:
    """Recompute the aggregate cache size and publish changes to listeners.

    ``trigger()`` is cheap and can be called once per cache write; bursts are
    coalesced into at most one recompute per debounce interval. While a
    recompute is scheduled further triggers are dropped. The scheduled run is
    placed at ``last recompute + interval`` so the end of a burst is always
    measured.

    Every recompute appends a sample to a bounded history (oldest dropped
    first). Listeners are notified only when the size changed or when the
    last notification is older than the staleness ceiling.
    """

    def __init__(
        self,
        size_fn: Callable[[], int],
        clock: Clock | None = None,
        debounce_interval: float = DEFAULT_DEBOUNCE_INTERVAL,
        history_capacity: int = DEFAULT_HISTORY_CAPACITY,
        staleness_seconds: float = DEFAULT_STALENESS_SECONDS,
    ):
        if history_capacity < 1:
            raise ValueError("history_capacity must be at least 1")

        self._size_fn = size_fn
        self._clock = clock or MonotonicClock()
        self.debounce_interval = debounce_interval
        self.staleness_seconds = staleness_seconds

        self._lock = threading.Lock()
        self._recompute_lock = threading.Lock()
        self._pending: ScheduledCall | None = None
        self._last_recompute: float | None = None
        self._last_publish: float | None = None
        self._size_bytes = 0
        self._history: deque[CacheSizeSample] = deque(maxlen=history_capacity)
        self._listeners: list[SizeListener] = []
        self._closed = False

    @property
    def size_bytes(self) -> int:
        """Last known aggregate size."""
        return self._size_bytes

    @property
    def history(self) -> tuple[CacheSizeSample, ...]:
        """Read-only snapshot of the recorded samples, oldest first."""
        with self._lock:
            return tuple(self._history)

    @property
    def is_pending(self) -> bool:
        return self._pending is not None

    def subscribe(self, listener: SizeListener) -> Callable[[], None]:
        """Register a listener for size changes.

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

    def trigger(self, operation: str = "auto_update") -> bool:
        """Request a debounced recompute.

        Returns:
            True if a recompute was scheduled, False if the trigger was dropped
        """
        with self._lock:
            if self._closed or self._pending is not None:
                return False

            delay = 0.0
            if self._last_recompute is not None:
                elapsed = self._clock.monotonic() - self._last_recompute
                delay = max(0.0, self.debounce_interval - elapsed)
            self._pending = _SCHEDULING

        handle = self._clock.call_later(delay, lambda: self._run_scheduled(operation))
        with self._lock:
            # The call may already have run if the scheduler fired synchronously
            if self._pending is _SCHEDULING:
                self._pending = handle
        return True

    def _run_scheduled(self, operation: str) -> None:
        with self._lock:
            self._pending = None
            if self._closed:
                return
        self.refresh(operation)

    def refresh(self, operation: str = "auto_update") -> int:
        """Recompute the size immediately with a full scan.

        Failures of the size function are logged and the previous value is
        kept.

        Returns:
            The aggregate size after the recompute
        """
        with self._recompute_lock:
            with self._lock:
                self._last_recompute = self._clock.monotonic()
            try:
                size = self._size_fn()
            except (GalleryFailure, OSError) as e:
                logger.warning("Failed to compute cache size: %s", e)
                return self._size_bytes
            sample, listeners = self._record(size, operation)
        # Listeners run unlocked so they may trigger or refresh again
        self._notify(sample, listeners)
        return size

    def reset(self, size_bytes: int = 0, operation: str = "clear") -> None:
        """Set the size without scanning, e.g. optimistically after a clear."""
        with self._recompute_lock:
            sample, listeners = self._record(size_bytes, operation)
        self._notify(sample, listeners)

    def _record(
        self, size: int, operation: str
    ) -> tuple[CacheSizeSample, list[SizeListener]]:
        with self._lock:
            previous = self._history[-1].size_bytes if self._history else None
            old_size = self._size_bytes
            self._size_bytes = size

            sample = CacheSizeSample(
                timestamp=datetime.now(),
                size_bytes=size,
                operation=operation,
                change_bytes=size - previous if previous is not None else None,
            )
            self._history.append(sample)

            now = self._clock.monotonic()
            stale = (
                self._last_publish is None
                or now - self._last_publish > self.staleness_seconds
            )
            should_publish = size != old_size or stale
            if should_publish:
                self._last_publish = now
            listeners = list(self._listeners) if should_publish else []
            history_length = len(self._history)

        logger.debug(
            "Cache %s: %s (%s) | samples: %d",
            operation.upper(),
            sample.formatted_size,
            sample.formatted_change,
            history_length,
        )
        return sample, listeners

    @staticmethod
    def _notify(sample: CacheSizeSample, listeners: list[SizeListener]) -> None:
        for listener in listeners:
            try:
                listener(sample)
            except Exception as e:
                logger.warning("Cache size listener failed: %s", e)

    def trend(self) -> str:
        """Describe the average size change over the last three samples."""
        history = self.history
        if len(history) < 3:
            return "Insufficient data"

        recent = history[-3:]
        changes = [sample.change_mb for sample in recent[1:]]
        average = sum(changes) / len(changes)

        if average > 1.0:
            return f"Growing rapidly (+{average:.1f}MB/operation)"
        if average > 0.1:
            return f"Growing steadily (+{average:.1f}MB/operation)"
        if average > -0.1:
            return f"Stable ({average:.1f}MB/operation)"
        if average > -1.0:
            return f"Shrinking slowly ({average:.1f}MB/operation)"
        return f"Shrinking rapidly ({average:.1f}MB/operation)"

    def peak(self) -> CacheSizeSample | None:
        """Largest recorded sample."""
        history = self.history
        return max(history, key=lambda sample: sample.size_bytes) if history else None

    def valley(self) -> CacheSizeSample | None:
        """Smallest recorded sample."""
        history = self.history
        return min(history, key=lambda sample: sample.size_bytes) if history else None

    def close(self) -> None:
        """Cancel any scheduled recompute and stop accepting triggers."""
        with self._lock:
            self._closed = True
            pending, self._pending = self._pending, None
        if pending is not None:
            pending.cancel()
