"""Monotonic clock and delayed-call scheduling.

Debouncing and staleness checks measure elapsed time with a monotonic clock so
that wall-clock adjustments cannot stretch or shrink an interval.
"""

import threading
import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable


@runtime_checkable
class ScheduledCall(Protocol):
    """Handle for a pending delayed call."""

    def cancel(self) -> None:
        """Cancel the call if it has not run yet."""
        ...


@runtime_checkable
class Clock(Protocol):
    """Time source plus delayed-call scheduler."""

    def monotonic(self) -> float:
        """Seconds on a monotonic timeline."""
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        """Run ``callback`` once after ``delay`` seconds."""
        ...


class MonotonicClock:
    """Clock backed by ``time.monotonic`` and daemon ``threading.Timer`` threads."""

    def monotonic(self) -> float:
        return time.monotonic()

    def call_later(
        self, delay: float, callback: Callable[[], None]
    ) -> threading.Timer:
        timer = threading.Timer(max(delay, 0.0), callback)
        timer.daemon = True
        timer.start()
        return timer
