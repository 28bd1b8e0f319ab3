"""Clock abstraction: wall-clock time plus cancelable deferred callbacks.

All times are milliseconds.  :class:`SystemClock` is backed by the real
clock and ``threading.Timer``; :class:`ManualClock` only moves when told to,
which makes it suitable for tests and scripted simulations.
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable

# Longer waits overflow the platform time_t inside threading.Timer.
_MAX_WAIT_S = min(threading.TIMEOUT_MAX, 86400.0)


class ScheduledCallback:
    """Handle for a deferred callback.  Cancellation is best effort."""

    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class Clock(ABC):
    """Source of the current time and of deferred callbacks."""

    @abstractmethod
    def now(self) -> float:
        """Return the current wall-clock time in milliseconds."""

    @abstractmethod
    def schedule(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledCallback:
        """Arrange for *callback* to run once *delay_ms* milliseconds from now."""


class _ThreadingCallback(ScheduledCallback):
    """Waits in chunks of at most ``_MAX_WAIT_S`` seconds, re-arming until due."""

    def __init__(self, due: float, callback: Callable[[], None], delay_ms: float) -> None:
        super().__init__(due, callback)
        self._left = delay_ms / 1000.0
        self._arm()

    def _arm(self) -> None:
        wait = min(self._left, _MAX_WAIT_S)
        self._left -= wait
        self._timer = threading.Timer(wait, self._expire)
        self._timer.daemon = True
        self._timer.start()

    def _expire(self) -> None:
        if self.cancelled:
            return
        if self._left > 0:
            self._arm()
        else:
            self.callback()

    def cancel(self) -> None:
        super().cancel()
        self._timer.cancel()


class SystemClock(Clock):
    """Real clock; callbacks fire on ``threading.Timer`` daemon threads."""

    def now(self) -> float:
        return time.time() * 1000.0

    def schedule(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledCallback:
        delay_ms = max(delay_ms, 0.0)
        return _ThreadingCallback(self.now() + delay_ms, callback, delay_ms)


class ManualClock(Clock):
    """A clock that only advances when :meth:`advance` or :meth:`advance_to` is called.

    Due callbacks fire in due-time order (ties in scheduling order) and
    :meth:`now` reports each callback's due time while it runs.  With
    ``reliable_cancel=False`` cancelled callbacks fire anyway, mimicking host
    timer facilities that cannot guarantee cancellation.
    """

    def __init__(self, start: float = 0.0, reliable_cancel: bool = True) -> None:
        self._now = float(start)
        self._reliable_cancel = reliable_cancel
        self._queue: list[tuple[float, int, ScheduledCallback]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def schedule(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledCallback:
        handle = ScheduledCallback(self._now + max(delay_ms, 0.0), callback)
        heapq.heappush(self._queue, (handle.due, next(self._counter), handle))
        return handle

    def pending(self) -> int:
        """Return the number of callbacks that would still fire."""
        if not self._reliable_cancel:
            return len(self._queue)
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def advance(self, ms: float) -> None:
        """Move time forward by *ms* milliseconds."""
        self.advance_to(self._now + ms)

    def advance_to(self, target: float) -> None:
        """Move time forward to *target*, firing every callback due on the way."""
        if target < self._now:
            raise ValueError(f"cannot move clock backwards from {self._now} to {target}")
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            self._now = due
            if handle.cancelled and self._reliable_cancel:
                continue
            handle.callback()
        self._now = max(self._now, target)
