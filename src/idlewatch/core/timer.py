"""Idle timer core: an edge-triggered idle-detection state machine.

The timer owns a single deadline.  Activity pushes the deadline out by the
configured timeout; when the deadline passes the timer goes idle and fires
``on_idle``.  Pausing freezes the remaining budget, and suspension
(the host process no longer running scheduled callbacks) snapshots it so that
wall-clock time spent suspended is charged against the budget on resume.

All times are milliseconds.
"""

from __future__ import annotations

import functools
import logging
import math
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from idlewatch.core.clock import Clock, ScheduledCallback, SystemClock

logger = logging.getLogger(__name__)

Notification = Callable[[], None]

_CALLBACK_FIELDS = ("on_idle", "on_active", "on_action")


class TimerState(Enum):
    """Possible states of the idle timer."""

    ACTIVE = "active"
    IDLE = "idle"
    PAUSED = "paused"


class ConfigurationError(ValueError):
    """Raised when an idle timer is constructed with an invalid configuration."""


@dataclass(frozen=True)
class IdleTimerConfig:
    """Immutable configuration of one idle timer.

    ``timeout`` is in milliseconds.  ``respect_keyboard`` is honoured by the
    activity bridge, not by the timer itself.
    """

    timeout: float
    on_idle: Optional[Notification] = None
    on_active: Optional[Notification] = None
    on_action: Optional[Notification] = None
    respect_keyboard: bool = False

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` if the configuration is unusable."""
        if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)):
            raise ConfigurationError(
                f"timeout must be a number of milliseconds, got {type(self.timeout).__name__}"
            )
        if not math.isfinite(self.timeout) or self.timeout <= 0:
            raise ConfigurationError(f"timeout must be a positive duration, got {self.timeout}")
        for name in _CALLBACK_FIELDS:
            callback = getattr(self, name)
            if callback is not None and not callable(callback):
                raise ConfigurationError(f"{name} must be callable, got {type(callback).__name__}")


@dataclass(frozen=True)
class SuspensionSnapshot:
    """Remaining budget captured when the host suspended the process."""

    suspended_at: float
    remaining_at_suspension: float


class IdleTimer:
    """Edge-triggered idle detector driven by a :class:`Clock`.

    ``on_idle`` fires once per active-to-idle transition and ``on_active``
    once per idle-to-active transition; ``on_action`` fires for every
    accepted activity.  Pausing is tracked as a flag layered over the
    active/idle state rather than as a state of its own.

    Every deferred deadline callback carries a generation number.  Any
    reschedule or cancellation bumps the generation, so a callback that
    fires after it was superseded is recognised and ignored.

    Public operations are serialised by an instance lock because
    :class:`SystemClock` fires callbacks on timer threads.  Notifications run
    while the lock is held, after the state change has been applied.
    """

    def __init__(self, config: IdleTimerConfig, clock: Clock | None = None) -> None:
        config.validate()
        self._config = config
        self._clock: Clock = clock if clock is not None else SystemClock()
        self._lock = threading.RLock()

        self._idle: bool = False
        self._paused: bool = False
        self._closed: bool = False
        self._deadline: float = 0.0
        self._remaining: float = 0.0  # frozen budget while paused
        self._snapshot: SuspensionSnapshot | None = None
        self._generation: int = 0
        self._pending: ScheduledCallback | None = None

        now = self._clock.now()
        self._start_time: float = now
        self._last_reset: float | None = None
        self._last_active: float | None = now
        self._last_idle: float | None = None
        self._idle_since: float | None = None
        self._total_idle: float = 0.0

        self._schedule(config.timeout)

    # -- activity ------------------------------------------------------------

    def notify_activity(self) -> None:
        """Record user activity.

        Ignored while paused or suspended.  Otherwise restarts the full
        timeout, fires ``on_active`` if the timer was idle, then ``on_action``.
        """
        with self._lock:
            self._accept_activity(is_reset=False)

    def reset(self) -> None:
        """Behave as if activity just occurred, e.g. on a programmatic request."""
        with self._lock:
            self._accept_activity(is_reset=True)

    def deadline_expired(self, generation: int) -> None:
        """Deadline callback entry point; *generation* identifies the schedule."""
        with self._lock:
            if generation != self._generation:
                logger.debug(
                    "Ignoring stale deadline callback (generation %d, current %d)",
                    generation,
                    self._generation,
                )
                return
            self._pending = None
            if self._closed or self._paused or self._snapshot is not None:
                return
            self._enter_idle(self._clock.now())

    # -- pause / resume ------------------------------------------------------

    def pause(self) -> None:
        """Freeze the remaining time.  Idempotent; fires no notification."""
        with self._lock:
            if self._closed or self._paused:
                return
            self._remaining = self._remaining_at(self._clock.now())
            self._cancel()
            self._paused = True
            logger.debug("Paused with %.0f ms remaining", self._remaining)

    def resume(self) -> None:
        """Continue counting down from the budget frozen by :meth:`pause`.

        A no-op unless paused.  An exhausted budget makes the timer idle
        immediately instead of scheduling a zero-length deadline.
        """
        with self._lock:
            if self._closed or not self._paused:
                return
            self._paused = False
            now = self._clock.now()
            remaining = self._remaining
            logger.debug("Resumed with %.0f ms remaining", remaining)
            if remaining <= 0:
                self._enter_idle(now)
            elif self._snapshot is not None:
                # Still suspended: the budget starts draining from now.
                self._snapshot = SuspensionSnapshot(now, remaining)
            else:
                self._schedule(remaining)

    # -- host suspension -----------------------------------------------------

    def suspend(self, at: float | None = None) -> None:
        """Snapshot the remaining budget because the host is suspending.

        *at* defaults to the current time.  Idle and paused state are left
        untouched.  A second suspend without a resume in between is ignored.
        """
        with self._lock:
            if self._closed:
                return
            if self._snapshot is not None:
                logger.debug(
                    "Ignoring suspend: already suspended at %.0f", self._snapshot.suspended_at
                )
                return
            if at is None:
                at = self._clock.now()
            if self._idle:
                remaining = 0.0
            elif self._paused:
                remaining = self._remaining
            else:
                remaining = max(self._deadline - at, 0.0)
            self._cancel()
            self._snapshot = SuspensionSnapshot(at, remaining)
            logger.debug("Suspended at %.0f with %.0f ms remaining", at, remaining)

    def resume_from_suspension(self, at: float | None = None) -> None:
        """Charge the time spent suspended against the snapshotted budget.

        Without a prior :meth:`suspend` this is a no-op.  While paused the
        snapshot is simply dropped, since pause already froze the budget.
        """
        with self._lock:
            snapshot = self._snapshot
            if snapshot is None:
                logger.debug("Ignoring resume from suspension: not suspended")
                return
            self._snapshot = None
            if at is None:
                at = self._clock.now()
            if self._paused:
                return
            elapsed = at - snapshot.suspended_at
            remaining = snapshot.remaining_at_suspension - elapsed
            logger.debug(
                "Resumed from suspension after %.0f ms, %.0f ms remaining", elapsed, remaining
            )
            if remaining <= 0:
                self._enter_idle(snapshot.suspended_at + snapshot.remaining_at_suspension)
            else:
                self._schedule(remaining)

    # -- teardown ------------------------------------------------------------

    def close(self) -> None:
        """Cancel any pending deadline and make every later operation a no-op."""
        with self._lock:
            if self._closed:
                return
            self._cancel()
            self._snapshot = None
            self._closed = True

    # -- read accessors ------------------------------------------------------

    def get_remaining_time(self) -> float:
        """Return the milliseconds left before the timer goes idle, never negative."""
        with self._lock:
            if self._closed:
                return 0.0
            return self._remaining_at(self._clock.now())

    def get_is_idle(self) -> bool:
        """Return ``True`` while the timer is idle (paused or not)."""
        with self._lock:
            return self._idle

    def get_state(self) -> TimerState:
        """Return PAUSED while paused, else IDLE or ACTIVE."""
        with self._lock:
            if self._paused:
                return TimerState.PAUSED
            return TimerState.IDLE if self._idle else TimerState.ACTIVE

    @property
    def is_paused(self) -> bool:
        with self._lock:
            return self._paused

    @property
    def is_suspended(self) -> bool:
        with self._lock:
            return self._snapshot is not None

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def timeout(self) -> float:
        return self._config.timeout

    @property
    def start_time(self) -> float:
        return self._start_time

    @property
    def last_reset(self) -> float | None:
        return self._last_reset

    @property
    def last_active(self) -> float | None:
        return self._last_active

    @property
    def last_idle(self) -> float | None:
        return self._last_idle

    def get_elapsed_time(self) -> float:
        """Return the milliseconds since the timer was created."""
        with self._lock:
            return self._clock.now() - self._start_time

    def get_total_idle_time(self) -> float:
        """Return the milliseconds spent idle, including the current idle stretch."""
        with self._lock:
            total = self._total_idle
            if self._idle_since is not None:
                total += max(self._clock.now() - self._idle_since, 0.0)
            return total

    # -- private helpers -----------------------------------------------------

    def _accept_activity(self, is_reset: bool) -> None:
        if self._closed or self._paused:
            return
        if self._snapshot is not None:
            logger.debug("Ignoring activity while suspended")
            return
        now = self._clock.now()
        self._last_active = now
        if is_reset:
            self._last_reset = now
        self._schedule(self._config.timeout)
        if self._idle:
            self._enter_active(now)
        self._notify(self._config.on_action)

    def _remaining_at(self, now: float) -> float:
        if self._idle:
            return 0.0
        if self._paused:
            return self._remaining
        if self._snapshot is not None:
            elapsed = now - self._snapshot.suspended_at
            return max(self._snapshot.remaining_at_suspension - elapsed, 0.0)
        return max(self._deadline - now, 0.0)

    def _schedule(self, delay: float) -> None:
        """Replace any pending deadline with one *delay* ms from now."""
        self._cancel()
        self._deadline = self._clock.now() + delay
        self._pending = self._clock.schedule(
            delay, functools.partial(self.deadline_expired, self._generation)
        )

    def _cancel(self) -> None:
        """Cancel the pending deadline and invalidate its generation."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._generation += 1

    def _enter_idle(self, at: float) -> None:
        if self._idle:
            return
        self._idle = True
        self._last_idle = at
        self._idle_since = at
        logger.debug("Active -> idle at %.0f", at)
        self._notify(self._config.on_idle)

    def _enter_active(self, at: float) -> None:
        self._idle = False
        if self._idle_since is not None:
            self._total_idle += max(at - self._idle_since, 0.0)
            self._idle_since = None
        logger.debug("Idle -> active at %.0f", at)
        self._notify(self._config.on_active)

    @staticmethod
    def _notify(callback: Notification | None) -> None:
        if callback is not None:
            callback()
