"""Adapters that feed host events into an :class:`IdleTimer`."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from idlewatch.core.timer import IdleTimer

logger = logging.getLogger(__name__)


class ActivitySource(Enum):
    """Where an activity event came from."""

    TOUCH = "touch"
    GESTURE = "gesture"
    KEYBOARD = "keyboard"
    PROGRAMMATIC = "programmatic"


class LifecycleKind(Enum):
    """Host lifecycle transitions."""

    SUSPENDED = "suspended"
    RESUMED = "resumed"


@dataclass(frozen=True)
class LifecycleEvent:
    kind: LifecycleKind
    at: float


_APP_STATES = {
    "background": LifecycleKind.SUSPENDED,
    "inactive": LifecycleKind.SUSPENDED,
    "active": LifecycleKind.RESUMED,
}


class ActivityBridge:
    """Translate raw interaction events into timer activity.

    With ``respect_keyboard`` set, keyboard input and any input made while
    the on-screen keyboard is shown is dropped.  Programmatic events map to
    :meth:`IdleTimer.reset` and are never filtered.
    """

    def __init__(self, timer: IdleTimer, respect_keyboard: bool = False) -> None:
        self._timer = timer
        self._respect_keyboard = respect_keyboard
        self._keyboard_visible = False

    @property
    def keyboard_visible(self) -> bool:
        return self._keyboard_visible

    def keyboard_shown(self) -> None:
        self._keyboard_visible = True

    def keyboard_hidden(self) -> None:
        self._keyboard_visible = False

    def on_activity(self, source: ActivitySource = ActivitySource.TOUCH) -> bool:
        """Forward an activity event; return ``False`` if it was filtered out."""
        if source is ActivitySource.PROGRAMMATIC:
            self._timer.reset()
            return True
        if self._respect_keyboard and (
            source is ActivitySource.KEYBOARD or self._keyboard_visible
        ):
            logger.debug("Dropping %s activity while keyboard is respected", source.value)
            return False
        self._timer.notify_activity()
        return True


class LifecycleBridge:
    """Translate host suspend/resume notifications into timer calls.

    Repeated notifications of the same kind are collapsed so the timer sees
    each real transition once.
    """

    def __init__(self, timer: IdleTimer) -> None:
        self._timer = timer
        self._last_kind = LifecycleKind.RESUMED

    def handle(self, event: LifecycleEvent) -> None:
        if event.kind is self._last_kind:
            logger.debug("Dropping duplicate %s event at %.0f", event.kind.value, event.at)
            return
        self._last_kind = event.kind
        if event.kind is LifecycleKind.SUSPENDED:
            self._timer.suspend(event.at)
        else:
            self._timer.resume_from_suspension(event.at)

    def on_app_state_change(self, state: str, at: float | None = None) -> None:
        """Handle a host app-state string such as ``"background"`` or ``"active"``."""
        try:
            kind = _APP_STATES[state]
        except KeyError:
            raise ValueError(
                f"unknown app state {state!r}, expected one of {', '.join(sorted(_APP_STATES))}"
            ) from None
        if at is None:
            at = self._timer.clock.now()
        self.handle(LifecycleEvent(kind, at))
