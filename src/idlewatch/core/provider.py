"""Facade wiring one configuration into an idle timer and its bridges."""

from __future__ import annotations

import math

from idlewatch.core.bridges import ActivityBridge, LifecycleBridge
from idlewatch.core.clock import Clock
from idlewatch.core.timer import IdleTimer, IdleTimerConfig, Notification


def format_remaining(ms: float) -> str:
    """Format *ms* milliseconds as ``M:SS``, rounding partial seconds up."""
    total = int(math.ceil(max(ms, 0.0) / 1000.0))
    return f"{total // 60}:{total % 60:02d}"


class IdleTimerProvider:
    """Owns one :class:`IdleTimer` together with its activity and lifecycle bridges.

    Closing the provider (directly or by leaving a ``with`` block) tears the
    timer down and cancels its pending deadline.
    """

    def __init__(self, config: IdleTimerConfig, clock: Clock | None = None) -> None:
        self.timer = IdleTimer(config, clock)
        self.activity = ActivityBridge(self.timer, respect_keyboard=config.respect_keyboard)
        self.lifecycle = LifecycleBridge(self.timer)

    def close(self) -> None:
        self.timer.close()

    def __enter__(self) -> IdleTimerProvider:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def create_idle_timer(
    timeout: float,
    *,
    on_idle: Notification | None = None,
    on_active: Notification | None = None,
    on_action: Notification | None = None,
    respect_keyboard: bool = False,
    clock: Clock | None = None,
) -> IdleTimerProvider:
    """Build an :class:`IdleTimerProvider` from keyword arguments."""
    config = IdleTimerConfig(
        timeout=timeout,
        on_idle=on_idle,
        on_active=on_active,
        on_action=on_action,
        respect_keyboard=respect_keyboard,
    )
    return IdleTimerProvider(config, clock)
