"""CLI entry point for idlewatch.

Uses Click to expose the ``idlewatch`` command group: ``simulate`` replays a
scripted timeline against a manual clock, ``watch`` drives a live timer
from lines typed on stdin.
"""

from __future__ import annotations

import logging
import sys
from typing import Callable, TypeVar

import click

import idlewatch
from idlewatch.core.bridges import ActivitySource, LifecycleEvent, LifecycleKind
from idlewatch.core.clock import Clock, ManualClock, SystemClock
from idlewatch.core.provider import IdleTimerProvider, create_idle_timer, format_remaining
from idlewatch.core.timer import ConfigurationError, IdleTimer

T = TypeVar("T")

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DEFAULT_TIMEOUT_MS = 30000.0

Event = tuple[str, float]

_EVENT_ACTIONS: dict[str, Callable[[IdleTimerProvider, float], None]] = {
    "activity": lambda p, at: p.activity.on_activity(ActivitySource.TOUCH),
    "keyboard": lambda p, at: p.activity.on_activity(ActivitySource.KEYBOARD),
    "show-keyboard": lambda p, at: p.activity.keyboard_shown(),
    "hide-keyboard": lambda p, at: p.activity.keyboard_hidden(),
    "reset": lambda p, at: p.activity.on_activity(ActivitySource.PROGRAMMATIC),
    "pause": lambda p, at: p.timer.pause(),
    "resume": lambda p, at: p.timer.resume(),
    "suspend": lambda p, at: p.lifecycle.handle(LifecycleEvent(LifecycleKind.SUSPENDED, at)),
    "wake": lambda p, at: p.lifecycle.handle(LifecycleEvent(LifecycleKind.RESUMED, at)),
    "status": lambda p, at: click.echo(f"[{at:.0f}] {_status_message(p.timer)}"),
}


def _run(action: Callable[[], T]) -> T:
    """Execute *action*, converting ``ConfigurationError`` to a CLI error.

    On ``ConfigurationError`` the message is printed to stderr and the
    process exits with code 1.
    """
    try:
        return action()
    except ConfigurationError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


def _status_message(timer: IdleTimer) -> str:
    """Describe the timer the way a countdown display would."""
    if timer.get_is_idle():
        return "idle"
    remaining = format_remaining(timer.get_remaining_time())
    if timer.is_paused:
        return f"{remaining} remaining (paused)"
    return f"{remaining} remaining"


def _build(timeout: float, clock: Clock, respect_keyboard: bool = False) -> IdleTimerProvider:
    """Create a provider whose notifications are echoed with the elapsed clock time."""
    start = clock.now()

    def announce(kind: str) -> Callable[[], None]:
        return lambda: click.echo(f"[{clock.now() - start:.0f}] {kind}")

    return _run(
        lambda: create_idle_timer(
            timeout,
            on_idle=announce("idle"),
            on_active=announce("active"),
            on_action=announce("action"),
            respect_keyboard=respect_keyboard,
            clock=clock,
        )
    )


class EventType(click.ParamType):
    """A scripted event written as ``name@ms``, e.g. ``pause@3000``."""

    name = "event"

    def convert(self, value, param, ctx) -> Event:
        if isinstance(value, tuple):
            return value
        name, sep, at = value.partition("@")
        if not sep or name not in _EVENT_ACTIONS:
            self.fail(
                f"{value!r} is not NAME@MS with NAME one of {', '.join(sorted(_EVENT_ACTIONS))}",
                param,
                ctx,
            )
        try:
            ms = float(at)
        except ValueError:
            self.fail(f"{at!r} is not a time in milliseconds", param, ctx)
        if ms < 0:
            self.fail(f"event time must not be negative, got {at}", param, ctx)
        return name, ms


_timeout_option = click.option(
    "--timeout",
    type=float,
    default=_DEFAULT_TIMEOUT_MS,
    show_default=True,
    envvar="IDLEWATCH_TIMEOUT",
    help="Inactivity timeout in milliseconds.",
)


@click.group()
@click.version_option(version=idlewatch.__version__, prog_name="idlewatch")
@click.option("-v", "--verbose", is_flag=True, help="Log state machine transitions.")
def cli(verbose: bool) -> None:
    """idlewatch: edge-triggered idle detection."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=_LOG_FORMAT)


@cli.command()
@click.argument("events", nargs=-1, type=EventType())
@_timeout_option
@click.option("--respect-keyboard", is_flag=True, help="Ignore input while the keyboard is open.")
@click.option("--until", type=float, default=None, help="Advance the clock to MS before exiting.")
def simulate(
    events: tuple[Event, ...], timeout: float, respect_keyboard: bool, until: float | None
) -> None:
    """Replay EVENTS (NAME@MS) against a manual clock starting at 0."""
    last = 0.0
    for name, at in events:
        if at < last:
            raise click.UsageError(f"{name}@{at:.0f} is earlier than the previous event")
        last = at
    if until is not None and until < last:
        raise click.UsageError(f"--until {until:.0f} is earlier than the last event")

    clock = ManualClock()
    with _build(timeout, clock, respect_keyboard) as provider:
        for name, at in events:
            clock.advance_to(at)
            _EVENT_ACTIONS[name](provider, at)
        if until is not None:
            clock.advance_to(until)
        click.echo(f"[{clock.now():.0f}] {_status_message(provider.timer)}")


@cli.command()
@_timeout_option
def watch(timeout: float) -> None:
    """Run a live timer; each stdin line is a command.

    An empty line or ``a`` records activity, ``p`` pauses, ``r`` resumes,
    ``s`` prints the status and ``q`` quits.
    """
    clock = SystemClock()
    with _build(timeout, clock) as provider:
        click.echo(f"Watching for {format_remaining(timeout)} of inactivity")
        for line in sys.stdin:
            command = line.strip().lower()
            if command in ("", "a"):
                provider.activity.on_activity()
            elif command == "p":
                provider.timer.pause()
            elif command == "r":
                provider.timer.resume()
            elif command == "s":
                click.echo(_status_message(provider.timer))
            elif command == "q":
                break
            else:
                click.echo(f"Unknown command: {command}", err=True)
