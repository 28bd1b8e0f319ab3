"""idlewatch: edge-triggered idle detection that survives host suspension."""

from idlewatch.core.timer import ConfigurationError, IdleTimer, IdleTimerConfig, TimerState

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "IdleTimer",
    "IdleTimerConfig",
    "TimerState",
    "__version__",
]
