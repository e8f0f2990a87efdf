"""Infrastructure: settings, logging, callbacks, cancellation."""

from .callbacks import ExecutorCallbacks, fire
from .cancellation import CancellationSignal, guarded
from .logging import JSONFormatter, configure_logging, log_data
from .settings import ExecutorSettings, get_settings, settings

__all__ = [
    "CancellationSignal",
    "ExecutorCallbacks",
    "ExecutorSettings",
    "JSONFormatter",
    "configure_logging",
    "fire",
    "get_settings",
    "guarded",
    "log_data",
    "settings",
]
