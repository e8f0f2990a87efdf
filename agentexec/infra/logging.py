"""Logging helpers for agentexec.

Library code only creates loggers under the ``agentexec`` namespace and
never installs handlers on import.  Applications opt in with
:func:`configure_logging`::

    import logging
    from agentexec.infra.logging import configure_logging

    configure_logging(logging.DEBUG, json_format=True)

Structured payloads are attached to records through ``extra`` under the
``agentexec_data`` key and rendered by :class:`JSONFormatter`.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER_NAME = "agentexec"
DATA_ATTR = "agentexec_data"


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data = getattr(record, DATA_ATTR, None)
        if data is not None:
            payload["data"] = data
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(
    level: int | str = logging.WARNING,
    *,
    json_format: bool = False,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """Attach a handler to the ``agentexec`` logger and set its level.

    Args:
        level: Logging level (int or name such as ``"DEBUG"``).
        json_format: Use :class:`JSONFormatter` instead of a plain text format.
        handler: Custom handler.  Defaults to a ``StreamHandler``.  Passing
            the same handler twice does not register it twice.

    Returns:
        The configured ``agentexec`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    if handler is None:
        # Replace our own default handler rather than stacking a new one.
        for existing in list(logger.handlers):
            if getattr(existing, "_agentexec_default", False):
                logger.removeHandler(existing)
        handler = logging.StreamHandler()
        handler._agentexec_default = True  # type: ignore[attr-defined]

    if json_format:
        handler.setFormatter(JSONFormatter())
    elif handler.formatter is None:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    if handler not in logger.handlers:
        logger.addHandler(handler)
    return logger


def log_data(**fields: Any) -> dict[str, Any]:
    """Build the ``extra`` mapping carrying a structured payload."""
    return {DATA_ATTR: fields}
