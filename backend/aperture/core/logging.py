"""
Structured logging configuration for Aperture.

All log records carry the fields ``action`` and ``target``.  ``target`` is
usually a hostname, node id or session id.  Output is a pipe-separated text
line by default, or one JSON object per line when ``LOG_JSON`` is set.

Usage::

    from aperture.core.logging import configure_logging, get_logger

    configure_logging()                # call once at startup
    logger = get_logger(__name__)
    logger.info("expanding", extra={"action": "expand", "target": "service:Billing"})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from aperture.config import get_settings

# ── Constants ────────────────────────────────────────────────────────────────

_TEXT_FORMAT: str = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "action=%(action)s | target=%(target)s | %(message)s"
)
_DATE_FORMAT: str = "%Y-%m-%dT%H:%M:%S%z"
_ROOT_LOGGER_NAME: str = "aperture"
_QUIET_LOGGERS: tuple[str, ...] = ("uvicorn.access", "httpx", "httpcore")


def _with_defaults(record: logging.LogRecord) -> logging.LogRecord:
    for key in ("action", "target"):
        if not hasattr(record, key):
            setattr(record, key, "-")
    return record


# ── Formatters ───────────────────────────────────────────────────────────────

class StructuredFormatter(logging.Formatter):
    """Text formatter; missing ``action``/``target`` render as ``-``."""

    def format(self, record: logging.LogRecord) -> str:
        return super().format(_with_defaults(record))


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        _with_defaults(record)
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "action": record.action,  # type: ignore[attr-defined]
            "target": record.target,  # type: ignore[attr-defined]
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


# ── Public API ───────────────────────────────────────────────────────────────

def configure_logging(level: Optional[str] = None) -> None:
    """Initialise the ``aperture`` logger tree.

    Args:
        level: Override the log level.  Defaults to ``settings.LOG_LEVEL``,
            or ``DEBUG`` when ``settings.DEBUG`` is set.
    """
    settings = get_settings()
    if level is None:
        level = "DEBUG" if settings.DEBUG else settings.LOG_LEVEL

    root_logger = logging.getLogger(_ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    # Repeated calls (tests, reloads) must not stack handlers.
    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        if settings.LOG_JSON:
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(StructuredFormatter(_TEXT_FORMAT, datefmt=_DATE_FORMAT))
        root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured at %s level",
        level,
        extra={"action": "logging_init", "target": settings.APP_NAME},
    )


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``aperture`` namespace.

    ``__name__`` of a module inside the package is used as is; any other
    name is prefixed with ``aperture.``.
    """
    if name == _ROOT_LOGGER_NAME or name.startswith(f"{_ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")
