"""Process-wide logging for the dispenser backend.

Serial events carry their context (port, command, container, raw line) as
``extra=`` fields; the formatter appends whichever of them are present so a
single grep on ``port=`` or ``device_id=`` follows one link or one device.
"""

from __future__ import annotations

import logging
import time
from logging.config import dictConfig
from typing import Iterable, Sequence

from settings import get_settings

SERIAL_CONTEXT_KEYS = ("port", "baud_rate", "state", "line", "command")
DEVICE_CONTEXT_KEYS = ("device_id", "container")

_CONTEXT_KEYS = SERIAL_CONTEXT_KEYS + DEVICE_CONTEXT_KEYS + ("reason",)

# httpx logs every request at INFO, which drowns the serial traffic.
_QUIET_LOGGERS = ("httpx", "httpcore")

_configured = False


class ContextualFormatter(logging.Formatter):
    """Append known ``extra=`` fields as ``key=value`` after the message.

    Timestamps are rendered in UTC to match the trailing ``Z`` in the format.
    """

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._context_keys: Sequence[str] = tuple(extra_keys or _CONTEXT_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = self._render_context(record)
        return f"{message} | {context}" if context else message

    def _render_context(self, record: logging.LogRecord) -> str:
        pairs = []
        for key in self._context_keys:
            value = getattr(record, key, None)
            if value is None:
                continue
            if key == "line":
                # Raw device output may contain quotes or control characters.
                value = repr(value)
            pairs.append(f"{key}={value}")
        return " ".join(pairs)


def configure_logging(level: str | int | None = None) -> None:
    """Install the contextual stream handler on the root logger.

    Only the first call has an effect, so ``create_app()`` can be invoked
    repeatedly in tests. ``level`` overrides ``LOG_LEVEL`` when given.
    """
    global _configured
    if _configured:
        return

    log_level = level if level is not None else get_settings().log_level

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": ContextualFormatter,
                    "fmt": "%(asctime)sZ %(levelname)-7s [%(threadName)s] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "extra_keys": list(_CONTEXT_KEYS),
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "contextual",
                }
            },
            "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
            "root": {"handlers": ["console"], "level": log_level},
        }
    )

    _configured = True
