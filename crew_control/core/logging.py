"""Logging configuration and structured formatters for the service."""

from __future__ import annotations

import json
import logging
import sys
import time
from datetime import UTC, datetime
from typing import Any

from crew_control.core.config import settings

_RESERVED_RECORD_KEYS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}
_HANDLER_MARKER = "_crew_control_handler"


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_RECORD_KEYS and not key.startswith("_")
    }


def _json_default(value: object) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class KeyValueFormatter(logging.Formatter):
    """Human-readable formatter that appends `extra` context as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = _extra_fields(record)
        if not extras:
            return base
        suffix = " ".join(f"{key}={value}" for key, value in sorted(extras.items()))
        return f"{base} {suffix}"


class JsonFormatter(logging.Formatter):
    """One JSON object per line, carrying `extra` context as top-level keys."""

    def __init__(self, *, use_utc: bool) -> None:
        super().__init__()
        self._use_utc = use_utc

    def format(self, record: logging.LogRecord) -> str:
        tz = UTC if self._use_utc else None
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=tz).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_extra_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default, ensure_ascii=True)


def _build_formatter() -> logging.Formatter:
    if settings.log_format == "json":
        return JsonFormatter(use_utc=settings.log_use_utc)
    formatter = KeyValueFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    if settings.log_use_utc:
        formatter.converter = time.gmtime
    return formatter


def configure_logging() -> None:
    """Install the service log handler on the root logger once."""
    root = logging.getLogger()
    level = logging.getLevelName(settings.log_level.upper())
    root.setLevel(level if isinstance(level, int) else logging.INFO)
    for handler in root.handlers:
        if getattr(handler, _HANDLER_MARKER, False):
            handler.setFormatter(_build_formatter())
            return
    handler = logging.StreamHandler(sys.stdout)
    setattr(handler, _HANDLER_MARKER, True)
    handler.setFormatter(_build_formatter())
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger."""
    return logging.getLogger(name)
