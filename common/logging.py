from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping


_STANDARD_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}

_PROMOTED_FIELDS = ("component", "event", "op", "request_id")

SENSITIVE_KEYS = frozenset(
    {
        "password",
        "old_password",
        "new_password",
        "password_hash",
        "token",
        "access_token",
        "refresh_token",
        "secret",
    }
)

REDACTED = "***"

DEFAULT_LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def redact(values: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``values`` with credential-bearing entries masked."""

    cleaned: dict[str, Any] = {}
    for key, value in values.items():
        if key.lower() in SENSITIVE_KEYS:
            cleaned[key] = REDACTED
        elif isinstance(value, Mapping):
            cleaned[key] = redact(value)
        else:
            cleaned[key] = value
    return cleaned


def _default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return repr(value)


class StructuredLogFormatter(logging.Formatter):
    """Renders each record as a single JSON line."""

    def __init__(self, component: str) -> None:
        super().__init__()
        self._component = component

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name or self._component,
            "message": record.getMessage(),
        }

        context: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_ATTRS:
                continue
            if key in _PROMOTED_FIELDS:
                payload[key] = value
            elif key == "context" and isinstance(value, Mapping):
                context.update(value)
            else:
                context[key] = value

        if context:
            payload["context"] = redact(context)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        compact = {k: v for k, v in payload.items() if v is not None}
        return json.dumps(compact, separators=(",", ":"), default=_default)


def configure_structured_logging(component: str, *, level: str | int | None = None) -> logging.Logger:
    """Configure and return a logger that emits structured JSON logs."""

    log_level = level or DEFAULT_LOG_LEVEL
    if isinstance(log_level, str):
        log_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(component)
    logger.setLevel(log_level)
    logger.propagate = False

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(StructuredLogFormatter(component=component))

    logger.handlers.clear()
    logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger whose root component carries the structured handler.

    Child loggers propagate to the configured root component, so
    ``get_logger("identity.auth")`` writes through the ``identity`` handler.
    """

    root_name = name.split(".")[0]
    root = logging.getLogger(root_name)
    if not root.handlers:
        configure_structured_logging(root_name)
    return logging.getLogger(name)


def log_schema_fields() -> Iterable[str]:
    return (
        "timestamp",
        "level",
        "component",
        "event",
        "op",
        "message",
        "request_id",
        "context",
        "exception",
    )


__all__ = [
    "REDACTED",
    "SENSITIVE_KEYS",
    "StructuredLogFormatter",
    "configure_structured_logging",
    "get_logger",
    "log_schema_fields",
    "redact",
]
