from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from ticket_notifications.core.settings import get_settings

_log_context_var: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})
_configured = False

_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "component"}
_SENSITIVE_KEY_FRAGMENTS = ("secret", "token", "password", "apikey", "api_key", "receipt")
_MAX_ERROR_LENGTH = 500


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach ``fields`` to every record logged inside the block.

    Nested blocks merge with the enclosing context; inner values win.
    """
    merged = {**_log_context_var.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _log_context_var.set(merged)
    try:
        yield
    finally:
        _log_context_var.reset(token)


def current_log_context() -> dict[str, Any]:
    return dict(_log_context_var.get())


def get_request_id() -> str | None:
    value = _log_context_var.get().get("request_id")
    return value if isinstance(value, str) else None


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, str | int | float | bool):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, list | tuple | set):
        return [_json_safe(item) for item in value]
    return str(value)


def _redacted(key: str, value: Any) -> Any:
    lowered = key.lower()
    if any(fragment in lowered for fragment in _SENSITIVE_KEY_FRAGMENTS):
        return "[redacted]"
    return _json_safe(value)


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: ts, level, msg, component, then context and extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "msg": record.getMessage(),
            "component": getattr(record, "component", record.name),
        }

        for key, value in _log_context_var.get().items():
            payload[key] = _redacted(key, value)

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES or key.startswith("_"):
                continue
            payload[key] = _redacted(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["error_type"] = type(exc).__name__
            payload["error"] = str(exc)[:_MAX_ERROR_LENGTH] or "unknown"

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True)


def configure_logging() -> None:
    global _configured
    if _configured:
        return

    settings = get_settings()
    level = logging.getLevelName(settings.LOG_LEVEL.strip().upper() or "INFO")
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # httpx logs every request at INFO; queue long-polls would flood the stream.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
