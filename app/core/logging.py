"""Logging utilities with JSON formatting, redaction, and request correlation.

This module centralizes logging configuration, including:
- request_id propagation via contextvars
- Redaction of credentials on log records
- Hashing of subject/client identifiers so quotas can be correlated in logs
  without recording who the caller was
- JSON formatter and stdout/rotating-file handlers
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from app.core.config import LogSettings, settings

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

REDACTED = "[REDACTED]"

SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "api_key",
        "x-api-key",
        "app_api_keys",
        "authorization",
        "token",
        "secret",
        "password",
        "cookie",
        "set-cookie",
        "subject_id",
        "client_ip",
        "x-forwarded-for",
        "x-real-ip",
    }
)

# Built-in LogRecord attributes that never belong in the extra payload
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime", "taskName"}


def set_request_id(request_id: str | None) -> None:
    """Bind a correlation id to the current context."""

    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    """Return the correlation id bound to the current context, if any."""

    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def hash_identifier(value: str) -> str:
    """Return a short, stable digest of an identifier for log correlation.

    Examples:
        >>> len(hash_identifier("user-1"))
        16
    """

    return hashlib.sha256(value.encode()).hexdigest()[:16]


def _redact(value: Any, sensitive_keys: frozenset[str]) -> Any:
    """Recursively replace sensitive mapping values with ``[REDACTED]``."""

    if isinstance(value, Mapping):
        return {
            k: REDACTED if str(k).lower() in sensitive_keys else _redact(v, sensitive_keys)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v, sensitive_keys) for v in value)
    return value


def _extra_fields(record: LogRecord, sensitive_keys: frozenset[str]) -> dict[str, Any]:
    """Collect the ``extra=`` fields of a record with secrets redacted."""

    fields: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _RESERVED_ATTRS or key.startswith("_"):
            continue
        if key.lower() in sensitive_keys:
            fields[key] = REDACTED
        else:
            fields[key] = _redact(value, sensitive_keys)
    return fields


class RequestIdFilter(logging.Filter):
    """Attach request_id from context when absent on the record."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact sensitive fields on the record before formatting."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in _extra_fields(record, self.sensitive_keys).items():
            setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """Render a LogRecord as one JSON object per line."""

    def __init__(
        self,
        *,
        sensitive_keys: Iterable[str] | None = None,
        ensure_ascii: bool = True,
    ) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id

        payload.update(_extra_fields(record, self.sensitive_keys))

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    """Construct a stdout or file handler from settings."""

    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(log_settings.file_path or "logs/app.log")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if log_settings.max_bytes:
        return RotatingFileHandler(
            file_path,
            maxBytes=log_settings.max_bytes,
            backupCount=log_settings.backup_count,
            encoding="utf-8",
        )
    return logging.FileHandler(file_path, encoding="utf-8")


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Configure the root logger with correlation, redaction and formatting.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())

    if cfg.format.lower() == "plain":
        formatter: logging.Formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s"
        )
    else:
        formatter = JsonFormatter()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # Avoid double logging from uvicorn if it gets re-configured
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
