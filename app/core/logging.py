"""Structured logging for the gateway.

Every record passes through two handler filters before formatting:

- ``RequestIdFilter`` copies the correlation id of the request being served
  (kept in a contextvar by the request middleware) onto the record.
- ``SensitiveDataFilter`` replaces credentials and raw client addresses in
  ``extra`` payloads (nested mappings included) with ``[REDACTED]``.

Rate limit and auth events identify clients and keys through
``fingerprint()``, a short sha256 prefix that lets operators correlate log
lines for one client without storing its address.
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

REDACTED = "[REDACTED]"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Credentials, then client identity (compared lowercase)
SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "api_key",
        "api_keys",
        "app_api_keys",
        "x-api-key",
        "authorization",
        "cookie",
        "set-cookie",
        "password",
        "secret",
        "token",
        "client_ip",
        "client_key",
        "x-forwarded-for",
        "x-real-ip",
    }
)

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

# Loggers whose output would repeat client keys or double up our own lines
_QUIET_LOGGERS = {"sqlalchemy.engine": logging.WARNING}
_DETACHED_LOGGERS = ("uvicorn", "uvicorn.access")


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    """Return the correlation id of the request being served, if any."""
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def fingerprint(value: str) -> str:
    """Return a stable, non-reversible 16 hex char tag for ``value``.

    Used in place of client addresses and API keys in log events.
    """
    return hashlib.sha256(value.encode()).hexdigest()[:16]


def _redact(value: Any, sensitive_keys: frozenset[str]) -> Any:
    if isinstance(value, Mapping):
        return {
            k: REDACTED if str(k).lower() in sensitive_keys else _redact(v, sensitive_keys)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v, sensitive_keys) for v in value)
    return value


def _extra_fields(record: LogRecord, sensitive_keys: frozenset[str]) -> dict[str, Any]:
    """Collect the ``extra`` payload of a record with sensitive values redacted."""
    fields: dict[str, Any] = {}
    for key, value in vars(record).items():
        if key in _RECORD_ATTRS or key.startswith("_"):
            continue
        fields[key] = REDACTED if key.lower() in sensitive_keys else _redact(value, sensitive_keys)
    return fields


class RequestIdFilter(logging.Filter):
    """Attach the current request id unless the caller set one explicitly."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact sensitive ``extra`` fields in place so every formatter is safe."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(
            k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT)
        )

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in _extra_fields(record, self.sensitive_keys).items():
            setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """Render a record as one JSON object per line.

    Output keys: ``timestamp``, ``level``, ``logger``, ``message``, the
    optional ``request_id``, every (redacted) ``extra`` field and, when the
    record carries exception info, the formatted traceback as ``exception``.
    """

    def __init__(
        self,
        *,
        sensitive_keys: Iterable[str] | None = None,
        ensure_ascii: bool = True,
    ) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(
            k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT)
        )
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id

        payload.update(_extra_fields(record, self.sensitive_keys))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    """Return a stdout handler, or a (rotating) file handler for ``output=file``."""

    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(log_settings.file_path or "logs/ratelimit.log")
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
    """Install the single root handler described by ``LOG_*`` settings.

    Safe to call repeatedly; existing root handlers are replaced.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())

    if cfg.format.lower() == "plain":
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
    for name in _DETACHED_LOGGERS:
        logging.getLogger(name).propagate = False
