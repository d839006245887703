"""Structured logging for the API.

Log lines are JSON objects whose ``message`` is a dotted event name
(``rate_limit.exceeded``, ``upstream.fetch_failed``...) with the event's
fields merged in from ``extra``. Two rules hold for every record:

- Client identities are never logged raw, only as ``key_hash``
  (see ``hash_client_identity``).
- Secrets, signatures, history payloads and cookie values are replaced with
  ``[REDACTED]`` before formatting, at any nesting depth.

The current request id is kept in a context variable so records emitted
anywhere during a request carry it.
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

# Keys whose values never reach a log line (matched case-insensitively)
SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "secret",
        "rate_limit_secret",
        "token",
        "signature",
        "payload",
        "password",
        "client_ip",
        "x-forwarded-for",
    }
)

# Standard LogRecord attributes; everything else on a record came from ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def hash_client_identity(identity: str) -> str:
    """Short, stable digest of a client identity for log correlation."""
    return hashlib.sha256(identity.encode("utf-8")).hexdigest()[:16]


def sensitive_keys_for(cookie_names: Iterable[str] = ()) -> set[str]:
    """Default sensitive keys plus deployment-specific cookie names.

    Args:
        cookie_names: Names of cookies carrying client-held history tokens.

    Returns:
        Lower-cased set of keys to redact.
    """
    return set(SENSITIVE_KEYS_DEFAULT) | {name.lower() for name in cookie_names}


def _redact(value: Any, sensitive_keys: frozenset[str] | set[str]) -> Any:
    if isinstance(value, Mapping):
        return {
            k: REDACTED if str(k).lower() in sensitive_keys else _redact(v, sensitive_keys)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v, sensitive_keys) for v in value)
    return value


def event_fields(record: LogRecord, sensitive_keys: frozenset[str] | set[str]) -> dict[str, Any]:
    """Return the ``extra`` fields of a record with sensitive values redacted."""
    fields: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _RECORD_ATTRS or key.startswith("_"):
            continue
        if key.lower() in sensitive_keys:
            fields[key] = REDACTED
        else:
            fields[key] = _redact(value, sensitive_keys)
    return fields


class RequestIdFilter(logging.Filter):
    """Stamp records with the current request id when they lack one."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact sensitive ``extra`` fields in place.

    Needed for the plain-text formatter; the JSON formatter redacts on its
    own as well.
    """

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(sensitive_keys or SENSITIVE_KEYS_DEFAULT)

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in event_fields(record, self.sensitive_keys).items():
            setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, fields."""

    def __init__(
        self,
        *,
        sensitive_keys: Iterable[str] | None = None,
        ensure_ascii: bool = True,
    ) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(sensitive_keys or SENSITIVE_KEYS_DEFAULT)
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        line: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            line["request_id"] = request_id

        line.update(event_fields(record, self.sensitive_keys))

        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)

        return json.dumps(line, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output != "file":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(log_settings.file_path or "logs/app.log")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if log_settings.max_bytes > 0:
        return RotatingFileHandler(
            file_path,
            maxBytes=log_settings.max_bytes,
            backupCount=log_settings.backup_count,
            encoding="utf-8",
        )
    return logging.FileHandler(file_path, encoding="utf-8")


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install a single root handler with request-id stamping and redaction.

    The configured history/signature cookie names are redacted in addition
    to the default sensitive keys. ``APP_DEBUG`` forces DEBUG level.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.
    """
    cfg = log_settings or settings.log
    level = logging.DEBUG if settings.app.debug else getattr(logging, cfg.level.upper(), logging.INFO)
    sensitive_keys = sensitive_keys_for(
        (settings.rate_limit.history_cookie, settings.rate_limit.signature_cookie)
    )

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter(sensitive_keys))
    if cfg.format == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter(sensitive_keys=sensitive_keys))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Avoid double logging from uvicorn if it gets re-configured
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
