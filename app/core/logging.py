"""JSON log lines for the admission layer.

Every record becomes one JSON object:

    {"ts": ..., "level": ..., "logger": ..., "event": "rate_limit.exceeded",
     "request_id": ..., "tier": ..., "key_hash": ..., "origin": ..., "user_id": ...,
     ...other extras}

Correlation fields come first so limiter, cache and access events for one
request line up. Credentials are masked before the line is written, and
limiter/cache keys are only ever logged through ``hash_for_log``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from app.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

REDACTED_KEYS = frozenset(
    {
        "api_key",
        "x-api-key",
        "authorization",
        "token",
        "secret",
        "password",
        "password_hash",
        "salt",
        "cookie",
        "set-cookie",
    }
)

# Emitted in this order ahead of any other extras
CORRELATION_FIELDS = ("request_id", "tier", "key_hash", "origin", "user_id")

# Attributes every LogRecord carries; anything else on a record is an extra
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def set_request_id(request_id: str | None) -> None:
    _request_id.set(request_id)


def get_request_id() -> str | None:
    return _request_id.get()


def clear_request_id() -> None:
    _request_id.set(None)


def hash_for_log(value: str) -> str:
    """First 16 hex chars of the SHA-256 of ``value``.

    Used for counter keys, cache keys and API keys so log lines can be
    correlated without exposing who the caller is.
    """

    return hashlib.sha256(value.encode()).hexdigest()[:16]


def redact(value: Any) -> Any:
    """Mask credential-looking keys at any depth of mappings and sequences."""

    if isinstance(value, dict):
        return {k: REDACTED if k.lower() in REDACTED_KEYS else redact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(v) for v in value]
    return value


def record_extras(record: logging.LogRecord) -> dict[str, Any]:
    """Return the caller-supplied ``extra`` fields of ``record``, redacted."""

    extras = {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }
    return redact(extras)


class EventJsonFormatter(logging.Formatter):
    """Render a record as a single JSON line with correlation fields first."""

    def format(self, record: logging.LogRecord) -> str:
        extras = record_extras(record)
        extras.setdefault("request_id", get_request_id())

        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        for name in CORRELATION_FIELDS:
            value = extras.pop(name, None)
            if value is not None:
                line[name] = value
        line.update(extras)

        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)

        return json.dumps(line, default=str)


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install the JSON handler on the root logger.

    Output goes to stdout, or to a size-rotated file when ``output=file``
    (``max_bytes=0`` keeps a single growing file).
    """

    cfg = log_settings or settings.log

    if cfg.output.lower() == "file":
        path = Path(cfg.file_path or "logs/app.log")
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            path,
            maxBytes=cfg.max_bytes,
            backupCount=cfg.backup_count,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(EventJsonFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # uvicorn installs its own handlers; keep its lines from printing twice
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
