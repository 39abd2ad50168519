"""
Logging Configuration for the tenant administration engine.

Every log line carries the identity it was emitted under:

    request_id        X-Request-ID of the HTTP request (or generated)
    principal_id      the verified caller
    impersonator_id   the operator, while a "view as user" session is applied

The values live in context variables. The HTTP middleware binds the
request and principal ids for one request; the operation layer binds the
impersonator for one operation. Each binding is reset when its scope
exits. ``IdentityContextFilter`` copies them onto each
record so both formatters (JSON for production, readable for development)
can render them.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional, Tuple

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
principal_id_var: ContextVar[Optional[str]] = ContextVar('principal_id', default=None)
impersonator_id_var: ContextVar[Optional[str]] = ContextVar('impersonator_id', default=None)

IDENTITY_FIELDS = ("request_id", "principal_id", "impersonator_id")


def identity_snapshot() -> Dict[str, str]:
    """The identity fields that are set in the current context."""
    values = {
        "request_id": request_id_var.get(),
        "principal_id": principal_id_var.get(),
        "impersonator_id": impersonator_id_var.get(),
    }
    return {key: value for key, value in values.items() if value}


class IdentityContextFilter(logging.Filter):
    """Attaches the current request identity to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        snapshot = identity_snapshot()
        for field in IDENTITY_FIELDS:
            setattr(record, field, snapshot.get(field))
        return True


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, "extra_data", None) or {}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, identity fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for field in IDENTITY_FIELDS:
            value = getattr(record, field, None)
            if value:
                payload[field] = value
        payload.update(_record_extras(record))

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class ReadableFormatter(logging.Formatter):
    """
    Compact development format:

        12:00:01.123 INFO     admin_panel.operations [req=ab12 who=u-1 via=op-9] message | k=v
    """

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }
    RESET = '\033[0m'

    @staticmethod
    def _identity_tag(record: logging.LogRecord) -> str:
        parts = []
        request_id = getattr(record, "request_id", None)
        if request_id:
            parts.append(f"req={request_id[:8]}")
        principal_id = getattr(record, "principal_id", None)
        if principal_id:
            parts.append(f"who={principal_id}")
        impersonator_id = getattr(record, "impersonator_id", None)
        if impersonator_id:
            parts.append(f"via={impersonator_id}")
        return f" [{' '.join(parts)}]" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]

        line = (
            f"{clock} {color}{record.levelname:8s}{self.RESET} "
            f"{record.name}{self._identity_tag(record)} {record.getMessage()}"
        )
        extras = _record_extras(record)
        if extras:
            line += " | " + " | ".join(f"{k}={v}" for k, v in extras.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """Adapter that merges fixed fields (e.g. ``component``) into ``extra_data``."""

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> Tuple[str, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["extra_data"] = {**self.extra, **extra.get("extra_data", {})}
        kwargs["extra"] = extra
        return msg, kwargs


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Route the root logger to stdout with identity-aware formatting.

    Args:
        level: Root log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines instead of the readable format
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if json_output else ReadableFormatter())
    handler.addFilter(IdentityContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # SQL echo is controlled by DB_ECHO_SQL, keep the engine logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str, **fields) -> ContextLogger:
    """Logger for ``name`` that tags every line with ``fields``."""
    return ContextLogger(logging.getLogger(name), fields)
