"""Logging configuration for SmartCommerce.

Application code logs through the standard library:

    from smartcommerce.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Session created", extra={"user_id": user_id})

Request-scoped values (correlation id, user id, session id) are set once per
request with ``set_context`` and attached to every record emitted while the
request is being handled.

Security audit events (failed logins, lockouts, session revocation) go
through structlog so they can be shipped as structured events:

    audit = get_audit_logger()
    audit.warning("user_locked_out", identifier=identifier, ip=ip)
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# Attributes present on every LogRecord; anything else came from ``extra``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


class ContextFilter(logging.Filter):
    """Inject the current request context into each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    """Render records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


class HumanFormatter(logging.Formatter):
    """Readable single-line format with context appended."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-8s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _log_context.get()
        if context:
            rendered = " ".join(f"{k}={v}" for k, v in context.items())
            line = f"{line} [{rendered}]"
        return line


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure root logging and structlog.

    Args:
        level: Log level name
        json_output: Emit JSON lines instead of the human format
        log_file: Optional file to log to in addition to stderr
    """
    formatter: logging.Formatter = JSONFormatter() if json_output else HumanFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(ContextFilter())
        root.addHandler(handler)
    root.setLevel(level.upper())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(ensure_ascii=False)
            if json_output
            else structlog.dev.ConsoleRenderer(colors=False),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""
    return logging.getLogger(name)


def get_audit_logger() -> structlog.stdlib.BoundLogger:
    """Get the structured logger used for security audit events."""
    return structlog.get_logger("smartcommerce.audit")


def set_context(**kwargs: Any) -> None:
    """Add values to the request-scoped logging context."""
    context = dict(_log_context.get())
    context.update({k: v for k, v in kwargs.items() if v is not None})
    _log_context.set(context)
    structlog.contextvars.bind_contextvars(**{k: v for k, v in kwargs.items() if v is not None})


def clear_context() -> None:
    """Reset the request-scoped logging context."""
    _log_context.set({})
    structlog.contextvars.clear_contextvars()


def get_context() -> Dict[str, Any]:
    """Return a copy of the current logging context."""
    return dict(_log_context.get())


class LogContext:
    """Context manager that scopes logging context to a block.

    Example:
        with LogContext(task="cleanup_sessions"):
            logger.info("Starting cleanup")
    """

    def __init__(self, **kwargs: Any):
        self._values = kwargs
        self._token = None

    def __enter__(self) -> "LogContext":
        context = dict(_log_context.get())
        context.update(self._values)
        self._token = _log_context.set(context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self._token is not None:
            _log_context.reset(self._token)
        return False
