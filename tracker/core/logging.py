"""Logging setup and per-request log context for the tracking service."""

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional


_request_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar("tracker_request_context", default=None)


def current_request_context() -> Dict[str, Any]:
    """Context fields bound to the running request, if any."""
    return dict(_request_context.get() or {})


def bind_request_context(**fields) -> Token:
    """
    Bind fields to the log context of the current request.

    Each asyncio task and worker thread sees its own copy, so concurrent
    requests never overwrite each other's fields. Values that are None are
    ignored.

    Returns:
        Token to pass to ``reset_request_context`` when the request ends
    """
    merged = current_request_context()
    merged.update({key: value for key, value in fields.items() if value is not None})
    return _request_context.set(merged)


def reset_request_context(token: Token) -> None:
    """Restore the log context that was active before ``bind_request_context``."""
    _request_context.reset(token)


class RequestContextFilter(logging.Filter):
    """Copies the current request context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = current_request_context()
        # formats may reference %(request_id)s, so it is always set
        record.request_id = context.get("request_id", "-")
        extra = getattr(record, "extra_fields", None) or {}
        record.extra_fields = {**context, **extra}
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "extra_fields", None) or {})

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the root logger for the service.

    Args:
        level: Logging level name
        log_file: Optional path for a rotating log file
        log_format: Format string for plain-text lines
        structured: Emit JSON lines instead of plain text
        max_size: Size in bytes at which the log file rotates
        backup_count: Number of rotated files to keep

    Returns:
        The root logger
    """
    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            fmt=log_format or "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    context_filter = RequestContextFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)

    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

    # api and storage loggers stay at INFO or quieter
    root_level = root_logger.level
    logging.getLogger("tracker.core").setLevel(root_level)
    logging.getLogger("tracker.api").setLevel(max(root_level, logging.INFO))
    logging.getLogger("tracker.storage").setLevel(max(root_level, logging.INFO))

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)
