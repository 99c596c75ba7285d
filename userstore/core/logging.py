"""
userstore/core/logging.py

Purpose: Logging configuration

- Standardizes log format
- Controls log levels
- Structured JSON logging in production
- Context tracking (user_id, operation, collection)
"""

import logging
import sys
import json
from datetime import datetime, timezone
from contextvars import ContextVar
from typing import Any, Dict, Optional
from userstore.core.config import settings, Settings

# Record attributes copied into log output when present
CONTEXT_FIELDS = ("user_id", "operation", "collection", "chunk")


class StructuredFormatter(logging.Formatter):
    """
    Custom formatter for structured JSON logging in production.
    Makes logs easily parseable by monitoring tools.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """
    Human-readable formatter for development environment.
    """

    COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        message = (
            f"{color}[{timestamp}] {record.levelname:<8}{self.RESET} "
            f"{record.name}: {record.getMessage()}"
        )

        context_parts = [
            f"{field}={getattr(record, field)}"
            for field in ("user_id", "operation")
            if hasattr(record, field)
        ]
        if context_parts:
            message += f" [{', '.join(context_parts)}]"

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging(config: Optional[Settings] = None) -> logging.Logger:
    """
    Configures logging for the userstore logger tree.
    Uses JSON format in production, human-readable in development.

    Returns:
        The configured ``userstore`` logger
    """
    config = config or settings
    log_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    if config.is_production:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(DevelopmentFormatter())

    logger = logging.getLogger("userstore")
    logger.setLevel(log_level)
    logger.handlers.clear()
    logger.addHandler(handler)

    # Driver chatter
    logging.getLogger("motor").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)

    logger.info(
        "Logging configured",
        extra={"operation": "setup_logging"}
    )
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger living under the ``userstore`` namespace
    """
    if name == "userstore" or name.startswith("userstore."):
        return logging.getLogger(name)
    return logging.getLogger(f"userstore.{name}")


_log_context: ContextVar[Dict[str, Any]] = ContextVar("userstore_log_context", default={})


class ContextFilter(logging.Filter):
    """
    Copies the active LogContext onto each record.
    Values passed explicitly through ``extra`` win.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class LogContext:
    """
    Context manager for adding structured context to logs.
    Context is held per task, so concurrent operations do not mix.

    Usage:
        with LogContext(user_id="u1", operation="block_user"):
            logger.info("Blocking user")
    """

    def __init__(self, **kwargs):
        self.context = kwargs
        self._token = None

    def __enter__(self):
        self._token = _log_context.set({**_log_context.get(), **self.context})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _log_context.reset(self._token)
