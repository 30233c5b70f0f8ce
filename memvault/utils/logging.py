"""Structured logging for memvault."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from memvault.utils.config import get_config


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: The log record to format.

        Returns:
            JSON-formatted log string.
        """
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_entry["data"] = record.extra_data

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as readable text.

        Args:
            record: The log record to format.

        Returns:
            Formatted log string.
        """
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        message = f"[{timestamp}] {record.levelname:8} | {record.name} | {record.getMessage()}"

        if hasattr(record, "extra_data"):
            message += f" | {json.dumps(record.extra_data, default=str)}"

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


class MemVaultLogger(logging.Logger):
    """Custom logger with structured data support."""

    def _log_with_data(
        self,
        level: int,
        msg: str,
        data: Optional[dict[str, Any]] = None,
        *args: Any,
        **kwargs: Any,
    ) -> None:
        """Log message with optional structured data.

        Args:
            level: Log level.
            msg: Log message.
            data: Optional structured data to include.
            *args: Additional positional arguments.
            **kwargs: Additional keyword arguments.
        """
        if not self.isEnabledFor(level):
            return
        extra = kwargs.get("extra", {})
        if data:
            extra["extra_data"] = data
        kwargs["extra"] = extra
        kwargs.setdefault("stacklevel", 3)
        super().log(level, msg, *args, **kwargs)

    def info_with_data(
        self, msg: str, data: Optional[dict[str, Any]] = None, *args: Any, **kwargs: Any
    ) -> None:
        """Log info message with optional data."""
        self._log_with_data(logging.INFO, msg, data, *args, **kwargs)

    def warning_with_data(
        self, msg: str, data: Optional[dict[str, Any]] = None, *args: Any, **kwargs: Any
    ) -> None:
        """Log warning message with optional data."""
        self._log_with_data(logging.WARNING, msg, data, *args, **kwargs)

    def error_with_data(
        self, msg: str, data: Optional[dict[str, Any]] = None, *args: Any, **kwargs: Any
    ) -> None:
        """Log error message with optional data."""
        self._log_with_data(logging.ERROR, msg, data, *args, **kwargs)

    def debug_with_data(
        self, msg: str, data: Optional[dict[str, Any]] = None, *args: Any, **kwargs: Any
    ) -> None:
        """Log debug message with optional data."""
        self._log_with_data(logging.DEBUG, msg, data, *args, **kwargs)


def setup_logging(
    name: str = "memvault",
    level: Optional[str] = None,
    log_format: Optional[str] = None,
) -> MemVaultLogger:
    """Set up and return a configured logger.

    Args:
        name: Logger name.
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Format type ('json' or 'text').

    Returns:
        Configured MemVaultLogger instance.
    """
    config = get_config()
    level = level or config.log_level
    log_format = log_format or config.log_format

    logging.setLoggerClass(MemVaultLogger)

    logger = logging.getLogger(name)
    logger.__class__ = MemVaultLogger

    # Clear existing handlers
    logger.handlers.clear()

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logger.level)

    if log_format.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    logger.addHandler(handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


# Create default logger
logger = setup_logging()


def get_logger(name: str) -> MemVaultLogger:
    """Get a child logger with the given name.

    Args:
        name: Child logger name.

    Returns:
        Configured MemVaultLogger instance.
    """
    return setup_logging(f"memvault.{name}")
