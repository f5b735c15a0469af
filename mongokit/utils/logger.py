import json
import logging
import sys
from typing import Any, Dict

from mongokit.config import get_settings

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class CustomJsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        settings = get_settings()
        self.service = settings.SERVICE_NAME
        self.environment = settings.ENVIRONMENT

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record as a JSON string.

        Args:
            record: The log record to format

        Returns:
            str: JSON formatted log string
        """
        log_object: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "service": self.service,
            "environment": self.environment,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_object:
                log_object[key] = value

        if record.exc_info:
            log_object["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_object, default=str)


def configure_logging() -> None:
    """Configure global logging settings."""
    log_level = getattr(logging, get_settings().LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter())

    logging.basicConfig(
        level=log_level,
        handlers=[handler],
        force=True
    )

    # The driver is chatty at debug level
    logging.getLogger("pymongo").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Name for the logger

    Returns:
        logging.Logger: Configured logger instance
    """
    return logging.getLogger(name)
