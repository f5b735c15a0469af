"""
Shared utilities: structured logging and the mongokit exception hierarchy.
"""

from mongokit.utils.exceptions import (
    MongoKitError,
    ObjectIdSeedError,
    InvalidObjectIdError,
    DatabaseConfigError,
    DatabaseConnectionError,
    DatabaseOperationError,
    UpdateError,
)
from mongokit.utils.logger import configure_logging, get_logger

__all__ = [
    "MongoKitError",
    "ObjectIdSeedError",
    "InvalidObjectIdError",
    "DatabaseConfigError",
    "DatabaseConnectionError",
    "DatabaseOperationError",
    "UpdateError",
    "configure_logging",
    "get_logger",
]
