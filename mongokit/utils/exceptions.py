from typing import Any, Dict, Optional


class MongoKitError(Exception):
    """Base exception class for mongokit."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Additional error details
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ObjectIdSeedError(MongoKitError):
    """Raised when the secure random source cannot seed the ObjectId counter."""

    def __init__(self, message: str = "cannot read random object id"):
        super().__init__(message=message)


class InvalidObjectIdError(MongoKitError):
    """Exception for values that are not a 12-byte ObjectId."""

    def __init__(self, value: Any, message: Optional[str] = None):
        """
        Initialize invalid ObjectId exception.

        Args:
            value: The rejected value
            message: Custom error message
        """
        super().__init__(
            message=message or f"{value!r} is not a valid ObjectId",
            details={"value": repr(value)}
        )


class DatabaseConfigError(MongoKitError):
    """Exception for invalid database configuration."""


class DatabaseConnectionError(MongoKitError):
    """Exception for failures creating or reaching the MongoDB client."""


class DatabaseOperationError(MongoKitError):
    """Exception for a failed driver call."""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize database operation exception.

        Args:
            message: Error message
            collection: Name of the collection the call targeted
            operation: Name of the helper that failed
            details: Additional error details
        """
        error_details = details or {}
        if collection:
            error_details["collection"] = collection
        if operation:
            error_details["operation"] = operation

        super().__init__(message=message, details=error_details)


class UpdateError(MongoKitError):
    """Raised by find-and-update helpers when no document matches the filter."""

    def __init__(
        self,
        message: str = "update conditions not met",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message=message, details=details)
