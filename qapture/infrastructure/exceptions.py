"""
Custom exception classes for the quality-management scoring application.

Provides structured error handling with user-friendly messages and proper
error categorization for catalog, scoring, persistence and configuration failures.
"""

from __future__ import annotations

from typing import Any


class QaptureError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.user_message = user_message or self._get_default_user_message()

    def _get_default_user_message(self) -> str:
        """Provide a user-friendly version of the error message."""
        return "An unexpected error occurred. Please try again."

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"


class ValidationError(QaptureError):
    """Raised when input validation fails."""

    def __init__(
        self, field: str, message: str, value: Any = None, details: dict[str, Any] | None = None
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=f"Validation failed for field '{field}': {message}",
            details=details or {"field": field, "value": value},
            user_message=f"Invalid {field.replace('_', ' ')}: {message}",
        )

    def _get_default_user_message(self) -> str:
        return f"Please check your input for {self.field.replace('_', ' ')} and try again."


class MultipleValidationError(QaptureError):
    """Raised when multiple validation errors occur."""

    def __init__(self, errors: list[ValidationError]):
        self.validation_errors = errors
        messages = [f"{e.field}: {e.message}" for e in errors]
        super().__init__(
            message=f"Multiple validation errors: {'; '.join(messages)}",
            details={
                "errors": [
                    {"field": e.field, "message": e.message, "value": e.value} for e in errors
                ]
            },
            user_message="Please correct the following errors and try again.",
        )


class CatalogError(QaptureError):
    """Raised when a criteria catalog cannot be used."""

    def __init__(
        self,
        message: str,
        catalog_name: str | None = None,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ):
        self.catalog_name = catalog_name
        super().__init__(
            message=message,
            details=details or {"catalog_name": catalog_name},
            user_message=user_message or "Catalog error occurred. Please check the catalog.",
        )


class SchemaNotFoundError(CatalogError):
    """Raised when a catalog name (after name mapping) has no schema."""

    def __init__(self, catalog_name: str, resolved_name: str | None = None):
        self.resolved_name = resolved_name or catalog_name
        super().__init__(
            message=f"Catalog '{catalog_name}' not found (resolved as '{self.resolved_name}')",
            catalog_name=catalog_name,
            details={"catalog_name": catalog_name, "resolved_name": self.resolved_name},
            user_message="The criteria catalog of this evaluation could not be found.",
        )


class MalformedSchemaError(CatalogError):
    """Raised when a catalog document is not parseable JSON."""

    def __init__(self, catalog_name: str | None, reason: str):
        self.reason = reason
        super().__init__(
            message=f"Catalog '{catalog_name}' is malformed: {reason}",
            catalog_name=catalog_name,
            details={"catalog_name": catalog_name, "reason": reason},
            user_message="The criteria catalog definition is invalid.",
        )


class CatalogVersionError(CatalogError):
    """Raised when a catalog version operation violates lineage rules."""

    def __init__(self, message: str, catalog_name: str | None = None):
        super().__init__(
            message=message,
            catalog_name=catalog_name,
            user_message="A new catalog version could not be created.",
        )


class UnresolvedAnswerKeyError(QaptureError):
    """Raised by strict callers when an answer key has no schema question."""

    def __init__(self, key: str, catalog_name: str | None = None):
        self.key = key
        super().__init__(
            message=f"Answer key '{key}' has no question in catalog '{catalog_name}'",
            details={"key": key, "catalog_name": catalog_name},
            user_message="The evaluation contains answers that do not match its catalog.",
        )


class DatabaseError(QaptureError):
    """Raised when database operations fail."""

    def __init__(self, message: str, operation: str, details: dict[str, Any] | None = None):
        self.operation = operation
        super().__init__(
            message=f"Database error during {operation}: {message}",
            details=details or {"operation": operation},
            user_message="A database error occurred. Please try again in a moment.",
        )


class ConnectionError(DatabaseError):
    """Raised when database connection fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, operation="connection", details=details)

    def _get_default_user_message(self) -> str:
        return "Unable to connect to the database. Please check your connection and try again."


class IntegrityError(DatabaseError):
    """Raised when database integrity constraints are violated."""

    def __init__(
        self,
        message: str,
        constraint: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.constraint = constraint
        super().__init__(
            message=message,
            operation="integrity_check",
            details=details or {"constraint": constraint},
        )
        self.user_message = self._get_default_user_message()

    def _get_default_user_message(self) -> str:
        if self.constraint:
            if "unique" in self.constraint.lower():
                return "This item already exists. Please use a different name (unique constraint)."
            elif "foreign" in self.constraint.lower():
                return "Referenced item no longer exists. Please refresh and try again."
        return "Data integrity error. Please check your input and try again."


class RecordNotFoundError(DatabaseError):
    """Raised when a stored record is not found."""

    def __init__(self, entity: str, record_id: object):
        self.entity = entity
        self.record_id = record_id
        super().__init__(
            message=f"{entity} with ID {record_id} not found",
            operation="lookup",
            details={"entity": entity, "record_id": record_id},
        )
        self.user_message = f"The selected {entity.lower()} could not be found."


class ConfigurationError(QaptureError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            details=details or {"config_key": config_key},
            user_message="Configuration error. Please check your settings.",
        )


class ExportError(QaptureError):
    """Raised when report export fails."""

    def __init__(
        self,
        message: str,
        export_format: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.export_format = export_format
        super().__init__(
            message=message,
            details=details or {"export_format": export_format},
            user_message="Export failed. Please try again or choose a different format.",
        )


def handle_database_error(e: Exception, operation: str = "database operation") -> DatabaseError:
    """
    Convert generic database exceptions to appropriate custom exceptions.

    Args:
        e: The original exception
        operation: Description of the operation that failed

    Returns:
        Appropriate DatabaseError subclass

    Example:
        >>> try:
        ...     session.commit()
        >>> except Exception as e:
        ...     raise handle_database_error(e, "commit transaction")
    """
    error_msg = str(e).lower()

    if "connection" in error_msg or "timeout" in error_msg:
        return ConnectionError(str(e))
    elif "unique constraint" in error_msg or "duplicate" in error_msg:
        return IntegrityError(str(e), constraint="unique")
    elif "foreign key" in error_msg or "foreign_key" in error_msg:
        return IntegrityError(str(e), constraint="foreign_key")
    elif "check constraint" in error_msg:
        return IntegrityError(str(e), constraint="check")
    else:
        return DatabaseError(str(e), operation)


def create_user_friendly_error_message(error: Exception) -> str:
    """
    Create a user-friendly error message from any exception.

    Example:
        >>> error = ValidationError("team", "cannot be empty")
        >>> create_user_friendly_error_message(error)
        'Invalid team: cannot be empty'
    """
    if isinstance(error, QaptureError):
        return error.user_message

    error_type = type(error).__name__
    messages = {
        "ValueError": "Invalid input provided. Please check your data and try again.",
        "KeyError": "Required information is missing. Please check your input.",
        "TypeError": "Incorrect data type provided. Please check your input format.",
    }
    return messages.get(
        error_type, "An unexpected error occurred. Please try again or contact support."
    )


def log_error_details(error: Exception, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Create structured error details for logging.

    Args:
        error: The exception to log
        context: Additional context information

    Returns:
        Dictionary with structured error details
    """
    details = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context or {},
    }

    if isinstance(error, QaptureError):
        details.update({"user_message": error.user_message, "error_details": error.details})

    return details
