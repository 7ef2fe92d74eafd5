"""Custom exception classes for the application."""

from __future__ import annotations


class AppError(Exception):
    """Base application error class."""

    default_reason = "error"

    def __init__(self, message, status_code=400, reason=None):
        """Initialize the error."""
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.reason = reason or self.default_reason

    def to_dict(self):
        """Serialize the error for a JSON body or a realtime error event."""
        return {"message": self.message, "reason": self.reason}


class ValidationError(AppError):
    """Raised when user input fails validation."""

    default_reason = "validation_failed"

    def __init__(self, message="Validation failed.", errors=None, reason=None):
        """Initialize the error."""
        super().__init__(message, 400, reason)
        self.errors = errors or []

    def to_dict(self):
        """Include the field-level errors."""
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class AuthenticationError(AppError):
    """Raised when a request carries no valid credential."""

    default_reason = "unauthenticated"

    def __init__(self, message="Authentication required.", reason=None):
        """Initialize the error."""
        super().__init__(message, 401, reason)


class PermissionDenied(AppError):
    """Raised when the caller may not act on a resource."""

    default_reason = "forbidden"

    def __init__(self, message="You do not have permission to do that.", reason=None):
        """Initialize the error."""
        super().__init__(message, 403, reason)


class NotFoundError(AppError):
    """Raised when a resource is not found."""

    default_reason = "not_found"

    def __init__(self, message="Resource not found.", reason=None):
        """Initialize the error."""
        super().__init__(message, 404, reason)


class InvariantViolation(AppError):
    """Raised when an operation would break an aggregate invariant.

    These are expected conditions the caller can recover from (duplicate
    submission, full group, challenge already started, ...), not bugs.
    """

    default_reason = "conflict"

    def __init__(self, message="Operation conflicts with current state.", reason=None):
        """Initialize the error."""
        super().__init__(message, 409, reason)
