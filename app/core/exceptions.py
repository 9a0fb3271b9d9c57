"""
Domain errors raised by the services.

Routes let these propagate; app.main turns them into JSON responses with
user-displayable messages.
"""
from typing import Any, Dict, Optional


class DirectoryError(Exception):
    """Base class for every error a service reports to its caller."""

    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(DirectoryError):
    """Caller lacks the admin bypass or the required module grant."""

    status_code = 403
    default_message = "You do not have permission to perform this action"


class ValidationFailed(DirectoryError):
    """Missing or malformed input."""

    status_code = 400
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, fields: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.fields = fields or {}


class NotFound(DirectoryError):
    """Referenced role, module or user does not exist."""

    status_code = 404
    default_message = "Resource not found"


class DuplicateSlug(DirectoryError):
    """Uniqueness violation surfaced from the store."""

    status_code = 409
    default_message = "A module with this slug already exists"


class PersistenceFailure(DirectoryError):
    """Generic store-layer failure. The cause is logged, never shown."""

    status_code = 500
    default_message = "Something went wrong"
