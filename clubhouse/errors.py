"""
Error taxonomy.

Services raise these; the API renders every one of them as
`{"detail": message}` with the class's status code.
"""

from __future__ import annotations


class ClubhouseError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ClubhouseError):
    """Malformed or missing input."""

    status_code = 400
    default_message = "Invalid request"


class AuthError(ClubhouseError):
    """Bad credentials, or a missing/invalid/expired token."""

    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(ClubhouseError):
    """Authenticated but not permitted."""

    status_code = 403
    default_message = "Permission denied"


class NotFoundError(ClubhouseError):
    """Missing resource."""

    status_code = 404
    default_message = "Not found"


class ConflictError(ClubhouseError):
    """Duplicate unique key."""

    status_code = 409
    default_message = "Resource already exists"


class InternalError(ClubhouseError):
    """Store or network failure."""

    status_code = 500
