"""
Custom error classes for the application.

Services return Ok/Err results; routes turn an Err into one of these
errors and the exception handler in main.py renders the JSON envelope.
"""
from typing import Any, Optional

from tempmail.models.result import Err, ErrorKind


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        status_code: int = 500,
        details: Optional[Any] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert error to the response envelope."""
        body = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details is not None:
            body["details"] = self.details
        return body


class AuthError(AppError):
    """Authentication related errors."""

    def __init__(self, message: str, code: str = "AUTH_ERROR"):
        super().__init__(message, code, status_code=401)


class AdminDisabledError(AppError):
    """Admin endpoints are off because no admin token is configured."""

    def __init__(self):
        super().__init__(
            "Admin endpoints are disabled.",
            "ADMIN_DISABLED",
            status_code=403
        )


class InvalidRequestError(AppError):
    """Invalid request format."""

    def __init__(self, message: str = "Validation failed", details: Optional[Any] = None):
        super().__init__(message, "VALIDATION_FAILED", status_code=400, details=details)


class RateLimitError(AppError):
    """Rate limit exceeded."""

    def __init__(self, message: str = "Too many requests. Please wait a moment."):
        super().__init__(message, "RATE_LIMITED", status_code=429)


# HTTP status returned to our callers for each provider error kind
KIND_STATUS = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.AUTH_FAILED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.UPSTREAM_UNREACHABLE: 503,
    ErrorKind.UPSTREAM_FAILURE: 502,
    ErrorKind.SESSION_NOT_FOUND: 404,
    ErrorKind.UNKNOWN: 500,
}


class MailboxError(AppError):
    """A classified mailbox failure (provider or local session lookup)."""

    def __init__(self, kind: ErrorKind, message: str, details: Optional[Any] = None):
        self.kind = kind
        super().__init__(message, kind.value, status_code=KIND_STATUS[kind], details=details)

    @classmethod
    def from_err(cls, err: Err) -> "MailboxError":
        return cls(err.kind, err.message, err.details)


class SessionNotFoundError(MailboxError):
    """No live session for the requested address."""

    def __init__(self, message: str = "Email account not found. Please create an account first."):
        super().__init__(ErrorKind.SESSION_NOT_FOUND, message)
