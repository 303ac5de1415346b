"""
Tagged results shared by the provider client, the services and the
Python client.

A call either returns Ok(value) or Err(kind, message, details). Callers
branch on `result.ok` and never see raw transport exceptions.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Error taxonomy used to decide retry vs. give-up vs. surface-to-user."""
    INVALID_REQUEST = "INVALID_REQUEST"
    AUTH_FAILED = "AUTH_FAILED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    UPSTREAM_UNREACHABLE = "UPSTREAM_UNREACHABLE"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    UNKNOWN = "UNKNOWN"

    @property
    def is_terminal(self) -> bool:
        """True when the account is gone and polling must not resume."""
        return self in (ErrorKind.NOT_FOUND, ErrorKind.AUTH_FAILED, ErrorKind.SESSION_NOT_FOUND)


# Default messages per kind
ERROR_MESSAGES = {
    ErrorKind.INVALID_REQUEST: "Bad request - invalid data provided",
    ErrorKind.AUTH_FAILED: "Authentication failed - invalid credentials",
    ErrorKind.NOT_FOUND: "Resource not found",
    ErrorKind.CONFLICT: "Account already exists",
    ErrorKind.RATE_LIMITED: "Too many requests - please try again later",
    ErrorKind.UPSTREAM_UNREACHABLE: "Network error - unable to reach Mail.tm API",
    ErrorKind.UPSTREAM_FAILURE: "Mail.tm API failure - please try again later",
    ErrorKind.SESSION_NOT_FOUND: "Email account not found. Please create an account first.",
    ErrorKind.UNKNOWN: "Unknown error occurred",
}


def classify_status(status_code: int) -> ErrorKind:
    """
    Map a provider HTTP status to an ErrorKind.

    400 -> INVALID_REQUEST, 401 -> AUTH_FAILED, 404 -> NOT_FOUND,
    409 -> CONFLICT, 429 -> RATE_LIMITED, 5xx -> UPSTREAM_FAILURE,
    anything else -> UNKNOWN.
    """
    if status_code == 400:
        return ErrorKind.INVALID_REQUEST
    if status_code == 401:
        return ErrorKind.AUTH_FAILED
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code == 409:
        return ErrorKind.CONFLICT
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if 500 <= status_code < 600:
        return ErrorKind.UPSTREAM_FAILURE
    return ErrorKind.UNKNOWN


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result."""
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed result carrying a classified kind."""
    kind: ErrorKind
    message: str = ""
    details: Optional[Any] = field(default=None)

    def __post_init__(self):
        if not self.message:
            object.__setattr__(self, "message", ERROR_MESSAGES[self.kind])

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
