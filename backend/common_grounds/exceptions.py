"""
Domain exceptions for the Common Grounds backend.

Every error a service can raise on purpose belongs to the closed set in
`ErrorKind`. Each kind has exactly one exception class, and the HTTP layer
dispatches on `error.kind` (never on message text) to pick a status code.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Externally visible error kinds."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_TOKEN = "INVALID_TOKEN"
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    NOT_ENROLLED = "NOT_ENROLLED"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    RATE_LIMITED = "RATE_LIMITED"
    EMAIL_DELIVERY_FAILED = "EMAIL_DELIVERY_FAILED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class CommonGroundsError(Exception):
    """
    Base exception for all Common Grounds errors.

    Subclasses pin `kind`; the message is safe to show to the caller.
    """

    kind: ErrorKind

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for API responses."""
        body: dict[str, Any] = {"error": self.kind.value, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CommonGroundsError):
    """Malformed or out-of-range input."""

    kind = ErrorKind.VALIDATION_ERROR


class InvalidTokenError(CommonGroundsError):
    """Magic link or session credential is unusable.

    Absent, expired and already-used links all raise this with the same
    message so callers cannot tell them apart.
    """

    kind = ErrorKind.INVALID_TOKEN

    def __init__(self, message: str = "Magic link is invalid or has expired"):
        super().__init__(message)


class AuthenticationRequiredError(CommonGroundsError):
    """No credential was supplied."""

    kind = ErrorKind.AUTHENTICATION_REQUIRED

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class SessionExpiredError(CommonGroundsError):
    """Credential is well-formed but no live session backs it."""

    kind = ErrorKind.SESSION_EXPIRED

    def __init__(self, message: str = "Session has expired"):
        super().__init__(message)


class NotEnrolledError(CommonGroundsError):
    kind = ErrorKind.NOT_ENROLLED

    def __init__(self, message: str = "You must be enrolled in this class"):
        super().__init__(message)


class NotAuthorizedError(CommonGroundsError):
    """Acting on a resource the caller does not own or control."""

    kind = ErrorKind.NOT_AUTHORIZED


class NotFoundError(CommonGroundsError):
    kind = ErrorKind.NOT_FOUND


class AlreadyExistsError(CommonGroundsError):
    """Duplicate enrollment, friendship or handle."""

    kind = ErrorKind.ALREADY_EXISTS


class RateLimitExceededError(CommonGroundsError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, retry_after: int):
        super().__init__(message, details={"retry_after": retry_after})
        self.retry_after = retry_after


class EmailDeliveryError(CommonGroundsError):
    kind = ErrorKind.EMAIL_DELIVERY_FAILED

    def __init__(self, message: str = "Failed to send magic link email"):
        super().__init__(message)


class ServiceUnavailableError(CommonGroundsError):
    """External dependency unreachable and nothing cached to fall back on."""

    kind = ErrorKind.SERVICE_UNAVAILABLE

    def __init__(self, message: str, service: str):
        super().__init__(message, details={"service": service})
        self.service = service


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.INVALID_TOKEN: 400,
    ErrorKind.AUTHENTICATION_REQUIRED: 401,
    ErrorKind.SESSION_EXPIRED: 401,
    ErrorKind.NOT_ENROLLED: 403,
    ErrorKind.NOT_AUTHORIZED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ALREADY_EXISTS: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.EMAIL_DELIVERY_FAILED: 502,
    ErrorKind.SERVICE_UNAVAILABLE: 503,
}
