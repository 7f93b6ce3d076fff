from typing import Any, Optional


class AppError(Exception):
    """Operational error that the HTTP boundary turns into the error envelope.

    Each subclass fixes the HTTP status and a default ``code``; call sites may
    override the code (e.g. ``INVALID_CREDENTIALS``) and attach ``details``.
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "Something went wrong"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        self.message = message or self.message
        if code is not None:
            self.code = code
        self.details = details if details is not None else []
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Invalid input data"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_FAILED"
    message = "Authentication failed"


class TokenInvalid(AuthenticationError):
    code = "INVALID_TOKEN"
    message = "Invalid token"


class TokenExpired(AuthenticationError):
    code = "TOKEN_EXPIRED"
    message = "Token has expired"


class TokenRevoked(AuthenticationError):
    code = "TOKEN_REVOKED"
    message = "Token has been revoked"


class SessionExpired(AuthenticationError):
    code = "SESSION_EXPIRED"
    message = "Session has expired, please login again"


class AuthorizationError(AppError):
    status_code = 403
    code = "INSUFFICIENT_PERMISSIONS"
    message = "Insufficient permissions to access this resource"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    message = "Resource already exists"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    message = "Too many requests, please try again later"


class RevocationStoreError(Exception):
    """The revocation list backend could not be read or written."""
