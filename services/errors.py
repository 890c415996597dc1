"""
Domain exceptions raised by the session lifecycle, the auth gate and the
rate limiter. Each carries the status and error code the API maps it to.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class AuthError(Exception):
    """Base class for authentication-domain failures mapped to HTTP responses."""

    status_code: int = 401
    error_code: str = "UNAUTHORIZED"
    default_message: str = "unauthorized"

    def __init__(self, message: Optional[str] = None, *, detail: Optional[dict] = None):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.detail = detail or {}


class InvalidCredentialsError(AuthError):
    """Unknown email or wrong password; the two are deliberately identical."""

    default_message = "invalid email or password"


class InvalidTokenError(AuthError):
    default_message = "invalid token"


class TokenExpiredError(AuthError):
    default_message = "token expired"


class AuthFailure(str, Enum):
    MISSING = "missing"
    MALFORMED = "malformed"
    INVALID = "invalid"
    EXPIRED = "expired"
    FORBIDDEN = "forbidden"


_FAILURE_MESSAGES = {
    AuthFailure.MISSING: "missing authorization header",
    AuthFailure.MALFORMED: "invalid authorization header format",
    AuthFailure.INVALID: "invalid token",
    AuthFailure.EXPIRED: "token expired",
    AuthFailure.FORBIDDEN: "insufficient permissions",
}


class AuthenticationError(AuthError):
    """Auth gate rejection; `reason` tells clients why (missing, malformed, invalid, expired)."""

    def __init__(self, reason: AuthFailure):
        self.reason = reason
        super().__init__(_FAILURE_MESSAGES[reason], detail={"reason": reason.value})


class ForbiddenError(AuthenticationError):
    status_code = 403
    error_code = "FORBIDDEN"

    def __init__(self):
        super().__init__(AuthFailure.FORBIDDEN)


class RateLimitedError(AuthError):
    status_code = 429
    error_code = "RATE_LIMITED"
    default_message = "rate limit exceeded"

    def __init__(self, retry_after: int):
        super().__init__(detail={"retry_after": retry_after})
        self.retry_after = retry_after
