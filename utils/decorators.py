"""
Auth gate for protected views.

authenticate() walks one request through missing -> malformed -> invalid ->
expired -> authenticated and returns an explicit Identity. The decorators hand
that Identity to the view as the `identity` keyword argument.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Iterable, Optional

from flask import current_app, request

from services.errors import (
    AuthFailure,
    AuthenticationError,
    ForbiddenError,
    InvalidTokenError,
    TokenExpiredError,
)
from utils.security import AccessClaims

logger = logging.getLogger(__name__)

BEARER = "Bearer"


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str


def parse_bearer(header: Optional[str]) -> str:
    """Return the token from an `Authorization: Bearer <token>` header."""
    if not header:
        raise AuthenticationError(AuthFailure.MISSING)
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != BEARER or not parts[1]:
        raise AuthenticationError(AuthFailure.MALFORMED)
    return parts[1]


def authenticate(header: Optional[str], verify: Callable[[str], AccessClaims]) -> Identity:
    token = parse_bearer(header)
    try:
        claims = verify(token)
    except TokenExpiredError:
        logger.debug("Rejected expired access token")
        raise AuthenticationError(AuthFailure.EXPIRED)
    except InvalidTokenError:
        logger.debug("Rejected invalid access token")
        raise AuthenticationError(AuthFailure.INVALID)
    return Identity(user_id=claims.user_id, role=claims.role)


def peek_identity(header: Optional[str], verify: Callable[[str], AccessClaims]) -> Optional[Identity]:
    """Best-effort identity for callers that must not reject (e.g. the rate limiter)."""
    try:
        return authenticate(header, verify)
    except AuthenticationError:
        return None


def _verifier() -> Callable[[str], AccessClaims]:
    return current_app.extensions["session_manager"].validate_token


def jwt_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            identity = authenticate(request.headers.get("Authorization"), _verifier())
            kwargs["identity"] = identity
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(required_roles: Iterable[str]):
    """
    Allow access if the caller's role is in required_roles.
    Unauthenticated callers get 401, authenticated callers with another role 403.
    """
    allowed = frozenset(required_roles or [])

    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, identity: Identity, **kwargs):
            if identity.role not in allowed:
                logger.warning(
                    "Role not authorized user_id=%s role=%s allowed=%s",
                    identity.user_id,
                    identity.role,
                    sorted(allowed),
                )
                raise ForbiddenError()
            return fn(*args, identity=identity, **kwargs)

        return wrapper

    return decorator
