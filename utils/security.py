"""
security helpers:
- Argon2 password hashing via argon2-cffi, with pinned parameters
- Access token (JWT) creation/verification via PyJWT, HMAC algorithms only
- Opaque refresh token generation
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

import jwt
from argon2 import PasswordHasher as _Argon2Hasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from services.errors import InvalidTokenError, TokenExpiredError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_LIFETIME = timedelta(minutes=15)
REFRESH_TOKEN_LIFETIME = timedelta(days=7)
CLOCK_SKEW = timedelta(seconds=30)

# Symmetric MACs only; anything else in a token header is rejected.
ALLOWED_ALGORITHMS = ("HS256", "HS384", "HS512")
DEFAULT_ALGORITHM = "HS256"

# Argon2id work factor, fixed so every stored hash costs the same to verify.
# Roughly the verification cost of bcrypt at cost 10 on commodity hardware.
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 64 * 1024  # KiB
ARGON2_PARALLELISM = 4
ARGON2_HASH_LEN = 32
ARGON2_SALT_LEN = 16


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PasswordHasher:
    """One-way adaptive hashing; a fresh random salt per hash() call."""

    def __init__(self):
        self._ph = _Argon2Hasher(
            time_cost=ARGON2_TIME_COST,
            memory_cost=ARGON2_MEMORY_COST,
            parallelism=ARGON2_PARALLELISM,
            hash_len=ARGON2_HASH_LEN,
            salt_len=ARGON2_SALT_LEN,
            type=Type.ID,
        )

    def hash(self, password: str) -> str:
        """Hash a plaintext password using Argon2id"""
        return self._ph.hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        """Verify a plaintext candidate against a stored hash"""
        try:
            return self._ph.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError):
            logger.warning("Stored password hash could not be verified")
            return False


@dataclass(frozen=True)
class AccessClaims:
    user_id: str
    role: str
    issued_at: datetime
    expires_at: datetime


def generate_refresh_token() -> str:
    """Opaque, unguessable refresh token; carries no claims."""
    return secrets.token_urlsafe(32)


class TokenIssuer:
    """
    Signs and verifies access tokens with a single shared secret.

    Claims are exactly user_id, role, iat, exp. Verification pins the configured
    algorithm before the key is used, so tokens declaring "none", RS256 or another
    HMAC variant are rejected instead of being checked with the wrong primitive.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = DEFAULT_ALGORITHM,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        if algorithm not in ALLOWED_ALGORITHMS:
            raise ValueError(f"JWT algorithm must be one of {ALLOWED_ALGORITHMS}, got {algorithm!r}")
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self._secret = secret
        self.algorithm = algorithm
        self._clock = clock

    @property
    def access_token_lifetime(self) -> timedelta:
        return ACCESS_TOKEN_LIFETIME

    def issue_access_token(self, user_id: str, role: str) -> str:
        issued_at = self._clock().replace(microsecond=0)
        payload = {
            "user_id": str(user_id),
            "role": role,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + ACCESS_TOKEN_LIFETIME).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def issue_refresh_token(self) -> tuple[str, datetime]:
        """Return (opaque token, expires_at)."""
        return generate_refresh_token(), self._clock() + REFRESH_TOKEN_LIFETIME

    def verify(self, token: str) -> AccessClaims:
        """
        Decode and validate an access token.
        Raises TokenExpiredError for a well-formed expired token and
        InvalidTokenError for everything else.
        """
        if not isinstance(token, str) or not token:
            raise InvalidTokenError()
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError() from exc
        if header.get("alg") != self.algorithm:
            logger.debug("Rejected token signed with algorithm %r", header.get("alg"))
            raise InvalidTokenError()

        # Time claims are checked below against our own clock.
        try:
            decoded: Dict[str, Any] = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError as exc:
            logger.debug("Token validation failed: %s", exc)
            raise InvalidTokenError() from exc

        user_id = decoded.get("user_id")
        role = decoded.get("role")
        if not isinstance(user_id, str) or not user_id or not isinstance(role, str) or not role:
            raise InvalidTokenError()
        try:
            issued_at = datetime.fromtimestamp(int(decoded["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(decoded["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError) as exc:
            raise InvalidTokenError() from exc

        now = self._clock()
        if issued_at > now + CLOCK_SKEW or expires_at <= issued_at:
            raise InvalidTokenError()
        if now >= expires_at:
            raise TokenExpiredError()
        return AccessClaims(user_id=user_id, role=role, issued_at=issued_at, expires_at=expires_at)
