"""
Session lifecycle: registration, login, logout and access-token refresh.

The manager owns no state of its own. Users and refresh tokens live in the
credential stores, access tokens are verified statelessly by the TokenIssuer.
Every operation is a short sequence of single-row store calls, so an abandoned
request never leaves partial state behind.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Protocol

from models.base_model import as_utc
from models.errors import AlreadyExistsError, NotFoundError, RevokedError
from models.refresh_token import RefreshToken
from models.user import ROLE_USER, ROLES, User
from services.errors import InvalidCredentialsError, InvalidTokenError, TokenExpiredError
from utils.security import AccessClaims, PasswordHasher, TokenIssuer, utc_now

logger = logging.getLogger(__name__)

# Verified against when the email is unknown so both login failures cost the same.
_DUMMY_PASSWORD = "not-a-real-password"


class UserStore(Protocol):
    def create(self, user: User) -> User: ...

    def find_by_email(self, email: str) -> User: ...

    def find_by_id(self, user_id: str) -> User: ...

    def update_role(self, user_id: str, role: str) -> User: ...


class RefreshTokenStore(Protocol):
    def create(self, refresh_token: RefreshToken) -> RefreshToken: ...

    def find_by_token(self, token: str) -> RefreshToken: ...

    def revoke(self, token: str) -> RefreshToken: ...


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    user: User


class SessionManager:
    def __init__(
        self,
        users: UserStore,
        refresh_tokens: RefreshTokenStore,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.users = users
        self.refresh_tokens = refresh_tokens
        self.hasher = hasher
        self.issuer = issuer
        self._clock = clock
        # verified against on unknown-email logins
        self._dummy_hash = hasher.hash(_DUMMY_PASSWORD)

    def register(self, email: str, password: str, first_name: str, last_name: str) -> User:
        """
        Create a user with role "user".
        Raises AlreadyExistsError when the email is taken, including when a
        concurrent registration wins the race and the unique index rejects ours.
        """
        try:
            self.users.find_by_email(email)
        except NotFoundError:
            pass
        else:
            raise AlreadyExistsError("user with this email already exists", key=email)

        user = User(
            email=email,
            password_hash=self.hasher.hash(password),
            first_name=first_name,
            last_name=last_name,
            role=ROLE_USER,
        )
        try:
            self.users.create(user)
        except AlreadyExistsError:
            logger.info("Concurrent registration lost the unique-email race")
            raise AlreadyExistsError("user with this email already exists", key=email)

        logger.info("User registered user_id=%s", user.id)
        return user

    def _burn_verification(self, password: str) -> None:
        self.hasher.verify(self._dummy_hash, password)

    def login(self, email: str, password: str) -> LoginResult:
        try:
            user = self.users.find_by_email(email)
        except NotFoundError:
            self._burn_verification(password)
            logger.debug("Login failed: unknown account")
            raise InvalidCredentialsError()

        if not self.hasher.verify(user.password_hash, password):
            logger.debug("Login failed: password mismatch user_id=%s", user.id)
            raise InvalidCredentialsError()

        access_token = self.issuer.issue_access_token(user.id, user.role)
        token, expires_at = self.issuer.issue_refresh_token()
        self.refresh_tokens.create(
            RefreshToken(token=token, user_id=user.id, expires_at=expires_at, revoked=False)
        )
        logger.info("User logged in user_id=%s", user.id)
        return LoginResult(access_token=access_token, refresh_token=token, user=user)

    def logout(self, refresh_token: str) -> None:
        """Revoke the refresh token. Unknown or already revoked tokens are a success."""
        try:
            row = self.refresh_tokens.revoke(refresh_token)
        except NotFoundError:
            logger.debug("Logout with unknown refresh token; treating as logged out")
            return
        logger.info("Refresh token revoked token_id=%s user_id=%s", row.id, row.user_id)

    def refresh(self, refresh_token: str) -> str:
        """
        Mint a new access token from a refresh token.
        Unknown and revoked tokens both raise InvalidTokenError; an expired one
        raises TokenExpiredError. The refresh token itself is not rotated.
        """
        try:
            row = self.refresh_tokens.find_by_token(refresh_token)
        except NotFoundError:
            raise InvalidTokenError()
        except RevokedError as exc:
            logger.warning(
                "Refresh attempted with revoked token token_id=%s user_id=%s",
                exc.key,
                exc.user_id,
            )
            raise InvalidTokenError()

        # stores without an eager revoked signal
        if row.revoked:
            logger.warning("Refresh attempted with revoked token token_id=%s", row.id)
            raise InvalidTokenError()

        if self._clock() > as_utc(row.expires_at):
            raise TokenExpiredError()

        try:
            user = self.users.find_by_id(row.user_id)
        except NotFoundError:
            logger.warning("Refresh token owner missing token_id=%s", row.id)
            raise InvalidTokenError()

        logger.info("Access token refreshed user_id=%s", user.id)
        return self.issuer.issue_access_token(user.id, user.role)

    def validate_token(self, access_token: str) -> AccessClaims:
        return self.issuer.verify(access_token)

    def get_user(self, user_id: str) -> User:
        return self.users.find_by_id(user_id)

    def set_role(self, user_id: str, role: str) -> User:
        """Change a user's role; takes effect in the next access token minted."""
        if role not in ROLES:
            raise ValueError(f"role must be one of {ROLES}")
        user = self.users.update_role(user_id, role)
        logger.info("Role updated user_id=%s role=%s", user_id, role)
        return user
