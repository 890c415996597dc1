"""
Storage-layer exceptions.

Stores translate driver errors (SQLAlchemy, redis) into these so callers never
depend on a particular backend.
"""
from __future__ import annotations


class StoreError(Exception):
    """Base class for credential and counter store failures."""

    def __init__(self, message: str = "", *, key: str | None = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message
        self.key = key


class NotFoundError(StoreError):
    """No user / refresh token matches the lookup."""


class AlreadyExistsError(StoreError):
    """A unique constraint (e.g. users.email) rejected the write."""


class RevokedError(StoreError):
    """The refresh token exists but has been revoked.

    Raised eagerly by RefreshTokenStore.find_by_token. Callers use it for audit
    logging only and must not expose it to clients.
    """

    def __init__(self, message: str = "", *, key: str | None = None, user_id: str | None = None):
        super().__init__(message, key=key)
        self.user_id = user_id


class StoreUnavailableError(StoreError):
    """The backing store could not be reached or failed mid-operation."""
