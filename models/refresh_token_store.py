"""
RefreshTokenStore: SQLAlchemy-backed refresh token persistence.

find_by_token raises RevokedError eagerly for revoked rows; revoke() only ever
flips revoked to True and never deletes.
"""
from __future__ import annotations

from models.db_storage import DBStorage
from models.errors import NotFoundError, RevokedError
from models.refresh_token import RefreshToken


class RefreshTokenStore:
    def __init__(self, storage: DBStorage):
        self._storage = storage

    def create(self, refresh_token: RefreshToken) -> RefreshToken:
        with self._storage.guard("refresh_token.create"):
            self._storage.new(refresh_token)
            self._storage.save()
        return refresh_token

    def _lookup(self, session, token: str) -> RefreshToken | None:
        return (
            session.query(RefreshToken)
            .populate_existing()
            .filter(RefreshToken.token == token)
            .first()
        )

    def find_by_token(self, token: str) -> RefreshToken:
        with self._storage.guard("refresh_token.find_by_token") as session:
            row = self._lookup(session, token)
        if row is None:
            raise NotFoundError("refresh token not found")
        if row.revoked:
            raise RevokedError("refresh token has been revoked", key=row.id, user_id=row.user_id)
        return row

    def revoke(self, token: str) -> RefreshToken:
        """Mark the token revoked. Revoking a revoked token is a no-op."""
        with self._storage.guard("refresh_token.revoke") as session:
            row = self._lookup(session, token)
            if row is None:
                raise NotFoundError("refresh token not found")
            if not row.revoked:
                row.revoked = True
                self._storage.save()
        return row
