"""
UserStore: SQLAlchemy-backed user persistence.

Every read uses populate_existing so a scoped session never serves a
stale identity-map copy of a row.
"""
from __future__ import annotations

from models.db_storage import DBStorage
from models.errors import NotFoundError
from models.user import User


class UserStore:
    def __init__(self, storage: DBStorage):
        self._storage = storage

    def create(self, user: User) -> User:
        """Insert a user. A duplicate email raises AlreadyExistsError."""
        with self._storage.guard("user.create"):
            self._storage.new(user)
            self._storage.save()
        return user

    def find_by_email(self, email: str) -> User:
        with self._storage.guard("user.find_by_email") as session:
            user = (
                session.query(User)
                .populate_existing()
                .filter(User.email == email)
                .first()
            )
        if user is None:
            raise NotFoundError("user not found", key=email)
        return user

    def find_by_id(self, user_id: str) -> User:
        with self._storage.guard("user.find_by_id"):
            user = self._storage.get(User, user_id)
        if user is None:
            raise NotFoundError("user not found", key=user_id)
        return user

    def update_role(self, user_id: str, role: str) -> User:
        user = self.find_by_id(user_id)
        with self._storage.guard("user.update_role"):
            user.role = role
            self._storage.new(user)
            self._storage.save()
        return user

