"""Tests for the SQLAlchemy credential stores and the counter stores."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from models.counter_store import RedisCounterStore
from models.errors import AlreadyExistsError, NotFoundError, RevokedError, StoreUnavailableError
from models.refresh_token import RefreshToken
from models.user import User


def _user(email="alice@x.com", role="user"):
    return User(email=email, password_hash="hash", first_name="Alice", last_name="Smith", role=role)


def _token(user, token="tok-1", days=7):
    return RefreshToken(
        token=token,
        user_id=user.id,
        expires_at=datetime.now(timezone.utc) + timedelta(days=days),
        revoked=False,
    )


class TestUserStore:
    def test_create_and_find(self, user_store):
        user = user_store.create(_user())
        assert user_store.find_by_email("alice@x.com").id == user.id
        assert user_store.find_by_id(user.id).email == "alice@x.com"

    def test_duplicate_email_raises_already_exists(self, user_store, storage):
        user_store.create(_user())
        with pytest.raises(AlreadyExistsError) as excinfo:
            user_store.create(_user())
        assert excinfo.value.message == "resource already exists"
        assert storage.get_session().query(User).filter(User.email == "alice@x.com").count() == 1

    def test_missing_user_raises_not_found(self, user_store):
        with pytest.raises(NotFoundError):
            user_store.find_by_email("nobody@x.com")
        with pytest.raises(NotFoundError):
            user_store.find_by_id("00000000-0000-0000-0000-000000000000")

    def test_update_role(self, user_store):
        user = user_store.create(_user())
        user_store.update_role(user.id, "admin")
        assert user_store.find_by_id(user.id).role == "admin"

    def test_driver_errors_become_store_unavailable(self, user_store, monkeypatch):
        def broken_query(self, *args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("db down"))

        monkeypatch.setattr(Session, "query", broken_query)
        with pytest.raises(StoreUnavailableError):
            user_store.find_by_email("alice@x.com")


class TestRefreshTokenStore:
    def test_create_and_find(self, user_store, refresh_token_store):
        user = user_store.create(_user())
        refresh_token_store.create(_token(user))
        row = refresh_token_store.find_by_token("tok-1")
        assert row.user_id == user.id
        assert row.revoked is False

    def test_unknown_token_not_found(self, refresh_token_store):
        with pytest.raises(NotFoundError):
            refresh_token_store.find_by_token("missing")
        with pytest.raises(NotFoundError):
            refresh_token_store.revoke("missing")

    def test_revoked_token_raises_revoked_signal(self, user_store, refresh_token_store):
        user = user_store.create(_user())
        refresh_token_store.create(_token(user))
        refresh_token_store.revoke("tok-1")
        with pytest.raises(RevokedError) as excinfo:
            refresh_token_store.find_by_token("tok-1")
        assert excinfo.value.user_id == user.id

    def test_revoke_is_monotonic_and_keeps_row(self, user_store, refresh_token_store, storage):
        user = user_store.create(_user())
        refresh_token_store.create(_token(user))
        refresh_token_store.revoke("tok-1")
        refresh_token_store.revoke("tok-1")
        rows = storage.get_session().query(RefreshToken).filter(RefreshToken.token == "tok-1").all()
        assert len(rows) == 1
        assert rows[0].revoked is True

    def test_user_may_hold_several_tokens(self, user_store, refresh_token_store):
        user = user_store.create(_user())
        refresh_token_store.create(_token(user, "tok-a"))
        refresh_token_store.create(_token(user, "tok-b"))
        refresh_token_store.revoke("tok-a")
        assert refresh_token_store.find_by_token("tok-b").revoked is False


class TestMemoryCounterStore:
    def test_increment_counts_up(self, counter_store):
        assert counter_store.increment("k") == 1
        assert counter_store.increment("k") == 2
        assert counter_store.increment("other") == 1

    def test_expiry_resets_counter(self, counter_store, counter_clock):
        counter_store.increment("k")
        counter_store.set_expiry("k", timedelta(seconds=10))
        counter_clock.advance(4)
        assert counter_store.ttl_remaining("k") == timedelta(seconds=6)
        counter_clock.advance(6)
        assert counter_store.ttl_remaining("k") is None
        assert counter_store.increment("k") == 1

    def test_ttl_of_key_without_expiry_is_none(self, counter_store):
        counter_store.increment("k")
        assert counter_store.ttl_remaining("k") is None
        assert counter_store.ttl_remaining("never-seen") is None

    def test_expired_windows_of_departed_clients_are_swept(self, counter_store, counter_clock):
        for n in range(1000):
            key = f"rate_limit:10.0.{n // 256}.{n % 256}"
            counter_store.increment(key)
            counter_store.set_expiry(key, timedelta(seconds=60))
        assert len(counter_store) == 1000

        counter_clock.advance(3600)
        counter_store.increment("rate_limit:late-client")
        assert len(counter_store) == 1

    def test_sweep_keeps_live_windows(self, counter_store, counter_clock):
        counter_store.increment("old")
        counter_store.set_expiry("old", timedelta(seconds=30))
        counter_clock.advance(50)
        counter_store.increment("fresh")
        counter_store.set_expiry("fresh", timedelta(seconds=60))

        counter_clock.advance(20)
        assert counter_store.increment("fresh") == 2
        assert len(counter_store) == 1


class TestRedisCounterStore:
    def test_increment_and_expire_delegate_to_client(self):
        client = MagicMock()
        client.incr.return_value = 3
        store = RedisCounterStore(client)

        assert store.increment("rate_limit:1.2.3.4") == 3
        store.set_expiry("rate_limit:1.2.3.4", timedelta(seconds=60))

        client.incr.assert_called_once_with("rate_limit:1.2.3.4")
        client.expire.assert_called_once_with("rate_limit:1.2.3.4", timedelta(seconds=60))

    @pytest.mark.parametrize("pttl, expected", [(1500, timedelta(milliseconds=1500)), (-1, None), (-2, None)])
    def test_ttl_remaining(self, pttl, expected):
        client = MagicMock()
        client.pttl.return_value = pttl
        assert RedisCounterStore(client).ttl_remaining("k") == expected

    def test_redis_errors_become_store_unavailable(self):
        client = MagicMock()
        client.incr.side_effect = RedisConnectionError("refused")
        client.expire.side_effect = RedisConnectionError("refused")
        client.pttl.side_effect = RedisConnectionError("refused")
        store = RedisCounterStore(client)

        with pytest.raises(StoreUnavailableError):
            store.increment("k")
        with pytest.raises(StoreUnavailableError):
            store.set_expiry("k", timedelta(seconds=1))
        with pytest.raises(StoreUnavailableError):
            store.ttl_remaining("k")
