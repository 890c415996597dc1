import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Configure before any app module reads the environment
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from api import create_app  # noqa: E402
from models.counter_store import MemoryCounterStore  # noqa: E402
from models.db_storage import DBStorage  # noqa: E402
from models.refresh_token_store import RefreshTokenStore  # noqa: E402
from models.user_store import UserStore  # noqa: E402
from services.session_manager import SessionManager  # noqa: E402
from utils.security import PasswordHasher, TokenIssuer  # noqa: E402

TEST_SECRET = "test-secret-key-for-testing-only-0123456789abcdef0123456789abcdef"


class FakeClock:
    """Aware-datetime clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class MonotonicClock:
    """Float-seconds clock for counter stores."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def hasher():
    return PasswordHasher()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def issuer(clock):
    return TokenIssuer(TEST_SECRET, "HS256", clock=clock)


@pytest.fixture
def storage():
    db = DBStorage("sqlite://")
    db.reload()
    yield db
    db.drop_all()


@pytest.fixture
def user_store(storage):
    return UserStore(storage)


@pytest.fixture
def refresh_token_store(storage):
    return RefreshTokenStore(storage)


@pytest.fixture
def session_manager(user_store, refresh_token_store, hasher, issuer, clock):
    return SessionManager(user_store, refresh_token_store, hasher, issuer, clock=clock)


@pytest.fixture
def counter_clock():
    return MonotonicClock()


@pytest.fixture
def counter_store(counter_clock):
    return MemoryCounterStore(clock=counter_clock)


@pytest.fixture
def app():
    app = create_app("testing")
    yield app
    app.extensions["storage"].drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
