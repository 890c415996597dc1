"""
Environment-aware configuration.
Values come from the process environment; a local .env is loaded first.
Token lifetimes are fixed in utils.security and deliberately not configurable.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DEFAULT_JWT_SECRET = "dev-secret-change-me"


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    # Honour X-Forwarded-For from one reverse proxy hop
    TRUST_PROXY = _env_bool("TRUST_PROXY", "false")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///ordering.db")
    # Empty -> in-process counters (single worker only)
    REDIS_URL = os.getenv("REDIS_URL", "")

    JWT_SECRET = os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET)
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

    RATE_LIMIT_ENABLED = _env_bool("RATE_LIMIT_ENABLED", "true")
    RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))
    RATE_LIMIT_WINDOW = timedelta(seconds=int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60")))
    RATE_LIMIT_KEY_PREFIX = os.getenv("RATE_LIMIT_KEY_PREFIX", "rate_limit")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class TestingConfig(BaseConfig):
    TESTING = True
    APP_ENV = "testing"
    DATABASE_URL = "sqlite://"
    REDIS_URL = ""
    JWT_SECRET = "test-secret-key-for-testing-only-0123456789abcdef0123456789abcdef"
    JWT_ALGORITHM = "HS256"
    RATE_LIMIT_ENABLED = True
    RATE_LIMIT_REQUESTS = 1000
    RATE_LIMIT_WINDOW = timedelta(seconds=60)
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    DEBUG = False


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/testing/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig
