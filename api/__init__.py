from flask import Flask, g, request
from flasgger import Swagger
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix
import logging
import time
import uuid

from .config import DEFAULT_JWT_SECRET, get_config
from .errors import register_error_handlers
from models import storage
from models.counter_store import MemoryCounterStore, RedisCounterStore
from models.refresh_token_store import RefreshTokenStore
from models.user_store import UserStore
from services.session_manager import SessionManager
from utils.rate_limit import RateLimiter
from utils.security import PasswordHasher, TokenIssuer

logger = logging.getLogger(__name__)

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "Ordering Platform Auth API",
        "version": "1.0.0",
        "description": "Registration, login, token refresh/logout and profile endpoints.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_production_settings(app: Flask) -> None:
    if app.config.get("APP_ENV", "").lower() not in ("prod", "production"):
        return
    if app.config["JWT_SECRET"] == DEFAULT_JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set in production")


def build_counter_store(app: Flask):
    redis_url = app.config.get("REDIS_URL")
    if redis_url:
        return RedisCounterStore.from_url(redis_url)
    logger.warning("REDIS_URL not set; rate limit counters are per-process")
    return MemoryCounterStore()


def register_request_logging(app: Flask) -> None:
    @app.before_request
    def _start_request():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        g.request_started = time.perf_counter()
        logger.debug(
            "Request started request_id=%s method=%s path=%s remote_addr=%s",
            g.request_id, request.method, request.path, request.remote_addr,
        )

    @app.after_request
    def _finish_request(response):
        started = g.get("request_started")
        duration_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        response.headers["X-Request-ID"] = g.get("request_id", "")
        logger.info(
            "Request completed request_id=%s method=%s path=%s status=%s duration_ms=%.1f",
            g.get("request_id"), request.method, request.path, response.status_code, duration_ms,
        )
        return response


def create_app(config_name: str | None = None, overrides: dict | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.
    `overrides` is applied on top of the selected config class (tests use it).
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)

    configure_logging(app.config["LOG_LEVEL"])
    _check_production_settings(app)

    if app.config.get("TRUST_PROXY"):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)

    # Cross-Origin Resource Sharing: enable for dev, configurable for prod
    CORS(
        app,
        resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}},
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After", "X-Request-ID"],
    )

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    # Persistence and the session lifecycle
    storage.reload(app.config["DATABASE_URL"])
    issuer = TokenIssuer(app.config["JWT_SECRET"], app.config["JWT_ALGORITHM"])
    app.extensions["storage"] = storage
    app.extensions["session_manager"] = SessionManager(
        users=UserStore(storage),
        refresh_tokens=RefreshTokenStore(storage),
        hasher=PasswordHasher(),
        issuer=issuer,
    )

    # Request logging runs first, then the rate limiter gates the request
    register_request_logging(app)
    RateLimiter(
        store=build_counter_store(app),
        limit=app.config["RATE_LIMIT_REQUESTS"],
        window=app.config["RATE_LIMIT_WINDOW"],
        key_prefix=app.config["RATE_LIMIT_KEY_PREFIX"],
    ).init_app(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/users")
    app.register_blueprint(users_bp, url_prefix="/api/v1/users")

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        # This calls scoped_session.remove(), preventing connection leaks
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to the Ordering Platform Auth API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
