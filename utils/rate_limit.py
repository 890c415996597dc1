"""
Fixed-window request rate limiting backed by a shared counter store.

Per (key prefix, client) the counter is incremented on every request; the
first hit of a window sets the key TTL, and the window resets only when that
TTL lapses. If the counter store is down the request is allowed.
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Protocol

from flask import Flask, current_app, g, request

from models.errors import StoreUnavailableError
from services.errors import RateLimitedError
from utils.decorators import peek_identity

logger = logging.getLogger(__name__)


class CounterStore(Protocol):
    def increment(self, key: str) -> int: ...

    def set_expiry(self, key: str, ttl: timedelta) -> None: ...

    def ttl_remaining(self, key: str) -> Optional[timedelta]: ...


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: Optional[int] = None


class RateLimiter:
    def __init__(
        self,
        store: CounterStore,
        limit: int,
        window: timedelta,
        key_prefix: str = "rate_limit",
    ):
        if limit < 1:
            raise ValueError("rate limit must allow at least one request per window")
        if window.total_seconds() <= 0:
            raise ValueError("rate limit window must be positive")
        self.store = store
        self.limit = limit
        self.window = window
        self.key_prefix = key_prefix

    def key_for(self, client_id: str) -> str:
        return f"{self.key_prefix}:{client_id}"

    def hit(self, client_id: str) -> RateLimitDecision:
        """Count one request for client_id and decide whether it may proceed."""
        key = self.key_for(client_id)
        try:
            count = self.store.increment(key)
        except StoreUnavailableError:
            logger.error("Rate limit counter unavailable; allowing request key=%s", key)
            return RateLimitDecision(allowed=True, limit=self.limit, remaining=self.limit)

        if count == 1:
            self._expire(key)

        if count > self.limit:
            logger.warning(
                "Rate limit exceeded client_id=%s count=%d limit=%d", client_id, count, self.limit
            )
            return RateLimitDecision(
                allowed=False, limit=self.limit, remaining=0, retry_after=self._retry_after(key)
            )
        return RateLimitDecision(allowed=True, limit=self.limit, remaining=self.limit - count)

    def _expire(self, key: str) -> None:
        try:
            self.store.set_expiry(key, self.window)
        except StoreUnavailableError:
            logger.error("Failed to set rate limit window expiry key=%s", key)

    def _retry_after(self, key: str) -> int:
        try:
            ttl = self.store.ttl_remaining(key)
        except StoreUnavailableError:
            logger.error("Failed to read rate limit window ttl key=%s", key)
            ttl = None
        if ttl is None:
            # the first-hit expiry was lost; without one the key would never reset
            self._expire(key)
            ttl = self.window
        return max(1, math.ceil(ttl.total_seconds()))

    def init_app(self, app: Flask) -> None:
        """Gate every request in before_request and stamp quota headers on the way out."""
        app.extensions["rate_limiter"] = self
        app.before_request(_enforce_rate_limit)
        app.after_request(_rate_limit_headers)


def client_identity() -> str:
    """Authenticated user id when a valid bearer token is presented, else the remote address."""
    session_manager = current_app.extensions.get("session_manager")
    if session_manager is not None:
        identity = peek_identity(request.headers.get("Authorization"), session_manager.validate_token)
        if identity is not None:
            return identity.user_id
    return request.remote_addr or "unknown"


def _enforce_rate_limit():
    if not current_app.config.get("RATE_LIMIT_ENABLED", True):
        return None
    limiter: RateLimiter = current_app.extensions["rate_limiter"]
    decision = limiter.hit(client_identity())
    g.rate_limit = decision
    if not decision.allowed:
        raise RateLimitedError(decision.retry_after)
    return None


def _rate_limit_headers(response):
    decision: Optional[RateLimitDecision] = g.get("rate_limit")
    if decision is None:
        return response
    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    if not decision.allowed:
        response.headers["Retry-After"] = str(decision.retry_after)
        response.headers["X-RateLimit-Reset"] = str(int(time.time()) + decision.retry_after)
    return response
