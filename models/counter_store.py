"""
Counter stores for the rate limiter.

- RedisCounterStore: shared across processes, relies on INCR atomicity and key TTLs
- MemoryCounterStore: single-process fallback for development and tests

Both expose increment / set_expiry / ttl_remaining and raise
StoreUnavailableError when the backend fails.
"""
from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from typing import Callable, Dict, Optional, Tuple

from redis import Redis
from redis.exceptions import RedisError

from models.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class RedisCounterStore:
    """Thin Redis wrapper for fixed-window counters."""

    DEFAULT_SOCKET_TIMEOUT = 0.5  # seconds; the limiter fails open on timeout

    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str, *, socket_timeout: float = DEFAULT_SOCKET_TIMEOUT) -> "RedisCounterStore":
        client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    def increment(self, key: str) -> int:
        try:
            return int(self.client.incr(key))
        except RedisError as exc:
            raise StoreUnavailableError("counter increment failed", key=key) from exc

    def set_expiry(self, key: str, ttl: timedelta) -> None:
        try:
            self.client.expire(key, ttl)
        except RedisError as exc:
            raise StoreUnavailableError("counter expire failed", key=key) from exc

    def ttl_remaining(self, key: str) -> Optional[timedelta]:
        """Residual TTL, or None when the key is missing or has no expiry."""
        try:
            millis = self.client.pttl(key)
        except RedisError as exc:
            raise StoreUnavailableError("counter ttl lookup failed", key=key) from exc
        # -2: no such key, -1: key without expiry
        if millis is None or millis < 0:
            return None
        return timedelta(milliseconds=millis)


class MemoryCounterStore:
    """In-process counters with lazy expiry. Not shared between workers.

    Expired windows are dropped when their key is touched again, and the
    whole map is swept at most once per ``sweep_interval`` seconds so keys
    of clients that never come back do not accumulate.
    """

    DEFAULT_SWEEP_INTERVAL = 60.0  # seconds

    def __init__(self, clock: Callable[[], float] = time.monotonic, *, sweep_interval: float = DEFAULT_SWEEP_INTERVAL):
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (count, expires_at or None)
        self._counters: Dict[str, Tuple[int, Optional[float]]] = {}
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def __len__(self) -> int:
        return len(self._counters)

    def _sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        expired = [
            key for key, (_, expires_at) in self._counters.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self._counters[key]
        self._next_sweep = now + self._sweep_interval
        if expired:
            logger.debug("Swept %d expired rate limit counters", len(expired))

    def _live(self, key: str) -> Optional[Tuple[int, Optional[float]]]:
        entry = self._counters.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._counters[key]
            return None
        return entry

    def increment(self, key: str) -> int:
        with self._lock:
            self._sweep(self._clock())
            entry = self._live(key)
            count, expires_at = entry if entry else (0, None)
            count += 1
            self._counters[key] = (count, expires_at)
            return count

    def set_expiry(self, key: str, ttl: timedelta) -> None:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return
            self._counters[key] = (entry[0], self._clock() + ttl.total_seconds())

    def ttl_remaining(self, key: str) -> Optional[timedelta]:
        with self._lock:
            entry = self._live(key)
            if entry is None or entry[1] is None:
                return None
            return timedelta(seconds=entry[1] - self._clock())
