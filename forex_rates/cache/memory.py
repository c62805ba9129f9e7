"""Ephemeral tier backed by :class:`cachetools.TTLCache`."""

from __future__ import annotations

import threading
import time
from typing import Callable

from cachetools import TTLCache

from forex_rates.errors import NotFoundError
from forex_rates.models import RateRequest, RateResponse
from forex_rates.utils.logger import get_logger

LOGGER = get_logger(__name__)


class MemoryTier:
    """Process-local TTL cache keyed by :meth:`RateRequest.cache_key`.

    Values are stored serialised so a cached response can never be mutated by
    a caller. ``TTLCache`` is not thread-safe; every access holds the lock.
    """

    def __init__(
        self,
        *,
        ttl: float = 30,
        maxsize: int = 10_000,
        cleanup_interval: float = 60,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.cleanup_interval = cleanup_interval
        self._timer = timer
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self._lock = threading.Lock()
        self._last_cleanup = timer()

    def get(self, request: RateRequest) -> RateResponse:
        key = request.cache_key()
        with self._lock:
            raw = self._cache.get(key)
        if raw is None:
            raise NotFoundError("Value not found in memory cache")
        return RateResponse.from_json(raw)

    def set(self, request: RateRequest, response: RateResponse) -> None:
        key = request.cache_key()
        payload = response.to_json()
        with self._lock:
            self._cache[key] = payload
            self._maybe_cleanup()

    def _maybe_cleanup(self) -> None:
        now = self._timer()
        if now - self._last_cleanup >= self.cleanup_interval:
            self._cache.expire()
            self._last_cleanup = now

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)


__all__ = ["MemoryTier"]
