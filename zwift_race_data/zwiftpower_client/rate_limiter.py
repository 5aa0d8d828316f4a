"""Concurrency limiter shared across ZwiftPower data calls."""

from __future__ import annotations

import logging
import random
import threading
import time

from ..config import RATE_LIMIT_JITTER_RANGE, RATE_LIMIT_MAX_CONCURRENT

__all__ = ["RateLimiter"]


class RateLimiter:
    """Soft concurrency cap with small jitter to smooth bursts.

    Slots are held for a single HTTP exchange only, so a request sleeping in
    backoff never blocks unrelated fetches.
    """

    def __init__(
        self,
        max_concurrent: int = RATE_LIMIT_MAX_CONCURRENT,
        jitter_range: tuple[float, float] = RATE_LIMIT_JITTER_RANGE,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._max_allowed = max_concurrent
        self._in_flight = 0
        self._jitter_range = jitter_range

    def resize(self, new_max: int) -> None:
        """Adjust maximum concurrent requests (soft limit) at runtime."""

        if new_max < 1:
            raise ValueError("new_max must be >= 1")
        with self._cond:
            old = self._max_allowed
            self._max_allowed = new_max
            self._cond.notify_all()
        logging.info("RateLimiter resized from %s to %s", old, new_max)

    def before_request(self) -> None:
        with self._cond:
            while self._in_flight >= self._max_allowed:
                self._cond.wait()
            self._in_flight += 1
        lo, hi = self._jitter_range
        if hi > 0:
            jitter = random.uniform(lo, hi)  # nosec B311
            time.sleep(jitter)

    def after_response(self, status_code: int | None) -> None:
        if status_code == 429:
            logging.info("RateLimiter observed 429; releasing slot for backoff")
        with self._cond:
            self._in_flight = max(0, self._in_flight - 1)
            if self._in_flight < self._max_allowed:
                self._cond.notify()

    def snapshot(self) -> dict[str, int]:
        """Return current limiter stats (used by tests and diagnostics)."""

        with self._lock:
            return {
                "max_allowed": self._max_allowed,
                "in_flight": self._in_flight,
            }
