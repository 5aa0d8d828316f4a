"""Exponential backoff for upstream rate-limit (HTTP 429) responses.

This is the only place that sleeps between attempts. Anything other than a
429 is handed straight back to the caller, and exceptions raised by the
request itself propagate untouched.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

from ..config import RATE_LIMIT_BASE_DELAY_SECONDS, RATE_LIMIT_MAX_ATTEMPTS
from ..errors import RateLimitedError

LOGGER = logging.getLogger(__name__)

R = TypeVar("R")

__all__ = ["RateLimitBackoff", "RATE_LIMITED_STATUS"]

RATE_LIMITED_STATUS = 429


class RateLimitBackoff:
    """Retry a request on 429 with ``base_delay * 2 ** attempt`` sleeps."""

    def __init__(
        self,
        max_attempts: int = RATE_LIMIT_MAX_ATTEMPTS,
        base_delay: float = RATE_LIMIT_BASE_DELAY_SECONDS,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Delay after the zero-based ``attempt`` was rate limited."""

        return self.base_delay * (2**attempt)

    def call(self, send: Callable[[], R], context: str) -> R:
        for attempt in range(self.max_attempts):
            response = send()
            if getattr(response, "status_code", None) != RATE_LIMITED_STATUS:
                return response
            if attempt + 1 >= self.max_attempts:
                break
            delay = self.delay_for(attempt)
            LOGGER.warning(
                "%s rate limited (429) attempt=%s/%s; sleeping %.1fs",
                context,
                attempt + 1,
                self.max_attempts,
                delay,
            )
            self._sleep(delay)
        message = f"{context} still rate limited after {self.max_attempts} attempts"
        LOGGER.error(message)
        raise RateLimitedError(message, attempts=self.max_attempts)
