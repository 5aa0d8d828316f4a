"""Generic JSON resource fetcher shared by the roster and analysis services."""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from ..config import REQUEST_TIMEOUT
from ..errors import MalformedUpstreamError, TransportError
from .backoff import RateLimitBackoff
from .cookie_store import SessionStore
from .rate_limiter import RateLimiter
from .response_handling import classify_response_status
from .session import get_default_session

LOGGER = logging.getLogger(__name__)


class ResourceAPI:
    """Encapsulates ZwiftPower JSON fetching with limiter, backoff and cookies."""

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        limiter: RateLimiter | None = None,
        backoff: RateLimitBackoff | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self._session = session or get_default_session()
        self._limiter = limiter or RateLimiter()
        self._backoff = backoff or RateLimitBackoff()
        self._timeout = timeout

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    def _send(
        self,
        url: str,
        context: str,
        store: Optional[SessionStore],
        timeout: float,
    ) -> requests.Response:
        self._limiter.before_request()
        status_code: Optional[int] = None
        try:
            response = self._session.get(
                url,
                cookies=store.snapshot() if store is not None else None,
                timeout=timeout,
            )
            status_code = response.status_code
        except requests.Timeout as exc:
            message = f"{context} timed out after {timeout}s"
            LOGGER.warning(message)
            raise TransportError(message, timed_out=True) from exc
        except requests.RequestException as exc:
            message = f"{context} network error: {exc.__class__.__name__}"
            LOGGER.warning(message)
            raise TransportError(message) from exc
        finally:
            self._limiter.after_response(status_code)
        if store is not None:
            store.absorb(response)
        return response

    def fetch_json(
        self,
        url: str,
        context: str,
        *,
        store: Optional[SessionStore] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        effective_timeout = self._timeout if timeout is None else timeout
        response = self._backoff.call(
            lambda: self._send(url, context, store, effective_timeout), context
        )
        error = classify_response_status(response, context)
        if error is not None:
            raise error
        try:
            return response.json()
        except ValueError as exc:
            message = f"{context} returned non-JSON payload"
            LOGGER.info(message)
            raise MalformedUpstreamError(message) from exc
