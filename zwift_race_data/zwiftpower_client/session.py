"""HTTP session factory for ZwiftPower calls."""

from __future__ import annotations

from http.cookiejar import DefaultCookiePolicy

import requests
from requests import Session
from requests.adapters import HTTPAdapter

from ..config import (
    HTTP_POOL_CONNECTIONS,
    HTTP_POOL_MAXSIZE,
    LOGIN_MAX_REDIRECTS,
    USER_AGENT,
)

__all__ = ["create_default_session", "get_default_session"]


class _RejectAllCookiePolicy(DefaultCookiePolicy):
    """Keep the pooled session stateless; cookies belong to a SessionStore.

    Cookies passed per request (and those picked up while following that
    request's redirects) still flow normally; only the shared jar stays empty.
    """

    def set_ok(self, cookie, request):  # type: ignore[override]
        return False


def create_default_session() -> Session:
    session = requests.Session()
    # Backoff for 429 lives in RateLimitBackoff; the adapter never retries.
    adapter = HTTPAdapter(
        pool_connections=HTTP_POOL_CONNECTIONS,
        pool_maxsize=HTTP_POOL_MAXSIZE,
        max_retries=0,
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.max_redirects = LOGIN_MAX_REDIRECTS
    session.cookies.set_policy(_RejectAllCookiePolicy())
    session.headers.update(
        {
            "User-Agent": USER_AGENT,
            "Accept-Encoding": "gzip, deflate",
            "Accept": "application/json, text/html;q=0.9, */*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }
    )
    return session


_DEFAULT_SESSION = create_default_session()


def get_default_session() -> Session:
    """Return the shared default ZwiftPower session."""

    return _DEFAULT_SESSION
