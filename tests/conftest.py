"""Global pytest fixtures & helpers.

Adds project root to path and provides fake HTTP responses, sessions and
cookie jars so no test ever talks to the network.
"""
from __future__ import annotations

import copy
import json
import os
import sys
import threading
from typing import Any, Dict, List, Optional

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from requests.cookies import RequestsCookieJar

from zwift_race_data.errors import UpstreamNotFoundError
from zwift_race_data.zwiftpower_client import RateLimitBackoff, RateLimiter


# --- Factory helpers -------------------------------------------------
def make_jar(*cookies: tuple) -> RequestsCookieJar:
    """Build a jar from ``(name, value, domain)`` tuples."""
    jar = RequestsCookieJar()
    for name, value, domain in cookies:
        jar.set(name, value, domain=domain, path="/")
    return jar


class FakeResp:
    """Minimal fake response matching needed parts of requests.Response."""

    def __init__(
        self,
        status_code: int = 200,
        data: Any = None,
        text: Optional[str] = None,
        url: str = "",
        cookies: Optional[RequestsCookieJar] = None,
        history: Optional[List["FakeResp"]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.status_code = status_code
        self._data = data
        self._text = text
        self.url = url
        self.cookies = cookies if cookies is not None else RequestsCookieJar()
        self.history = history or []
        self.headers = headers or {}

    def json(self):
        if self._text is not None and self._data is None:
            raise ValueError("not json")
        if isinstance(self._data, Exception):
            raise self._data
        return self._data

    @property
    def text(self):
        if self._text is not None:
            return self._text
        try:
            return json.dumps(self._data)
        except Exception:
            return str(self._data)


class FakeHTTPSession:
    """Scripted stand-in for ``requests.Session``.

    ``script`` items are FakeResp instances or exceptions, consumed in order
    by both ``get`` and ``request``. Every call is recorded in ``calls``.
    """

    def __init__(self, script: List[Any]) -> None:
        self.script = list(script)
        self.calls: List[Dict[str, Any]] = []

    def _next(self, method: str, url: str, kwargs: Dict[str, Any]) -> Any:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.script:
            raise AssertionError(f"Unexpected {method} {url}")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        return self._next(method, url, kwargs)

    def get(self, url: str, **kwargs: Any) -> Any:
        return self._next("GET", url, kwargs)


class FakeResources:
    """Stand-in for ``ResourceAPI`` serving payloads keyed by URL.

    Route values that are exceptions are raised; unknown URLs raise
    ``UpstreamNotFoundError`` like a real 404 would.
    """

    def __init__(self, routes: Dict[str, Any]) -> None:
        self.routes = dict(routes)
        self.calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def fetch_json(self, url: str, context: str, *, store=None, timeout=None) -> Any:
        with self._lock:
            self.calls.append({"url": url, "store": store, "timeout": timeout})
        if url not in self.routes:
            raise UpstreamNotFoundError(f"{context} not found", 404)
        item = self.routes[url]
        if isinstance(item, BaseException):
            raise item
        return copy.deepcopy(item)


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def no_jitter_limiter() -> RateLimiter:
    return RateLimiter(max_concurrent=4, jitter_range=(0.0, 0.0))


@pytest.fixture
def recorded_sleeps() -> List[float]:
    return []


@pytest.fixture
def fast_backoff(recorded_sleeps: List[float]) -> RateLimitBackoff:
    return RateLimitBackoff(max_attempts=3, base_delay=1.0, sleep=recorded_sleeps.append)
