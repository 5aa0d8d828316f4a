"""Modular ZwiftPower client components (session store, limiter, backoff)."""

from .backoff import RateLimitBackoff  # noqa: F401
from .cookie_store import SessionStore, infer_domain  # noqa: F401
from .rate_limiter import RateLimiter  # noqa: F401
from .resources import ResourceAPI  # noqa: F401
from .session import create_default_session, get_default_session  # noqa: F401
