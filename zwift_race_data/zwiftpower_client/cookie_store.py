"""Thread-safe cookie jar holding one logical ZwiftPower session.

A ``SessionStore`` is the only owner of authentication state. Every HTTP call
receives a consistent copy of the jar (``snapshot``) and hands the response
back (``absorb``) so refreshed cookies are written under the same lock. The
store can be flattened to ``Set-Cookie``-style strings and rebuilt from them
so a session survives a process boundary.
"""

from __future__ import annotations

import logging
import threading
from email.utils import formatdate, parsedate_to_datetime
from typing import Any, Iterable, List, Optional

from requests.cookies import RequestsCookieJar, create_cookie

from ..config import IDENTITY_DOMAIN, PRIMARY_DOMAIN, TRUSTED_DOMAINS
from ..models import Token

LOGGER = logging.getLogger(__name__)

__all__ = ["SessionStore", "infer_domain"]


def _normalise_domain(domain: str) -> str:
    return domain.strip().lstrip(".").lower()


def _domain_matches(cookie_domain: str, wanted: str) -> bool:
    host = _normalise_domain(cookie_domain)
    return host == wanted or host.endswith("." + wanted)


def _route(raw: str, declared: Optional[str] = None) -> tuple[str, str]:
    """Return ``(trusted_root, default_host)`` for a serialized token.

    A declared ``Domain`` inside a trusted root decides; content is only
    sniffed when no trusted domain is declared.
    """

    primary, identity_root = TRUSTED_DOMAINS
    routes = ((primary, PRIMARY_DOMAIN), (identity_root, IDENTITY_DOMAIN))
    if declared:
        for root, host in routes:
            if _domain_matches(declared, root):
                return root, host
    lowered = raw.lower()
    for root, host in routes:
        if root in lowered:
            return root, host
    return primary, PRIMARY_DOMAIN


def infer_domain(raw: str) -> str:
    """Return the trusted host a serialized token belongs to.

    A trusted ``Domain`` attribute wins. Otherwise content mentioning the
    primary domain wins, then the identity provider's domain; anything
    unrecognised defaults to the primary domain.
    """

    try:
        declared = _parse_cookie_string(raw)["domain"]
    except ValueError:
        declared = None
    return _route(raw, declared)[1]


def _mask_token(value: str | None, visible: int = 4) -> str:
    if not value:
        return ""
    if visible <= 0:
        return "*" * len(value)
    if len(value) <= visible:
        return value
    return "*" * (len(value) - visible) + value[-visible:]


def _format_cookie(cookie: Any) -> str:
    parts = [f"{cookie.name}={cookie.value or ''}", f"Domain={cookie.domain}"]
    parts.append(f"Path={cookie.path or '/'}")
    if cookie.expires is not None:
        parts.append(f"Expires={formatdate(cookie.expires, usegmt=True)}")
    if cookie.secure:
        parts.append("Secure")
    if cookie.has_nonstandard_attr("HttpOnly"):
        parts.append("HttpOnly")
    return "; ".join(parts)


def _parse_cookie_string(raw: Any) -> dict[str, Any]:
    """Parse one serialized token; raise ValueError when it is unusable."""

    if not isinstance(raw, str):
        raise ValueError(f"expected a string, got {type(raw).__name__}")
    pieces = [piece.strip() for piece in raw.split(";")]
    head = pieces[0] if pieces else ""
    if "=" not in head:
        raise ValueError("missing name=value pair")
    name, value = head.split("=", 1)
    name = name.strip()
    if not name:
        raise ValueError("empty token name")

    parsed: dict[str, Any] = {
        "name": name,
        "value": value.strip(),
        "domain": None,
        "path": "/",
        "secure": False,
        "expires": None,
        "rest": {},
    }
    for attr in pieces[1:]:
        if not attr:
            continue
        key, _, attr_value = attr.partition("=")
        key = key.strip().lower()
        attr_value = attr_value.strip()
        if key == "domain" and attr_value:
            parsed["domain"] = attr_value
        elif key == "path" and attr_value:
            parsed["path"] = attr_value
        elif key == "secure":
            parsed["secure"] = True
        elif key == "httponly":
            parsed["rest"] = {"HttpOnly": None}
        elif key == "expires" and attr_value:
            try:
                parsed["expires"] = int(parsedate_to_datetime(attr_value).timestamp())
            except (TypeError, ValueError, IndexError) as exc:
                raise ValueError(f"unparseable Expires attribute: {exc}") from exc
    return parsed


class SessionStore:
    """Owned cookie jar for one authenticated (or anonymous) session."""

    def __init__(self) -> None:
        self._jar = RequestsCookieJar()
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jar)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def set_token(
        self,
        name: str,
        value: str,
        domain: str,
        path: str = "/",
        *,
        secure: bool = False,
        expires: Optional[int] = None,
        rest: Optional[dict[str, Any]] = None,
    ) -> None:
        cookie = create_cookie(
            name,
            value,
            domain=domain,
            path=path,
            secure=secure,
            expires=expires,
            rest=rest or {},
        )
        with self._lock:
            self._jar.set_cookie(cookie)

    def get_tokens(self, domain: str) -> List[Token]:
        """Return tokens scoped to ``domain`` or one of its sub-domains.

        Order follows the cookie jar (domain, path, name), not insertion.
        """

        wanted = _normalise_domain(domain)
        with self._lock:
            cookies = list(self._jar)
        return [
            Token(
                name=cookie.name,
                value=cookie.value or "",
                domain=cookie.domain,
                path=cookie.path or "/",
                secure=bool(cookie.secure),
                expires=cookie.expires,
            )
            for cookie in cookies
            if _domain_matches(cookie.domain, wanted)
        ]

    def snapshot(self) -> RequestsCookieJar:
        """Return a copy of the jar safe to hand to a concurrent request."""

        with self._lock:
            return self._jar.copy()

    def absorb(self, response: Any) -> int:
        """Record cookies set by ``response`` and every redirect before it."""

        chain = list(getattr(response, "history", None) or []) + [response]
        absorbed = 0
        with self._lock:
            for hop in chain:
                for cookie in getattr(hop, "cookies", None) or []:
                    self._jar.set_cookie(cookie)
                    absorbed += 1
            self._jar.clear_expired_cookies()
        if absorbed:
            LOGGER.debug("Session absorbed %s cookie(s)", absorbed)
        return absorbed

    def serialize(self) -> List[str]:
        with self._lock:
            cookies = list(self._jar)
        return [_format_cookie(cookie) for cookie in cookies]

    @classmethod
    def deserialize(cls, strings: Optional[Iterable[Any]]) -> "SessionStore":
        """Rebuild a store, skipping (and warning about) malformed entries."""

        store = cls()
        for index, raw in enumerate(strings or []):
            try:
                parsed = _parse_cookie_string(raw)
            except ValueError as exc:
                LOGGER.warning("Skipping malformed session token #%s: %s", index, exc)
                continue
            declared = parsed["domain"]
            root, domain = _route(raw, declared)
            # Keep the declared scope only while it stays inside the routed domain.
            if declared and _domain_matches(declared, root):
                domain = declared
            store.set_token(
                parsed["name"],
                parsed["value"],
                domain,
                parsed["path"],
                secure=parsed["secure"],
                expires=parsed["expires"],
                rest=parsed["rest"],
            )
            LOGGER.debug(
                "Restored token name=%s domain=%s value=%s",
                parsed["name"],
                domain,
                _mask_token(parsed["value"]),
            )
        return store
