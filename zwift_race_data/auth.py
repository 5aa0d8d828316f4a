"""Login handshake against ZwiftPower and the Zwift identity provider.

ZwiftPower delegates authentication to Zwift's Keycloak server: the login
entry point redirects to a form on ``secure.zwift.com`` whose submission
redirects back to ZwiftPower with session cookies. The handshake is modelled
as a fixed sequence of named steps that each return a ``StepResult`` so every
failure mode can be exercised with a fake HTTP session.

Credential handling rules:

* the credential is read once, inline, when the form is submitted;
* it is never logged, stored on a longer-lived object or copied into an
  error; transport exceptions are reduced to a description string because
  their prepared request still carries the form body;
* ``Credential.invalidate`` runs on every exit path of ``login``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, FrozenSet, Iterable, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from .config import (
    LOGIN_ERROR_LITERAL,
    LOGIN_ERROR_SELECTORS,
    LOGIN_FORM_ID,
    REQUEST_TIMEOUT,
    SESSION_COOKIE_MARKERS,
    SESSION_COOKIE_SUFFIXES,
    TRUSTED_DOMAINS,
    ZP_LOGIN_URL,
)
from .errors import AuthFailure, AuthFailureReason
from .models import Credential
from .zwiftpower_client.cookie_store import SessionStore
from .zwiftpower_client.session import create_default_session

LOGGER = logging.getLogger(__name__)

__all__ = [
    "Authenticator",
    "LoginForm",
    "LoginPage",
    "StepResult",
    "StepStatus",
    "is_session_cookie_name",
]


class StepStatus(str, Enum):
    OK = "ok"
    NEXT = "needs_next_step"
    FAILED = "failed"


@dataclass
class LoginForm:
    action: str
    referer: str


@dataclass
class LoginPage:
    url: str
    html: str
    # (name, domain) of every cookie set while answering the submission.
    issued: FrozenSet[Tuple[str, str]] = frozenset()


@dataclass
class StepResult:
    step: str
    status: StepStatus
    value: Any = None
    reason: Optional[AuthFailureReason] = None
    detail: Optional[str] = None
    cause: Optional[str] = None

    @classmethod
    def failed(
        cls,
        step: str,
        reason: AuthFailureReason,
        detail: Optional[str] = None,
        cause: Optional[str] = None,
    ) -> "StepResult":
        return cls(step, StepStatus.FAILED, reason=reason, detail=detail, cause=cause)


def is_session_cookie_name(name: str) -> bool:
    lowered = name.lower()
    if any(marker in lowered for marker in SESSION_COOKIE_MARKERS):
        return True
    return lowered.endswith(SESSION_COOKIE_SUFFIXES)


def _is_trusted_url(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return any(host == domain or host.endswith("." + domain) for domain in TRUSTED_DOMAINS)


def _describe_transport_error(exc: requests.RequestException, timeout: float) -> str:
    if isinstance(exc, requests.Timeout):
        return f"{exc.__class__.__name__}: timed out after {timeout}s"
    return exc.__class__.__name__


def _cookie_key(name: str, domain: str) -> Tuple[str, str]:
    return name, domain.strip().lstrip(".").lower()


def _issued_cookies(response: Any) -> FrozenSet[Tuple[str, str]]:
    """Keys of cookies set by ``response`` or any redirect leading to it."""

    chain = list(getattr(response, "history", None) or []) + [response]
    return frozenset(
        _cookie_key(cookie.name, cookie.domain or "")
        for hop in chain
        for cookie in getattr(hop, "cookies", None) or []
    )


def _find_login_form(html: str) -> Any:
    soup = BeautifulSoup(html, "html.parser")
    form = soup.find("form", id=LOGIN_FORM_ID)
    if form is not None:
        return form
    for candidate in soup.find_all("form"):
        if candidate.find("input", attrs={"name": "password"}) is not None:
            return candidate
    return None


class Authenticator:
    """Drive the multi-step login and return a serialized session."""

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
        login_url: str = ZP_LOGIN_URL,
    ) -> None:
        self._session = session or create_default_session()
        self._timeout = timeout
        self._login_url = login_url

    def login(self, credential: Credential) -> List[str]:
        """Log in and return the session as portable token strings.

        Raises:
            AuthFailure: with ``NO_LOGIN_FORM`` when the upstream flow changed
                shape, ``INVALID_CREDENTIALS`` when the upstream rejected (or
                silently ignored) the credential, ``TRANSPORT`` when a step
                could not reach the upstream.
        """
        store = SessionStore()
        try:
            if not credential.username or not credential.password:
                result = StepResult.failed(
                    "validate",
                    AuthFailureReason.INVALID_CREDENTIALS,
                    "Username and password are required",
                )
            else:
                result = self._run_steps(store, credential)
        finally:
            credential.invalidate()

        if result.status is not StepStatus.OK:
            LOGGER.warning(
                "Login failed at step=%s reason=%s",
                result.step,
                result.reason.value if result.reason else "?",
            )
            raise AuthFailure(
                result.reason or AuthFailureReason.INVALID_CREDENTIALS,
                result.detail,
                result.cause,
            )
        LOGGER.info("Login succeeded; session holds %s token(s)", len(store))
        return store.serialize()

    def _run_steps(self, store: SessionStore, credential: Credential) -> StepResult:
        form_step = self.fetch_login_form(store)
        if form_step.status is StepStatus.FAILED:
            return form_step
        submit_step = self.submit_credentials(store, form_step.value, credential)
        if submit_step.status is StepStatus.FAILED:
            return submit_step
        marker_step = self.check_error_markers(submit_step.value)
        if marker_step.status is StepStatus.FAILED:
            return marker_step
        return self.verify_session(store, submit_step.value.issued)

    def _request(
        self,
        step: str,
        store: SessionStore,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> Tuple[Optional[requests.Response], Optional[StepResult]]:
        try:
            response = self._session.request(
                method,
                url,
                cookies=store.snapshot(),
                allow_redirects=True,
                timeout=self._timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            cause = _describe_transport_error(exc, self._timeout)
            LOGGER.warning("Login step=%s transport error: %s", step, cause)
            return None, StepResult.failed(
                step,
                AuthFailureReason.TRANSPORT,
                "Could not reach the login service",
                cause,
            )
        store.absorb(response)
        LOGGER.info(
            "Login step=%s status=%s redirects=%s",
            step,
            response.status_code,
            len(getattr(response, "history", None) or []),
        )
        return response, None

    def fetch_login_form(self, store: SessionStore) -> StepResult:
        step = "fetch_login_form"
        response, failure = self._request(step, store, "GET", self._login_url)
        if failure is not None or response is None:
            return failure or StepResult.failed(step, AuthFailureReason.TRANSPORT)
        page_url = response.url or self._login_url
        form = _find_login_form(response.text or "")
        if form is None:
            return StepResult.failed(
                step,
                AuthFailureReason.NO_LOGIN_FORM,
                f"Login form not found (status {response.status_code})",
            )
        action = (form.get("action") or "").strip()
        if not action:
            return StepResult.failed(
                step, AuthFailureReason.NO_LOGIN_FORM, "Login form has no action"
            )
        action_url = urljoin(page_url, action)
        if not _is_trusted_url(action_url):
            LOGGER.error("Login form posts to untrusted host %s", urlparse(action_url).hostname)
            return StepResult.failed(
                step,
                AuthFailureReason.NO_LOGIN_FORM,
                "Login form posts to an untrusted host",
            )
        return StepResult(
            step, StepStatus.NEXT, value=LoginForm(action=action_url, referer=page_url)
        )

    def submit_credentials(
        self, store: SessionStore, form: LoginForm, credential: Credential
    ) -> StepResult:
        step = "submit_credentials"
        response, failure = self._request(
            step,
            store,
            "POST",
            form.action,
            data={
                "username": credential.username,
                "password": credential.password,
                "credentialId": "",
            },
            headers={"Referer": form.referer},
        )
        if failure is not None or response is None:
            return failure or StepResult.failed(step, AuthFailureReason.TRANSPORT)
        page = LoginPage(
            url=response.url or form.action,
            html=response.text or "",
            issued=_issued_cookies(response),
        )
        return StepResult(step, StepStatus.NEXT, value=page)

    def check_error_markers(self, page: LoginPage) -> StepResult:
        step = "check_error_markers"
        soup = BeautifulSoup(page.html, "html.parser")
        for selector in LOGIN_ERROR_SELECTORS:
            node = soup.select_one(selector)
            if node is None:
                continue
            text = " ".join(node.get_text(" ").split())
            if text:
                return StepResult.failed(
                    step, AuthFailureReason.INVALID_CREDENTIALS, text[:200]
                )
        if LOGIN_ERROR_LITERAL in page.html.lower():
            return StepResult.failed(
                step,
                AuthFailureReason.INVALID_CREDENTIALS,
                "Invalid username or password.",
            )
        return StepResult(step, StepStatus.NEXT, value=page)

    def verify_session(
        self, store: SessionStore, issued: Iterable[Tuple[str, str]]
    ) -> StepResult:
        """Require a session token set or refreshed by the submission.

        Tokens handed out with the login form (anonymous phpBB ids, Keycloak's
        AUTH_SESSION_ID) already match the markers, so they do not count.
        """
        step = "verify_session"
        fresh = set(issued)
        for domain in TRUSTED_DOMAINS:
            for token in store.get_tokens(domain):
                if (
                    _cookie_key(token.name, token.domain) in fresh
                    and is_session_cookie_name(token.name)
                ):
                    LOGGER.debug("Session token %s found on %s", token.name, token.domain)
                    return StepResult(step, StepStatus.OK)
        return StepResult.failed(
            step,
            AuthFailureReason.INVALID_CREDENTIALS,
            "Login did not produce a session token",
        )
