"""Central error types used across the application.

None of these messages may carry a credential; login failures only ever
surface the upstream's own human-readable error text.
"""

from __future__ import annotations

from enum import Enum


class ZwiftPowerError(RuntimeError):
    """Base error for ZwiftPower / Zwift failures."""


class AuthFailureReason(str, Enum):
    NO_LOGIN_FORM = "no_login_form"
    INVALID_CREDENTIALS = "invalid_credentials"
    TRANSPORT = "transport"


class AuthFailure(ZwiftPowerError):
    """Raised when the login handshake does not produce a usable session.

    ``cause`` is a plain description of the underlying transport problem. The
    original exception is deliberately not chained: its prepared request may
    still hold the form-encoded credential.
    """

    def __init__(
        self,
        reason: AuthFailureReason,
        detail: str | None = None,
        cause: str | None = None,
    ) -> None:
        self.reason = reason
        self.detail = detail
        self.cause = cause
        message = f"Login failed ({reason.value})"
        if detail:
            message = f"{message}: {detail}"
        if cause:
            message = f"{message} [{cause}]"
        super().__init__(message)


class FetchFailure(ZwiftPowerError):
    """Base error for data fetches after login."""


class RateLimitedError(FetchFailure):
    """Raised when HTTP 429 persists after every backoff attempt."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class TransportError(FetchFailure):
    """Raised when the upstream could not be reached (network or timeout)."""

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


class MalformedUpstreamError(FetchFailure):
    """Raised when a response body is not the JSON shape we expect."""


class UpstreamStatusError(FetchFailure):
    """Raised when the upstream answers with a non-success status."""

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.status = status


class UpstreamNotFoundError(UpstreamStatusError):
    """Raised when a race, rider or analysis resource does not exist (404)."""


__all__ = [
    "ZwiftPowerError",
    "AuthFailureReason",
    "AuthFailure",
    "FetchFailure",
    "RateLimitedError",
    "TransportError",
    "MalformedUpstreamError",
    "UpstreamStatusError",
    "UpstreamNotFoundError",
]
