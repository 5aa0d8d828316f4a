"""Thin Flask adapter exposing login, roster and analysis over HTTP.

The session travels as a JSON list of token strings: returned by
``POST /api/login`` and sent back in the ``x-zwift-cookies`` header.
Request bodies for the login route are never logged.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

from flask import Flask, jsonify, request
from flask.typing import ResponseReturnValue

from .config import CREDENTIAL_MAX_LENGTH
from .errors import (
    AuthFailure,
    AuthFailureReason,
    FetchFailure,
    MalformedUpstreamError,
    RateLimitedError,
    TransportError,
    UpstreamStatusError,
)
from .zwiftpower_api import ZwiftPowerClient, get_default_client

LOGGER = logging.getLogger(__name__)

SESSION_HEADER = "x-zwift-cookies"

_AUTH_STATUS = {
    AuthFailureReason.INVALID_CREDENTIALS: 401,
    AuthFailureReason.NO_LOGIN_FORM: 502,
    AuthFailureReason.TRANSPORT: 504,
}


class BadSessionHeader(ValueError):
    """Raised when the session header is not a JSON list."""


def _session_from_headers() -> Optional[List[Any]]:
    raw = request.headers.get(SESSION_HEADER)
    if not raw:
        return None
    try:
        cookies = json.loads(raw)
    except ValueError as exc:
        raise BadSessionHeader(f"{SESSION_HEADER} is not valid JSON") from exc
    if not isinstance(cookies, list):
        raise BadSessionHeader(f"{SESSION_HEADER} must be a JSON list")
    return cookies


def _fetch_failure_response(exc: FetchFailure) -> ResponseReturnValue:
    if isinstance(exc, TransportError):
        status, kind = (504 if exc.timed_out else 502), "transport"
    elif isinstance(exc, RateLimitedError):
        status, kind = 503, "rate_limited"
    elif isinstance(exc, MalformedUpstreamError):
        status, kind = 502, "malformed_upstream"
    elif isinstance(exc, UpstreamStatusError):
        status, kind = 502, "upstream_status"
    else:
        status, kind = 502, "fetch_failed"
    return jsonify({"error": kind, "message": str(exc)}), status


def create_app(client: ZwiftPowerClient | None = None) -> Flask:
    app = Flask(__name__)

    def _client() -> ZwiftPowerClient:
        return client or get_default_client()

    @app.get("/api/health")
    def health() -> ResponseReturnValue:
        return jsonify({"status": "ok"})

    @app.post("/api/login")
    def login() -> ResponseReturnValue:
        body = request.get_json(silent=True) or {}
        if not isinstance(body, dict):
            body = {}
        username = body.get("username")
        password = body.get("password")
        body = {}
        if not username or not password:
            return (
                jsonify(
                    {
                        "error": "Missing credentials",
                        "message": "Username and password are required",
                    }
                ),
                400,
            )
        if not isinstance(username, str) or not isinstance(password, str):
            return (
                jsonify(
                    {
                        "error": "Invalid credentials",
                        "message": "Username and password must be strings",
                    }
                ),
                400,
            )
        if len(username) > CREDENTIAL_MAX_LENGTH or len(password) > CREDENTIAL_MAX_LENGTH:
            return (
                jsonify(
                    {
                        "error": "Invalid credentials",
                        "message": "Username and password are too long",
                    }
                ),
                400,
            )
        try:
            cookies = _client().login(username, password)
        except AuthFailure as exc:
            return (
                jsonify(
                    {
                        "success": False,
                        "error": "Login failed",
                        "reason": exc.reason.value,
                        "message": exc.detail or "Authentication error",
                    }
                ),
                _AUTH_STATUS.get(exc.reason, 500),
            )
        finally:
            username = password = None
        return jsonify({"success": True, "message": "Login successful", "cookies": cookies})

    @app.get("/api/race/<race_id>/riders")
    def riders(race_id: str) -> ResponseReturnValue:
        try:
            roster = _client().get_roster(race_id, _session_from_headers())
        except BadSessionHeader as exc:
            return jsonify({"error": "bad_session", "message": str(exc)}), 400
        except FetchFailure as exc:
            return _fetch_failure_response(exc)
        return jsonify({"riders": [rider.to_dict() for rider in roster]})

    @app.get("/api/race/<race_id>/analysis")
    @app.get("/api/race/<race_id>/fit-files", endpoint="fit_files")
    def analysis(race_id: str) -> ResponseReturnValue:
        try:
            records = _client().get_analysis(race_id, _session_from_headers())
        except BadSessionHeader as exc:
            return jsonify({"error": "bad_session", "message": str(exc)}), 400
        except FetchFailure as exc:
            LOGGER.error("Race %s analysis failed: %s", race_id, exc)
            return _fetch_failure_response(exc)
        activities = [record.to_dict() for record in records]
        return jsonify({"activities": activities, "count": len(activities)})

    return app
