"""Tests for the Flask HTTP adapter."""

from __future__ import annotations

import json
import logging

import pytest

from zwift_race_data.errors import (
    AuthFailure,
    AuthFailureReason,
    MalformedUpstreamError,
    RateLimitedError,
    TransportError,
    UpstreamStatusError,
)
from zwift_race_data.models import AnalysisRecord, RiderRecord
from zwift_race_data.server import SESSION_HEADER, create_app

SESSION = ["phpbb3_x_sid=s1; Domain=zwiftpower.com; Path=/"]
PASSWORD = "hunter2-but-longer"


class FakeClient:
    def __init__(self, *, login_error=None, fetch_error=None):
        self.login_error = login_error
        self.fetch_error = fetch_error
        self.calls = []

    def login(self, username, password):
        self.calls.append(("login", username))
        if self.login_error is not None:
            raise self.login_error
        return list(SESSION)

    def get_roster(self, race_id, cookies=None):
        self.calls.append(("roster", race_id, cookies))
        if self.fetch_error is not None:
            raise self.fetch_error
        return [RiderRecord("1", "One"), RiderRecord("2", "Two", category="A")]

    def get_analysis(self, race_id, cookies=None):
        self.calls.append(("analysis", race_id, cookies))
        if self.fetch_error is not None:
            raise self.fetch_error
        return [AnalysisRecord(race_id, "1", {"xData": [1]}, RiderRecord("1", "One"))]


def _app_client(fake):
    app = create_app(fake)
    app.testing = True
    return app.test_client()


def test_health() -> None:
    resp = _app_client(FakeClient()).get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_login_success_returns_cookies(caplog: pytest.LogCaptureFixture) -> None:
    fake = FakeClient()
    with caplog.at_level(logging.DEBUG):
        resp = _app_client(fake).post("/api/login", json={"username": "rider", "password": PASSWORD})
    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "message": "Login successful", "cookies": SESSION}
    assert fake.calls == [("login", "rider")]
    assert PASSWORD not in caplog.text


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"username": "rider"},
        {"password": PASSWORD},
        {"username": "", "password": PASSWORD},
        {"username": 12, "password": PASSWORD},
        {"username": "rider", "password": "x" * 256},
        ["rider", PASSWORD],
    ],
)
def test_login_rejects_bad_bodies_without_calling_upstream(body) -> None:
    fake = FakeClient()
    resp = _app_client(fake).post("/api/login", json=body)
    assert resp.status_code == 400
    assert fake.calls == []
    assert PASSWORD not in resp.get_data(as_text=True)


@pytest.mark.parametrize(
    "reason, status",
    [
        (AuthFailureReason.INVALID_CREDENTIALS, 401),
        (AuthFailureReason.NO_LOGIN_FORM, 502),
        (AuthFailureReason.TRANSPORT, 504),
    ],
)
def test_login_failure_maps_reason_to_status(reason, status) -> None:
    fake = FakeClient(login_error=AuthFailure(reason, "Invalid username or password."))
    resp = _app_client(fake).post("/api/login", json={"username": "rider", "password": PASSWORD})
    assert resp.status_code == status
    body = resp.get_json()
    assert body["success"] is False
    assert body["reason"] == reason.value
    assert body["message"] == "Invalid username or password."
    assert PASSWORD not in resp.get_data(as_text=True)


def test_riders_route_passes_session_header() -> None:
    fake = FakeClient()
    resp = _app_client(fake).get(
        "/api/race/4321/riders", headers={SESSION_HEADER: json.dumps(SESSION)}
    )
    assert resp.status_code == 200
    assert resp.get_json() == {
        "riders": [{"id": "1", "name": "One"}, {"id": "2", "name": "Two", "category": "A"}]
    }
    assert fake.calls == [("roster", "4321", SESSION)]


def test_riders_route_without_session_is_anonymous() -> None:
    fake = FakeClient()
    _app_client(fake).get("/api/race/4321/riders")
    assert fake.calls == [("roster", "4321", None)]


@pytest.mark.parametrize("header", ["not json", json.dumps({"a": 1})])
def test_bad_session_header_is_client_error(header) -> None:
    fake = FakeClient()
    resp = _app_client(fake).get("/api/race/4321/riders", headers={SESSION_HEADER: header})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "bad_session"
    assert fake.calls == []


@pytest.mark.parametrize("path", ["/api/race/4321/analysis", "/api/race/4321/fit-files"])
def test_analysis_routes(path) -> None:
    resp = _app_client(FakeClient()).get(path)
    assert resp.status_code == 200
    assert resp.get_json() == {
        "activities": [{"xData": [1], "raceId": "4321", "riderId": "1", "id": "1", "name": "One"}],
        "count": 1,
    }


@pytest.mark.parametrize(
    "error, status, kind",
    [
        (TransportError("timed out", timed_out=True), 504, "transport"),
        (TransportError("reset"), 502, "transport"),
        (RateLimitedError("still limited", attempts=3), 503, "rate_limited"),
        (MalformedUpstreamError("bad json"), 502, "malformed_upstream"),
        (UpstreamStatusError("forbidden (status 403)", 403), 502, "upstream_status"),
    ],
)
def test_fetch_failures_map_to_gateway_statuses(error, status, kind) -> None:
    client = _app_client(FakeClient(fetch_error=error))
    for path in ("/api/race/1/riders", "/api/race/1/analysis"):
        resp = client.get(path)
        assert resp.status_code == status
        assert resp.get_json() == {"error": kind, "message": str(error)}
