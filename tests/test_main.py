"""Tests for the command line entry point."""

from __future__ import annotations

import importlib
import json

import pytest

cli = importlib.import_module("zwift_race_data.main")
from zwift_race_data.errors import AuthFailure, AuthFailureReason, TransportError
from zwift_race_data.models import AnalysisRecord, RiderRecord

SESSION = ["phpbb3_x_sid=s1; Domain=zwiftpower.com; Path=/"]


class FakeClient:
    def __init__(self, *, login_error=None, fetch_error=None):
        self.login_error = login_error
        self.fetch_error = fetch_error
        self.calls = []

    def login(self, username, password):
        self.calls.append(("login", username, password))
        if self.login_error is not None:
            raise self.login_error
        return list(SESSION)

    def get_roster(self, race_id, cookies=None):
        self.calls.append(("roster", race_id, cookies))
        if self.fetch_error is not None:
            raise self.fetch_error
        return [RiderRecord("1", "One")]

    def get_analysis(self, race_id, cookies=None):
        self.calls.append(("analysis", race_id, cookies))
        return [AnalysisRecord(race_id, "1", {"xData": [1]})]


@pytest.fixture
def fake_client(monkeypatch: pytest.MonkeyPatch) -> FakeClient:
    client = FakeClient()
    resized = []
    monkeypatch.setattr(cli, "get_default_client", lambda: client)
    monkeypatch.setattr(cli, "set_rate_limiter", resized.append)
    client.resized = resized
    return client


def test_login_writes_session_file(fake_client, monkeypatch, tmp_path) -> None:
    monkeypatch.setenv(cli.PASSWORD_ENV, "pw")
    target = tmp_path / "session.json"
    assert cli.main(["login", "--username", "rider", "--session-file", str(target)]) == 0
    assert json.loads(target.read_text(encoding="utf-8")) == SESSION
    assert fake_client.calls == [("login", "rider", "pw")]


def test_login_prompts_when_env_missing(fake_client, monkeypatch, capsys) -> None:
    monkeypatch.delenv(cli.PASSWORD_ENV, raising=False)
    monkeypatch.setattr(cli.getpass, "getpass", lambda prompt: "prompted")
    assert cli.main(["login", "--username", "rider"]) == 0
    assert json.loads(capsys.readouterr().out) == SESSION
    assert fake_client.calls[0][2] == "prompted"


def test_login_failure_exits_non_zero(monkeypatch) -> None:
    client = FakeClient(login_error=AuthFailure(AuthFailureReason.INVALID_CREDENTIALS))
    monkeypatch.setattr(cli, "get_default_client", lambda: client)
    monkeypatch.setenv(cli.PASSWORD_ENV, "pw")
    assert cli.main(["login", "--username", "rider"]) == 1


def test_roster_reads_session_and_prints(fake_client, tmp_path, capsys) -> None:
    session_file = tmp_path / "session.json"
    session_file.write_text(json.dumps(SESSION), encoding="utf-8")
    code = cli.main(["roster", "4321", "--session-file", str(session_file), "--max-concurrent", "2"])
    assert code == 0
    assert json.loads(capsys.readouterr().out) == [{"id": "1", "name": "One"}]
    assert fake_client.calls == [("roster", "4321", SESSION)]
    assert fake_client.resized == [2]


def test_analysis_writes_output_file(fake_client, tmp_path) -> None:
    output = tmp_path / "race.json"
    assert cli.main(["analysis", "4321", "--output", str(output)]) == 0
    assert json.loads(output.read_text(encoding="utf-8")) == [
        {"xData": [1], "raceId": "4321", "riderId": "1"}
    ]
    assert fake_client.calls == [("analysis", "4321", None)]


def test_session_file_must_hold_a_list(fake_client, tmp_path) -> None:
    session_file = tmp_path / "session.json"
    session_file.write_text(json.dumps({"not": "a list"}), encoding="utf-8")
    assert cli.main(["roster", "4321", "--session-file", str(session_file)]) == 1
    assert fake_client.calls == []


def test_fetch_failure_exits_non_zero(monkeypatch) -> None:
    client = FakeClient(fetch_error=TransportError("unreachable"))
    monkeypatch.setattr(cli, "get_default_client", lambda: client)
    monkeypatch.setattr(cli, "set_rate_limiter", lambda value: None)
    assert cli.main(["roster", "4321"]) == 1


def test_missing_command_is_usage_error() -> None:
    with pytest.raises(SystemExit):
        cli.main([])
