"""Tests for the per-rider analysis fetch."""

from __future__ import annotations

import pytest

from conftest import FakeResources
from zwift_race_data.config import ZP_ANALYSIS_URL
from zwift_race_data.errors import (
    MalformedUpstreamError,
    RateLimitedError,
    TransportError,
    UpstreamStatusError,
)
from zwift_race_data.models import RiderRecord
from zwift_race_data.services import AnalysisService, AnalysisServiceConfig

RACE = "4321"


def _url(rider_id: str) -> str:
    return ZP_ANALYSIS_URL.format(rider_id=rider_id, race_id=RACE)


def _service(routes) -> tuple[AnalysisService, FakeResources]:
    resources = FakeResources(routes)
    return AnalysisService(AnalysisServiceConfig(resources=resources)), resources


def test_fetch_one_returns_record_merged_with_rider() -> None:
    payload = {"datasets": [{"name": "power", "data": [200, 210]}], "xData": [0, 1]}
    service, resources = _service({_url("20"): payload})
    rider = RiderRecord(rider_id="20", display_name="B", category="B", weight_kg=70)

    record = service.fetch_one("20", RACE, None, rider, timeout=2.0)

    assert record is not None
    assert record.to_dict() == {
        "datasets": [{"name": "power", "data": [200, 210]}],
        "xData": [0, 1],
        "raceId": RACE,
        "riderId": "20",
        "id": "20",
        "name": "B",
        "category": "B",
        "weightKg": 70,
    }
    assert resources.calls[0]["timeout"] == 2.0


def test_fetch_one_without_rider_keeps_payload_and_ids() -> None:
    service, _ = _service({_url("7"): {"x2Data": [1]}})
    record = service.fetch_one(7, int(RACE))
    assert record.to_dict() == {"x2Data": [1], "raceId": RACE, "riderId": "7"}


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"datasets": []},
        {"xData": "not-a-list", "other": 1},
        [],
        None,
    ],
)
def test_payload_without_series_means_no_data(payload) -> None:
    service, _ = _service({_url("20"): payload})
    assert service.fetch_one("20", RACE) is None


def test_unknown_rider_means_no_data() -> None:
    service, _ = _service({})
    assert service.fetch_one("20", RACE) is None


def test_malformed_body_means_no_data() -> None:
    service, _ = _service({_url("20"): MalformedUpstreamError("non-JSON body")})
    assert service.fetch_one("20", RACE) is None


@pytest.mark.parametrize(
    "error",
    [
        TransportError("timed out", timed_out=True),
        RateLimitedError("still limited", attempts=3),
        UpstreamStatusError("Analysis forbidden (status 403)", 403),
    ],
)
def test_genuine_fetch_failures_propagate(error) -> None:
    service, _ = _service({_url("20"): error})
    with pytest.raises(type(error)):
        service.fetch_one("20", RACE)


@pytest.mark.parametrize("rider_id, race_id", [("", RACE), ("20", "  ")])
def test_blank_ids_make_no_request(rider_id, race_id) -> None:
    service, resources = _service({})
    assert service.fetch_one(rider_id, race_id) is None
    assert resources.calls == []
