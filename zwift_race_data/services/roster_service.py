"""Roster resolution service.

Merges the two independently shaped ZwiftPower feeds for a race into one
ordered, de-duplicated list of riders:

* the results feed (``{race_id}_zwift.json``) is required and supplies the
  rider ids, their order and their names;
* the view feed (``{race_id}_view.json``) is optional enrichment (category,
  weight, FTP, flag, age). Any failure fetching or reading it leaves those
  fields unset and never drops a rider.
"""

from __future__ import annotations

import html
import logging
import math
import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from cachetools import TTLCache

from ..config import (
    ROSTER_CACHE_SIZE,
    ROSTER_CACHE_TTL_SECONDS,
    ZP_RESULTS_URL,
    ZP_VIEW_URL,
)
from ..errors import FetchFailure, MalformedUpstreamError, UpstreamNotFoundError
from ..models import RiderRecord
from ..zwiftpower_client import ResourceAPI, SessionStore

ViewEntry = Dict[str, Any]


def canonical_rider_id(value: Any) -> Optional[str]:
    """Return the canonical string form of a rider id, or None when unusable."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer():
            return str(int(value))
        return str(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return text
    if math.isfinite(number) and number.is_integer() and "." in text:
        return str(int(number))
    return text


def parse_number(value: Any) -> Optional[float]:
    """Parse a numeric feed value; lists use their first element.

    Integral values come back as ``int`` so ``"70"`` and ``70`` agree.
    Anything that is not a finite number yields None.
    """

    if isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def _clean_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, tuple)):
        return None
    text = html.unescape(str(value)).strip()
    return text or None


def build_view_lookup(payload: Any) -> Dict[str, ViewEntry]:
    """Index view-feed entries by canonical rider id (first entry wins)."""

    lookup: Dict[str, ViewEntry] = {}
    if not isinstance(payload, dict):
        return lookup
    entries = payload.get("data")
    if not isinstance(entries, list):
        return lookup
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        rider_id = canonical_rider_id(entry.get("zwid"))
        if rider_id is None or rider_id in lookup:
            continue
        lookup[rider_id] = entry
    return lookup


def merge_rider(rider_id: str, entry: Dict[str, Any], view: Optional[ViewEntry]) -> RiderRecord:
    name = _clean_text(entry.get("name")) or f"Rider {rider_id}"
    rider = RiderRecord(rider_id=rider_id, display_name=name)
    if view is None:
        return rider
    rider.category = _clean_text(view.get("category"))
    rider.weight_kg = parse_number(view.get("weight"))
    rider.ftp_watts = parse_number(view.get("ftp"))
    rider.country_flag = _clean_text(view.get("flag"))
    rider.age_bracket = _clean_text(view.get("age"))
    return rider


def merge_roster(results_payload: Any, view_lookup: Dict[str, ViewEntry]) -> List[RiderRecord]:
    """Walk the results feed in order, keeping the first entry per rider id."""

    if not isinstance(results_payload, dict):
        return []
    entries = results_payload.get("data")
    if not isinstance(entries, list):
        return []
    seen: set[str] = set()
    riders: List[RiderRecord] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        rider_id = canonical_rider_id(entry.get("zwid"))
        if rider_id is None or rider_id in seen:
            continue
        seen.add(rider_id)
        riders.append(merge_rider(rider_id, entry, view_lookup.get(rider_id)))
    return riders


@dataclass(slots=True)
class RosterServiceConfig:
    resources: Optional[ResourceAPI] = None
    results_url: str = ZP_RESULTS_URL
    view_url: str = ZP_VIEW_URL
    cache_size: int = ROSTER_CACHE_SIZE
    cache_ttl_seconds: int = ROSTER_CACHE_TTL_SECONDS
    logger: logging.Logger | None = None


class RosterService:
    def __init__(self, config: RosterServiceConfig | None = None):
        self.config = config or RosterServiceConfig()
        self._resources = self.config.resources or ResourceAPI()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)
        self._cache: Optional[TTLCache[Tuple[str, bool], Tuple[RiderRecord, ...]]] = None
        if self.config.cache_ttl_seconds > 0 and self.config.cache_size > 0:
            self._cache = TTLCache(
                maxsize=self.config.cache_size, ttl=self.config.cache_ttl_seconds
            )
        self._cache_lock = threading.Lock()

    def resolve(
        self,
        race_id: Any,
        session: Optional[SessionStore] = None,
        *,
        timeout: Optional[float] = None,
    ) -> List[RiderRecord]:
        race_key = "" if race_id is None else str(race_id).strip()
        if not race_key:
            self._log.info("Empty race id; returning empty roster")
            return []

        cache_key = (race_key, session is not None and not session.is_empty)
        cached = self._cache_get(cache_key)
        if cached is not None:
            self._log.debug("Roster cache hit race=%s riders=%d", race_key, len(cached))
            return [replace(rider) for rider in cached]

        results_payload = self._fetch_results(race_key, session, timeout)
        if results_payload is None:
            return []
        view_lookup = self._fetch_view_lookup(race_key, session, timeout)
        riders = merge_roster(results_payload, view_lookup)
        enriched = sum(1 for r in riders if r.rider_id in view_lookup)
        self._log.info(
            "Resolved roster race=%s riders=%d enriched=%d", race_key, len(riders), enriched
        )
        self._cache_put(cache_key, riders)
        return riders

    def _fetch_results(
        self, race_key: str, session: Optional[SessionStore], timeout: Optional[float]
    ) -> Any:
        url = self.config.results_url.format(race_id=quote(race_key, safe=""))
        try:
            payload = self._resources.fetch_json(
                url, f"Results feed race={race_key}", store=session, timeout=timeout
            )
        except (UpstreamNotFoundError, MalformedUpstreamError) as exc:
            self._log.info("No results feed for race=%s: %s", race_key, exc)
            return None
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            self._log.info("Results feed for race=%s has no data collection", race_key)
            return None
        return payload

    def _fetch_view_lookup(
        self, race_key: str, session: Optional[SessionStore], timeout: Optional[float]
    ) -> Dict[str, ViewEntry]:
        url = self.config.view_url.format(race_id=quote(race_key, safe=""))
        try:
            payload = self._resources.fetch_json(
                url, f"View feed race={race_key}", store=session, timeout=timeout
            )
        except FetchFailure as exc:
            self._log.warning(
                "View feed unavailable for race=%s; continuing without enrichment: %s",
                race_key,
                exc,
            )
            return {}
        return build_view_lookup(payload)

    def _cache_get(self, key: Tuple[str, bool]) -> Optional[Tuple[RiderRecord, ...]]:
        if self._cache is None:
            return None
        with self._cache_lock:
            return self._cache.get(key)

    def _cache_put(self, key: Tuple[str, bool], riders: List[RiderRecord]) -> None:
        if self._cache is None or not riders:
            return
        with self._cache_lock:
            self._cache[key] = tuple(replace(rider) for rider in riders)
