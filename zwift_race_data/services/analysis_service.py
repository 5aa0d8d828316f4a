"""Per-rider analysis fetch service.

A rider without analysis data (did not finish, private data, unknown id) is
a normal outcome and yields ``None``; only genuine fetch failures raise.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

from ..config import ZP_ANALYSIS_URL
from ..errors import MalformedUpstreamError, UpstreamNotFoundError
from ..models import AnalysisRecord, RiderRecord
from ..zwiftpower_client import ResourceAPI, SessionStore

# Any of these holding a non-empty list means the payload carries telemetry.
SERIES_KEYS = ("datasets", "xData", "x2Data")


def has_series(payload: Dict[str, Any]) -> bool:
    return any(isinstance(payload.get(key), list) and payload.get(key) for key in SERIES_KEYS)


@dataclass(slots=True)
class AnalysisServiceConfig:
    resources: Optional[ResourceAPI] = None
    analysis_url: str = ZP_ANALYSIS_URL
    logger: logging.Logger | None = None


class AnalysisService:
    def __init__(self, config: AnalysisServiceConfig | None = None):
        self.config = config or AnalysisServiceConfig()
        self._resources = self.config.resources or ResourceAPI()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)

    def fetch_one(
        self,
        rider_id: Any,
        race_id: Any,
        session: Optional[SessionStore] = None,
        rider: Optional[RiderRecord] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Optional[AnalysisRecord]:
        """Fetch analysis for one rider, merged with ``rider`` when given.

        Raises:
            FetchFailure: transport problems, rate-limit exhaustion or an
                upstream status other than 404.
        """
        rider_key = str(rider_id).strip()
        race_key = str(race_id).strip()
        if not rider_key or not race_key:
            return None
        url = self.config.analysis_url.format(
            rider_id=quote(rider_key, safe=""), race_id=quote(race_key, safe="")
        )
        context = f"Analysis race={race_key} rider={rider_key}"
        try:
            payload = self._resources.fetch_json(
                url, context, store=session, timeout=timeout
            )
        except (UpstreamNotFoundError, MalformedUpstreamError) as exc:
            self._log.info("No analysis for rider=%s race=%s: %s", rider_key, race_key, exc)
            return None

        if not isinstance(payload, dict) or not has_series(payload):
            self._log.info("No analysis series for rider=%s race=%s", rider_key, race_key)
            return None
        return AnalysisRecord(
            race_id=race_key, rider_id=rider_key, payload=payload, rider=rider
        )
