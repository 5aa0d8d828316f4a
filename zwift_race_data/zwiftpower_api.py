"""ZwiftPower API surface: login, roster and race analysis.

Public surface:
- login(username, password) -> serialized session (list of token strings)
- get_roster(race_id, cookies=None) -> list of rider dicts
- get_analysis(race_id, cookies=None) -> list of analysis dicts
- set_rate_limiter(max_concurrent)

``cookies`` is the list returned by ``login``. It is rebuilt into a fresh
``SessionStore`` on every call so a session can cross a process boundary.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from .auth import Authenticator
from .config import REQUEST_TIMEOUT
from .models import AnalysisRecord, Credential, RiderRecord
from .services import (
    AnalysisService,
    AnalysisServiceConfig,
    PipelineService,
    PipelineServiceConfig,
    RosterService,
    RosterServiceConfig,
)
from .zwiftpower_client import (
    RateLimitBackoff,
    RateLimiter,
    ResourceAPI,
    SessionStore,
    create_default_session,
    get_default_session,
)

LOGGER = logging.getLogger(__name__)

SerializedSession = List[str]


def restore_session(cookies: Optional[Iterable[Any]]) -> Optional[SessionStore]:
    """Rebuild a session from its serialized form; None stays anonymous."""

    if cookies is None:
        return None
    if isinstance(cookies, (str, bytes)):
        cookies = [cookies]
    return SessionStore.deserialize(cookies)


class ZwiftPowerClient:
    """Wires one HTTP session, limiter and backoff policy into the services."""

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        limiter: RateLimiter | None = None,
        backoff: RateLimitBackoff | None = None,
        timeout: float = REQUEST_TIMEOUT,
        max_workers: int | None = None,
    ) -> None:
        self._session = session or get_default_session()
        self._limiter = limiter or RateLimiter()
        self._timeout = timeout
        self._resources = ResourceAPI(
            session=self._session,
            limiter=self._limiter,
            backoff=backoff or RateLimitBackoff(),
            timeout=timeout,
        )
        self.roster = RosterService(RosterServiceConfig(resources=self._resources))
        self.analysis = AnalysisService(AnalysisServiceConfig(resources=self._resources))
        pipeline_config = PipelineServiceConfig(roster=self.roster, analysis=self.analysis)
        if max_workers is not None:
            pipeline_config.max_workers = max_workers
        self.pipeline = PipelineService(pipeline_config)

    def set_rate_limiter(self, max_concurrent: int) -> None:
        self._limiter.resize(max_concurrent)

    def login(self, username: str, password: str) -> SerializedSession:
        # Login runs on its own short-lived session, closed once the handshake
        # ends, so the pooled one stays untouched by the login redirects.
        with create_default_session() as session:
            authenticator = Authenticator(session=session, timeout=self._timeout)
            return authenticator.login(Credential(username, password))

    def get_roster(
        self,
        race_id: str,
        cookies: Optional[Iterable[Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> List[RiderRecord]:
        return self.roster.resolve(race_id, restore_session(cookies), timeout=timeout)

    def get_analysis(
        self,
        race_id: str,
        cookies: Optional[Iterable[Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> List[AnalysisRecord]:
        return self.pipeline.run(race_id, restore_session(cookies), timeout=timeout)


DEFAULT_ZWIFTPOWER_CLIENT = ZwiftPowerClient()


def get_default_client() -> ZwiftPowerClient:
    return DEFAULT_ZWIFTPOWER_CLIENT


def set_rate_limiter(max_concurrent: Optional[int] = None) -> None:
    """Resize the default client's limiter; None leaves it unchanged."""

    if max_concurrent is None:
        return
    get_default_client().set_rate_limiter(max_concurrent)


def login(username: str, password: str) -> SerializedSession:
    return get_default_client().login(username, password)


def get_roster(
    race_id: str, cookies: Optional[Iterable[Any]] = None
) -> List[Dict[str, Any]]:
    return [rider.to_dict() for rider in get_default_client().get_roster(race_id, cookies)]


def get_analysis(
    race_id: str, cookies: Optional[Iterable[Any]] = None
) -> List[Dict[str, Any]]:
    return [
        record.to_dict() for record in get_default_client().get_analysis(race_id, cookies)
    ]
