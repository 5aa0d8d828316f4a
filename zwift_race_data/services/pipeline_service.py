"""Race analysis pipeline (roster -> per-rider analysis).

Riders are fetched on a small bounded worker pool. Output order always
follows the roster, and one rider's failure never aborts the run.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
import logging
import threading
from typing import Callable, Dict, List, Optional

from ..config import PIPELINE_MAX_WORKERS
from ..errors import FetchFailure
from ..models import AnalysisRecord, RiderRecord
from ..zwiftpower_client import SessionStore
from .analysis_service import AnalysisService
from .roster_service import RosterService

ProgressCallback = Callable[[int, int], None]


@dataclass(slots=True)
class PipelineServiceConfig:
    roster: Optional[RosterService] = None
    analysis: Optional[AnalysisService] = None
    max_workers: int = PIPELINE_MAX_WORKERS
    logger: logging.Logger | None = None


class PipelineService:
    def __init__(self, config: PipelineServiceConfig | None = None):
        self.config = config or PipelineServiceConfig()
        if self.config.max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self._roster = self.config.roster or RosterService()
        self._analysis = self.config.analysis or AnalysisService()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)

    def run(
        self,
        race_id: str,
        session: Optional[SessionStore] = None,
        *,
        timeout: Optional[float] = None,
        progress: ProgressCallback | None = None,
    ) -> List[AnalysisRecord]:
        riders = self._roster.resolve(race_id, session, timeout=timeout)
        total = len(riders)
        if not riders:
            self._log.info("Race %s has no riders; nothing to analyse", race_id)
            return []

        results: Dict[int, AnalysisRecord] = {}
        failures: List[str] = []
        done = 0
        state_lock = threading.Lock()

        def fetch_rider(rider: RiderRecord) -> Optional[AnalysisRecord]:
            try:
                return self._analysis.fetch_one(
                    rider.rider_id, race_id, session, rider, timeout=timeout
                )
            except FetchFailure as exc:
                self._log.warning(
                    "Skipping rider=%s race=%s: %s", rider.rider_id, race_id, exc
                )
            except Exception as exc:
                self._log.error(
                    "Rider %s analysis failed due to unexpected error: %s",
                    rider.rider_id,
                    exc,
                    exc_info=True,
                )
            with state_lock:
                failures.append(rider.rider_id)
            return None

        def record(index: int, outcome: Optional[AnalysisRecord]) -> None:
            nonlocal done
            with state_lock:
                if outcome is not None:
                    results[index] = outcome
                done += 1
                finished = done
            if progress is not None:
                progress(finished, total)

        workers = min(self.config.max_workers, total)
        if workers == 1:
            for index, rider in enumerate(riders):
                record(index, fetch_rider(rider))
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                future_map = {
                    executor.submit(fetch_rider, rider): index
                    for index, rider in enumerate(riders)
                }
                for future in as_completed(future_map):
                    record(future_map[future], future.result())

        ordered = [results[index] for index in sorted(results)]
        self._log.info(
            "Race %s analysis: riders=%d records=%d skipped=%d failed=%d",
            race_id,
            total,
            len(ordered),
            total - len(ordered) - len(failures),
            len(failures),
        )
        return ordered
