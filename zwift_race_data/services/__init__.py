"""Service layer package.

Exports high-level services consumed by the API facade, CLI and HTTP adapter.
"""

from .analysis_service import AnalysisService, AnalysisServiceConfig
from .pipeline_service import PipelineService, PipelineServiceConfig
from .roster_service import RosterService, RosterServiceConfig

__all__ = [
    "AnalysisService",
    "AnalysisServiceConfig",
    "PipelineService",
    "PipelineServiceConfig",
    "RosterService",
    "RosterServiceConfig",
]
