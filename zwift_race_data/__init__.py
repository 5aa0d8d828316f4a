"""ZwiftPower race data scraper package."""

from .main import main
from .models import AnalysisRecord, Credential, RiderRecord, Token
from .errors import AuthFailure, FetchFailure, ZwiftPowerError

__all__ = [
    "main",
    "AnalysisRecord",
    "Credential",
    "RiderRecord",
    "Token",
    "AuthFailure",
    "FetchFailure",
    "ZwiftPowerError",
]
