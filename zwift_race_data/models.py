from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class Credential:
    username: str
    # Excluded from repr so it never lands in logs or tracebacks.
    password: str = field(repr=False)

    def invalidate(self) -> None:
        """Drop both values; the credential is single-use."""
        self.username = ""
        self.password = ""


@dataclass(frozen=True)
class Token:
    name: str
    value: str
    domain: str
    path: str = "/"
    secure: bool = False
    expires: Optional[int] = None


@dataclass
class RiderRecord:
    rider_id: str
    display_name: str
    # Enrichment from the view feed; None means "not reported", never zero.
    category: Optional[str] = None
    weight_kg: Optional[float] = None
    ftp_watts: Optional[float] = None
    country_flag: Optional[str] = None
    age_bracket: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.rider_id, "name": self.display_name}
        optional = {
            "category": self.category,
            "weightKg": self.weight_kg,
            "ftpWatts": self.ftp_watts,
            "countryFlag": self.country_flag,
            "ageBracket": self.age_bracket,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data


@dataclass
class AnalysisRecord:
    race_id: str
    rider_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    rider: Optional[RiderRecord] = None

    def to_dict(self) -> Dict[str, Any]:
        """Flatten upstream payload and rider attributes into one mapping."""
        data: Dict[str, Any] = dict(self.payload)
        data["raceId"] = self.race_id
        data["riderId"] = self.rider_id
        if self.rider is not None:
            data.update(self.rider.to_dict())
        return data
