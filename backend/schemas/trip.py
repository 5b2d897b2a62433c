"""
schemas/trip.py
---------------
Trip-level configuration.  Immutable once a PlanningSession starts.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from enum import Enum
from typing import Any

from modules.errors import TripValidationError
from modules.validation.ingestion_validator import validate_trip


class TransportMode(str, Enum):
    PUBLIC = "public"
    CAR    = "car"
    WALK   = "walk"


class Pace(str, Enum):
    RELAXED  = "relaxed"
    MODERATE = "moderate"
    POWER    = "power"


@dataclass(frozen=True)
class TripConfig:
    origin: str
    destination: str
    start_date: date
    end_date: date
    mode: TransportMode = TransportMode.PUBLIC
    pace: Pace = Pace.MODERATE

    @property
    def total_days(self) -> int:
        """Inclusive number of calendar days in the trip."""
        return (self.end_date - self.start_date).days + 1

    @classmethod
    def from_dict(cls, record: dict[str, Any]) -> "TripConfig":
        """
        Build a validated TripConfig from a loose record (API body, share token).

        Accepts ISO-8601 date strings or date objects.  Raises
        TripValidationError listing every problem found.
        """
        result = validate_trip(record)
        if not result.valid:
            raise TripValidationError(result.errors)
        start = record["start_date"]
        end = record["end_date"]
        return cls(
            origin=str(record["origin"]).strip(),
            destination=str(record["destination"]).strip(),
            start_date=start if isinstance(start, date) else date.fromisoformat(str(start)),
            end_date=end if isinstance(end, date) else date.fromisoformat(str(end)),
            mode=TransportMode(record.get("mode") or TransportMode.PUBLIC.value),
            pace=Pace(record.get("pace") or Pace.MODERATE.value),
        )

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["start_date"] = self.start_date.isoformat()
        d["end_date"] = self.end_date.isoformat()
        d["mode"] = self.mode.value
        d["pace"] = self.pace.value
        return d
