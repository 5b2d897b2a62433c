"""
schemas/sequencing.py
---------------------
Wire models for the sequencing oracle boundary (pydantic).

  SequencingRequest  locked start + remaining stops of one day, each reduced
                     to {id, name, lat, lng, opening_hours}
  SequencingResult   {"sorted_ids": [...]}, the oracle's proposed order

The request is built from an immutable day snapshot and is safe to hand to
another thread or a remote service.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from schemas.itinerary import Stop


class SequencingStop(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = ""
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)
    opening_hours: Optional[str] = None


class SequencingRequest(BaseModel):
    """``stops[0]`` is the locked start; the rest are unordered."""
    model_config = ConfigDict(frozen=True)

    locked_start_id: str
    stops: tuple[SequencingStop, ...] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_ids(self) -> "SequencingRequest":
        if self.stops[0].id != self.locked_start_id:
            raise ValueError(
                f"first stop {self.stops[0].id!r} is not the locked start "
                f"{self.locked_start_id!r}"
            )
        ids = [s.id for s in self.stops]
        if len(set(ids)) != len(ids):
            raise ValueError("stop ids in a sequencing request must be unique")
        return self

    @property
    def ids(self) -> list[str]:
        return [s.id for s in self.stops]

    @classmethod
    def from_stops(cls, stops: Sequence[Stop]) -> "SequencingRequest":
        """Build a request from a day's stops; the first stop is locked."""
        return cls(
            locked_start_id=stops[0].id,
            stops=tuple(
                SequencingStop(
                    id=s.id, name=s.name, lat=s.lat, lng=s.lng,
                    opening_hours=s.opening_hours,
                )
                for s in stops
            ),
        )

    def to_payload(self) -> dict[str, Any]:
        """Oracle wire form: {lockedStartId, stops: [{id, name, lat, lng, openingHours}]}."""
        return {
            "lockedStartId": self.locked_start_id,
            "stops": [
                {
                    "id": s.id,
                    "name": s.name,
                    "lat": s.lat,
                    "lng": s.lng,
                    "openingHours": s.opening_hours,
                }
                for s in self.stops
            ],
        }


class SequencingResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    sorted_ids: list[str]
