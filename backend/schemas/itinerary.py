"""
schemas/itinerary.py
--------------------
Dataclass definitions for the itinerary structures held by the ItineraryStore.

A trip is a list of Days; each Day is an ordered list of Stops.  Order is the
visiting sequence.  A Stop's day membership is its ``day_index`` (1-based).
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Optional


@dataclass(frozen=True)
class TransitInfo:
    """How the traveller arrives INTO a stop from the previous one."""
    mode: str = ""                       # e.g. "walk" | "bus" | "train" | "car"
    duration: str = ""                   # free text, e.g. "15 mins"
    steps: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"mode": self.mode, "duration": self.duration, "steps": list(self.steps)}

    @classmethod
    def from_dict(cls, record: dict[str, Any]) -> "TransitInfo":
        return cls(
            mode=str(record.get("mode") or ""),
            duration=str(record.get("duration") or ""),
            steps=tuple(str(s) for s in record.get("steps") or ()),
        )


@dataclass(frozen=True)
class Stop:
    """
    A single point of interest in a day's itinerary.

    Stops are immutable values; the store swaps in updated copies so that a
    snapshot handed to the sequencing oracle can never change underneath it.
    """
    id: str
    name: str
    lat: float
    lng: float
    opening_hours: Optional[str] = None  # "HH:MM - HH:MM" | "24 Hours" | None
    day_index: int = 0                   # assigned by the store
    category: str = ""                   # e.g. "LODGE" | "DINE" | "TOUR" | "TRANSIT" | "SHOP"
    notes: str = ""
    transit: Optional[TransitInfo] = None

    # Descriptive content carried from day generation
    arrival_time: str = ""
    cost_estimate: str = ""
    rationale: str = ""
    rating: Optional[float] = None

    def merged(self, updates: dict[str, Any]) -> "Stop":
        """Return a copy with *updates* applied; unknown keys are ignored."""
        allowed = {f.name for f in fields(self)} - NON_EDITABLE_FIELDS
        changes = {k: v for k, v in updates.items() if k in allowed}
        if isinstance(changes.get("transit"), dict):
            changes["transit"] = TransitInfo.from_dict(changes["transit"])
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id":            self.id,
            "name":          self.name,
            "lat":           self.lat,
            "lng":           self.lng,
            "opening_hours": self.opening_hours,
            "day_index":     self.day_index,
            "category":      self.category,
            "notes":         self.notes,
            "transit":       self.transit.to_dict() if self.transit else None,
            "arrival_time":  self.arrival_time,
            "cost_estimate": self.cost_estimate,
            "rationale":     self.rationale,
            "rating":        self.rating,
        }

    @classmethod
    def from_dict(cls, record: dict[str, Any]) -> "Stop":
        transit = record.get("transit")
        rating = record.get("rating")
        return cls(
            id=str(record["id"]),
            name=str(record["name"]),
            lat=float(record["lat"]),
            lng=float(record["lng"]),
            opening_hours=record.get("opening_hours") or None,
            day_index=int(record.get("day_index") or 0),
            category=str(record.get("category") or ""),
            notes=str(record.get("notes") or ""),
            transit=TransitInfo.from_dict(transit) if transit else None,
            arrival_time=str(record.get("arrival_time") or ""),
            cost_estimate=str(record.get("cost_estimate") or ""),
            rationale=str(record.get("rationale") or ""),
            rating=float(rating) if rating is not None else None,
        )


# Identity and placement are owned by the store, not by edits.
NON_EDITABLE_FIELDS: frozenset[str] = frozenset({"id", "day_index"})


@dataclass
class Day:
    """
    One day's ordered stops.

    ``key`` is stable for the life of the day (survives re-indexing when an
    earlier day is pruned); ``version`` increases on every mutation.
    """
    key: str
    stops: list[Stop] = field(default_factory=list)
    version: int = 0
