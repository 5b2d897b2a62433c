"""
modules/generation/day_generator.py
-------------------------------------
Produces the stops for one new day of a trip.

Two modes, chosen by config.USE_STUB_DAY_GENERATION:

  stub    the next STUB_STOPS_PER_DAY unvisited stops of a fixed Los Angeles
          sample pool; no network, used by default, by the CLI demo and in tests
  gemini  prompts the day model with the trip config, the day number and the
          "do not revisit" list; the JSON array it returns is validated with
          pydantic and then by validate_stop()

Generated stops are handed to PlanningSession.generate_next_day(), which adds
them to the store on a new day.  Ids are "{day}-{idx}-{hex}".
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

import config
from llm import call_llm_json
from modules.errors import DayGenerationError
from modules.validation import filter_valid, validate_stop
from schemas.itinerary import Stop, TransitInfo
from schemas.trip import TripConfig

logger = logging.getLogger(__name__)


# ── Sample pool (stub mode) ──────────────────────────────────────────────────

STUB_STOPS_PER_DAY = 4

SAMPLE_STOPS: list[dict[str, Any]] = [
    {
        "stop_name": "Arrival at Union Station",
        "arrival_time": "10:30",
        "transport_method": "Amtrak Pacific Surfliner",
        "transit_duration": "2h 45m",
        "transit_steps": ["Board at Santa Fe Depot", "Exit at Union Station, Track 10"],
        "cost_estimate": "$35.00",
        "rationale": "Arriving from San Diego. The train drops you right in the center.",
        "category": "TRANSIT",
        "coordinates": {"lat": 34.0562, "lng": -118.2365},
        "rating": 4.2,
        "opening_hours": "04:00 - 01:00",
    },
    {
        "stop_name": "The Hoxton Hotel",
        "arrival_time": "11:00",
        "transport_method": "Rideshare",
        "transit_duration": "10 mins",
        "transit_steps": ["Pickup at Patsaouras Plaza", "Drop-off on Broadway"],
        "cost_estimate": "$12.00",
        "rationale": "Drop bags off immediately. Early check-in requested.",
        "category": "LODGE",
        "coordinates": {"lat": 34.0423, "lng": -118.2587},
        "rating": 4.6,
        "opening_hours": "24 Hours",
    },
    {
        "stop_name": "Grand Central Market",
        "arrival_time": "11:45",
        "transport_method": "Walk",
        "transit_duration": "5 mins",
        "transit_steps": ["Walk north on Broadway", "Enter at the 3rd St side"],
        "cost_estimate": "$0.00",
        "rationale": "Perfect time for lunch before the crowds peak at 12:30.",
        "category": "DINE",
        "coordinates": {"lat": 34.0506, "lng": -118.2488},
        "rating": 4.8,
        "opening_hours": "08:00 - 21:00",
    },
    {
        "stop_name": "The Last Bookstore",
        "arrival_time": "13:30",
        "transport_method": "Walk",
        "transit_duration": "10 mins",
        "transit_steps": ["Walk south on Spring St", "Turn right on 5th St"],
        "cost_estimate": "$0.00",
        "rationale": "Iconic spot nearby. Fits a relaxed pace.",
        "category": "SHOP",
        "coordinates": {"lat": 34.0478, "lng": -118.2503},
        "rating": 4.7,
        "opening_hours": "11:00 - 20:00",
    },
    {
        "stop_name": "Olvera Street",
        "arrival_time": "09:30",
        "transport_method": "Walk",
        "transit_duration": "5 mins",
        "transit_steps": ["Cross Alameda St from the hotel shuttle stop"],
        "cost_estimate": "$0.00",
        "rationale": "Quiet before the market stalls open; good coffee nearby.",
        "category": "TOUR",
        "coordinates": {"lat": 34.0575, "lng": -118.2378},
        "rating": 4.5,
        "opening_hours": "09:00 - 18:00",
    },
    {
        "stop_name": "Griffith Observatory",
        "arrival_time": "12:00",
        "transport_method": "DASH Observatory bus",
        "transit_duration": "35 mins",
        "transit_steps": ["Red Line to Vermont/Sunset", "DASH Observatory to the summit"],
        "cost_estimate": "$0.50",
        "rationale": "Clear midday views of the Hollywood sign.",
        "category": "TOUR",
        "coordinates": {"lat": 34.1184, "lng": -118.3004},
        "rating": 4.8,
        "opening_hours": "12:00 - 22:00",
    },
    {
        "stop_name": "Crypto.com Arena Plaza",
        "arrival_time": "16:00",
        "transport_method": "Metro",
        "transit_duration": "30 mins",
        "transit_steps": ["Red Line to 7th St/Metro Center", "Walk south on Figueroa"],
        "cost_estimate": "$1.75",
        "rationale": "Statues and LA Live before the evening crowd.",
        "category": "TOUR",
        "coordinates": {"lat": 34.0430, "lng": -118.2673},
        "rating": 4.4,
        "opening_hours": "24 Hours",
    },
    {
        "stop_name": "Perch Rooftop",
        "arrival_time": "19:30",
        "transport_method": "Walk",
        "transit_duration": "15 mins",
        "transit_steps": ["Walk east on 5th St", "Elevator to the 15th floor"],
        "cost_estimate": "$45.00",
        "rationale": "Sunset dinner with a skyline view.",
        "category": "DINE",
        "coordinates": {"lat": 34.0488, "lng": -118.2515},
        "rating": 4.5,
        "opening_hours": "16:00 - 01:00",
    },
]


# ── Model output schema ──────────────────────────────────────────────────────

class _Coordinates(BaseModel):
    lat: float
    lng: float


class GeneratedStop(BaseModel):
    """One element of the day model's JSON array."""
    model_config = ConfigDict(extra="ignore")

    stop_name: str = Field(min_length=1)
    coordinates: _Coordinates
    arrival_time: str = ""
    transport_method: str = ""
    transit_duration: str = ""
    transit_steps: list[str] = Field(default_factory=list)
    cost_estimate: str = ""
    rationale: str = ""
    category: str = ""
    rating: Optional[float] = None
    opening_hours: Optional[str] = None

    def to_stop(self, stop_id: str) -> Stop:
        transit = None
        if self.transport_method or self.transit_duration or self.transit_steps:
            transit = TransitInfo(
                mode=self.transport_method,
                duration=self.transit_duration,
                steps=tuple(self.transit_steps),
            )
        return Stop(
            id=stop_id,
            name=self.stop_name.strip(),
            lat=self.coordinates.lat,
            lng=self.coordinates.lng,
            opening_hours=self.opening_hours or None,
            category=self.category.upper(),
            transit=transit,
            arrival_time=self.arrival_time,
            cost_estimate=self.cost_estimate,
            rationale=self.rationale,
            rating=self.rating or None,
        )


_DAY_ADAPTER = TypeAdapter(list[GeneratedStop])

DAY_SYSTEM_INSTRUCTION = """
You are PLAYbook, an intelligent travel logistician.
Generate a single day's itinerary for a larger trip.

Rules:
1. Day 1: the first item MUST be the travel leg from the origin to the
   destination; the second item is checking into a hotel or a central hub.
2. Day 2+: start from a central point and DO NOT repeat any place listed as
   already visited.
3. Pace: relaxed ~3-4 hours of activity, moderate ~5-6 hours, power 8+ hours.
4. Prefer the user's transport mode where sensible and always give a
   transit_duration.
5. Every stop MUST carry accurate latitude/longitude.
6. Include rating (1-5), opening_hours ("HH:MM - HH:MM" or "24 Hours") and a
   category from LODGE, DINE, TOUR, TRANSIT, SHOP, RELAX.

Return strictly a JSON array of objects.
"""

DAY_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "stop_name":        {"type": "STRING"},
            "arrival_time":     {"type": "STRING"},
            "transport_method": {"type": "STRING"},
            "transit_duration": {"type": "STRING"},
            "transit_steps":    {"type": "ARRAY", "items": {"type": "STRING"}},
            "cost_estimate":    {"type": "STRING"},
            "rationale":        {"type": "STRING"},
            "category": {
                "type": "STRING",
                "enum": ["LODGE", "DINE", "TOUR", "TRANSIT", "SHOP", "RELAX"],
            },
            "rating":        {"type": "NUMBER"},
            "opening_hours": {"type": "STRING"},
            "coordinates": {
                "type": "OBJECT",
                "properties": {"lat": {"type": "NUMBER"}, "lng": {"type": "NUMBER"}},
                "required": ["lat", "lng"],
            },
        },
        "required": ["stop_name", "arrival_time", "transport_method", "coordinates", "category"],
    },
}


def _make_id(day_number: int, idx: int) -> str:
    return f"{day_number}-{idx}-{uuid.uuid4().hex[:8]}"


def build_day_prompt(day_number: int, trip: TripConfig, previous_names: list[str]) -> str:
    if day_number == 1:
        day_line = (
            f"Generating DAY 1. Start by traveling from {trip.origin} to "
            f"{trip.destination}, then proceed to the hotel / initial exploration."
        )
    else:
        day_line = (
            f"Generating DAY {day_number} of {trip.total_days}. Start from the hotel or "
            f"a central hub in {trip.destination}. Explore new areas."
        )
    avoid = (
        f"DO NOT visit these places again: {', '.join(previous_names)}."
        if previous_names else ""
    )
    return (
        "Trip Config:\n"
        f"- Destination: {trip.destination}\n"
        f"- Pace: {trip.pace.value}\n"
        f"- Mode Preference: {trip.mode.value}\n\n"
        f"{day_line}\n{avoid}\n\n"
        "Ensure a logical geographic flow and provide ACCURATE coordinates."
    )


class DayGenerator:
    """Generates one day of stops.  ``use_stub=None`` follows config."""

    def __init__(self, use_stub: Optional[bool] = None, model: Optional[str] = None) -> None:
        self.use_stub = config.USE_STUB_DAY_GENERATION if use_stub is None else use_stub
        self.model = model or config.LLM_MODEL_NAME

    async def generate(
        self, day_number: int, trip: TripConfig, previous_names: list[str]
    ) -> list[Stop]:
        if self.use_stub:
            items = self._sample(previous_names)
        else:
            items = await self._ask_model(day_number, trip, previous_names)

        stops = [item.to_stop(_make_id(day_number, idx)) for idx, item in enumerate(items)]
        stops = filter_valid(stops, validate_stop, to_dict=lambda s: s.to_dict())
        logger.info("generated %d stops for day %d", len(stops), day_number)
        return stops

    # ── internals ─────────────────────────────────────────────────────────

    @staticmethod
    def _sample(previous_names: list[str]) -> list[GeneratedStop]:
        seen = {n.strip().lower() for n in previous_names}
        items = _DAY_ADAPTER.validate_python(SAMPLE_STOPS)
        fresh = [i for i in items if i.stop_name.strip().lower() not in seen]
        return fresh[:STUB_STOPS_PER_DAY]

    async def _ask_model(
        self, day_number: int, trip: TripConfig, previous_names: list[str]
    ) -> list[GeneratedStop]:
        try:
            raw = await call_llm_json(
                build_day_prompt(day_number, trip, previous_names),
                system_instruction=DAY_SYSTEM_INSTRUCTION,
                schema=DAY_RESPONSE_SCHEMA,
                model=self.model,
                temperature=0.3,
            )
        except Exception as exc:
            logger.warning("day %d: model call failed: %s", day_number, exc)
            raise DayGenerationError(f"day model call failed: {exc}") from exc
        try:
            return _DAY_ADAPTER.validate_python(json.loads(raw))
        except (json.JSONDecodeError, PydanticValidationError) as exc:
            logger.warning("day %d: model output rejected: %s", day_number, exc)
            raise DayGenerationError(f"day generation returned malformed output: {exc}") from exc
