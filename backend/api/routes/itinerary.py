"""
api/routes/itinerary.py
------------------------
Itinerary read / edit endpoints.

  GET    /v1/itinerary/{session_id}                              days + phases + notices
  POST   /v1/itinerary/{session_id}/stops                        add (optional day_index)
  PATCH  /v1/itinerary/{session_id}/stops/{stop_id}              edit content fields
  DELETE /v1/itinerary/{session_id}/stops/{stop_id}              delete
  POST   /v1/itinerary/{session_id}/days/{day_index}/optimize    explicit reorder

Every handler is async, so session state is only touched from the event loop
that runs its sequencing tasks.

Edits never wait for sequencing.  ``optimize?wait=true`` drains the session's
in-flight work before responding (CLI / tests); otherwise the new order shows
up on a later GET.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from api.routes.trip import get_session
from modules.errors import StoreIntegrityViolation
from modules.validation import validate_stop
from schemas.itinerary import Stop

router = APIRouter()


# ── Request schemas ────────────────────────────────────────────────────────────

class TransitBody(BaseModel):
    mode: str = ""
    duration: str = ""
    steps: list[str] = Field(default_factory=list)


class AddStopRequest(BaseModel):
    id: Optional[str] = None                 # generated when absent
    name: str
    lat: float
    lng: float
    opening_hours: Optional[str] = None      # "HH:MM - HH:MM" | "24 Hours"
    day_index: Optional[int] = None          # None → last day
    category: str = ""
    notes: str = ""
    transit: Optional[TransitBody] = None


class EditStopRequest(BaseModel):
    name: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    opening_hours: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = None
    transit: Optional[TransitBody] = None
    arrival_time: Optional[str] = None
    cost_estimate: Optional[str] = None
    rationale: Optional[str] = None
    rating: Optional[float] = None


# ── Endpoints ──────────────────────────────────────────────────────────────────

@router.get("/{session_id}", summary="Current itinerary")
async def get_itinerary(session_id: str) -> dict:
    session = get_session(session_id)
    return {**session.summary(), "notices": session.pop_notices()}


@router.post("/{session_id}/stops", summary="Add a stop")
async def add_stop(session_id: str, req: AddStopRequest) -> dict:
    session = get_session(session_id)
    record: dict[str, Any] = req.model_dump(exclude={"day_index"})
    record["id"] = req.id or f"manual-{uuid.uuid4().hex[:8]}"

    result = validate_stop(record)
    if not result.valid:
        raise HTTPException(status_code=422, detail=result.errors)
    try:
        stops = session.add_stop(Stop.from_dict(record), req.day_index)
    except StoreIntegrityViolation as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    day_index = stops[-1].day_index
    return {
        "stop_id": record["id"],
        "day_index": day_index,
        "phase": session.controller.phase(day_index).value,
        "stops": [s.to_dict() for s in stops],
    }


@router.patch("/{session_id}/stops/{stop_id}", summary="Edit a stop")
async def edit_stop(session_id: str, stop_id: str, req: EditStopRequest) -> dict:
    session = get_session(session_id)
    fields = req.model_dump(exclude_unset=True)
    current = session.store.get_stop(stop_id)
    if current is None:
        raise HTTPException(status_code=404, detail=f"Stop '{stop_id}' not found.")

    result = validate_stop(current.merged(fields).to_dict())
    if not result.valid:
        raise HTTPException(status_code=422, detail=result.errors)
    updated = session.update_stop(stop_id, fields)
    if updated is None:
        raise HTTPException(status_code=404, detail=f"Stop '{stop_id}' not found.")
    return updated.to_dict()


@router.delete("/{session_id}/stops/{stop_id}", summary="Delete a stop")
async def delete_stop(session_id: str, stop_id: str) -> dict:
    session = get_session(session_id)
    return {"deleted": session.delete_stop(stop_id), "day_count": session.store.day_count}


@router.post("/{session_id}/days/{day_index}/optimize", summary="Reorder a day")
async def optimize_day(session_id: str, day_index: int, wait: bool = False) -> dict:
    session = get_session(session_id)
    if session.store.key_of(day_index) is None:
        raise HTTPException(status_code=404, detail=f"Day {day_index} not found.")
    session.request_reorder(day_index)
    if wait:
        await session.controller.drain()
    return {
        "day_index": day_index,
        "phase": session.controller.phase(day_index).value,
        "stops": [s.to_dict() for s in session.store.day(day_index)],
        "notices": session.pop_notices() if wait else [],
    }
