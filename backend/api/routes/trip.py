"""
api/routes/trip.py
------------------
Trip lifecycle endpoints.

  POST /v1/trip/start                   TripConfig → new session with day 1
  POST /v1/trip/{session_id}/next-day   generate and append the next day
  POST /v1/trip/{session_id}/reset      drop all days / in-flight work, new config
  GET  /v1/trip/{session_id}/share      share token
  POST /v1/trip/hydrate                 share token → new session, or {"state": "CONFIG"}

Sessions live in the in-memory ``_store`` below for the life of the process.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

import config
from modules.errors import DayGenerationError, TripValidationError
from modules.reoptimization.session import PlanningSession
from schemas.trip import TripConfig

router = APIRouter()

# ── In-memory session store ────────────────────────────────────────────────────
# key: session_id, value: PlanningSession
_store: dict[str, PlanningSession] = {}


def get_session(session_id: str) -> PlanningSession:
    session = _store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found.")
    return session


def remember(session: PlanningSession) -> None:
    """Keep *session*; the oldest sessions beyond config.MAX_SESSIONS are closed and dropped."""
    _store[session.session_id] = session
    while len(_store) > config.MAX_SESSIONS:
        oldest = next(iter(_store))
        _store.pop(oldest).close()


# ── Request schemas ────────────────────────────────────────────────────────────

class TripRequest(BaseModel):
    origin: str
    destination: str
    start_date: str = Field(..., description="ISO-8601 date YYYY-MM-DD")
    end_date:   str = Field(..., description="ISO-8601 date YYYY-MM-DD")
    mode: str = Field("public", description="public | car | walk")
    pace: str = Field("moderate", description="relaxed | moderate | power")


class ResetRequest(BaseModel):
    config: Optional[TripRequest] = None


class HydrateRequest(BaseModel):
    token: str


def _trip_config(req: TripRequest) -> TripConfig:
    try:
        return TripConfig.from_dict(req.model_dump())
    except TripValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors) from exc


async def _generate_day(session: PlanningSession) -> int:
    try:
        await session.generate_next_day()
    except DayGenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return session.store.day_count


# ── Endpoints ──────────────────────────────────────────────────────────────────

@router.post("/start", summary="Start a planning session")
async def start_trip(req: TripRequest) -> dict:
    """Validates the trip, creates a session and generates day 1."""
    session = PlanningSession(_trip_config(req))
    try:
        await _generate_day(session)
    except HTTPException:
        session.close()
        raise
    remember(session)
    return session.summary()


@router.post("/{session_id}/next-day", summary="Generate the next day")
async def next_day(session_id: str) -> dict:
    session = get_session(session_id)
    if session.store.day_count >= session.config.total_days:
        raise HTTPException(
            status_code=409,
            detail=f"Trip already has all {session.config.total_days} days.",
        )
    await _generate_day(session)
    return session.summary()


@router.post("/{session_id}/reset", summary="Reset the session")
async def reset_trip(session_id: str, req: ResetRequest) -> dict:
    session = get_session(session_id)
    new_config = _trip_config(req.config) if req.config else None
    session.reset(new_config)
    return session.summary()


@router.get("/{session_id}/share", summary="Share token for the session")
async def share(session_id: str) -> dict:
    session = get_session(session_id)
    return {"session_id": session_id, "token": session.share_token()}


@router.post("/hydrate", summary="Open a shared itinerary")
async def hydrate(req: HydrateRequest) -> dict:
    """A malformed token is not an error: the client falls back to the config screen."""
    session = PlanningSession.from_share_token(req.token)
    if session is None:
        return {"state": "CONFIG"}
    remember(session)
    return {"state": "PLANNING", **session.summary()}
