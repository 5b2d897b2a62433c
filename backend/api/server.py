"""
api/server.py
-------------
FastAPI application entry point.

Run dev server:
    cd backend
    uvicorn api.server:app --reload --port 8000

Endpoints:
    GET    /v1/health
    POST   /v1/trip/start
    POST   /v1/trip/{session_id}/next-day
    POST   /v1/trip/{session_id}/reset
    GET    /v1/trip/{session_id}/share
    POST   /v1/trip/hydrate
    GET    /v1/itinerary/{session_id}
    POST   /v1/itinerary/{session_id}/stops
    PATCH  /v1/itinerary/{session_id}/stops/{stop_id}
    DELETE /v1/itinerary/{session_id}/stops/{stop_id}
    POST   /v1/itinerary/{session_id}/days/{day_index}/optimize
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import health, itinerary, trip

app = FastAPI(
    title="PLAYbook Planner API",
    version="1.0.0",
    description=(
        "Multi-day itinerary planner. Stops are re-sequenced in the background "
        "as they are added, without ever blocking edits."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# Allow the web frontend (any origin during development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router,     prefix="/v1",           tags=["Health"])
app.include_router(trip.router,       prefix="/v1/trip",      tags=["Trip"])
app.include_router(itinerary.router,  prefix="/v1/itinerary", tags=["Itinerary"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
