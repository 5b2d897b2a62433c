"""
main.py
--------
PLAYbook planner entry point.

Run:
  python main.py --demo                 scripted session on the sample day
  python main.py --decode <token>       print the days inside a share token
  python main.py --replay <session_id>  print a recorded session log
  python main.py --sessions             list recorded session ids, newest first
  python main.py --serve                run the HTTP API (uvicorn)

The demo uses the stub day generator and the configured sequencing backend
(local heuristic unless SEQUENCING_BACKEND=gemini).
"""

from __future__ import annotations

import asyncio
import json
import sys
from datetime import date, timedelta

import config
from modules.errors import ShareTokenError
from modules.generation.day_generator import DayGenerator
from modules.reoptimization.session import PlanningSession
from modules.share.share_codec import decode_share_token
from schemas.itinerary import Stop
from schemas.trip import TripConfig


# ── Output helpers ─────────────────────────────────────────────────────────────

def _print_days(days: list[list[Stop]], title: str) -> None:
    width = 64
    print()
    print("═" * width)
    print(f"  {title}")
    print("═" * width)
    for i, stops in enumerate(days, start=1):
        print(f"\n  DAY {i}  ({len(stops)} stops)")
        print("  " + "─" * (width - 2))
        for pos, s in enumerate(stops, start=1):
            hours = s.opening_hours or f"(default {config.DEFAULT_OPENING_HOURS})"
            lock = "  [start]" if pos == 1 else ""
            print(f"    {pos:>2}. {s.name:<32} {hours:<16}{lock}")
    print()


# ── Demo ──────────────────────────────────────────────────────────────────────

_DEMO_ADDS: list[Stop] = [
    Stop(id="demo-broad", name="The Broad", lat=34.0544, lng=-118.2504,
         opening_hours="11:00 - 17:00", category="TOUR"),
    Stop(id="demo-nightclub", name="Exchange LA", lat=34.0459, lng=-118.2517,
         opening_hours="22:00 - 03:00", category="RELAX"),
    Stop(id="demo-bakery", name="Bottega Louie", lat=34.0473, lng=-118.2565,
         opening_hours="07:00 - 12:00", category="DINE"),
]


async def run_demo() -> PlanningSession:
    today = date.today()
    trip = TripConfig.from_dict({
        "origin": "San Diego",
        "destination": "Los Angeles",
        "start_date": today.isoformat(),
        "end_date": (today + timedelta(days=2)).isoformat(),
        "mode": "walk",
        "pace": "moderate",
    })
    session = PlanningSession(trip, generator=DayGenerator(use_stub=True))

    print(f"\n  Session {session.session_id}: {trip.origin} → {trip.destination}, "
          f"{trip.total_days} days, {trip.pace.value}, {trip.mode.value}")
    print(f"  Sequencing backend: {config.SEQUENCING_BACKEND}")

    await session.generate_next_day()
    await session.controller.drain()
    _print_days(session.store.days(), "DAY 1 (generated, sequenced)")

    # The second and third adds land while the first add's sequencing is in flight.
    for stop in _DEMO_ADDS:
        session.add_stop(stop, 1)
    await session.controller.drain()
    _print_days(session.store.days(), "AFTER ADDING 3 STOPS")

    for notice in session.pop_notices():
        print(f"  ! {notice}")

    token = session.share_token()
    print(f"  Share token ({len(token)} chars):\n  {token}\n")
    return session


def run_decode(token: str) -> None:
    try:
        trip, days = decode_share_token(token)
    except ShareTokenError as exc:
        print(f"  Invalid share token: {exc}")
        sys.exit(1)
    print(json.dumps(trip.to_dict(), indent=2))
    _print_days(days, f"SHARED TRIP: {trip.origin} → {trip.destination}")


def _arg_after(flag: str) -> str:
    idx = sys.argv.index(flag)
    if idx + 1 >= len(sys.argv):
        print(f"Usage: python main.py {flag} <value>")
        sys.exit(1)
    return sys.argv[idx + 1]


def cli() -> None:
    if "--replay" in sys.argv:
        from modules.observability.replay import replay_session
        replay_session(_arg_after("--replay"))
        sys.exit(0)

    if "--sessions" in sys.argv:
        from modules.observability.logger import StructuredLogger
        for session_id in StructuredLogger().sessions():
            print(session_id)
        sys.exit(0)

    if "--decode" in sys.argv:
        run_decode(_arg_after("--decode"))
        sys.exit(0)

    if "--serve" in sys.argv:
        import uvicorn
        uvicorn.run("api.server:app", host="0.0.0.0", port=8000)
        sys.exit(0)

    if "--demo" in sys.argv:
        asyncio.run(run_demo())
        sys.exit(0)

    print(__doc__)


if __name__ == "__main__":
    cli()
