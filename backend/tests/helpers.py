"""Shared test doubles and builders."""

import asyncio

from modules.planning.sequencing_engine import SequencingEngine
from schemas.itinerary import Stop
from schemas.sequencing import SequencingRequest


class GatedOracle:
    """
    Fake oracle that blocks every call until release() is called.

    ``respond(request)`` builds the raw answer; by default the local engine's
    order.  Once released, later calls answer immediately.
    """

    def __init__(self, respond=None, gated: bool = True):
        self.calls: list[SequencingRequest] = []
        self._respond = respond or (lambda req: {"sorted_ids": SequencingEngine().sequence(req)})
        self._gate = asyncio.Event()
        self._started = asyncio.Event()
        if not gated:
            self._gate.set()

    def release(self) -> None:
        self._gate.set()

    async def wait_started(self) -> None:
        await self._started.wait()

    async def sequence(self, request: SequencingRequest):
        self.calls.append(request)
        self._started.set()
        await self._gate.wait()
        return self._respond(request)


class FailingOracle:
    def __init__(self, exc: Exception):
        self.exc = exc
        self.calls = 0

    async def sequence(self, request):
        self.calls += 1
        raise self.exc


class SlowOracle:
    async def sequence(self, request):
        await asyncio.sleep(10)
        return {"sorted_ids": request.ids}


def make_stop(stop_id: str, lat: float = 34.05, lng: float = -118.25,
              opening_hours=None, name=None) -> Stop:
    return Stop(id=stop_id, name=name or f"Stop {stop_id}", lat=lat, lng=lng,
                opening_hours=opening_hours)


def reversed_tail(request: SequencingRequest) -> dict:
    """Valid permutation: locked start, then the rest reversed."""
    ids = request.ids
    return {"sorted_ids": [ids[0], *reversed(ids[1:])]}


# Four stops around downtown Los Angeles, roughly 1 km apart.
LA_STOPS = [
    ("s0", 34.0562, -118.2365),
    ("s1", 34.0423, -118.2587),
    ("s2", 34.0506, -118.2488),
    ("s3", 34.0478, -118.2503),
]
