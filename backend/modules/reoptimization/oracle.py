"""
modules/reoptimization/oracle.py
----------------------------------
Sequencing oracle boundary.

Contract:
    request  = SequencingRequest {locked_start_id, stops[{id, name, lat, lng, opening_hours}]}
    response = raw JSON text or mapping {"sorted_ids": [...]} (a bare list is accepted)

Implementations:
    LocalHeuristicOracle    runs SequencingEngine off the event loop
    GeminiSequencingOracle  asks a remote model for the order

Any implementation may return garbage.  parse_sequencing_result() is the one
strict gate: the output must be a permutation of the request ids beginning
with the locked start, or OracleError is raised.  Nothing here repairs a
result.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import Counter
from typing import Any, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError

import config
from llm import call_llm_json
from modules.errors import OracleError
from modules.planning.sequencing_engine import SequencingEngine, SequencingParams
from schemas.sequencing import SequencingRequest, SequencingResult

logger = logging.getLogger(__name__)


class SequencingOracle(Protocol):
    """Anything that can propose an order for a SequencingRequest."""

    async def sequence(self, request: SequencingRequest) -> Any:
        ...


# ── Strict validation gate ───────────────────────────────────────────────────

def parse_sequencing_result(raw: Any, request: SequencingRequest) -> SequencingResult:
    """
    Parse an oracle's raw output into a SequencingResult.

    Raises OracleError unless the result is an exact permutation of the
    request's ids whose first element is the locked start.
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise OracleError(f"oracle returned non-JSON output: {exc}") from exc
    if isinstance(raw, list):
        raw = {"sorted_ids": raw}
    if raw is None:
        raise OracleError("oracle returned no result")

    try:
        result = SequencingResult.model_validate(raw)
    except PydanticValidationError as exc:
        raise OracleError(f"oracle result does not match schema: {exc.errors()}") from exc

    if not result.sorted_ids:
        raise OracleError("oracle returned an empty order")

    got, want = Counter(result.sorted_ids), Counter(request.ids)
    if got != want:
        missing = sorted((want - got).elements())
        extra = sorted((got - want).elements())
        raise OracleError(
            f"oracle order is not a permutation of the request "
            f"(missing={missing}, unexpected_or_duplicate={extra})"
        )
    if result.sorted_ids[0] != request.locked_start_id:
        raise OracleError(
            f"oracle moved the locked start {request.locked_start_id!r} "
            f"(first id {result.sorted_ids[0]!r})"
        )
    return result


# ── Local deterministic solver ───────────────────────────────────────────────

class LocalHeuristicOracle:
    """Runs the SequencingEngine in a worker thread so the loop never blocks."""

    def __init__(self, params: Optional[SequencingParams] = None) -> None:
        self.engine = SequencingEngine(params)

    async def sequence(self, request: SequencingRequest) -> dict[str, list[str]]:
        order = await asyncio.to_thread(self.engine.sequence, request)
        return {"sorted_ids": order}


# ── Remote model solver ──────────────────────────────────────────────────────

SEQUENCING_SYSTEM_INSTRUCTION = """
You are a route optimization engine.
Input: an unordered list of travel stops.
Task: reorder the stops to minimize total travel distance while adhering to
time window constraints.

Rules:
1. LOCKED START: the first item is the start point. It MUST remain at index 0.
2. TIME WINDOWS: read the "openingHours" field.
   - A venue that closes early (e.g. "09:00 - 14:00") must be visited early.
   - A venue that opens late (e.g. "18:00 - 02:00") must be visited late.
   - "24 Hours" or a missing value is flexible.
3. Minimize the geographic distance between consecutive stops.
4. OUTPUT: return the EXACT list of ids in the new order, each id once.
"""

SEQUENCING_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "sorted_ids": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
            "description": "Array of id strings in the optimized order",
        },
    },
    "required": ["sorted_ids"],
}


class GeminiSequencingOracle:
    """Remote solver; returns the model's raw JSON text."""

    def __init__(self, model: Optional[str] = None) -> None:
        self.model = model or config.SEQUENCING_MODEL_NAME

    async def sequence(self, request: SequencingRequest) -> str:
        start = request.stops[0]
        prompt = (
            f"Optimize this route starting from: {start.name} (ID: {start.id}).\n\n"
            f"Stops to visit:\n{json.dumps(request.to_payload()['stops'])}\n\n"
            "Reason about the opening hours and coordinates to produce the most "
            "efficient valid sequence."
        )
        logger.debug("gemini sequencing request for %d stops", len(request.stops))
        return await call_llm_json(
            prompt,
            system_instruction=SEQUENCING_SYSTEM_INSTRUCTION,
            schema=SEQUENCING_RESPONSE_SCHEMA,
            model=self.model,
        )


def build_oracle(backend: Optional[str] = None, params: Optional[SequencingParams] = None):
    """Oracle for config.SEQUENCING_BACKEND ("local" | "gemini")."""
    backend = (backend or config.SEQUENCING_BACKEND).lower()
    if backend == "gemini":
        return GeminiSequencingOracle()
    if backend != "local":
        logger.warning("unknown SEQUENCING_BACKEND %r; using local heuristic", backend)
    return LocalHeuristicOracle(params)
