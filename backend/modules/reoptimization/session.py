"""
modules/reoptimization/session.py
-----------------------------------
PlanningSession — the one aggregate a command handler needs.

Owns:
  - the TripConfig (immutable until reset)
  - the ItineraryStore
  - the ReconciliationController and its oracle
  - pending transient notices ("Optimization failed. Keeping the current order.")

Lifecycle:
    session = PlanningSession(TripConfig.from_dict(body))
    await session.generate_next_day()          # day 1
    session.add_stop(stop)                     # may start sequencing
    session.request_reorder(1)                 # explicit reorder
    await session.controller.drain()
    token = session.share_token()

    restored = PlanningSession.from_share_token(token)   # None if malformed

Commands that can start sequencing (add_stop, request_reorder,
generate_next_day) must run on the event loop that owns the session.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from modules.errors import ShareTokenError, StoreIntegrityViolation
from modules.generation.day_generator import DayGenerator
from modules.itinerary.store import ItineraryStore
from modules.observability.logger import StructuredLogger
from modules.planning.sequencing_engine import SequencingParams
from modules.reoptimization.controller import ReconciliationController, TriggerReason
from modules.reoptimization.oracle import SequencingOracle, build_oracle
from modules.share.share_codec import decode_share_token, encode_share_token
from schemas.itinerary import Stop
from schemas.trip import TripConfig

logger = logging.getLogger(__name__)


class PlanningSession:
    """State aggregate for one planning session."""

    def __init__(
        self,
        config: TripConfig,
        *,
        oracle: Optional[SequencingOracle] = None,
        generator: Optional[DayGenerator] = None,
        structured_logger: Optional[StructuredLogger] = None,
        session_id: Optional[str] = None,
        min_stops: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self.session_id = session_id or f"sess_{uuid.uuid4().hex[:12]}"
        self.config = config
        self.store = ItineraryStore()
        self.generator = generator or DayGenerator()
        self.notices: list[str] = []
        self._slog = structured_logger or StructuredLogger()
        self._fixed_oracle = oracle

        self.controller = ReconciliationController(
            self.store,
            oracle or build_oracle(params=SequencingParams.for_trip(config)),
            session_id=self.session_id,
            min_stops=min_stops,
            timeout_seconds=timeout_seconds,
            structured_logger=self._slog,
            on_notice=self.notices.append,
        )
        self._slog.log(self.session_id, "SESSION_START", {"config": config.to_dict()})

    # ── Commands ──────────────────────────────────────────────────────────────

    def add_stop(self, stop: Stop, day_index: Optional[int] = None) -> list[Stop]:
        """Add *stop* (``None`` = last day); triggers sequencing at the threshold."""
        stops = self.store.add_stop(stop, day_index)
        landed = stops[-1].day_index
        self._command("add_stop", stop_id=stop.id, day_index=landed)
        self.controller.on_day_changed(landed)
        return stops

    def update_stop(self, stop_id: str, fields: dict[str, Any]) -> Optional[Stop]:
        updated = self.store.update_stop(stop_id, fields)
        self._command("update_stop", stop_id=stop_id, fields=sorted(fields), found=updated is not None)
        return updated

    def delete_stop(self, stop_id: str) -> bool:
        removed = self.store.delete_stop(stop_id)
        self._command("delete_stop", stop_id=stop_id, found=removed)
        return removed

    def request_reorder(self, day_index: int):
        """Explicit reorder of one day.  Returns the resolving task, or None."""
        self._command("request_reorder", day_index=day_index)
        return self.controller.request(day_index, TriggerReason.EXPLICIT)

    async def generate_next_day(self) -> list[Stop]:
        """
        Generate the next day and add its stops on a new day.

        Raises DayGenerationError if the generator fails; the store is left
        untouched in that case.
        """
        day_number = self.store.day_count + 1
        generated = await self.generator.generate(
            day_number, self.config, self.store.visited_names()
        )
        self._command("generate_day", day_number=day_number, stops=len(generated))
        if not generated:
            return []
        first, *rest = generated
        stops = self.store.add_stop(first, day_number)
        landed = stops[-1].day_index
        for stop in rest:
            stops = self.store.add_stop(stop, landed)
        self.controller.on_day_changed(landed)
        return stops

    def reset(self, config: Optional[TripConfig] = None) -> None:
        """Discard all days and in-flight work; optionally switch the trip."""
        self.controller.invalidate()
        self.store.clear()
        self.notices.clear()
        if config is not None:
            self.config = config
            if self._fixed_oracle is None:
                self.controller.oracle = build_oracle(params=SequencingParams.for_trip(config))
        self._slog.log(self.session_id, "SESSION_RESET", {
            "config": self.config.to_dict(),
            "generation": self.controller.generation,
        })
        self._slog.close(self.session_id)

    def close(self) -> None:
        """Drop in-flight work and release this session's log file handle."""
        self.controller.invalidate()
        self._slog.close(self.session_id)

    # ── Queries ───────────────────────────────────────────────────────────────

    def pop_notices(self) -> list[str]:
        """Return and clear the pending transient notices."""
        pending = list(self.notices)
        self.notices.clear()
        return pending

    def summary(self) -> dict[str, Any]:
        days = self.store.days()
        phases = self.controller.phases()
        return {
            "session_id": self.session_id,
            "config": self.config.to_dict(),
            "days": [
                {
                    "day_index": i,
                    "phase": phases[i - 1].value,
                    "stops": [s.to_dict() for s in stops],
                }
                for i, stops in enumerate(days, start=1)
            ],
        }

    # ── Share token ───────────────────────────────────────────────────────────

    def share_token(self) -> str:
        return encode_share_token(self.config, self.store.days())

    @classmethod
    def from_share_token(cls, token: str, **kwargs: Any) -> Optional["PlanningSession"]:
        """
        Hydrate a new session from a share token.

        Returns None for a malformed token, meaning the caller falls back to
        the configuration screen.
        """
        try:
            config, days = decode_share_token(token)
        except ShareTokenError as exc:
            logger.warning("share token rejected: %s", exc)
            return None
        session = cls(config, **kwargs)
        try:
            session.store.load(days)
        except StoreIntegrityViolation as exc:
            logger.warning("share token rejected: %s", exc)
            return None
        session._command("hydrate", days=session.store.day_count)
        return session

    # ── internals ─────────────────────────────────────────────────────────

    def _command(self, name: str, **payload: Any) -> None:
        self._slog.log(self.session_id, "USER_COMMAND", {"command": name, **payload})
