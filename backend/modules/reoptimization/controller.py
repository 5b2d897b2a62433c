"""
modules/reoptimization/controller.py
--------------------------------------
ReconciliationController — runs sequencing against a live, mutable store.

Per-day phase:   IDLE → SEQUENCING → IDLE      (no error phase)

  trigger       stop count reaches SEQUENCING_MIN_STOPS, or an explicit
                reorder request.  Snapshot (day key, version, stops), start an
                asyncio task calling the oracle under a timeout.
  edit          while SEQUENCING, store mutations apply immediately and bump
                the day's version.  Nothing waits for the oracle.
  completion    same version  → order applied through the store
                newer version → result discarded (stale); re-sequence if the
                                day still meets the threshold
                failure       → OracleError absorbed; order untouched;
                                transient notice emitted
  deferral      a trigger while the day is SEQUENCING is remembered and
                re-evaluated against the current state once the in-flight
                attempt resolves.  At most one attempt per day.
  invalidate    bumps the generation; every attempt started before becomes a
                no-op on completion.  Tasks are never force-cancelled.

Days are tracked by their stable store key, so a day that is re-indexed
while its attempt is in flight is still reconciled correctly, and a day that
is pruned simply drops the result.
"""

from __future__ import annotations

import asyncio
import logging
import time as _time_mod
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

import config
from modules.errors import OracleError
from modules.itinerary.store import ItineraryStore
from modules.observability.logger import StructuredLogger
from modules.reoptimization.oracle import SequencingOracle, parse_sequencing_result
from schemas.sequencing import SequencingRequest, SequencingResult

logger = logging.getLogger(__name__)

FAILURE_NOTICE = "Optimization failed. Keeping the current order."


class DayPhase(str, Enum):
    IDLE       = "idle"
    SEQUENCING = "sequencing"


class TriggerReason(str, Enum):
    THRESHOLD   = "threshold"     # stop count reached the minimum
    EXPLICIT    = "explicit"      # user asked for a reorder
    STALE_RETRY = "stale_retry"   # previous result was discarded as stale


class CompletionStatus(str, Enum):
    APPLIED   = "applied"
    STALE     = "stale"
    FAILED    = "failed"
    CANCELLED = "cancelled"       # started before the last invalidate()


@dataclass
class SequencingAttempt:
    day_key: str
    version: int
    generation: int
    reason: TriggerReason
    request: SequencingRequest
    started_at: float = field(default_factory=_time_mod.perf_counter)


@dataclass
class CompletionRecord:
    day_key: str
    status: CompletionStatus
    reason: TriggerReason
    order: Optional[list[str]] = None
    error: str = ""


class ReconciliationController:
    """Owns every in-flight sequencing attempt of one planning session."""

    def __init__(
        self,
        store: ItineraryStore,
        oracle: SequencingOracle,
        *,
        session_id: str = "default",
        min_stops: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        structured_logger: Optional[StructuredLogger] = None,
        on_notice: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.store = store
        self.oracle = oracle
        self.session_id = session_id
        self.min_stops = config.SEQUENCING_MIN_STOPS if min_stops is None else min_stops
        self.timeout_seconds = (
            config.SEQUENCING_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self._slog = structured_logger or StructuredLogger()
        self._on_notice = on_notice

        self._generation = 0
        self._in_flight: dict[str, SequencingAttempt] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._deferred: dict[str, TriggerReason] = {}
        self.history: deque[CompletionRecord] = deque(maxlen=config.SEQUENCING_HISTORY_SIZE)

    # ── Introspection ─────────────────────────────────────────────────────────

    @property
    def generation(self) -> int:
        return self._generation

    def phase(self, day_index: int) -> DayPhase:
        key = self.store.key_of(day_index)
        if key is not None and self._is_live(key):
            return DayPhase.SEQUENCING
        return DayPhase.IDLE

    def phases(self) -> list[DayPhase]:
        return [self.phase(i) for i in range(1, self.store.day_count + 1)]

    def _is_live(self, key: str) -> bool:
        attempt = self._in_flight.get(key)
        return attempt is not None and attempt.generation == self._generation

    # ── Triggers ──────────────────────────────────────────────────────────────

    def on_day_changed(self, day_index: int) -> Optional[asyncio.Task]:
        """Threshold trigger: call after a stop lands on *day_index*."""
        if len(self.store.day(day_index)) < self.min_stops:
            return None
        return self.request(day_index, TriggerReason.THRESHOLD)

    def request(
        self, day_index: int, reason: TriggerReason = TriggerReason.EXPLICIT
    ) -> Optional[asyncio.Task]:
        """
        Start sequencing *day_index*, or defer it if an attempt is in flight.

        Must be called from inside a running event loop.  Returns the task
        that will resolve the day (the in-flight one when deferring), or None
        if the day does not exist.
        """
        key = self.store.key_of(day_index)
        if key is None:
            return None
        if self._is_live(key):
            if self._deferred.get(key) is not TriggerReason.EXPLICIT:
                self._deferred[key] = reason
            self._slog.log(self.session_id, "SEQUENCING_DEFERRED", {
                "day_index": day_index,
                "reason": reason.value,
            })
            return self._tasks.get(key)
        return self._start(day_index, reason)

    def invalidate(self) -> None:
        """Make every attempt started so far a no-op on completion."""
        self._generation += 1
        self._deferred.clear()

    async def drain(self) -> None:
        """Wait until no attempt (including follow-ups) is outstanding."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    # ── Attempt lifecycle ─────────────────────────────────────────────────────

    def _start(self, day_index: int, reason: TriggerReason) -> Optional[asyncio.Task]:
        snap = self.store.snapshot(day_index)
        if snap is None:
            return None
        key, version, stops = snap
        attempt = SequencingAttempt(
            day_key=key,
            version=version,
            generation=self._generation,
            reason=reason,
            request=SequencingRequest.from_stops(stops),
        )
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(attempt), name=f"sequencing-day-{day_index}")
        self._in_flight[key] = attempt
        self._tasks[key] = task
        self._slog.log(self.session_id, "SEQUENCING_START", {
            "day_index": day_index,
            "version": version,
            "stops": len(stops),
            "reason": reason.value,
        })
        return task

    async def _run(self, attempt: SequencingAttempt) -> CompletionRecord:
        outcome: SequencingResult | OracleError
        try:
            raw: Any = await asyncio.wait_for(
                self.oracle.sequence(attempt.request), timeout=self.timeout_seconds
            )
            outcome = parse_sequencing_result(raw, attempt.request)
        except asyncio.TimeoutError:
            outcome = OracleError(f"sequencing timed out after {self.timeout_seconds}s")
        except OracleError as exc:
            outcome = exc
        except asyncio.CancelledError:
            self._release(attempt)
            raise
        except Exception as exc:  # noqa: BLE001
            outcome = OracleError(f"oracle raised {type(exc).__name__}: {exc}")
            outcome.__cause__ = exc
        return self._complete(attempt, outcome)

    def _release(self, attempt: SequencingAttempt) -> None:
        if self._in_flight.get(attempt.day_key) is attempt:
            del self._in_flight[attempt.day_key]
            self._tasks.pop(attempt.day_key, None)

    def _complete(
        self, attempt: SequencingAttempt, outcome: SequencingResult | OracleError
    ) -> CompletionRecord:
        self._release(attempt)
        key = attempt.day_key
        duration_ms = round((_time_mod.perf_counter() - attempt.started_at) * 1000, 2)

        if attempt.generation != self._generation:
            record = CompletionRecord(key, CompletionStatus.CANCELLED, attempt.reason)
            self.history.append(record)
            return record

        if isinstance(outcome, OracleError):
            record = CompletionRecord(
                key, CompletionStatus.FAILED, attempt.reason, error=str(outcome)
            )
            logger.warning("sequencing failed for day %s: %s", key[:8], outcome)
            self._slog.log(self.session_id, "ORACLE_FAILURE", {
                "day_index": self.store.index_of_key(key),
                "error": str(outcome),
                "duration_ms": duration_ms,
            })
            if self._on_notice:
                self._on_notice(FAILURE_NOTICE)
        else:
            applied = self.store.apply_order_if_current(key, attempt.version, outcome.sorted_ids)
            if applied is None:
                record = CompletionRecord(
                    key, CompletionStatus.STALE, attempt.reason, order=outcome.sorted_ids
                )
                self._slog.log(self.session_id, "STALE_RESULT_DISCARD", {
                    "day_index": self.store.index_of_key(key),
                    "snapshot_version": attempt.version,
                    "current_version": self.store.version_of(key),
                })
            else:
                record = CompletionRecord(
                    key, CompletionStatus.APPLIED, attempt.reason,
                    order=[s.id for s in applied],
                )
                self._slog.log(self.session_id, "SEQUENCING_APPLIED", {
                    "day_index": self.store.index_of_key(key),
                    "order": record.order,
                    "duration_ms": duration_ms,
                })

        self.history.append(record)
        self._follow_up(key, stale=record.status is CompletionStatus.STALE)
        return record

    def _follow_up(self, key: str, *, stale: bool) -> None:
        deferred = self._deferred.pop(key, None)
        day_index = self.store.index_of_key(key)
        if day_index is None:
            return
        if deferred is TriggerReason.EXPLICIT:
            self._start(day_index, TriggerReason.EXPLICIT)
        elif (deferred is not None or stale) and len(self.store.day(day_index)) >= self.min_stops:
            self._start(day_index, deferred or TriggerReason.STALE_RETRY)
