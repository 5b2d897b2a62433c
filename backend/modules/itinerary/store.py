"""
modules/itinerary/store.py
----------------------------
ItineraryStore — the day-partitioned, ordered collection of stops.

Mutation primitives:
  add_stop(stop, target_day_index)      append; creates the day if absent
  update_stop(stop_id, fields)          merge; unknown id is a no-op
  delete_stop(stop_id)                  remove; prunes an emptied day and
                                        re-indexes later days downward
  replace_day_order(day_index, ids)     reorder; never drops or duplicates

Invariants (asserted after every mutation when STRICT_INTEGRITY_CHECKS is on):
  1. Stop ids are unique across all days.
  4. Day indices are contiguous from 1; no day is empty; every stop's
     day_index equals its day's position.

Every operation holds the store lock for its whole duration, so no reader
ever sees half of an add or delete.  Each mutation bumps the touched day's
version stamp; the ReconciliationController compares stamps to detect edits
made while a sequencing call was in flight.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from typing import Any, Iterable, Optional

import config
from modules.errors import StoreIntegrityViolation
from schemas.itinerary import Day, Stop


class ItineraryStore:
    """Owns the Days of one planning session."""

    def __init__(self, strict: bool | None = None) -> None:
        self._days: list[Day] = []
        self._lock = threading.RLock()
        self._strict = config.STRICT_INTEGRITY_CHECKS if strict is None else strict

    # ── Reads ─────────────────────────────────────────────────────────────────

    @property
    def day_count(self) -> int:
        with self._lock:
            return len(self._days)

    def days(self) -> list[list[Stop]]:
        """Copy of every day's stop list, in day order."""
        with self._lock:
            return [list(d.stops) for d in self._days]

    def day(self, day_index: int) -> list[Stop]:
        """Copy of one day's stops; empty list if the day does not exist."""
        with self._lock:
            d = self._day_at(day_index)
            return list(d.stops) if d else []

    def get_stop(self, stop_id: str) -> Optional[Stop]:
        with self._lock:
            located = self._locate(stop_id)
            return located[0].stops[located[1]] if located else None

    def snapshot(self, day_index: int) -> Optional[tuple[str, int, tuple[Stop, ...]]]:
        """(day key, version, immutable stops) for a day, or None."""
        with self._lock:
            d = self._day_at(day_index)
            if d is None:
                return None
            return d.key, d.version, tuple(d.stops)

    def index_of_key(self, key: str) -> Optional[int]:
        """Current 1-based index of the day with *key*, or None once pruned."""
        with self._lock:
            for i, d in enumerate(self._days):
                if d.key == key:
                    return i + 1
            return None

    def key_of(self, day_index: int) -> Optional[str]:
        with self._lock:
            d = self._day_at(day_index)
            return d.key if d else None

    def version_of(self, key: str) -> Optional[int]:
        with self._lock:
            for d in self._days:
                if d.key == key:
                    return d.version
            return None

    def visited_names(self) -> list[str]:
        """Names of every stop in the trip, in day order."""
        with self._lock:
            return [s.name for d in self._days for s in d.stops]

    # ── Mutations ─────────────────────────────────────────────────────────────

    def add_stop(self, stop: Stop, target_day_index: int | None = None) -> list[Stop]:
        """
        Append *stop* to the target day and return that day's new stop list.

        ``None`` targets the last day.  An index past the current day count
        creates a new day at ``day_count + 1``; an index below 1 targets day 1.
        """
        with self._lock:
            if self._locate(stop.id) is not None:
                raise StoreIntegrityViolation(f"duplicate stop id {stop.id!r}")

            if target_day_index is None:
                target_day_index = max(len(self._days), 1)
            target_day_index = max(1, target_day_index)

            if target_day_index > len(self._days):
                self._days.append(Day(key=uuid.uuid4().hex))
                target_day_index = len(self._days)

            d = self._days[target_day_index - 1]
            d.stops.append(replace(stop, day_index=target_day_index))
            d.version += 1
            self._check()
            return list(d.stops)

    def update_stop(self, stop_id: str, fields: dict[str, Any]) -> Optional[Stop]:
        """
        Merge *fields* into the stop with *stop_id*.

        Returns the updated stop, or None if the id is unknown (a recoverable
        race with a concurrent delete, not an error).
        """
        with self._lock:
            located = self._locate(stop_id)
            if located is None:
                return None
            d, pos = located
            updated = d.stops[pos].merged(fields)
            d.stops[pos] = updated
            d.version += 1
            self._check()
            return updated

    def delete_stop(self, stop_id: str) -> bool:
        """Remove a stop; prune its day if it empties.  False if unknown."""
        with self._lock:
            located = self._locate(stop_id)
            if located is None:
                return False
            d, pos = located
            del d.stops[pos]
            d.version += 1
            if not d.stops:
                self._days.remove(d)
                self._reindex()
            self._check()
            return True

    def replace_day_order(self, day_index: int, ordered_ids: Iterable[str]) -> list[Stop]:
        """
        Reorder a day to follow *ordered_ids*.

        Ids not in the day are dropped, repeated ids count once, and any of the
        day's stops missing from *ordered_ids* are appended in their prior
        relative order.  The returned list always has the pre-call size.
        """
        with self._lock:
            d = self._day_at(day_index)
            if d is None:
                return []
            by_id = {s.id: s for s in d.stops}
            seen: set[str] = set()
            reordered: list[Stop] = []
            for sid in ordered_ids:
                if sid in by_id and sid not in seen:
                    seen.add(sid)
                    reordered.append(by_id[sid])
            reordered.extend(s for s in d.stops if s.id not in seen)

            d.stops = reordered
            d.version += 1
            self._check()
            return list(d.stops)

    def apply_order_if_current(
        self, key: str, expected_version: int, ordered_ids: Iterable[str]
    ) -> Optional[list[Stop]]:
        """
        Compare-and-swap form of replace_day_order, keyed by day key.

        Applies the order only if the day still exists at *expected_version*;
        returns the new stop list, or None when the day moved on.
        """
        with self._lock:
            index = self.index_of_key(key)
            if index is None or self._days[index - 1].version != expected_version:
                return None
            return self.replace_day_order(index, ordered_ids)

    def load(self, days: Iterable[Iterable[Stop]]) -> None:
        """Replace all content (share-token hydration).  Empty days are skipped."""
        with self._lock:
            self._days = []
            for stops in days:
                stops = list(stops)
                if stops:
                    self._days.append(Day(key=uuid.uuid4().hex, stops=stops))
            self._reindex()
            try:
                self._check(force=True)
            except StoreIntegrityViolation:
                self._days = []
                raise

    def clear(self) -> None:
        with self._lock:
            self._days = []

    # ── Internals ─────────────────────────────────────────────────────────────

    def _day_at(self, day_index: int) -> Optional[Day]:
        if 1 <= day_index <= len(self._days):
            return self._days[day_index - 1]
        return None

    def _locate(self, stop_id: str) -> Optional[tuple[Day, int]]:
        for d in self._days:
            for pos, s in enumerate(d.stops):
                if s.id == stop_id:
                    return d, pos
        return None

    def _reindex(self) -> None:
        for i, d in enumerate(self._days, start=1):
            if any(s.day_index != i for s in d.stops):
                d.stops = [replace(s, day_index=i) for s in d.stops]

    def _check(self, force: bool = False) -> None:
        if not (self._strict or force):
            return
        seen: set[str] = set()
        for i, d in enumerate(self._days, start=1):
            if not d.stops:
                raise StoreIntegrityViolation(f"day {i} is empty")
            for s in d.stops:
                if s.id in seen:
                    raise StoreIntegrityViolation(f"duplicate stop id {s.id!r}")
                seen.add(s.id)
                if s.day_index != i:
                    raise StoreIntegrityViolation(
                        f"stop {s.id!r} has day_index {s.day_index}, expected {i}"
                    )
