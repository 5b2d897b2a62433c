"""
modules/planning/time_windows.py
----------------------------------
Opening-hours parsing and window classification for the SequencingEngine.

Accepted opening-hours strings:
  "HH:MM - HH:MM"   (spaces optional; "-", "–" or "—" as separator)
  "24 Hours"        (case-insensitive; also "24h", "open 24 hours")
  None / ""         → config.DEFAULT_OPENING_HOURS

A close time at or before the open time is an overnight window; the close
rolls past midnight (e.g. "18:00 - 02:00" → [1080, 1560]).

Classification against the pace-derived midpoint cutoff:
  early     close < cutoff
  late      open  > cutoff
  flexible  otherwise (includes unbounded windows)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import config

MINUTES_PER_DAY: int = 24 * 60

_RANGE_RE = re.compile(
    r"^\s*(\d{1,2}):(\d{2})\s*[-–—]\s*(\d{1,2}):(\d{2})\s*$"
)
_ALWAYS_OPEN_RE = re.compile(r"^\s*(open\s+)?24\s*(hours|hrs|h)\s*$", re.IGNORECASE)


class WindowClass(str, Enum):
    EARLY    = "early"
    FLEXIBLE = "flexible"
    LATE     = "late"


@dataclass(frozen=True)
class TimeWindow:
    """Feasibility interval in minutes after midnight of the visit day."""
    open_min: int
    close_min: int
    unbounded: bool = False

    def contains(self, minute: float) -> bool:
        return self.open_min <= minute <= self.close_min

    def classify(self, cutoff_min: float) -> WindowClass:
        if self.unbounded:
            return WindowClass.FLEXIBLE
        if self.close_min < cutoff_min:
            return WindowClass.EARLY
        if self.open_min > cutoff_min:
            return WindowClass.LATE
        return WindowClass.FLEXIBLE


UNBOUNDED = TimeWindow(open_min=0, close_min=MINUTES_PER_DAY, unbounded=True)


def hhmm_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes after midnight.  Raises ValueError."""
    m = re.fullmatch(r"\s*(\d{1,2}):(\d{2})\s*", value or "")
    if not m:
        raise ValueError(f"not an HH:MM time: {value!r}")
    return _to_minutes(m.group(1), m.group(2))


def _to_minutes(hh: str, mm: str) -> int:
    h, m = int(hh), int(mm)
    if not (0 <= h <= 24 and 0 <= m <= 59) or (h == 24 and m != 0):
        raise ValueError(f"time out of range: {hh}:{mm}")
    return h * 60 + m


def parse_opening_hours(text: Optional[str]) -> TimeWindow:
    """
    Parse an opening-hours string into a TimeWindow.

    Raises ValueError for a non-empty string that matches neither accepted form.
    Use window_for() when a fallback is wanted instead.
    """
    if text is None or not text.strip():
        return parse_opening_hours(config.DEFAULT_OPENING_HOURS)
    if _ALWAYS_OPEN_RE.match(text):
        return UNBOUNDED
    m = _RANGE_RE.match(text)
    if not m:
        raise ValueError(f"unrecognised opening hours: {text!r}")
    open_min = _to_minutes(m.group(1), m.group(2))
    close_min = _to_minutes(m.group(3), m.group(4))
    if close_min <= open_min:
        close_min += MINUTES_PER_DAY
    if open_min == 0 and close_min >= MINUTES_PER_DAY:
        return UNBOUNDED
    return TimeWindow(open_min=open_min, close_min=close_min)


def is_valid_opening_hours(text: Optional[str]) -> bool:
    try:
        parse_opening_hours(text)
    except ValueError:
        return False
    return True


def window_for(text: Optional[str]) -> TimeWindow:
    """Lenient parse: unrecognised strings fall back to the default window."""
    try:
        return parse_opening_hours(text)
    except ValueError:
        return parse_opening_hours(None)


def midpoint_cutoff(pace: str) -> float:
    """Minutes after midnight that split "early" from "late" for a pace."""
    start = hhmm_to_minutes(config.DAY_START)
    hours = config.PACE_ACTIVE_HOURS.get(pace, config.PACE_ACTIVE_HOURS["moderate"])
    return start + hours * 60.0 / 2.0
