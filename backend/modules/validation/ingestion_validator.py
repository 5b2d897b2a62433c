"""
modules/validation/ingestion_validator.py
------------------------------------------
Data-quality guards applied before a trip configuration or a stop enters a
PlanningSession (API body, share token, generated day content).

  Stop:
    ✓ Non-empty id and name
    ✓ Numeric coordinates
    ✓ Latitude in [-90, 90]
    ✓ Longitude in [-180, 180]
    ✓ Coordinates are not both exactly 0.0 (likely missing)
    ✓ opening_hours absent, "24 Hours", or "HH:MM - HH:MM"
    ✓ Rating in [1, 5] if present (0.0 treated as absent)

  Trip:
    ✓ Non-empty origin and destination
    ✓ start_date / end_date are ISO-8601 dates
    ✓ end_date >= start_date
    ✓ Trip length ≤ MAX_TRIP_DAYS
    ✓ mode / pace are known values if present

Usage:
    from modules.validation import validate_stop, filter_valid

    clean_stops = filter_valid(stops, validate_stop, to_dict=lambda s: s.to_dict())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, TypeVar

import config
from modules.planning.time_windows import is_valid_opening_hours

T = TypeVar("T")

logger = logging.getLogger(__name__)

_MODES = ("public", "car", "walk")
_PACES = ("relaxed", "moderate", "power")


# ── Result dataclass ───────────────────────────────────────────────────────────

@dataclass
class ValidationResult:
    """
    Outcome of a single validation run.

    Attributes:
        valid:  True iff there are zero errors.
        errors: Human-readable list of failure reasons.
        record: The input record dict (for logging purposes).
    """
    valid: bool
    errors: list[str] = field(default_factory=list)
    record: dict = field(default_factory=dict, repr=False)

    def __bool__(self) -> bool:
        return self.valid


# ── Stop validation ────────────────────────────────────────────────────────────

def validate_stop(record: dict[str, Any]) -> ValidationResult:
    """Validate a stop record before it is added to the store."""
    errors: list[str] = []

    if not str(record.get("id") or "").strip():
        errors.append("id must not be empty")
    if not str(record.get("name") or "").strip():
        errors.append("name must not be empty")

    # ── Coordinates ────────────────────────────────────────────────────────
    lat = record.get("lat")
    lng = record.get("lng")
    if lat is None or lng is None:
        errors.append(f"lat/lng must not be NULL (got lat={lat!r}, lng={lng!r})")
    else:
        try:
            lat = float(lat)
            lng = float(lng)
        except (TypeError, ValueError):
            errors.append(f"lat/lng must be numeric (got lat={lat!r}, lng={lng!r})")
            return ValidationResult(valid=False, errors=errors, record=record)

        if not (-90.0 <= lat <= 90.0):
            errors.append(f"lat={lat} is outside valid range [-90, 90]")
        if not (-180.0 <= lng <= 180.0):
            errors.append(f"lng={lng} is outside valid range [-180, 180]")
        if lat == 0.0 and lng == 0.0:
            errors.append("lat=0.0 and lng=0.0: likely a missing/default value")

    # ── Opening hours ──────────────────────────────────────────────────────
    hours = record.get("opening_hours")
    if hours and not is_valid_opening_hours(hours):
        errors.append(f"opening_hours={hours!r} is not 'HH:MM - HH:MM' or '24 Hours'")

    # ── Rating ─────────────────────────────────────────────────────────────
    rating = record.get("rating")
    if rating is not None:
        try:
            r = float(rating)
            if r != 0.0 and not (1.0 <= r <= 5.0):
                errors.append(f"rating={r} is outside valid range [1, 5]")
        except (TypeError, ValueError):
            errors.append(f"rating={rating!r} must be numeric")

    return ValidationResult(valid=len(errors) == 0, errors=errors, record=record)


# ── Trip validation ────────────────────────────────────────────────────────────

def validate_trip(record: dict[str, Any]) -> ValidationResult:
    """Validate a raw TripConfig record."""
    errors: list[str] = []

    for key in ("origin", "destination"):
        if not str(record.get(key) or "").strip():
            errors.append(f"{key} must not be empty")

    # ── Date ordering ──────────────────────────────────────────────────────
    start = record.get("start_date")
    end = record.get("end_date")
    if start is None or end is None:
        errors.append("start_date and end_date are required")
    else:
        try:
            start_d = start if isinstance(start, date) else date.fromisoformat(str(start))
            end_d = end if isinstance(end, date) else date.fromisoformat(str(end))
        except ValueError:
            errors.append(
                f"start_date={start!r} or end_date={end!r} is not a valid ISO-8601 date"
            )
        else:
            if end_d < start_d:
                errors.append(f"end_date={end_d} is before start_date={start_d}")
            elif (end_d - start_d).days + 1 > config.MAX_TRIP_DAYS:
                errors.append(
                    f"trip spans {(end_d - start_d).days + 1} days "
                    f"(max {config.MAX_TRIP_DAYS})"
                )

    # ── Enums ──────────────────────────────────────────────────────────────
    mode = record.get("mode")
    if mode is not None and str(getattr(mode, "value", mode)) not in _MODES:
        errors.append(f"mode={mode!r} must be one of {list(_MODES)}")
    pace = record.get("pace")
    if pace is not None and str(getattr(pace, "value", pace)) not in _PACES:
        errors.append(f"pace={pace!r} must be one of {list(_PACES)}")

    return ValidationResult(valid=len(errors) == 0, errors=errors, record=record)


# ── Batch filter helper ────────────────────────────────────────────────────────

def filter_valid(
    items: list[T],
    validator: Callable[[dict], ValidationResult],
    to_dict: Callable[[T], dict] | None = None,
    log: bool = True,
) -> list[T]:
    """
    Apply a validator to every item in a list, return only the valid ones.

    Args:
        items:     List of items (dataclass instances or dicts).
        validator: validate_stop or validate_trip.
        to_dict:   Optional callable to convert each item to a dict.
                   If None, items are assumed to already be dicts or have __dict__.
        log:       If True, log a warning for every rejected record.
    """
    valid_items: list[T] = []
    rejected = 0

    for item in items:
        record_dict = (
            to_dict(item)
            if to_dict is not None
            else (item if isinstance(item, dict) else item.__dict__)
        )
        result = validator(record_dict)
        if result.valid:
            valid_items.append(item)
        else:
            rejected += 1
            if log:
                logger.warning(
                    "rejected %r: %s", record_dict.get("name", "?"), "; ".join(result.errors)
                )

    if log and rejected:
        logger.warning(
            "%d/%d records rejected; %d passed.", rejected, len(items), len(valid_items)
        )

    return valid_items
