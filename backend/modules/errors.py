"""
modules/errors.py
-----------------
Exception taxonomy for the planner.

  TripValidationError      malformed TripConfig; rejected before a session exists
  OracleError              sequencing failed / timed out / returned a bad permutation;
                           absorbed by the ReconciliationController
  StoreIntegrityViolation  an ItineraryStore invariant was breached (caller bug)
  ShareTokenError          a share token could not be decoded
  DayGenerationError       the day model failed or returned unusable content

A stale sequencing result is not an error and has no exception type.
"""

from __future__ import annotations


class PlannerError(Exception):
    """Base class for all planner errors."""


class TripValidationError(PlannerError, ValueError):
    """Raised when a TripConfig is malformed or inconsistent."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid trip configuration")


class OracleError(PlannerError):
    """Raised when a sequencing computation cannot be used."""


class StoreIntegrityViolation(PlannerError, AssertionError):
    """Raised when a store operation would break a data-model invariant."""


class ShareTokenError(PlannerError, ValueError):
    """Raised when a share token is malformed."""


class DayGenerationError(PlannerError):
    """Raised when a new day's content could not be produced."""
