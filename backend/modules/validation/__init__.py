"""
modules/validation package — data quality guards before anything enters a session.
"""
from modules.validation.ingestion_validator import (
    ValidationResult,
    validate_stop,
    validate_trip,
    filter_valid,
)

__all__ = [
    "ValidationResult",
    "validate_stop",
    "validate_trip",
    "filter_valid",
]
