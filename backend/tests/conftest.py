"""Pytest configuration and fixtures."""

import os
import tempfile

# Must be set before config.py is first imported.
os.environ.setdefault("PLAYBOOK_LOGS_DIR", tempfile.mkdtemp(prefix="playbook-logs-"))
os.environ["USE_STUB_DAY_GENERATION"] = "true"
os.environ["SEQUENCING_BACKEND"] = "local"
os.environ["STRICT_INTEGRITY_CHECKS"] = "true"

import pytest
from fastapi.testclient import TestClient

from helpers import LA_STOPS, make_stop
from modules.observability.logger import StructuredLogger
from schemas.trip import TripConfig


@pytest.fixture
def slog(tmp_path):
    logger = StructuredLogger(tmp_path)
    yield logger
    logger.close()


@pytest.fixture
def trip():
    return TripConfig.from_dict({
        "origin": "San Diego",
        "destination": "Los Angeles",
        "start_date": "2026-03-01",
        "end_date": "2026-03-03",
        "mode": "walk",
        "pace": "moderate",
    })


@pytest.fixture
def la_stops():
    return [make_stop(sid, lat, lng) for sid, lat, lng in LA_STOPS]


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    from api.server import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def trip_body():
    return {
        "origin": "San Diego",
        "destination": "Los Angeles",
        "start_date": "2026-03-01",
        "end_date": "2026-03-02",
        "mode": "walk",
        "pace": "moderate",
    }
