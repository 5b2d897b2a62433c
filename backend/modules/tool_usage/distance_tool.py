"""
modules/tool_usage/distance_tool.py
-------------------------------------
Great-circle distance and straight-line travel-time estimates.
No external HTTP calls are made; sub-metre accuracy is not a goal.

Config knob (config.py):
  TRANSPORT_SPEED_KMH -- straight-line speed per transport mode
"""

from __future__ import annotations

import math
import logging

import config

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Pure maths
# ---------------------------------------------------------------------------

_EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points (Haversine formula) in km."""
    r = _EARTH_RADIUS_KM
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lam = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lam / 2) ** 2
    )
    return 2 * r * math.asin(math.sqrt(min(1.0, a)))


def _km_to_minutes(km: float, speed_kmh: float) -> float:
    """Straight-line km to minutes at a given speed."""
    return (km / speed_kmh) * 60.0


# ---------------------------------------------------------------------------
# DistanceTool
# ---------------------------------------------------------------------------


class DistanceTool:
    """
    Distance matrix and travel times for one transport mode.
    Unknown modes fall back to walking speed.
    """

    def __init__(self, mode: str = "walk") -> None:
        speed = config.TRANSPORT_SPEED_KMH.get(mode)
        if speed is None:
            logger.warning("unknown transport mode %r; using walking speed", mode)
            speed = config.TRANSPORT_SPEED_KMH["walk"]
        self.mode = mode
        self.speed_kmh: float = speed

    def travel_time_minutes(self, km: float) -> float:
        """Minutes needed to cover *km* at this tool's speed."""
        return _km_to_minutes(km, self.speed_kmh)

    def distance_matrix(self, coords: list[tuple[float, float]]) -> list[list[float]]:
        """Return a full n x n great-circle distance matrix [km]."""
        n = len(coords)
        matrix = [[0.0] * n for _ in range(n)]
        for i in range(n):
            for j in range(i + 1, n):
                km = haversine_km(coords[i][0], coords[i][1], coords[j][0], coords[j][1])
                matrix[i][j] = km
                matrix[j][i] = km
        return matrix
