"""
modules/share/share_codec.py
------------------------------
Reversible share token for a whole trip.

    {config, days}  →  compact JSON  →  zlib  →  URL-safe base64 (no padding)

decode_share_token() is the only way back in.  Every layer is checked and the
payload is validated with pydantic before any Stop or TripConfig is built, so
a truncated or hand-edited token raises ShareTokenError and nothing else.
"""

from __future__ import annotations

import base64
import binascii
import json
import zlib
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from modules.errors import ShareTokenError, TripValidationError
from schemas.itinerary import Stop
from schemas.trip import Pace, TransportMode, TripConfig

TOKEN_VERSION = 1


# ── Wire models ──────────────────────────────────────────────────────────────

class ShareTransit(BaseModel):
    mode: str = ""
    duration: str = ""
    steps: list[str] = Field(default_factory=list)


class ShareStop(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)
    opening_hours: Optional[str] = None
    category: str = ""
    notes: str = ""
    transit: Optional[ShareTransit] = None
    arrival_time: str = ""
    cost_estimate: str = ""
    rationale: str = ""
    rating: Optional[float] = None


class ShareConfig(BaseModel):
    origin: str
    destination: str
    start_date: date
    end_date: date
    mode: TransportMode = TransportMode.PUBLIC
    pace: Pace = Pace.MODERATE


class SharePayload(BaseModel):
    v: int = TOKEN_VERSION
    config: ShareConfig
    days: list[list[ShareStop]]


# ── Codec ────────────────────────────────────────────────────────────────────

def encode_share_token(trip: TripConfig, days: list[list[Stop]]) -> str:
    payload = {
        "v": TOKEN_VERSION,
        "config": trip.to_dict(),
        "days": [
            [{k: v for k, v in s.to_dict().items() if k != "day_index"} for s in stops]
            for stops in days
        ],
    }
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(zlib.compress(raw, 9)).decode("ascii").rstrip("=")


def decode_share_token(token: str) -> tuple[TripConfig, list[list[Stop]]]:
    """
    Inverse of encode_share_token().

    Returns (trip config, days).  Raises ShareTokenError for any malformed
    input: bad base64, bad compression, bad JSON, or a payload that fails
    schema or trip validation.
    """
    if not token or not token.strip():
        raise ShareTokenError("share token is empty")
    token = token.strip()
    try:
        compressed = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
        raw = zlib.decompress(compressed)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError, zlib.error) as exc:
        # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
        raise ShareTokenError(f"share token is not decodable: {exc}") from exc

    try:
        payload = SharePayload.model_validate(data)
    except PydanticValidationError as exc:
        raise ShareTokenError(f"share token payload is invalid: {exc.errors()}") from exc
    if payload.v != TOKEN_VERSION:
        raise ShareTokenError(f"unsupported share token version {payload.v}")

    try:
        trip = TripConfig.from_dict(payload.config.model_dump())
    except TripValidationError as exc:
        raise ShareTokenError(f"share token trip is invalid: {exc}") from exc

    days = [
        [Stop.from_dict(s.model_dump()) for s in stops]
        for stops in payload.days
        if stops
    ]
    return trip, days
