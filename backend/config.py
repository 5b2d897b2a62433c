"""
config.py
---------
Central configuration for the PLAYbook planner backend.
All secrets loaded from environment variables — never hard-coded.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the backend directory (if it exists) so env vars in that file
# are picked up by os.getenv() below.  Won't override vars already set in the shell.
_env_path = Path(__file__).parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path, override=False)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# ── LLM ──────────────────────────────────────────────────────────────────────
GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
LLM_MODEL_NAME: str = os.getenv("LLM_MODEL_NAME", "gemini-3-flash-preview")          # day generation
SEQUENCING_MODEL_NAME: str = os.getenv("SEQUENCING_MODEL_NAME", "gemini-3-pro-preview")
LLM_TIMEOUT_SECONDS: int = int(os.getenv("LLM_TIMEOUT_SECONDS", "60"))

# ── Backends ──────────────────────────────────────────────────────────────────
# "local"  → deterministic heuristic (modules/planning/sequencing_engine.py)
# "gemini" → remote model behind the same oracle contract
SEQUENCING_BACKEND: str = os.getenv("SEQUENCING_BACKEND", "local").lower()

# Day generation runs on the built-in sample day unless switched off.
USE_STUB_DAY_GENERATION: bool = _flag("USE_STUB_DAY_GENERATION", "true")

# ── Sequencing ────────────────────────────────────────────────────────────────
SEQUENCING_MIN_STOPS: int         = int(os.getenv("SEQUENCING_MIN_STOPS", "3"))
SEQUENCING_TIMEOUT_SECONDS: float = float(os.getenv("SEQUENCING_TIMEOUT_SECONDS", "30"))
SEQUENCING_MAX_SWAP_PASSES: int   = int(os.getenv("SEQUENCING_MAX_SWAP_PASSES", "50"))
SEQUENCING_HISTORY_SIZE: int      = int(os.getenv("SEQUENCING_HISTORY_SIZE", "100"))
NN_TOLERANCE_KM: float            = float(os.getenv("NN_TOLERANCE_KM", "0.5"))
NN_TOLERANCE_RATIO: float         = float(os.getenv("NN_TOLERANCE_RATIO", "0.10"))

# ── Day model (all time values in minutes) ───────────────────────────────────
DAY_START: str = os.getenv("DAY_START", "09:00")

# Active hours per pace; the early/late cutoff is DAY_START + half of this.
PACE_ACTIVE_HOURS: dict[str, float] = {
    "relaxed":  9.0,    # 09:00–18:00
    "moderate": 11.0,   # 09:00–20:00
    "power":    13.0,   # 09:00–22:00
}

# Assumed dwell time at each stop.
PACE_DWELL_MINUTES: dict[str, int] = {
    "relaxed":  90,
    "moderate": 60,
    "power":    45,
}

# Straight-line speeds used to turn km into minutes.
TRANSPORT_SPEED_KMH: dict[str, float] = {
    "walk":   4.5,
    "public": 20.0,
    "car":    30.0,
}

# Window assumed when a stop carries no opening hours.
DEFAULT_OPENING_HOURS: str = os.getenv("DEFAULT_OPENING_HOURS", "06:00 - 23:00")

# ── Trip limits ───────────────────────────────────────────────────────────────
MAX_TRIP_DAYS: int = int(os.getenv("MAX_TRIP_DAYS", "30"))

# Sessions kept by the HTTP API; the oldest is evicted beyond this.
MAX_SESSIONS: int = int(os.getenv("MAX_SESSIONS", "200"))

# ── Observability ─────────────────────────────────────────────────────────────
# JSONL session logs; one file per session id.
LOGS_DIR: Path = Path(os.getenv("PLAYBOOK_LOGS_DIR", str(Path(__file__).parent / "logs")))

# Assert store invariants after every mutation (development builds).
STRICT_INTEGRITY_CHECKS: bool = _flag("STRICT_INTEGRITY_CHECKS", "true")
