"""
modules/observability/replay.py
---------------------------------
Readable replay of a recorded planning session from its JSONL log.

Usage:
    python main.py --replay <session_id>

Prints every USER_COMMAND and sequencing event in order, then a tally of how
each sequencing attempt ended.  Nothing is re-executed; this only reads the
log written by StructuredLogger.
"""

from __future__ import annotations

from collections import Counter
from pathlib import Path

from modules.observability.logger import EVENT_TYPES, StructuredLogger


def _describe(event_type: str, payload: dict) -> str:
    if event_type == "USER_COMMAND":
        rest = {k: v for k, v in payload.items() if k != "command"}
        return f"cmd={payload.get('command')!r}  {rest}"
    if event_type == "SEQUENCING_START":
        return (f"day={payload.get('day_index')}  v{payload.get('version')}  "
                f"stops={payload.get('stops')}  reason={payload.get('reason')}")
    if event_type == "SEQUENCING_APPLIED":
        return f"day={payload.get('day_index')}  order={payload.get('order')}"
    if event_type == "STALE_RESULT_DISCARD":
        return (f"day={payload.get('day_index')}  "
                f"v{payload.get('snapshot_version')}→v{payload.get('current_version')}")
    if event_type == "ORACLE_FAILURE":
        return f"day={payload.get('day_index')}  error={payload.get('error')}"
    if event_type == "SEQUENCING_DEFERRED":
        return f"day={payload.get('day_index')}  reason={payload.get('reason')}"
    return str(payload.get("config", ""))


def replay_session(session_id: str, *, logs_dir: Path | str | None = None) -> Counter:
    """Print a recorded session; returns the per-event-type tally."""
    records = StructuredLogger(logs_dir).read(session_id)
    if not records:
        raise FileNotFoundError(f"No log records for session {session_id!r}")

    print(f"\n{'=' * 60}")
    print(f"  REPLAY — session {session_id}")
    print(f"  Total records: {len(records)}")
    print(f"{'=' * 60}\n")

    tally: Counter = Counter()
    step = 0
    for rec in records:
        event_type = rec.get("event_type", "")
        if event_type not in EVENT_TYPES:
            continue
        step += 1
        tally[event_type] += 1
        print(f"  [{step:>4}] {rec.get('timestamp', '')}  {event_type:<20} "
              f"{_describe(event_type, rec.get('payload', {}))}")

    print(f"\n  Replayed {step} event(s).")
    print(f"  Sequencing: started={tally['SEQUENCING_START']}  "
          f"applied={tally['SEQUENCING_APPLIED']}  "
          f"stale={tally['STALE_RESULT_DISCARD']}  "
          f"failed={tally['ORACLE_FAILURE']}  "
          f"deferred={tally['SEQUENCING_DEFERRED']}")
    print(f"\n{'=' * 60}\n")
    return tally
