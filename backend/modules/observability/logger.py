"""
modules/observability/logger.py
---------------------------------
Per-session JSONL event log for planning sessions.

Every record carries a per-session ``seq`` so that events written by the
request handlers and by background sequencing tasks replay in the order they
happened, even when timestamps collide.

Event vocabulary (EVENT_TYPES):
  SESSION_START / SESSION_RESET            session lifecycle
  USER_COMMAND                             add / update / delete / reorder / generate / hydrate
  SEQUENCING_START / SEQUENCING_DEFERRED   an attempt begins / a trigger waits for one
  SEQUENCING_APPLIED                       oracle order written to the store
  STALE_RESULT_DISCARD                     day changed while the oracle was thinking
  ORACLE_FAILURE                           timeout, malformed output or exception

Usage:
    slog = StructuredLogger()
    slog.log("sess_abc123", "SEQUENCING_START", {"day_index": 1, "version": 4})
    slog.read("sess_abc123", event_type="SEQUENCING_APPLIED")

Files live at <config.LOGS_DIR>/<session_id>.jsonl.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Optional

import config

SEQUENCING_EVENTS: tuple[str, ...] = (
    "SEQUENCING_START",
    "SEQUENCING_DEFERRED",
    "SEQUENCING_APPLIED",
    "STALE_RESULT_DISCARD",
    "ORACLE_FAILURE",
)

EVENT_TYPES: frozenset[str] = frozenset(
    {"SESSION_START", "SESSION_RESET", "USER_COMMAND", *SEQUENCING_EVENTS}
)


class StructuredLogger:
    """Thread-safe JSONL event log, one file per session."""

    def __init__(self, logs_dir: Path | str | None = None) -> None:
        self.logs_dir = Path(logs_dir) if logs_dir else config.LOGS_DIR
        self._lock = threading.Lock()
        self._files: dict[str, IO[str]] = {}
        self._seq: dict[str, int] = {}

    def log(self, session_id: str, event_type: str, payload: dict) -> int:
        """
        Append one event for *session_id*; returns its sequence number.

        Raises ValueError for an event type outside EVENT_TYPES.
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"unknown event type {event_type!r}")

        with self._lock:
            seq = self._seq.get(session_id)
            if seq is None:
                seq = len(self._read_unlocked(session_id))
            seq += 1
            self._seq[session_id] = seq

            line = json.dumps({
                "seq": seq,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "session_id": session_id,
                "event_type": event_type,
                "payload": payload,
            }, default=str, ensure_ascii=False)

            fh = self._files.get(session_id) or self._open(session_id)
            fh.write(line + "\n")
            fh.flush()
        return seq

    def read(self, session_id: str, event_type: Optional[str] = None) -> list[dict]:
        """Records for *session_id* in ``seq`` order, optionally of one type."""
        with self._lock:
            records = self._read_unlocked(session_id)
        if event_type is not None:
            records = [r for r in records if r.get("event_type") == event_type]
        return records

    def sessions(self) -> list[str]:
        """Session ids with a log file, most recently written first."""
        if not self.logs_dir.is_dir():
            return []
        paths = sorted(self.logs_dir.glob("*.jsonl"),
                       key=lambda p: p.stat().st_mtime, reverse=True)
        return [p.stem for p in paths]

    def is_open(self, session_id: str) -> bool:
        """True while a file handle for *session_id* is held."""
        with self._lock:
            return session_id in self._files

    def close(self, session_id: str | None = None) -> None:
        with self._lock:
            ids = [session_id] if session_id else list(self._files)
            for sid in ids:
                fh = self._files.pop(sid, None)
                if fh is not None:
                    fh.close()

    # ── internals ─────────────────────────────────────────────────────────

    def _path(self, session_id: str) -> Path:
        return self.logs_dir / f"{session_id}.jsonl"

    def _open(self, session_id: str) -> IO[str]:
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        fh = open(self._path(session_id), "a", encoding="utf-8")
        self._files[session_id] = fh
        return fh

    def _read_unlocked(self, session_id: str) -> list[dict]:
        path = self._path(session_id)
        if not path.exists():
            return []
        with open(path, "r", encoding="utf-8") as fh:
            records = [json.loads(line) for line in fh if line.strip()]
        return sorted(records, key=lambda r: r.get("seq", 0))
