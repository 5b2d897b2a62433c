"""
modules/planning/sequencing_engine.py
---------------------------------------
SequencingEngine — heuristic time-window TSP over one day's stops.

Input:  a SequencingRequest (locked start first, remaining stops unordered).
Output: a total order that begins with the locked start and covers every
        input stop exactly once.

Steps:
  1. Great-circle distance matrix (km).
  2. Parse windows; classify early / flexible / late against the pace cutoff.
  3. Nearest-neighbour construction from the locked start.  Candidates within
     a small tolerance of the nearest are ranked by urgency: early first,
     late stops last while they would still arrive before opening.
  4. Bounded first-improvement passes of pairwise position swaps (position 0
     excluded).  A swap is taken only if it strictly shortens the route and
     the order stays window-feasible.
  5. If neither construction is window-feasible, a repair search (swaps and
     single-stop moves, ranked by violations then length) starts from the
     better of the two.  Only when it cannot reach zero violations do the
     windows become soft, and swaps are then judged by distance alone.
     Not an error.
  6. Fewer than 3 stops → returned unchanged.

Disjoint windows also impose an order: a stop that closes before another
opens is always sequenced first.  This partial order can always be honoured,
so it is kept even when the time windows themselves go soft.

Arrival estimate at position k:
    arrival[k] = arrival[k-1] + dwell + travel_minutes(distance[k-1, k])
starting from DAY_START at the locked stop.

Every tie is broken by stop id, so the result depends only on the set of
stops and the locked start.  Feeding the engine its own output returns the
same order.
"""

from __future__ import annotations

import time as _time_mod
from dataclasses import dataclass, field
from typing import Optional

import config
from modules.planning.time_windows import (
    TimeWindow, WindowClass, hhmm_to_minutes, midpoint_cutoff, window_for,
)
from modules.tool_usage.distance_tool import DistanceTool
from schemas.sequencing import SequencingRequest

_EPS = 1e-9

# Urgency rank used by the nearest-neighbour tie-break (lower = sooner).
_RANK_EARLY    = 0
_RANK_NEUTRAL  = 1
_RANK_DEFERRED = 2


@dataclass(frozen=True)
class SequencingParams:
    """Trip-derived knobs.  Defaults come from config.py."""
    pace: str = "moderate"
    mode: str = "walk"
    max_swap_passes: int = field(default_factory=lambda: config.SEQUENCING_MAX_SWAP_PASSES)
    nn_tolerance_km: float = field(default_factory=lambda: config.NN_TOLERANCE_KM)
    nn_tolerance_ratio: float = field(default_factory=lambda: config.NN_TOLERANCE_RATIO)

    @classmethod
    def for_trip(cls, trip) -> "SequencingParams":
        """Build params from a TripConfig (pace + transport mode)."""
        return cls(pace=trip.pace.value, mode=trip.mode.value)

    @property
    def dwell_minutes(self) -> int:
        return config.PACE_DWELL_MINUTES.get(self.pace, config.PACE_DWELL_MINUTES["moderate"])


@dataclass
class SequencingOutcome:
    """Result of one engine run."""
    order: list[str]
    total_km: float = 0.0
    window_feasible: bool = True
    optimized: bool = False          # False for degenerate (< 3 stop) input
    arrivals: list[float] = field(default_factory=list)   # minutes after midnight
    duration_ms: float = 0.0


class _Route:
    """Precomputed matrices for one request; orders are lists of node indices."""

    def __init__(self, request: SequencingRequest, params: SequencingParams) -> None:
        start, rest = request.stops[0], sorted(request.stops[1:], key=lambda s: s.id)
        self.nodes = [start, *rest]
        self.n = len(self.nodes)
        self.params = params
        self.distance_tool = DistanceTool(params.mode)
        self.dist = self.distance_tool.distance_matrix([(s.lat, s.lng) for s in self.nodes])
        self.windows: list[TimeWindow] = [window_for(s.opening_hours) for s in self.nodes]
        cutoff = midpoint_cutoff(params.pace)
        self.classes: list[WindowClass] = [w.classify(cutoff) for w in self.windows]
        self.day_start = float(hhmm_to_minutes(config.DAY_START))
        self.dwell = float(params.dwell_minutes)

        # must_precede[a][b]: a's window closes no later than b's opens.
        self.must_precede = [
            [
                a != b and a != 0 and b != 0
                and not self.windows[a].unbounded and not self.windows[b].unbounded
                and self.windows[a].close_min <= self.windows[b].open_min
                for b in range(self.n)
            ]
            for a in range(self.n)
        ]

    # ── Measures ──────────────────────────────────────────────────────────────

    def length(self, order: list[int]) -> float:
        return sum(self.dist[order[k - 1]][order[k]] for k in range(1, len(order)))

    def next_arrival(self, prev_arrival: float, a: int, b: int) -> float:
        return prev_arrival + self.dwell + self.distance_tool.travel_time_minutes(self.dist[a][b])

    def arrivals(self, order: list[int]) -> list[float]:
        times = [self.day_start]
        for k in range(1, len(order)):
            times.append(self.next_arrival(times[-1], order[k - 1], order[k]))
        return times

    def violations(self, order: list[int]) -> int:
        """Stops arriving after close, plus late stops arriving before open."""
        count = 0
        for node, t in zip(order[1:], self.arrivals(order)[1:]):
            w = self.windows[node]
            if w.unbounded or w.contains(t):
                continue
            if t > w.close_min or self.classes[node] is WindowClass.LATE:
                count += 1
        return count

    def respects_precedence(self, order: list[int]) -> bool:
        for i in range(1, len(order)):
            for j in range(i + 1, len(order)):
                if self.must_precede[order[j]][order[i]]:
                    return False
        return True

    # ── Construction ──────────────────────────────────────────────────────────

    def _eligible(self, remaining: list[int]) -> list[int]:
        return [
            c for c in remaining
            if not any(self.must_precede[o][c] for o in remaining if o != c)
        ]

    def _urgency(self, node: int, arrival: float) -> int:
        cls = self.classes[node]
        if cls is WindowClass.EARLY:
            return _RANK_EARLY
        if cls is WindowClass.LATE and arrival < self.windows[node].open_min:
            return _RANK_DEFERRED
        return _RANK_NEUTRAL

    def nearest_neighbour(self) -> list[int]:
        order = [0]
        remaining = list(range(1, self.n))
        t = self.day_start
        while remaining:
            cur = order[-1]
            eligible = self._eligible(remaining)
            best = min(self.dist[cur][c] for c in eligible)
            tolerance = max(self.params.nn_tolerance_km, best * self.params.nn_tolerance_ratio)
            pool = [c for c in eligible if self.dist[cur][c] <= best + tolerance]
            chosen = min(
                pool,
                key=lambda c: (
                    self._urgency(c, self.next_arrival(t, cur, c)),
                    self.dist[cur][c],
                    self.nodes[c].id,
                ),
            )
            t = self.next_arrival(t, cur, chosen)
            order.append(chosen)
            remaining.remove(chosen)
        return order

    def deadline_first(self) -> list[int]:
        rest = sorted(
            range(1, self.n),
            key=lambda c: (
                self.windows[c].close_min,
                self.windows[c].open_min,
                self.dist[0][c],
                self.nodes[c].id,
            ),
        )
        return [0, *rest]

    # ── Local search ──────────────────────────────────────────────────────────

    def _moves(self, order: list[int]):
        """Pairwise swaps, then single-stop relocations (position 0 fixed)."""
        for i in range(1, self.n - 1):
            for j in range(i + 1, self.n):
                cand = list(order)
                cand[i], cand[j] = cand[j], cand[i]
                yield cand
        for i in range(1, self.n):
            for j in range(1, self.n):
                if j in (i, i - 1):
                    continue
                cand = list(order)
                cand.insert(j, cand.pop(i))
                yield cand

    def repair(self, order: list[int]) -> list[int]:
        """
        First-improvement search on (violations, length); stops as soon as
        the order is window-feasible.
        """
        best = list(order)
        best_v, best_len = self.violations(best), self.length(best)
        for _ in range(self.params.max_swap_passes):
            if best_v == 0:
                break
            improved = False
            for cand in self._moves(best):
                if not self.respects_precedence(cand):
                    continue
                cand_v, cand_len = self.violations(cand), self.length(cand)
                if cand_v < best_v or (cand_v == best_v and cand_len < best_len - _EPS):
                    best, best_v, best_len = cand, cand_v, cand_len
                    improved = True
                    if best_v == 0:
                        break
            if not improved:
                break
        return best

    def improve(self, order: list[int], enforce_windows: bool) -> list[int]:
        best = list(order)
        best_len = self.length(best)
        for _ in range(self.params.max_swap_passes):
            improved = False
            for i in range(1, self.n - 1):
                for j in range(i + 1, self.n):
                    cand = list(best)
                    cand[i], cand[j] = cand[j], cand[i]
                    cand_len = self.length(cand)
                    if cand_len >= best_len - _EPS:
                        continue
                    if not self.respects_precedence(cand):
                        continue
                    if enforce_windows and self.violations(cand) > 0:
                        continue
                    best, best_len = cand, cand_len
                    improved = True
            if not improved:
                break
        return best


class SequencingEngine:
    """
    Pure, synchronous sequencing.  Holds no mutable state between calls, so
    one instance may be shared across threads.
    """

    def __init__(self, params: Optional[SequencingParams] = None) -> None:
        self.params = params or SequencingParams()

    def sequence(self, request: SequencingRequest) -> list[str]:
        """Return the visiting order as a list of stop ids."""
        return self.plan(request).order

    def plan(self, request: SequencingRequest) -> SequencingOutcome:
        _t0 = _time_mod.perf_counter()
        route = _Route(request, self.params)

        if len(request.stops) < 3:
            # any order of two stops is distance-trivial; keep the caller's
            ids = request.ids
            by_id = {s.id: i for i, s in enumerate(route.nodes)}
            order = [by_id[i] for i in ids]
            return SequencingOutcome(
                order=ids,
                total_km=route.length(order),
                window_feasible=route.violations(order) == 0,
                optimized=False,
                arrivals=route.arrivals(order),
            )

        candidates = [route.nearest_neighbour(), route.deadline_first()]
        start_order = min(candidates, key=lambda o: (route.violations(o), route.length(o), o))
        if route.violations(start_order) > 0:
            start_order = route.repair(start_order)
        # windows go soft only if the repair search found no feasible order
        enforce = route.violations(start_order) == 0

        order = route.improve(start_order, enforce_windows=enforce)
        return SequencingOutcome(
            order=[route.nodes[i].id for i in order],
            total_km=route.length(order),
            window_feasible=route.violations(order) == 0,
            optimized=True,
            arrivals=route.arrivals(order),
            duration_ms=round((_time_mod.perf_counter() - _t0) * 1000, 2),
        )
