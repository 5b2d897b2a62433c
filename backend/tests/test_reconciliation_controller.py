"""
Tests for the ReconciliationController.

Every scenario runs on its own event loop via asyncio.run().  GatedOracle
holds each sequencing call open until release(), so edits can be made while a
day is SEQUENCING.
"""

import asyncio

import pytest

from helpers import GatedOracle, SlowOracle, make_stop, reversed_tail
from modules.generation.day_generator import DayGenerator
from modules.itinerary.store import ItineraryStore
from modules.reoptimization.controller import (
    FAILURE_NOTICE,
    CompletionStatus,
    DayPhase,
    ReconciliationController,
)
from modules.reoptimization.session import PlanningSession


def _controller(store, oracle, slog, notices=None, timeout_seconds=5.0):
    return ReconciliationController(
        store,
        oracle,
        session_id="t",
        min_stops=3,
        timeout_seconds=timeout_seconds,
        structured_logger=slog,
        on_notice=notices.append if notices is not None else None,
    )


def _ids(stops):
    return [s.id for s in stops]


def _statuses(ctl):
    return [r.status for r in ctl.history]


def _events(slog):
    return [r["event_type"] for r in slog.read("t")]


def _boom(request):
    raise RuntimeError("boom")


class TestApply:

    def test_applies_result_when_day_unchanged(self, slog, la_stops):
        async def scenario():
            store = ItineraryStore()
            oracle = GatedOracle(respond=reversed_tail)
            ctl = _controller(store, oracle, slog)
            for s in la_stops:
                store.add_stop(s, 1)
            ctl.on_day_changed(1)
            await oracle.wait_started()
            phase_in_flight = ctl.phase(1)
            oracle.release()
            await ctl.drain()
            return store, ctl, phase_in_flight

        store, ctl, phase_in_flight = asyncio.run(scenario())

        assert phase_in_flight is DayPhase.SEQUENCING
        assert ctl.phase(1) is DayPhase.IDLE
        assert _ids(store.day(1)) == ["s0", "s3", "s2", "s1"]
        assert _statuses(ctl) == [CompletionStatus.APPLIED]
        assert "SEQUENCING_APPLIED" in _events(slog)

    def test_below_threshold_does_not_trigger(self, slog, la_stops):
        async def scenario():
            store = ItineraryStore()
            oracle = GatedOracle(gated=False)
            ctl = _controller(store, oracle, slog)
            store.add_stop(la_stops[0], 1)
            store.add_stop(la_stops[1], 1)
            task = ctl.on_day_changed(1)
            await ctl.drain()
            return task, oracle

        task, oracle = asyncio.run(scenario())
        assert task is None
        assert oracle.calls == []

    def test_result_follows_day_after_reindex(self, slog, la_stops):
        async def scenario():
            store = ItineraryStore()
            oracle = GatedOracle(respond=reversed_tail)
            ctl = _controller(store, oracle, slog)
            store.add_stop(make_stop("x"), 1)
            for s in la_stops:
                store.add_stop(s, 2)
            ctl.on_day_changed(2)
            await oracle.wait_started()
            store.delete_stop("x")          # day 2 becomes day 1
            oracle.release()
            await ctl.drain()
            return store, ctl

        store, ctl = asyncio.run(scenario())
        assert store.day_count == 1
        assert _ids(store.day(1)) == ["s0", "s3", "s2", "s1"]
        assert _statuses(ctl) == [CompletionStatus.APPLIED]

    def test_days_sequence_independently(self, slog):
        async def scenario():
            store = ItineraryStore()
            oracle = GatedOracle()
            ctl = _controller(store, oracle, slog)
            for day in (1, 2):
                for k in range(3):
                    store.add_stop(make_stop(f"d{day}-{k}", 34.05 + k * 0.01, -118.25), day)
                ctl.on_day_changed(day)
            await oracle.wait_started()
            await asyncio.sleep(0)
            phases = ctl.phases()
            oracle.release()
            await ctl.drain()
            return ctl, oracle, phases

        ctl, oracle, phases = asyncio.run(scenario())
        assert phases == [DayPhase.SEQUENCING, DayPhase.SEQUENCING]
        assert len(oracle.calls) == 2
        assert _statuses(ctl) == [CompletionStatus.APPLIED, CompletionStatus.APPLIED]


class TestStaleness:

    def test_edit_during_flight_discards_and_resequences(self, slog, la_stops):
        async def scenario():
            store = ItineraryStore()
            oracle = GatedOracle(respond=reversed_tail)
            ctl = _controller(store, oracle, slog)
            for s in la_stops:
                store.add_stop(s, 1)
            ctl.on_day_changed(1)
            await oracle.wait_started()
            store.update_stop("s2", {"name": "Edited"})
            oracle.release()
            await ctl.drain()
            return store, ctl, oracle

        store, ctl, oracle = asyncio.run(scenario())

        assert _statuses(ctl) == [CompletionStatus.STALE, CompletionStatus.APPLIED]
        assert len(oracle.calls) == 2
        assert "Edited" in [s.name for s in oracle.calls[1].stops]
        assert store.get_stop("s2").name == "Edited"
        assert _ids(store.day(1)) == ["s0", "s3", "s2", "s1"]
        assert "STALE_RESULT_DISCARD" in _events(slog)

    def test_no_resequence_once_below_threshold(self, slog, la_stops):
        async def scenario():
            store = ItineraryStore()
            oracle = GatedOracle(respond=reversed_tail)
            ctl = _controller(store, oracle, slog)
            for s in la_stops:
                store.add_stop(s, 1)
            ctl.on_day_changed(1)
            await oracle.wait_started()
            store.delete_stop("s3")
            store.delete_stop("s2")
            oracle.release()
            await ctl.drain()
            return store, ctl, oracle

        store, ctl, oracle = asyncio.run(scenario())
        assert _statuses(ctl) == [CompletionStatus.STALE]
        assert len(oracle.calls) == 1
        assert _ids(store.day(1)) == ["s0", "s1"]

    def test_pruned_day_drops_result(self, slog, la_stops):
        async def scenario():
            store = ItineraryStore()
            oracle = GatedOracle(respond=reversed_tail)
            ctl = _controller(store, oracle, slog)
            for s in la_stops[:3]:
                store.add_stop(s, 1)
            ctl.on_day_changed(1)
            await oracle.wait_started()
            for s in la_stops[:3]:
                store.delete_stop(s.id)
            oracle.release()
            await ctl.drain()
            return store, ctl

        store, ctl = asyncio.run(scenario())
        assert store.day_count == 0
        assert _statuses(ctl) == [CompletionStatus.STALE]


class TestConcurrentAdds:

    @pytest.mark.parametrize("respond", [None, _boom], ids=["result-discarded", "oracle-fails"])
    def test_three_adds_during_flight(self, slog, trip, la_stops, respond):
        async def scenario():
            oracle = GatedOracle(respond=respond)
            session = PlanningSession(
                trip, oracle=oracle, structured_logger=slog, session_id="t",
                min_stops=3, generator=DayGenerator(use_stub=True),
            )
            for s in la_stops[:3]:
                session.add_stop(s, 1)
            await oracle.wait_started()
            before = len(session.store.day(1))

            async def add(stop):
                session.add_stop(stop, 1)

            new = [make_stop(f"n{i}", 34.05 + i * 0.002, -118.25) for i in range(3)]
            await asyncio.gather(*(add(s) for s in new))
            oracle.release()
            await session.controller.drain()
            return session, before

        session, before = asyncio.run(scenario())
        ids = _ids(session.store.day(1))

        assert len(ids) == before + 3
        assert len(set(ids)) == len(ids)
        assert set(ids) == {"s0", "s1", "s2", "n0", "n1", "n2"}
        assert ids[0] == "s0"
        assert session.controller.phase(1) is DayPhase.IDLE


class TestFailureFallback:

    @pytest.mark.parametrize("raw", [
        "not json at all",
        {"sorted_ids": []},
        {"sorted_ids": ["s0", "s1", "s2"]},
        {"sorted_ids": ["s0", "s1", "s2", "s3", "s3"]},
        {"sorted_ids": ["s0", "s1", "s2", "s3", "zz"]},
        {"sorted_ids": ["s1", "s0", "s2", "s3"]},
        {"order": ["s0", "s1", "s2", "s3"]},
        None,
    ], ids=["non-json", "empty", "missing", "duplicate", "foreign", "moved-start",
            "wrong-shape", "none"])
    def test_malformed_output_keeps_order(self, slog, la_stops, raw):
        async def scenario():
            store = ItineraryStore()
            notices = []
            ctl = _controller(store, GatedOracle(respond=lambda req: raw, gated=False),
                              slog, notices)
            for s in la_stops:
                store.add_stop(s, 1)
            ctl.on_day_changed(1)
            await ctl.drain()
            return store, ctl, notices

        store, ctl, notices = asyncio.run(scenario())
        assert _ids(store.day(1)) == ["s0", "s1", "s2", "s3"]
        assert _statuses(ctl) == [CompletionStatus.FAILED]
        assert notices == [FAILURE_NOTICE]
        assert ctl.phase(1) is DayPhase.IDLE

    def test_exception_is_absorbed(self, slog, la_stops):
        async def scenario():
            store = ItineraryStore()
            notices = []
            ctl = _controller(store, GatedOracle(respond=_boom, gated=False), slog, notices)
            for s in la_stops:
                store.add_stop(s, 1)
            ctl.on_day_changed(1)
            await ctl.drain()
            return store, ctl, notices

        store, ctl, notices = asyncio.run(scenario())
        assert _ids(store.day(1)) == ["s0", "s1", "s2", "s3"]
        assert "boom" in ctl.history[0].error
        assert notices == [FAILURE_NOTICE]
        assert "ORACLE_FAILURE" in _events(slog)

    def test_timeout_is_a_failure(self, slog, la_stops):
        async def scenario():
            store = ItineraryStore()
            notices = []
            ctl = _controller(store, SlowOracle(), slog, notices, timeout_seconds=0.05)
            for s in la_stops:
                store.add_stop(s, 1)
            ctl.on_day_changed(1)
            await ctl.drain()
            return store, ctl, notices

        store, ctl, notices = asyncio.run(scenario())
        assert _statuses(ctl) == [CompletionStatus.FAILED]
        assert "timed out" in ctl.history[0].error
        assert _ids(store.day(1)) == ["s0", "s1", "s2", "s3"]
        assert notices == [FAILURE_NOTICE]


class TestDeferral:

    def test_explicit_request_in_flight_is_deferred_then_rerun(self, slog, la_stops):
        async def scenario():
            store = ItineraryStore()
            oracle = GatedOracle(respond=reversed_tail)
            ctl = _controller(store, oracle, slog)
            for s in la_stops:
                store.add_stop(s, 1)
            first = ctl.on_day_changed(1)
            await oracle.wait_started()
            second = ctl.request(1)
            oracle.release()
            await ctl.drain()
            return ctl, oracle, first, second

        ctl, oracle, first, second = asyncio.run(scenario())
        assert second is first
        assert len(oracle.calls) == 2
        assert _statuses(ctl) == [CompletionStatus.APPLIED, CompletionStatus.APPLIED]
        assert "SEQUENCING_DEFERRED" in _events(slog)

    def test_request_for_missing_day(self, slog):
        async def scenario():
            ctl = _controller(ItineraryStore(), GatedOracle(gated=False), slog)
            return ctl.request(4)

        assert asyncio.run(scenario()) is None


class TestInvalidate:

    def test_completion_after_reset_is_noop(self, slog, trip, la_stops):
        async def scenario():
            oracle = GatedOracle(respond=reversed_tail)
            session = PlanningSession(
                trip, oracle=oracle, structured_logger=slog, session_id="t",
                min_stops=3, generator=DayGenerator(use_stub=True),
            )
            for s in la_stops:
                session.add_stop(s, 1)
            await oracle.wait_started()
            session.reset()

            fresh = [make_stop(f"f{i}", 34.05 + i * 0.003, -118.26) for i in range(3)]
            for s in fresh:
                session.add_stop(s, 1)
            phase_after_reset = session.controller.phase(1)
            oracle.release()
            await session.controller.drain()
            return session, phase_after_reset

        session, phase_after_reset = asyncio.run(scenario())
        ctl = session.controller

        assert phase_after_reset is DayPhase.SEQUENCING
        assert CompletionStatus.CANCELLED in _statuses(ctl)
        assert _statuses(ctl).count(CompletionStatus.APPLIED) == 1
        assert _ids(session.store.day(1)) == ["f0", "f2", "f1"]
        assert session.pop_notices() == []
        assert "SESSION_RESET" in _events(slog)

    def test_reset_and_close_release_log_handle(self, slog, trip):
        session = PlanningSession(trip, oracle=GatedOracle(gated=False), structured_logger=slog,
                                  session_id="t", generator=DayGenerator(use_stub=True))
        assert slog.is_open("t")

        session.reset()
        assert not slog.is_open("t")
        assert "SESSION_RESET" in _events(slog)

        generation = session.controller.generation
        session.close()
        assert session.controller.generation == generation + 1
        assert not slog.is_open("t")


class TestHistory:

    def test_history_keeps_latest_records(self, slog, la_stops, monkeypatch):
        monkeypatch.setattr("config.SEQUENCING_HISTORY_SIZE", 2)

        async def scenario():
            store = ItineraryStore()
            ctl = _controller(store, GatedOracle(gated=False), slog)
            for s in la_stops:
                store.add_stop(s, 1)
            for _ in range(3):
                ctl.request(1)
                await ctl.drain()
            return ctl

        ctl = asyncio.run(scenario())
        assert len(ctl.history) == 2
        assert _statuses(ctl) == [CompletionStatus.APPLIED, CompletionStatus.APPLIED]
        assert _events(slog).count("SEQUENCING_APPLIED") == 3
