"""Tests for day generation (stub pool and Gemini mode with a faked client call)."""

import asyncio
import json
import re

import pytest

from modules.errors import DayGenerationError
from modules.generation import day_generator
from modules.generation.day_generator import (
    SAMPLE_STOPS,
    STUB_STOPS_PER_DAY,
    DayGenerator,
    build_day_prompt,
)
from modules.reoptimization.session import PlanningSession
from helpers import GatedOracle


def _item(name, lat, lng, **extra):
    return {"stop_name": name, "coordinates": {"lat": lat, "lng": lng},
            "arrival_time": "10:00", "transport_method": "Walk", "category": "tour", **extra}


class TestStubGeneration:

    def test_first_day_takes_head_of_pool(self, trip):
        stops = asyncio.run(DayGenerator(use_stub=True).generate(1, trip, []))
        assert len(stops) == STUB_STOPS_PER_DAY
        assert stops[0].name == SAMPLE_STOPS[0]["stop_name"]
        assert all(re.fullmatch(r"1-\d+-[0-9a-f]{8}", s.id) for s in stops)

    def test_visited_names_are_skipped(self, trip):
        visited = [SAMPLE_STOPS[0]["stop_name"].upper(), SAMPLE_STOPS[2]["stop_name"]]
        stops = asyncio.run(DayGenerator(use_stub=True).generate(2, trip, visited))
        names = [s.name for s in stops]
        assert SAMPLE_STOPS[0]["stop_name"] not in names
        assert SAMPLE_STOPS[2]["stop_name"] not in names
        assert all(s.id.startswith("2-") for s in stops)

    def test_transit_carried_over(self, trip):
        stops = asyncio.run(DayGenerator(use_stub=True).generate(1, trip, []))
        assert stops[0].transit.mode == SAMPLE_STOPS[0]["transport_method"]
        assert stops[0].transit.steps


class TestGeminiGeneration:

    def test_validates_model_output(self, trip, monkeypatch):
        captured = {}

        async def fake_call(prompt, **kwargs):
            captured["prompt"] = prompt
            return json.dumps([
                _item("Santa Monica Pier", 34.0092, -118.4976, opening_hours="24 Hours"),
                _item("Nowhere", 0.0, 0.0),                       # dropped by validate_stop
                _item("Getty Center", 34.0780, -118.4741, opening_hours="10:00 - 17:30"),
            ])

        monkeypatch.setattr(day_generator, "call_llm_json", fake_call)
        stops = asyncio.run(DayGenerator(use_stub=False).generate(2, trip, ["Union Station"]))

        assert [s.name for s in stops] == ["Santa Monica Pier", "Getty Center"]
        assert stops[0].category == "TOUR"
        assert "DO NOT visit these places again: Union Station." in captured["prompt"]

    @pytest.mark.parametrize("raw", ["not json", json.dumps([{"stop_name": "x"}])])
    def test_malformed_output(self, trip, monkeypatch, raw):
        async def fake_call(prompt, **kwargs):
            return raw

        monkeypatch.setattr(day_generator, "call_llm_json", fake_call)
        with pytest.raises(DayGenerationError):
            asyncio.run(DayGenerator(use_stub=False).generate(1, trip, []))

    def test_call_failure(self, trip, monkeypatch):
        async def fake_call(prompt, **kwargs):
            raise RuntimeError("GEMINI_API_KEY missing")

        monkeypatch.setattr(day_generator, "call_llm_json", fake_call)
        with pytest.raises(DayGenerationError, match="GEMINI_API_KEY"):
            asyncio.run(DayGenerator(use_stub=False).generate(1, trip, []))


class TestPrompt:

    def test_day_one_starts_with_travel_leg(self, trip):
        prompt = build_day_prompt(1, trip, [])
        assert "traveling from San Diego to Los Angeles" in prompt
        assert "DO NOT visit" not in prompt

    def test_later_day_mentions_trip_length(self, trip):
        assert "DAY 2 of 3" in build_day_prompt(2, trip, ["Pier"])


class TestSessionGeneration:

    def test_days_appended_in_order(self, trip, slog):
        async def scenario():
            oracle = GatedOracle(gated=False)
            session = PlanningSession(trip, oracle=oracle, structured_logger=slog,
                                      generator=DayGenerator(use_stub=True))
            await session.generate_next_day()
            await session.generate_next_day()
            await session.controller.drain()
            return session, oracle

        session, oracle = asyncio.run(scenario())
        assert session.store.day_count == 2
        assert len(oracle.calls) == 2
        names = session.store.visited_names()
        assert len(names) == len(set(names))
        assert all(s.id.startswith("2-") for s in session.store.day(2))

    def test_failed_generation_leaves_store_untouched(self, trip, slog, monkeypatch):
        async def fake_call(prompt, **kwargs):
            return "[]garbage"

        monkeypatch.setattr(day_generator, "call_llm_json", fake_call)

        async def scenario():
            session = PlanningSession(trip, oracle=GatedOracle(gated=False), structured_logger=slog,
                                      generator=DayGenerator(use_stub=False))
            with pytest.raises(DayGenerationError):
                await session.generate_next_day()
            return session

        assert asyncio.run(scenario()).store.day_count == 0
