"""Tests for the sequencing oracle boundary."""

import asyncio
import json

import pytest

from helpers import make_stop
from modules.errors import OracleError
from modules.reoptimization import oracle as oracle_module
from modules.reoptimization.oracle import (
    SEQUENCING_RESPONSE_SCHEMA,
    GeminiSequencingOracle,
    LocalHeuristicOracle,
    build_oracle,
    parse_sequencing_result,
)
from schemas.sequencing import SequencingRequest


@pytest.fixture
def request_(la_stops):
    return SequencingRequest.from_stops(la_stops)


class TestParseSequencingResult:

    def test_accepts_json_text(self, request_):
        raw = json.dumps({"sorted_ids": ["s0", "s2", "s1", "s3"]})
        assert parse_sequencing_result(raw, request_).sorted_ids == ["s0", "s2", "s1", "s3"]

    def test_accepts_bytes_and_bare_list(self, request_):
        assert parse_sequencing_result(b'["s0","s1","s2","s3"]', request_).sorted_ids[0] == "s0"
        assert parse_sequencing_result(["s0", "s3", "s2", "s1"], request_).sorted_ids[-1] == "s1"

    def test_missing_ids_reported(self, request_):
        with pytest.raises(OracleError, match="missing=\\['s3'\\]"):
            parse_sequencing_result({"sorted_ids": ["s0", "s1", "s2"]}, request_)

    def test_duplicate_reported(self, request_):
        with pytest.raises(OracleError, match="unexpected_or_duplicate=\\['s1'\\]"):
            parse_sequencing_result({"sorted_ids": ["s0", "s1", "s1", "s2", "s3"]}, request_)

    def test_locked_start_must_lead(self, request_):
        with pytest.raises(OracleError, match="locked start"):
            parse_sequencing_result({"sorted_ids": ["s1", "s0", "s2", "s3"]}, request_)

    @pytest.mark.parametrize("raw", ["{oops", {"sorted_ids": "s0,s1"}, {"sorted_ids": []}, None])
    def test_malformed(self, request_, raw):
        with pytest.raises(OracleError):
            parse_sequencing_result(raw, request_)


class TestSequencingRequest:

    def test_first_stop_is_locked(self, request_):
        assert request_.locked_start_id == "s0"
        assert request_.to_payload()["lockedStartId"] == "s0"
        assert set(request_.to_payload()["stops"][0]) == {"id", "name", "lat", "lng", "openingHours"}

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            SequencingRequest.from_stops([make_stop("a"), make_stop("a")])


class TestLocalHeuristicOracle:

    def test_returns_permutation(self, request_):
        raw = asyncio.run(LocalHeuristicOracle().sequence(request_))
        result = parse_sequencing_result(raw, request_)
        assert sorted(result.sorted_ids) == ["s0", "s1", "s2", "s3"]


class TestGeminiSequencingOracle:

    def test_prompt_and_schema(self, request_, monkeypatch):
        seen = {}

        async def fake_call(prompt, **kwargs):
            seen["prompt"] = prompt
            seen.update(kwargs)
            return json.dumps({"sorted_ids": ["s0", "s1", "s2", "s3"]})

        monkeypatch.setattr(oracle_module, "call_llm_json", fake_call)
        raw = asyncio.run(GeminiSequencingOracle(model="test-model").sequence(request_))

        assert parse_sequencing_result(raw, request_).sorted_ids[0] == "s0"
        assert "(ID: s0)" in seen["prompt"]
        assert seen["schema"] is SEQUENCING_RESPONSE_SCHEMA
        assert seen["model"] == "test-model"
        assert "LOCKED START" in seen["system_instruction"]


class TestBuildOracle:

    def test_backends(self):
        assert isinstance(build_oracle("gemini"), GeminiSequencingOracle)
        assert isinstance(build_oracle("local"), LocalHeuristicOracle)
        assert isinstance(build_oracle("nonsense"), LocalHeuristicOracle)
