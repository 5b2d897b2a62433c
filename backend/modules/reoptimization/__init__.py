"""modules/reoptimization — Live re-sequencing of an itinerary under concurrent edits."""

from modules.reoptimization.oracle import (
    SequencingOracle,
    LocalHeuristicOracle,
    GeminiSequencingOracle,
    build_oracle,
    parse_sequencing_result,
)
from modules.reoptimization.controller import (
    ReconciliationController,
    DayPhase,
    TriggerReason,
    CompletionStatus,
    CompletionRecord,
)
from modules.reoptimization.session import PlanningSession

__all__ = [
    "SequencingOracle",
    "LocalHeuristicOracle",
    "GeminiSequencingOracle",
    "build_oracle",
    "parse_sequencing_result",
    "ReconciliationController",
    "DayPhase",
    "TriggerReason",
    "CompletionStatus",
    "CompletionRecord",
    "PlanningSession",
]
