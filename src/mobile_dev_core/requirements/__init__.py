"""Requirement verification engine (model + sequential processor).

Platform requirement groups live in ``requirements.android`` and
``requirements.ios``.
"""

from __future__ import annotations

from mobile_dev_core.requirements.model import (
    AggregateResult,
    CheckOutcome,
    OutcomeStatus,
    Requirement,
    RequirementGroup,
    RequirementResult,
    combine_outcomes,
)
from mobile_dev_core.requirements.processor import (
    LoggingReportSink,
    ProcessorOptions,
    ReportSink,
    RequirementProcessor,
    RequirementsNotMetError,
    evaluate_requirement,
)

__all__ = [
    "AggregateResult",
    "CheckOutcome",
    "LoggingReportSink",
    "OutcomeStatus",
    "ProcessorOptions",
    "ReportSink",
    "Requirement",
    "RequirementGroup",
    "RequirementProcessor",
    "RequirementResult",
    "RequirementsNotMetError",
    "combine_outcomes",
    "evaluate_requirement",
]
