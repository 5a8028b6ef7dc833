from __future__ import annotations

import asyncio
from typing import List, Tuple

import pytest

from mobile_dev_core.requirements.model import (
    CheckOutcome,
    OutcomeStatus,
    Requirement,
    RequirementGroup,
)
from mobile_dev_core.requirements.processor import (
    ProcessorOptions,
    RequirementProcessor,
    RequirementsNotMetError,
)


class _RecordingSink:
    def __init__(self) -> None:
        self.reports: List[Tuple[str, OutcomeStatus]] = []

    def report(self, title: str, outcome: CheckOutcome) -> None:
        self.reports.append((title, outcome.status))


class _Calls:
    def __init__(self) -> None:
        self.order: List[str] = []

    def check(self, title: str, outcome: CheckOutcome):
        async def _check() -> CheckOutcome:
            self.order.append(title)
            return outcome

        return _check


def _abc(calls: _Calls) -> RequirementGroup:
    return RequirementGroup(
        title="group",
        requirements=[
            Requirement("A", calls.check("A", CheckOutcome.fulfilled("a ok"))),
            Requirement("B", calls.check("B", CheckOutcome.unfulfilled("b missing"))),
            Requirement("C", calls.check("C", CheckOutcome.fulfilled("c ok"))),
        ],
    )


def test_without_fail_fast_all_outcomes_are_reported() -> None:
    calls = _Calls()
    result = asyncio.run(RequirementProcessor().execute([_abc(calls)]))

    assert calls.order == ["A", "B", "C"]
    assert [r.title for r in result.results] == ["A", "B", "C"]
    assert [o.status for _, o in result.per_requirement] == [
        OutcomeStatus.FULFILLED,
        OutcomeStatus.UNFULFILLED,
        OutcomeStatus.FULFILLED,
    ]
    assert result.all_fulfilled is False
    assert [r.title for r in result.failures()] == ["B"]


def test_fail_fast_stops_after_first_failure_with_partial_ledger() -> None:
    calls = _Calls()
    with pytest.raises(RequirementsNotMetError) as excinfo:
        asyncio.run(RequirementProcessor().execute([_abc(calls)], ProcessorOptions(fail_fast=True)))

    assert calls.order == ["A", "B"]
    assert [r.title for r in excinfo.value.result.results] == ["A", "B"]
    assert "1 of 2 requirement(s) are not met" in str(excinfo.value)
    assert "B: b missing" in str(excinfo.value)


def test_raise_on_failure_runs_everything_then_raises() -> None:
    calls = _Calls()
    with pytest.raises(RequirementsNotMetError) as excinfo:
        asyncio.run(
            RequirementProcessor().execute([_abc(calls)], ProcessorOptions(raise_on_failure=True))
        )
    assert calls.order == ["A", "B", "C"]
    assert len(excinfo.value.result.results) == 3


def _parent_with_children(calls: _Calls) -> RequirementGroup:
    parent = Requirement("parent", calls.check("parent", CheckOutcome.unfulfilled("no sdk"))).with_children(
        Requirement("child-1", calls.check("child-1", CheckOutcome.fulfilled())),
        Requirement("child-2", calls.check("child-2", CheckOutcome.fulfilled())),
    )
    return RequirementGroup(title="g", requirements=[parent])


def test_failed_parent_skips_children_under_fail_fast() -> None:
    calls = _Calls()
    with pytest.raises(RequirementsNotMetError) as excinfo:
        asyncio.run(
            RequirementProcessor().execute(
                [_parent_with_children(calls)], ProcessorOptions(fail_fast=True)
            )
        )
    assert calls.order == ["parent"]
    assert excinfo.value.result.results[0].children == ()


def test_failed_parent_still_evaluates_children_without_fail_fast() -> None:
    calls = _Calls()
    result = asyncio.run(RequirementProcessor().execute([_parent_with_children(calls)]))
    assert calls.order == ["parent", "child-1", "child-2"]
    top = result.results[0]
    assert [c.title for c in top.children] == ["child-1", "child-2"]
    assert top.outcome.status is OutcomeStatus.UNFULFILLED
    assert top.outcome.message == "no sdk"


def test_failing_child_fails_parent_and_stops_siblings_under_fail_fast() -> None:
    calls = _Calls()
    parent = Requirement("parent", calls.check("parent", CheckOutcome.fulfilled())).with_children(
        Requirement("child-1", calls.check("child-1", CheckOutcome.unfulfilled("bad"))),
        Requirement("child-2", calls.check("child-2", CheckOutcome.fulfilled())),
    )
    with pytest.raises(RequirementsNotMetError) as excinfo:
        asyncio.run(
            RequirementProcessor().execute(
                [RequirementGroup("g", [parent])], ProcessorOptions(fail_fast=True)
            )
        )
    assert calls.order == ["parent", "child-1"]
    top = excinfo.value.result.results[0]
    assert top.outcome.message == "child-1: bad"


def test_skipped_never_fails_aggregate() -> None:
    calls = _Calls()
    group = RequirementGroup(
        "g", [Requirement("S", calls.check("S", CheckOutcome.skipped("not applicable")))]
    )
    result = asyncio.run(RequirementProcessor().execute([group]))
    assert result.all_fulfilled is True
    assert result.results[0].outcome.status is OutcomeStatus.SKIPPED


def test_exception_in_check_becomes_unfulfilled() -> None:
    async def boom() -> CheckOutcome:
        raise RuntimeError("sdkmanager crashed")

    group = RequirementGroup("g", [Requirement("X", boom, unfulfilled_message="fallback")])
    result = asyncio.run(RequirementProcessor().execute([group]))
    assert result.results[0].outcome == CheckOutcome.unfulfilled("sdkmanager crashed")


def test_empty_unfulfilled_message_uses_requirement_default() -> None:
    async def silent() -> CheckOutcome:
        return CheckOutcome.unfulfilled()

    group = RequirementGroup("g", [Requirement("X", silent, unfulfilled_message="X is missing")])
    result = asyncio.run(RequirementProcessor().execute([group]))
    assert result.results[0].outcome.message == "X is missing"


def test_sink_is_notified_after_each_requirement_in_order() -> None:
    calls = _Calls()
    sink = _RecordingSink()
    asyncio.run(RequirementProcessor(sink=sink).execute([_parent_with_children(calls), _abc(calls)]))
    assert sink.reports == [
        ("child-1", OutcomeStatus.FULFILLED),
        ("child-2", OutcomeStatus.FULFILLED),
        ("parent", OutcomeStatus.UNFULFILLED),
        ("A", OutcomeStatus.FULFILLED),
        ("B", OutcomeStatus.UNFULFILLED),
        ("C", OutcomeStatus.FULFILLED),
    ]


def test_sink_errors_do_not_abort_the_pipeline(caplog) -> None:
    class _BrokenSink:
        def report(self, title: str, outcome: CheckOutcome) -> None:
            raise OSError("terminal closed")

    calls = _Calls()
    with caplog.at_level("WARNING"):
        result = asyncio.run(RequirementProcessor(sink=_BrokenSink()).execute([_abc(calls)]))
    assert calls.order == ["A", "B", "C"]
    assert len(result.results) == 3
    assert "report sink failed" in caplog.text


def test_aggregate_serialises_to_dict() -> None:
    calls = _Calls()
    result = asyncio.run(RequirementProcessor().execute([_parent_with_children(calls)]))
    data = result.to_dict()
    assert data["all_fulfilled"] is False
    top = data["requirements"][0]
    assert top["title"] == "parent"
    assert top["group"] == "g"
    assert top["outcome"] == {"status": "unfulfilled", "message": "no sdk"}
    assert [c["title"] for c in top["children"]] == ["child-1", "child-2"]
