"""Sequential requirement pipeline.

Groups and requirements run strictly in declaration order: later checks may
depend on earlier ones (the SDK root must exist before platform-tools are
inspected) and the reported sequence must stay deterministic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence

from mobile_dev_core.requirements.model import (
    AggregateResult,
    CheckOutcome,
    Requirement,
    RequirementGroup,
    RequirementResult,
    combine_outcomes,
)

logger = logging.getLogger(__name__)


class ReportSink(Protocol):
    def report(self, title: str, outcome: CheckOutcome) -> None:
        ...


class LoggingReportSink:
    """Report sink that writes one log line per evaluated requirement."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self._log = log or logger

    def report(self, title: str, outcome: CheckOutcome) -> None:
        level = logging.INFO if outcome.passed else logging.WARNING
        self._log.log(level, "[%s] %s: %s", outcome.status.value, title, outcome.message)


class RequirementsNotMetError(RuntimeError):
    """Raised with the ledger recorded so far when requirements are unfulfilled."""

    def __init__(self, result: AggregateResult) -> None:
        self.result = result
        super().__init__(format_failures(result))


def format_failures(result: AggregateResult) -> str:
    failures = result.failures()
    lines = [f"{len(failures)} of {len(result.results)} requirement(s) are not met:"]
    for top in failures:
        for node in top.walk():
            if node.passed:
                continue
            depth = 1 if node is top else 2
            indent = "  " * depth
            lines.append(f"{indent}- {node.title}: {node.outcome.message}")
            if node.requirement.supplemental_message:
                lines.append(f"{indent}  {node.requirement.supplemental_message}")
    return "\n".join(lines)


@dataclass(frozen=True)
class ProcessorOptions:
    fail_fast: bool = False
    raise_on_failure: bool = False


async def run_check(requirement: Requirement) -> CheckOutcome:
    """Run a single check; exceptions become unfulfilled outcomes."""

    if requirement.check is None:
        return CheckOutcome.fulfilled()
    try:
        outcome = await requirement.check()
    except Exception as e:
        logger.debug("check %r raised", requirement.title, exc_info=True)
        return CheckOutcome.unfulfilled(str(e) or requirement.unfulfilled_message or type(e).__name__)
    if not outcome.passed and not outcome.message and requirement.unfulfilled_message:
        return CheckOutcome.unfulfilled(requirement.unfulfilled_message)
    return outcome


async def evaluate_requirement(
    requirement: Requirement,
    *,
    fail_fast: bool,
    group: str = "",
    notify: Optional[Callable[[str, CheckOutcome], None]] = None,
) -> RequirementResult:
    """Evaluate one requirement tree.

    With ``fail_fast`` the children of a failed node are not evaluated and
    sibling evaluation stops at the first failing child.
    """

    own = await run_check(requirement)
    child_results: List[RequirementResult] = []
    if requirement.children and (own.passed or not fail_fast):
        for child in requirement.children:
            child_result = await evaluate_requirement(
                child, fail_fast=fail_fast, group=group, notify=notify
            )
            child_results.append(child_result)
            if fail_fast and not child_result.passed:
                break

    result = RequirementResult(
        requirement=requirement,
        outcome=combine_outcomes(own, child_results),
        own_outcome=own,
        children=tuple(child_results),
        group=group,
    )
    if notify is not None:
        notify(requirement.title, result.outcome)
    return result


class RequirementProcessor:
    def __init__(self, sink: Optional[ReportSink] = None) -> None:
        self._sink = sink

    def _notify(self, title: str, outcome: CheckOutcome) -> None:
        if self._sink is None:
            return
        try:
            self._sink.report(title, outcome)
        except Exception:
            logger.warning("report sink failed for %r", title, exc_info=True)

    async def execute(
        self,
        groups: Sequence[RequirementGroup],
        options: Optional[ProcessorOptions] = None,
    ) -> AggregateResult:
        opts = options or ProcessorOptions()
        results: List[RequirementResult] = []

        for group in groups:
            logger.info("%s", group.title)
            for requirement in group.requirements:
                result = await evaluate_requirement(
                    requirement, fail_fast=opts.fail_fast, group=group.title, notify=self._notify
                )
                results.append(result)
                if opts.fail_fast and not result.passed:
                    raise RequirementsNotMetError(AggregateResult(results=tuple(results)))

        aggregate = AggregateResult(results=tuple(results))
        if opts.raise_on_failure and not aggregate.all_fulfilled:
            raise RequirementsNotMetError(aggregate)
        return aggregate
