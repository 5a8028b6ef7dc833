"""Requirement tree and result ledger.

A ``Requirement`` is a node with an optional async check and ordered
children. Evaluation produces a ``RequirementResult`` tree of the same shape;
a node passes only when its own check and every evaluated child pass (AND).
``SKIPPED`` outcomes never fail a node.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Sequence, Tuple


class OutcomeStatus(str, Enum):
    FULFILLED = "fulfilled"
    UNFULFILLED = "unfulfilled"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class CheckOutcome:
    status: OutcomeStatus
    message: str = ""

    @classmethod
    def fulfilled(cls, message: str = "") -> "CheckOutcome":
        return cls(OutcomeStatus.FULFILLED, message)

    @classmethod
    def unfulfilled(cls, message: str = "") -> "CheckOutcome":
        return cls(OutcomeStatus.UNFULFILLED, message)

    @classmethod
    def skipped(cls, reason: str = "") -> "CheckOutcome":
        return cls(OutcomeStatus.SKIPPED, reason)

    @property
    def passed(self) -> bool:
        return self.status is not OutcomeStatus.UNFULFILLED

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "message": self.message}


CheckFn = Callable[[], Awaitable[CheckOutcome]]


@dataclass(frozen=True)
class Requirement:
    title: str
    check: Optional[CheckFn] = None
    unfulfilled_message: str = ""
    supplemental_message: Optional[str] = None
    children: Tuple["Requirement", ...] = ()

    def with_children(self, *children: "Requirement") -> "Requirement":
        return Requirement(
            title=self.title,
            check=self.check,
            unfulfilled_message=self.unfulfilled_message,
            supplemental_message=self.supplemental_message,
            children=tuple(self.children) + tuple(children),
        )


@dataclass(frozen=True)
class RequirementGroup:
    title: str
    requirements: Tuple[Requirement, ...] = ()

    def __post_init__(self) -> None:
        # Accept lists from callers but keep the group immutable.
        object.__setattr__(self, "requirements", tuple(self.requirements))


@dataclass(frozen=True)
class RequirementResult:
    requirement: Requirement
    outcome: CheckOutcome
    own_outcome: CheckOutcome
    children: Tuple["RequirementResult", ...] = ()
    group: str = ""

    @property
    def title(self) -> str:
        return self.requirement.title

    @property
    def passed(self) -> bool:
        return self.outcome.passed

    def walk(self) -> Iterator["RequirementResult"]:
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "title": self.title,
            "group": self.group,
            "outcome": self.outcome.to_dict(),
        }
        if self.requirement.supplemental_message and not self.passed:
            out["supplemental_message"] = self.requirement.supplemental_message
        if self.children:
            out["children"] = [c.to_dict() for c in self.children]
        return out


def combine_outcomes(own: CheckOutcome, children: Sequence[RequirementResult]) -> CheckOutcome:
    """AND the node's own outcome with its evaluated children."""

    if not own.passed:
        return own
    failed = [c for c in children if not c.passed]
    if not failed:
        return own
    detail = "; ".join(
        f"{c.title}: {c.outcome.message}" if c.outcome.message else c.title for c in failed
    )
    return CheckOutcome.unfulfilled(detail)


@dataclass(frozen=True)
class AggregateResult:
    results: Tuple[RequirementResult, ...] = field(default_factory=tuple)

    @property
    def all_fulfilled(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def per_requirement(self) -> List[Tuple[Requirement, CheckOutcome]]:
        return [(r.requirement, r.outcome) for r in self.results]

    def failures(self) -> List[RequirementResult]:
        return [r for r in self.results if not r.passed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "all_fulfilled": self.all_fulfilled,
            "requirements": [r.to_dict() for r in self.results],
        }
