"""Bounded polling and per-operation failure policies.

``poll_until`` replaces ad hoc sleep loops (wait for boot, wait for shutdown).
Clock and sleep are injectable so the schedule can be exercised with a
simulated clock.

``FailurePolicy`` names how an operation reacts to a failed external command:

  * ``BEST_EFFORT``: log and return a fallback value (probes).
  * ``PROPAGATE``: let the error reach the caller (state-changing operations).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollTimeoutError(TimeoutError):
    """Raised when a polled condition does not become true in time."""

    def __init__(self, description: str, *, timeout_s: float, attempts: int) -> None:
        super().__init__(
            f"timed out after {timeout_s:g}s ({attempts} attempts) waiting for {description}"
        )
        self.description = description
        self.timeout_s = timeout_s
        self.attempts = attempts


@dataclass(frozen=True)
class PollPolicy:
    interval_s: float = 1.0
    timeout_s: float = 120.0
    backoff: float = 1.0
    max_interval_s: float = 10.0

    def __post_init__(self) -> None:
        if self.interval_s < 0 or self.timeout_s < 0:
            raise ValueError("interval_s and timeout_s must be >= 0")
        if self.backoff < 1.0:
            raise ValueError("backoff must be >= 1.0")

    def next_interval(self, current: float) -> float:
        return min(self.max_interval_s, current * self.backoff)


async def poll_until(
    predicate: Callable[[], Awaitable[bool]],
    *,
    policy: PollPolicy,
    description: str,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> int:
    """Await ``predicate`` until it returns True; return the attempt count.

    The predicate is always tried at least once. Raises ``PollTimeoutError``
    once ``policy.timeout_s`` has elapsed without success.
    """

    deadline = clock() + policy.timeout_s
    interval = policy.interval_s
    attempts = 0
    while True:
        attempts += 1
        if await predicate():
            return attempts
        remaining = deadline - clock()
        if remaining <= 0:
            raise PollTimeoutError(description, timeout_s=policy.timeout_s, attempts=attempts)
        await sleep(min(interval, remaining))
        interval = policy.next_interval(interval)


@dataclass(frozen=True)
class FailurePolicy:
    name: str
    swallow_errors: bool

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        fallback: Optional[T] = None,
        context: str = "",
    ) -> Optional[T]:
        if not self.swallow_errors:
            return await operation()
        try:
            return await operation()
        except Exception as e:
            logger.warning("%s failed (best effort, continuing): %s", context or "operation", e)
            return fallback


BEST_EFFORT = FailurePolicy(name="best_effort", swallow_errors=True)
PROPAGATE = FailurePolicy(name="propagate", swallow_errors=False)
