"""Retry budget for failed sync ticks."""

from __future__ import annotations

import dataclasses
from enum import StrEnum


class RetryAction(StrEnum):
    RETRY = "retry"
    EXHAUSTED = "exhausted"


@dataclasses.dataclass(frozen=True)
class RetryDecision:
    """What the scheduler should do after a failed tick."""

    action: RetryAction
    attempt: int
    """Consecutive failure count that produced this decision."""
    delay: float
    """Seconds until the one-shot retry (meaningless when exhausted)."""

    @property
    def should_retry(self) -> bool:
        return self.action is RetryAction.RETRY


class RetryPolicy:
    """Counts consecutive tick failures.

    Each failure below *max_retries* asks for a one-shot retry after
    *delay* seconds. The failure that reaches *max_retries* reports
    ``EXHAUSTED`` and resets the counter, leaving the regular cadence to
    pick up again. A success resets the counter immediately.

    The policy never touches a timer; the scheduler acts on its decisions.
    """

    def __init__(self, max_retries: int = 5, delay: float = 30.0) -> None:
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        if delay < 0:
            raise ValueError(f"delay must be non-negative, got {delay}")
        self.max_retries = max_retries
        self.delay = delay
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def record_failure(self) -> RetryDecision:
        self._count += 1
        attempt = self._count
        if attempt >= self.max_retries:
            self._count = 0
            return RetryDecision(RetryAction.EXHAUSTED, attempt, self.delay)
        return RetryDecision(RetryAction.RETRY, attempt, self.delay)

    def record_success(self) -> None:
        self._count = 0
