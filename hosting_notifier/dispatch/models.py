"""Data models for dispatch pass tracking and reporting."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class DispatchTimeoutError(Exception):
    """Raised when a send or report generation exceeds the per-item timeout."""

    pass


class WorkerPoolSaturatedError(Exception):
    """Raised when no worker frees up within the per-item timeout."""

    pass


class OutcomeStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"


@dataclass
class ItemOutcome:
    """
    What happened to one potential send.

    Attributes:
        rule_id: Rule that produced the send
        status: sent, failed, skipped (nothing recorded) or duplicate
            (already in the notification log)
        reference_id: Hosting record id, or the rule id for recurring rules
        recipient: Resolved To address, if any
        reason: Skip reason or error message
    """

    rule_id: int
    status: OutcomeStatus
    reference_id: Optional[int] = None
    recipient: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class DispatchRunResult:
    """
    Aggregate results of one pass (expiry, recurring, manual or test).

    Attributes:
        pass_name: Which pass produced the result
        run_started_at: UTC timestamp when the pass began
        run_finished_at: UTC timestamp when the pass completed
        total_duration_seconds: Wall time of the pass
        rules_evaluated: Number of enabled rules looked at
        outcomes: Per-item outcomes in dispatch order
        errors: Rule-level errors (loading, persistence) that stopped a rule
        sent_count / failed_count / skipped_count / duplicate_count:
            Outcome tallies
        had_errors: True if any send failed or any rule errored
        skipped: True when the pass did not run because one was in progress
    """

    pass_name: str
    run_started_at: datetime
    run_finished_at: datetime
    total_duration_seconds: float = 0.0
    rules_evaluated: int = 0
    outcomes: List[ItemOutcome] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    sent_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    duplicate_count: int = 0
    had_errors: bool = False
    skipped: bool = False

    def __post_init__(self):
        """Compute tallies from the outcomes."""
        if self.outcomes:
            self.sent_count = self._count(OutcomeStatus.SENT)
            self.failed_count = self._count(OutcomeStatus.FAILED)
            self.skipped_count = self._count(OutcomeStatus.SKIPPED)
            self.duplicate_count = self._count(OutcomeStatus.DUPLICATE)

        self.had_errors = self.had_errors or self.failed_count > 0 or bool(self.errors)

        if self.total_duration_seconds == 0.0:
            delta = self.run_finished_at - self.run_started_at
            self.total_duration_seconds = delta.total_seconds()

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @classmethod
    def combine(cls, pass_name: str, results: List["DispatchRunResult"]) -> "DispatchRunResult":
        """One result covering several passes run back to back."""
        return cls(
            pass_name=pass_name,
            run_started_at=min(r.run_started_at for r in results),
            run_finished_at=max(r.run_finished_at for r in results),
            rules_evaluated=sum(r.rules_evaluated for r in results),
            outcomes=[o for r in results for o in r.outcomes],
            errors=[e for r in results for e in r.errors],
            skipped=all(r.skipped for r in results),
        )
