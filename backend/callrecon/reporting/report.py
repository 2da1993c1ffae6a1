"""In-memory reconciliation report, built up by every pass of a run."""

import uuid
from dataclasses import dataclass, field

from callrecon.models.reconciliation import OutcomeStatus


@dataclass
class RecordOutcome:
    record_key: str
    status: OutcomeStatus
    reason: str | None = None
    counterpart_key: str | None = None
    detail: dict = field(default_factory=dict)


@dataclass
class ReconciliationReport:
    """Per-record outcomes of one operation plus run-level counters.

    A record may carry more than one outcome: a pairing is reported as
    ``matched`` and the write that follows as ``updated``, ``skipped`` or
    ``failed``.
    """

    operation: str
    strategy: str | None = None
    category: str | None = None
    date_start: str | None = None
    date_end: str | None = None
    outcomes: list[RecordOutcome] = field(default_factory=list)
    counters: dict[str, int] = field(default_factory=dict)
    run_id: uuid.UUID | None = None

    def add(
        self,
        status: OutcomeStatus,
        record_key: str,
        reason: str | None = None,
        counterpart_key: str | None = None,
        **detail,
    ) -> RecordOutcome:
        outcome = RecordOutcome(
            record_key=record_key,
            status=status,
            reason=reason,
            counterpart_key=counterpart_key,
            detail=detail,
        )
        self.outcomes.append(outcome)
        return outcome

    def bump(self, counter: str, amount: int = 1) -> None:
        self.counters[counter] = self.counters.get(counter, 0) + amount

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def by_status(self, status: OutcomeStatus) -> list[RecordOutcome]:
        return [o for o in self.outcomes if o.status == status]

    def summary(self) -> dict:
        """Counts per outcome status, e.g. ``{"matched": 3, "updated": 2, ...}``."""
        return {status.value: self.count(status) for status in OutcomeStatus}

    def reasons(self, status: OutcomeStatus) -> dict[str, int]:
        """Histogram of reason strings for one status."""
        histogram: dict[str, int] = {}
        for outcome in self.by_status(status):
            key = outcome.reason or "unspecified"
            histogram[key] = histogram.get(key, 0) + 1
        return histogram

    def to_dict(self) -> dict:
        return {
            "run_id": str(self.run_id) if self.run_id else None,
            "operation": self.operation,
            "strategy": self.strategy,
            "category": self.category,
            "date_start": self.date_start,
            "date_end": self.date_end,
            "summary": self.summary(),
            "counters": dict(self.counters),
            "unmatched_reasons": self.reasons(OutcomeStatus.UNMATCHED),
            "skipped_reasons": self.reasons(OutcomeStatus.SKIPPED),
        }
