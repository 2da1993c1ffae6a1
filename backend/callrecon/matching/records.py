"""Plain record types shared by the matcher, the merge engine and the propagator.

These are detached from the ORM so the matching core stays pure; the store
converts rows with ``from_model``.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any


@dataclass
class LeadCallRecord:
    """A lead-ledger call (Source A)."""

    caller_id: str | None
    call_timestamp: str | None
    category: str | None
    payout: float = 0.0
    caller_id_e164: str | None = None
    duration_seconds: int | None = None
    id: int | None = None
    original_payout: float = 0.0
    original_revenue: float = 0.0
    linked_inbound_call_id: str | None = None
    adjustment_amount: float | None = None
    adjustment_time: str | None = None
    adjustment_classification: str | None = None
    adjustment_duration: int | None = None
    unmatched: bool = False

    @property
    def key(self) -> str:
        if self.id is not None:
            return f"lead:{self.id}"
        return f"lead:{self.caller_id_e164 or self.caller_id}|{self.call_timestamp}|{self.category}"

    @property
    def has_provenance(self) -> bool:
        return bool(self.original_payout) or bool(self.original_revenue)

    @classmethod
    def from_model(cls, row: Any) -> "LeadCallRecord":
        return cls(
            id=row.id,
            caller_id=row.caller_id,
            caller_id_e164=row.caller_id_e164,
            call_timestamp=row.call_timestamp,
            category=row.category,
            payout=row.payout or 0.0,
            duration_seconds=row.duration_seconds,
            original_payout=row.original_payout or 0.0,
            original_revenue=row.original_revenue or 0.0,
            linked_inbound_call_id=row.linked_inbound_call_id,
            adjustment_amount=row.adjustment_amount,
            adjustment_time=row.adjustment_time,
            adjustment_classification=row.adjustment_classification,
            adjustment_duration=row.adjustment_duration,
            unmatched=bool(row.unmatched),
        )

    def to_row(self) -> dict:
        return {
            "caller_id": self.caller_id,
            "caller_id_e164": self.caller_id_e164,
            "call_timestamp": self.call_timestamp,
            "category": self.category,
            "payout": self.payout,
            "duration_seconds": self.duration_seconds,
            "adjustment_amount": self.adjustment_amount,
            "adjustment_time": self.adjustment_time,
            "adjustment_classification": self.adjustment_classification,
            "adjustment_duration": self.adjustment_duration,
            "unmatched": self.unmatched,
        }


@dataclass
class RoutingCallRecord:
    """A call-routing ledger call (Source B). The category is resolved from ``routing_id``."""

    inbound_call_id: str
    caller_id: str | None
    call_timestamp: str | None
    routing_id: str | None
    payout_amount: float = 0.0
    revenue_amount: float = 0.0
    caller_id_e164: str | None = None
    duration_seconds: int | None = None
    category: str | None = None
    target_name: str | None = None

    @property
    def key(self) -> str:
        return f"routing:{self.inbound_call_id}"

    @property
    def payout(self) -> float:
        return self.payout_amount

    @classmethod
    def from_model(cls, row: Any) -> "RoutingCallRecord":
        return cls(
            inbound_call_id=row.inbound_call_id,
            caller_id=row.caller_id,
            caller_id_e164=row.caller_id_e164,
            call_timestamp=row.call_timestamp,
            routing_id=row.routing_id,
            payout_amount=row.payout_amount or 0.0,
            revenue_amount=row.revenue_amount or 0.0,
            duration_seconds=row.duration_seconds,
            target_name=row.target_name,
        )

    def to_row(self) -> dict:
        return {
            "inbound_call_id": self.inbound_call_id,
            "caller_id": self.caller_id,
            "caller_id_e164": self.caller_id_e164,
            "call_timestamp": self.call_timestamp,
            "routing_id": self.routing_id,
            "payout_amount": self.payout_amount,
            "revenue_amount": self.revenue_amount,
            "duration_seconds": self.duration_seconds,
            "target_name": self.target_name,
        }


@dataclass
class AdjustmentEvent:
    """An out-of-band payout correction, identified by caller id + original call time."""

    caller_id: str | None
    time_of_call: str | None
    adjustment_time: str | None
    amount: float
    classification: str | None = None
    duration: int | None = None
    caller_id_e164: str | None = None
    # Set when the event is a retry of a stored placeholder row.
    placeholder_id: int | None = None

    @property
    def key(self) -> str:
        return f"adjustment:{self.caller_id_e164 or self.caller_id}|{self.time_of_call}|{self.adjustment_time}|{self.amount}"


@dataclass(frozen=True)
class DateRange:
    """An inclusive range of calendar days."""

    start: date
    end: date

    @property
    def start_str(self) -> str:
        return self.start.isoformat()

    @property
    def end_str(self) -> str:
        return self.end.isoformat()

    def widen(self, days: int) -> "DateRange":
        return DateRange(self.start - timedelta(days=days), self.end + timedelta(days=days))
