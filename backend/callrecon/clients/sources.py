"""Collaborator interfaces consumed by the reconciliation engine."""

from dataclasses import dataclass
from typing import Protocol

from callrecon.matching.records import DateRange
from callrecon.schemas.calls import RawAdjustment, RawLeadCall, RawRoutingCall


@dataclass
class WriteResult:
    """Outcome of one remote write."""

    ok: bool
    error: str | None = None
    response: dict | None = None

    @classmethod
    def success(cls, response: dict | None = None) -> "WriteResult":
        return cls(ok=True, response=response)

    @classmethod
    def failure(cls, error: str) -> "WriteResult":
        return cls(ok=False, error=error)


class LeadLedgerSource(Protocol):
    async def fetch_calls(self, date_range: DateRange, category: str) -> list[RawLeadCall]: ...

    async def fetch_adjustments(self, date_range: DateRange) -> list[RawAdjustment]: ...


class RoutingLedgerSource(Protocol):
    async def fetch_calls_by_category_and_date_range(self, date_range: DateRange) -> list[RawRoutingCall]: ...


class RemoteCounterpart(Protocol):
    async def set_payout_and_revenue(
        self,
        counterpart_id: str,
        new_payout: float,
        new_revenue: float,
        reason: str,
    ) -> WriteResult: ...
