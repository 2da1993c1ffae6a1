"""Pydantic schemas for raw ledger rows and stored calls."""

from datetime import datetime

from pydantic import BaseModel


class RawLeadCall(BaseModel):
    """A lead-ledger call row as delivered by the source, before normalization."""

    caller_id: str | None = None
    date_of_call: str | None = None
    payout: float = 0.0
    category: str | None = None
    duration_seconds: int | None = None


class RawAdjustment(BaseModel):
    """A lead-ledger adjustment row: a payout correction for an earlier call."""

    caller_id: str | None = None
    time_of_call: str | None = None
    adjustment_time: str | None = None
    amount: float = 0.0
    classification: str | None = None
    duration: int | None = None


class RawRoutingCall(BaseModel):
    """A routing-ledger call-log record. ``call_date_time`` is in UTC."""

    inbound_call_id: str
    call_date_time: str | None = None
    caller_id: str | None = None
    routing_id: str | None = None
    target_name: str | None = None
    payout_amount: float = 0.0
    revenue_amount: float = 0.0
    duration_seconds: int | None = None


class LeadCallResponse(BaseModel):
    id: int
    caller_id: str
    caller_id_e164: str | None = None
    call_timestamp: str
    payout: float
    category: str
    duration_seconds: int | None = None
    original_payout: float | None = None
    original_revenue: float | None = None
    linked_inbound_call_id: str | None = None
    adjustment_amount: float | None = None
    adjustment_time: str | None = None
    unmatched: bool = False
    merged_into_call_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

