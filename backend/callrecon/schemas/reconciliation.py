"""Pydantic schemas for reconciliation runs and operation requests."""

import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator

from callrecon.schemas.calls import RawAdjustment, RawLeadCall


class DateRangeRequest(BaseModel):
    start: date
    end: date
    category: str | None = None

    @model_validator(mode="after")
    def _ordered(self) -> "DateRangeRequest":
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self


class RoutingSyncRequest(DateRangeRequest):
    # Fetch the routing ledger before matching instead of using the local mirror
    refresh: bool = False


class LeadCallIngestRequest(DateRangeRequest):
    category: str
    calls: list[RawLeadCall] = Field(default_factory=list)
    adjustments: list[RawAdjustment] = Field(default_factory=list)


class ClearConvertedRequest(BaseModel):
    inbound_call_ids: list[str] = Field(min_length=1)


class OutcomeResponse(BaseModel):
    id: uuid.UUID
    record_key: str
    status: str
    reason: str | None = None
    counterpart_key: str | None = None
    detail: dict | None = None

    model_config = {"from_attributes": True}


class ReconciliationRunResponse(BaseModel):
    id: uuid.UUID
    operation: str
    strategy: str | None = None
    status: str
    category: str | None = None
    date_start: str | None = None
    date_end: str | None = None
    matched_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    unmatched_count: int = 0
    failed_count: int = 0
    processing_time_ms: int | None = None
    error_message: str | None = None
    summary: dict | None = None
    outcomes: list[OutcomeResponse] = Field(default_factory=list)
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ReconciliationRunListResponse(BaseModel):
    runs: list[ReconciliationRunResponse]
    total: int
    page: int
    per_page: int


class ReportResponse(BaseModel):
    """Summary of an operation that just ran; full outcomes via GET /runs/{run_id}."""

    run_id: uuid.UUID | None = None
    operation: str
    strategy: str | None = None
    category: str | None = None
    date_start: str | None = None
    date_end: str | None = None
    summary: dict[str, int]
    counters: dict[str, int] = Field(default_factory=dict)
    unmatched_reasons: dict[str, int] = Field(default_factory=dict)
    skipped_reasons: dict[str, int] = Field(default_factory=dict)


class ReconciliationStatsResponse(BaseModel):
    total_runs: int = 0
    failed_runs: int = 0
    total_matched: int = 0
    total_unmatched: int = 0
    lead_calls: int = 0
    open_placeholders: int = 0
    routing_calls: int = 0
    last_run_at: datetime | None = None
