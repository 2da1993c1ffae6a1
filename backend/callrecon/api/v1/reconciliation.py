"""Reconciliation endpoints — ingest, sync passes, run history, stats."""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from callrecon.clients.routing_ledger import RoutingLedgerClient
from callrecon.config import settings
from callrecon.dependencies import get_db, get_reconciliation_engine, get_routing_client
from callrecon.matching.records import DateRange
from callrecon.models.calls import LeadCall, RoutingCall
from callrecon.models.reconciliation import OutcomeStatus, ReconciliationRun, RunStatus
from callrecon.reconciliation_engine.service import ReconciliationEngine
from callrecon.reporting.report import ReconciliationReport
from callrecon.schemas.calls import LeadCallResponse
from callrecon.schemas.reconciliation import (
    ClearConvertedRequest,
    DateRangeRequest,
    LeadCallIngestRequest,
    OutcomeResponse,
    ReconciliationRunListResponse,
    ReconciliationRunResponse,
    ReconciliationStatsResponse,
    ReportResponse,
    RoutingSyncRequest,
)

router = APIRouter()


def _date_range(request: DateRangeRequest) -> DateRange:
    return DateRange(request.start, request.end)


def _report_response(report: ReconciliationReport) -> ReportResponse:
    return ReportResponse(**report.to_dict())


@router.post("/lead-calls", response_model=ReportResponse)
async def ingest_lead_calls(
    request: LeadCallIngestRequest,
    db: AsyncSession = Depends(get_db),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
) -> ReportResponse:
    """Save a lead-ledger batch and merge its adjustments."""
    report = await engine.ingest_lead_calls(
        db, request.calls, request.adjustments, _date_range(request), request.category
    )
    return _report_response(report)


@router.post("/routing-calls", response_model=ReportResponse)
async def ingest_routing_calls(
    request: DateRangeRequest,
    db: AsyncSession = Depends(get_db),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
    client: RoutingLedgerClient = Depends(get_routing_client),
) -> ReportResponse:
    """Fetch the routing ledger for the range into the local mirror."""
    report = await engine.ingest_routing_calls(db, client, _date_range(request))
    return _report_response(report)


@router.post("/original-sync", response_model=ReportResponse)
async def sync_original_payout(
    request: RoutingSyncRequest,
    db: AsyncSession = Depends(get_db),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
) -> ReportResponse:
    """Record routing payout/revenue as write-once original payout on lead calls."""
    if not request.refresh:
        report = await engine.sync_original_payout(db, _date_range(request), request.category)
        return _report_response(report)

    async with RoutingLedgerClient(settings) as client:
        report = await engine.sync_original_payout(db, _date_range(request), request.category, source=client)
    return _report_response(report)


@router.post("/cost-sync", response_model=ReportResponse)
async def sync_cost_to_counterpart(
    request: RoutingSyncRequest,
    db: AsyncSession = Depends(get_db),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
    client: RoutingLedgerClient = Depends(get_routing_client),
) -> ReportResponse:
    """Push lead-call payouts to the matched routing-ledger calls."""
    report = await engine.sync_cost_to_counterpart(
        db,
        client,
        _date_range(request),
        request.category,
        source=client if request.refresh else None,
    )
    return _report_response(report)


@router.post("/clear-converted", response_model=ReportResponse)
async def clear_converted_flags(
    request: ClearConvertedRequest,
    db: AsyncSession = Depends(get_db),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
    client: RoutingLedgerClient = Depends(get_routing_client),
) -> ReportResponse:
    report = await engine.clear_converted_flags(db, client, request.inbound_call_ids)
    return _report_response(report)


@router.get("/lead-calls", response_model=list[LeadCallResponse])
async def list_lead_calls(
    start: date,
    end: date,
    category: str | None = None,
    include_unmatched: bool = False,
    db: AsyncSession = Depends(get_db),
) -> list[LeadCallResponse]:
    """Stored lead calls whose call date falls within [start, end]."""
    call_date = func.substr(LeadCall.call_timestamp, 1, 10)
    query = select(LeadCall).where(call_date.between(start.isoformat(), end.isoformat()))
    if category:
        query = query.where(LeadCall.category == category)
    if not include_unmatched:
        query = query.where(LeadCall.unmatched.is_(False))
    result = await db.execute(query.order_by(LeadCall.call_timestamp, LeadCall.id))
    return [LeadCallResponse.model_validate(row) for row in result.scalars().all()]


@router.get("/runs", response_model=ReconciliationRunListResponse)
async def list_runs(
    page: int = 1,
    per_page: int = 20,
    operation: str | None = None,
    db: AsyncSession = Depends(get_db),
) -> ReconciliationRunListResponse:
    """List reconciliation runs, newest first."""
    count_query = select(func.count(ReconciliationRun.id))
    query = select(ReconciliationRun)
    if operation:
        count_query = count_query.where(ReconciliationRun.operation == operation)
        query = query.where(ReconciliationRun.operation == operation)

    total = (await db.execute(count_query)).scalar_one()
    offset = (page - 1) * per_page
    result = await db.execute(
        query.order_by(ReconciliationRun.created_at.desc()).offset(offset).limit(per_page)
    )
    runs = list(result.scalars().all())

    return ReconciliationRunListResponse(
        runs=[_run_to_response(r, include_outcomes=False) for r in runs],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/stats", response_model=ReconciliationStatsResponse)
async def get_stats(
    db: AsyncSession = Depends(get_db),
) -> ReconciliationStatsResponse:
    """Get reconciliation statistics."""
    total_runs = (await db.execute(select(func.count(ReconciliationRun.id)))).scalar_one()
    failed_runs = (await db.execute(
        select(func.count(ReconciliationRun.id)).where(ReconciliationRun.status == RunStatus.FAILED)
    )).scalar_one()
    total_matched = (await db.execute(select(func.sum(ReconciliationRun.matched_count)))).scalar()
    total_unmatched = (await db.execute(select(func.sum(ReconciliationRun.unmatched_count)))).scalar()

    lead_calls = (await db.execute(
        select(func.count(LeadCall.id)).where(LeadCall.unmatched.is_(False))
    )).scalar_one()
    open_placeholders = (await db.execute(
        select(func.count(LeadCall.id)).where(
            LeadCall.unmatched.is_(True), LeadCall.merged_into_call_id.is_(None)
        )
    )).scalar_one()
    routing_calls = (await db.execute(select(func.count(RoutingCall.id)))).scalar_one()

    last_run = (await db.execute(
        select(ReconciliationRun.created_at)
        .order_by(ReconciliationRun.created_at.desc())
        .limit(1)
    )).scalar()

    return ReconciliationStatsResponse(
        total_runs=total_runs,
        failed_runs=failed_runs,
        total_matched=total_matched or 0,
        total_unmatched=total_unmatched or 0,
        lead_calls=lead_calls,
        open_placeholders=open_placeholders,
        routing_calls=routing_calls,
        last_run_at=last_run,
    )


@router.get("/runs/{run_id}", response_model=ReconciliationRunResponse)
async def get_run(
    run_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> ReconciliationRunResponse:
    """Get a reconciliation run with its per-record outcomes."""
    result = await db.execute(
        select(ReconciliationRun)
        .options(selectinload(ReconciliationRun.outcomes))
        .where(ReconciliationRun.id == run_id)
    )
    run = result.scalar_one_or_none()
    if run is None:
        raise HTTPException(status_code=404, detail="Reconciliation run not found")

    return _run_to_response(run)


def _run_to_response(run: ReconciliationRun, include_outcomes: bool = True) -> ReconciliationRunResponse:
    outcomes = []
    if include_outcomes and run.outcomes:
        outcomes = [
            OutcomeResponse(
                id=o.id,
                record_key=o.record_key,
                status=o.status.value if isinstance(o.status, OutcomeStatus) else o.status,
                reason=o.reason,
                counterpart_key=o.counterpart_key,
                detail=o.detail,
            )
            for o in run.outcomes
        ]

    return ReconciliationRunResponse(
        id=run.id,
        operation=run.operation,
        strategy=run.strategy,
        status=run.status.value if isinstance(run.status, RunStatus) else run.status,
        category=run.category,
        date_start=run.date_start,
        date_end=run.date_end,
        matched_count=run.matched_count,
        updated_count=run.updated_count,
        skipped_count=run.skipped_count,
        unmatched_count=run.unmatched_count,
        failed_count=run.failed_count,
        processing_time_ms=run.processing_time_ms,
        error_message=run.error_message,
        summary=run.summary,
        outcomes=outcomes,
        created_at=run.created_at,
    )
