"""CallStore — persisted access to both call ledgers and run reports.

Every write commits on its own. There is no transaction spanning a batch, so a
batch that fails part-way leaves the rows written so far in place; re-running
is safe because of the adjustment guard and write-once provenance.
"""

import logging
import uuid

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from callrecon.matching.records import LeadCallRecord, RoutingCallRecord
from callrecon.models.calls import LeadCall, RoutingCall
from callrecon.models.reconciliation import (
    ReconciliationOutcome,
    ReconciliationRun,
    RunStatus,
)
from callrecon.reporting.report import ReconciliationReport

logger = logging.getLogger("callrecon.store")

_ADJUSTMENT_COLUMNS = (
    "adjustment_amount",
    "adjustment_time",
    "adjustment_classification",
    "adjustment_duration",
)


def _call_date(column):
    return func.substr(column, 1, 10)


class CallStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ── Lead ledger ──

    async def get_calls_for_date_range(
        self,
        start: str,
        end: str,
        category: str | None = None,
        include_unmatched: bool = False,
    ) -> list[LeadCallRecord]:
        """Lead calls whose call date is within [start, end] (``YYYY-MM-DD``, inclusive)."""
        query = select(LeadCall).where(_call_date(LeadCall.call_timestamp).between(start, end))
        if category:
            query = query.where(LeadCall.category == category)
        if not include_unmatched:
            query = query.where(LeadCall.unmatched.is_(False))
        query = query.order_by(LeadCall.call_timestamp, LeadCall.id)
        result = await self.db.execute(query)
        return [LeadCallRecord.from_model(row) for row in result.scalars().all()]

    async def get_call_by_id(self, call_id: int) -> LeadCallRecord | None:
        row = await self.db.get(LeadCall, call_id)
        return LeadCallRecord.from_model(row) if row else None

    async def _find_by_natural_key(self, record: LeadCallRecord) -> LeadCall | None:
        query = select(LeadCall).where(
            LeadCall.call_timestamp == record.call_timestamp,
            LeadCall.category == record.category,
        )
        if record.caller_id_e164:
            query = query.where(
                or_(LeadCall.caller_id_e164 == record.caller_id_e164, LeadCall.caller_id == record.caller_id)
            )
        else:
            query = query.where(LeadCall.caller_id == record.caller_id)
        query = query.order_by(LeadCall.unmatched, LeadCall.id).limit(1)
        return (await self.db.execute(query)).scalar_one_or_none()

    async def insert_calls_batch(self, records: list[LeadCallRecord]) -> dict[str, int]:
        """Upsert lead calls on (caller, timestamp, category) and assign ``id`` on each record.

        On update, provenance fields and the counterpart link are never touched.
        Adjustment fields are overwritten only when the incoming record carries
        an adjustment; otherwise an adjustment already on the row stays applied
        to the refreshed payout. A real call landing on a placeholder absorbs
        the placeholder's adjustment and clears ``unmatched``.
        """
        inserted = updated = unchanged = 0

        for record in records:
            row = await self._find_by_natural_key(record)

            if row is None:
                row = LeadCall(**record.to_row())
                self.db.add(row)
                await self.db.commit()
                record.id = row.id
                inserted += 1
                continue

            record.id = row.id
            if record.unmatched and not row.unmatched:
                # A placeholder never overwrites a real call.
                unchanged += 1
                continue

            if record.adjustment_amount is not None:
                row.payout = record.payout
                for name in _ADJUSTMENT_COLUMNS:
                    setattr(row, name, getattr(record, name))
            elif row.adjustment_amount:
                row.payout = round(record.payout + row.adjustment_amount, 2)
            else:
                row.payout = record.payout

            if record.caller_id_e164:
                row.caller_id_e164 = record.caller_id_e164
            if record.duration_seconds is not None:
                row.duration_seconds = record.duration_seconds
            row.unmatched = bool(row.unmatched and record.unmatched)
            await self.db.commit()
            updated += 1

        logger.info("Lead calls saved: %d inserted, %d updated, %d unchanged", inserted, updated, unchanged)
        return {"inserted": inserted, "updated": updated, "unchanged": unchanged}

    async def update_call_with_adjustment(self, call_id: int, fields: dict) -> None:
        """Write payout and adjustment fields of one stored call."""
        allowed = {"payout", *_ADJUSTMENT_COLUMNS}
        row = await self.db.get(LeadCall, call_id)
        if row is None:
            logger.warning("Adjustment target call %s no longer exists", call_id)
            return
        for name, value in fields.items():
            if name in allowed:
                setattr(row, name, value)
        await self.db.commit()

    async def update_original_payout(
        self,
        call_id: int,
        payout: float,
        revenue: float,
        counterpart_id: str | None,
    ) -> bool:
        """Set provenance fields if they are still empty. Returns False when already set."""
        row = await self.db.get(LeadCall, call_id)
        if row is None or row.original_payout or row.original_revenue:
            return False
        row.original_payout = payout
        row.original_revenue = revenue
        row.linked_inbound_call_id = counterpart_id
        await self.db.commit()
        return True

    async def get_open_placeholders(
        self, start: str, end: str, category: str | None = None
    ) -> list[LeadCallRecord]:
        query = select(LeadCall).where(
            LeadCall.unmatched.is_(True),
            LeadCall.merged_into_call_id.is_(None),
            _call_date(LeadCall.call_timestamp).between(start, end),
        )
        if category:
            query = query.where(LeadCall.category == category)
        result = await self.db.execute(query.order_by(LeadCall.call_timestamp, LeadCall.id))
        return [LeadCallRecord.from_model(row) for row in result.scalars().all()]

    async def mark_placeholder_merged(self, placeholder_id: int, call_id: int) -> None:
        if placeholder_id == call_id:
            return
        await self.db.execute(
            update(LeadCall).where(LeadCall.id == placeholder_id).values(merged_into_call_id=call_id)
        )
        await self.db.commit()

    # ── Routing ledger mirror ──

    async def insert_routing_calls_batch(self, records: list[RoutingCallRecord]) -> dict[str, int]:
        inserted = updated = 0
        for record in records:
            if not record.call_timestamp:
                continue
            row = (
                await self.db.execute(
                    select(RoutingCall).where(RoutingCall.inbound_call_id == record.inbound_call_id)
                )
            ).scalar_one_or_none()
            if row is None:
                self.db.add(RoutingCall(**record.to_row()))
                inserted += 1
            else:
                for name, value in record.to_row().items():
                    setattr(row, name, value)
                updated += 1
            await self.db.commit()
        logger.info("Routing calls saved: %d inserted, %d updated", inserted, updated)
        return {"inserted": inserted, "updated": updated}

    async def get_routing_calls_for_date_range(
        self,
        start: str,
        end: str,
        routing_ids: list[str] | None = None,
    ) -> list[RoutingCallRecord]:
        query = select(RoutingCall).where(_call_date(RoutingCall.call_timestamp).between(start, end))
        if routing_ids is not None:
            query = query.where(RoutingCall.routing_id.in_(routing_ids))
        result = await self.db.execute(query.order_by(RoutingCall.call_timestamp, RoutingCall.id))
        return [RoutingCallRecord.from_model(row) for row in result.scalars().all()]

    async def update_routing_payout(self, inbound_call_id: str, payout: float, revenue: float) -> None:
        await self.db.execute(
            update(RoutingCall)
            .where(RoutingCall.inbound_call_id == inbound_call_id)
            .values(payout_amount=payout, revenue_amount=revenue)
        )
        await self.db.commit()

    # ── Reports ──

    async def save_report(
        self,
        report: ReconciliationReport,
        processing_time_ms: int | None = None,
        error_message: str | None = None,
    ) -> ReconciliationRun:
        summary = report.summary()
        run = ReconciliationRun(
            id=uuid.uuid4(),
            operation=report.operation,
            strategy=report.strategy,
            status=RunStatus.FAILED if error_message else RunStatus.COMPLETED,
            category=report.category,
            date_start=report.date_start,
            date_end=report.date_end,
            matched_count=summary["matched"],
            updated_count=summary["updated"],
            skipped_count=summary["skipped"],
            unmatched_count=summary["unmatched"],
            failed_count=summary["failed"],
            processing_time_ms=processing_time_ms,
            error_message=error_message,
            summary=report.to_dict(),
        )
        self.db.add(run)
        for outcome in report.outcomes:
            self.db.add(
                ReconciliationOutcome(
                    id=uuid.uuid4(),
                    run_id=run.id,
                    record_key=outcome.record_key,
                    status=outcome.status,
                    reason=outcome.reason,
                    counterpart_key=outcome.counterpart_key,
                    detail=outcome.detail or None,
                )
            )
        await self.db.commit()
        await self.db.refresh(run)
        return run
