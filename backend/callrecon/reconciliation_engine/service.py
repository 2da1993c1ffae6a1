"""ReconciliationEngine — batch operations over the lead and routing ledgers.

Operations:
- ingest_lead_calls: normalize -> dedupe -> merge adjustments -> save
- ingest_routing_calls: fetch routing ledger -> normalize -> save local mirror
- sync_original_payout: routing drives, lead calls receive write-once provenance
- sync_cost_to_counterpart: lead drives, routing ledger receives the lead payout
- clear_converted_flags: two-step payout transition on the routing ledger

Each operation builds a ReconciliationReport and persists it as a
ReconciliationRun. Per-record problems end up in the report; configuration and
first-page fetch errors propagate after the failed run is recorded.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from callrecon.adjustments.service import AdjustmentMergeEngine
from callrecon.clients.sources import LeadLedgerSource, RemoteCounterpart, RoutingLedgerSource
from callrecon.config import Settings
from callrecon.errors import ReconciliationError
from callrecon.ingestion.normalize import prepare_adjustments, prepare_lead_calls, prepare_routing_calls
from callrecon.matching.categories import CategoryResolver
from callrecon.matching.index import CandidateIndex
from callrecon.matching.matcher import MatchRun, match_calls
from callrecon.matching.records import DateRange
from callrecon.matching.scoring import COST_SYNC, ORIGINAL_SYNC, strategies_from_settings
from callrecon.models.reconciliation import OutcomeStatus
from callrecon.propagation.service import UpdatePropagator
from callrecon.reporting.report import ReconciliationReport
from callrecon.schemas.calls import RawAdjustment, RawLeadCall
from callrecon.store.call_store import CallStore

logger = logging.getLogger("callrecon.engine")


class ReconciliationEngine:
    """Runs reconciliation operations with one settings snapshot."""

    def __init__(
        self,
        settings: Settings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.resolver = CategoryResolver.from_settings(settings)
        self.strategies = strategies_from_settings(settings)
        self._sleep = sleep

    # ── Ingestion ──

    async def ingest_lead_calls(
        self,
        db: AsyncSession,
        calls: Iterable[RawLeadCall],
        adjustments: Iterable[RawAdjustment],
        date_range: DateRange,
        category: str,
    ) -> ReconciliationReport:
        """Save a batch of lead calls and merge its adjustments."""
        report = self._new_report("ingest_lead_calls", date_range, category)
        store = CallStore(db)

        async def work() -> None:
            await self._merge_lead_batch(store, calls, adjustments, date_range, category, report)

        return await self._execute(store, report, work)

    async def ingest_from_lead_source(
        self,
        db: AsyncSession,
        source: LeadLedgerSource,
        date_range: DateRange,
        category: str,
    ) -> ReconciliationReport:
        """Fetch a lead-ledger batch and ingest it; a failed fetch is recorded as a failed run."""
        report = self._new_report("ingest_lead_calls", date_range, category)
        store = CallStore(db)

        async def work() -> None:
            calls = await source.fetch_calls(date_range, category)
            adjustments = await source.fetch_adjustments(date_range)
            await self._merge_lead_batch(store, calls, adjustments, date_range, category, report)

        return await self._execute(store, report, work)

    async def _merge_lead_batch(
        self,
        store: CallStore,
        calls: Iterable[RawLeadCall],
        adjustments: Iterable[RawAdjustment],
        date_range: DateRange,
        category: str,
        report: ReconciliationReport,
    ) -> None:
        records, dropped = prepare_lead_calls(calls, default_category=category)
        for row in dropped:
            report.add(
                OutcomeStatus.SKIPPED,
                f"lead:{row['caller_id']}|{row['date_of_call']}|{category}",
                row["reason"],
            )
        events = prepare_adjustments(adjustments)
        merger = AdjustmentMergeEngine(self.settings, store)
        await merger.run(records, events, date_range, category, report)

    async def ingest_routing_calls(
        self,
        db: AsyncSession,
        source: RoutingLedgerSource,
        date_range: DateRange,
    ) -> ReconciliationReport:
        """Fetch routing-ledger calls and refresh the local mirror."""
        report = self._new_report("ingest_routing_calls", date_range)
        store = CallStore(db)

        async def work() -> None:
            await self._refresh_routing_mirror(store, source, date_range, report)

        return await self._execute(store, report, work)

    async def _refresh_routing_mirror(
        self,
        store: CallStore,
        source: RoutingLedgerSource,
        date_range: DateRange,
        report: ReconciliationReport,
    ) -> None:
        raw = await source.fetch_calls_by_category_and_date_range(date_range)
        records = prepare_routing_calls(
            raw,
            self.resolver,
            self.settings.local_standard_offset_hours,
            self.settings.local_daylight_offset_hours,
        )
        for record in records:
            if record.call_timestamp is None:
                report.add(OutcomeStatus.SKIPPED, record.key, "invalid timestamp")
            elif record.category is None:
                report.add(OutcomeStatus.UNMATCHED, record.key, "invalid category", routing_id=record.routing_id)
        saved = await store.insert_routing_calls_batch(records)
        report.bump("routing_fetched", len(raw))
        report.bump("routing_inserted", saved["inserted"])
        report.bump("routing_updated", saved["updated"])

    # ── Sync passes ──

    async def sync_original_payout(
        self,
        db: AsyncSession,
        date_range: DateRange,
        category: str | None = None,
        source: RoutingLedgerSource | None = None,
    ) -> ReconciliationReport:
        """Record routing payout/revenue as original payout on matched lead calls."""
        report = self._new_report("sync_original_payout", date_range, category, ORIGINAL_SYNC)
        store = CallStore(db)

        async def work() -> None:
            if source is not None:
                await self._refresh_routing_mirror(store, source, date_range, report)

            routing = await store.get_routing_calls_for_date_range(
                date_range.start_str, date_range.end_str, self._routing_ids(category)
            )
            routing = self.resolver.annotate(routing)
            window = date_range.widen(1)
            leads = await store.get_calls_for_date_range(window.start_str, window.end_str, category)

            run = match_calls(routing, CandidateIndex.build(leads), self.strategies[ORIGINAL_SYNC])
            self._report_match_run(run, report)

            propagator = UpdatePropagator(self.settings, store, sleep=self._sleep)
            await propagator.propagate_original(run.matches, report)

        return await self._execute(store, report, work)

    async def sync_cost_to_counterpart(
        self,
        db: AsyncSession,
        remote: RemoteCounterpart,
        date_range: DateRange,
        category: str | None = None,
        source: RoutingLedgerSource | None = None,
    ) -> ReconciliationReport:
        """Push lead-call payouts to the matched routing-ledger calls."""
        report = self._new_report("sync_cost_to_counterpart", date_range, category, COST_SYNC)
        store = CallStore(db)

        async def work() -> None:
            if source is not None:
                await self._refresh_routing_mirror(store, source, date_range, report)

            leads = await store.get_calls_for_date_range(date_range.start_str, date_range.end_str, category)
            window = date_range.widen(1)
            routing = await store.get_routing_calls_for_date_range(
                window.start_str, window.end_str, self._routing_ids(category)
            )
            routing = self.resolver.annotate(routing)

            run = match_calls(leads, CandidateIndex.build(routing), self.strategies[COST_SYNC])
            self._report_match_run(run, report)

            propagator = UpdatePropagator(self.settings, store, sleep=self._sleep)
            await propagator.push_cost(run.matches, remote, report)

        return await self._execute(store, report, work)

    async def clear_converted_flags(
        self,
        db: AsyncSession,
        remote: RemoteCounterpart,
        inbound_call_ids: Iterable[str],
    ) -> ReconciliationReport:
        """Clear the remote converted flag on zero-payout calls."""
        report = self._new_report("clear_converted_flags")
        store = CallStore(db)

        async def work() -> None:
            propagator = UpdatePropagator(self.settings, store, sleep=self._sleep)
            transitions = await propagator.clear_converted(inbound_call_ids, remote, report)
            for transition in transitions:
                if transition.completed:
                    await store.update_routing_payout(
                        transition.counterpart_id, transition.final_amount, transition.final_amount
                    )

        return await self._execute(store, report, work)

    # ── Helpers ──

    def _new_report(
        self,
        operation: str,
        date_range: DateRange | None = None,
        category: str | None = None,
        strategy: str | None = None,
    ) -> ReconciliationReport:
        return ReconciliationReport(
            operation=operation,
            strategy=strategy,
            category=category,
            date_start=date_range.start_str if date_range else None,
            date_end=date_range.end_str if date_range else None,
        )

    def _routing_ids(self, category: str | None) -> list[str] | None:
        if category is None:
            return None
        return self.resolver.routing_ids_for(category)

    @staticmethod
    def _report_match_run(run: MatchRun, report: ReconciliationReport) -> None:
        for match in run.matches:
            report.add(
                OutcomeStatus.MATCHED,
                match.driver.key,
                None,
                match.candidate.key,
                score=round(match.score, 4),
                time_diff_minutes=round(match.time_diff_minutes, 2),
                duration_diff=match.duration_diff,
                payout_diff=match.payout_diff,
            )
        for unmatched in run.unmatched:
            report.add(
                OutcomeStatus.UNMATCHED,
                unmatched.record.key,
                unmatched.reason.value,
                message=unmatched.message,
                side=unmatched.side,
                rejections=unmatched.diagnostics,
            )

    async def _execute(
        self,
        store: CallStore,
        report: ReconciliationReport,
        work: Callable[[], Awaitable[None]],
    ) -> ReconciliationReport:
        start = time.perf_counter()
        try:
            await work()
        except ReconciliationError as e:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            logger.error("%s failed: %s", report.operation, e)
            await store.db.rollback()
            run = await store.save_report(report, processing_time_ms=elapsed_ms, error_message=str(e))
            report.run_id = run.id
            raise

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        run = await store.save_report(report, processing_time_ms=elapsed_ms)
        report.run_id = run.id
        logger.info("%s completed in %dms: %s", report.operation, elapsed_ms, report.summary())
        return report
