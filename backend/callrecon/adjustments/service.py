"""AdjustmentMergeEngine — merges payout corrections into lead calls.

Flow:
1. Re-submit open placeholder rows from earlier runs as adjustment events
2. Pass 1: apply adjustments to calls ingested in this run (same caller, same day)
3. Save the run's calls
4. Pass 2: apply remaining adjustments to stored calls in the batch range
5. Pass 3: retry against stored calls within +/- N days of each call time
6. Store anything still unmatched as a zero-payout placeholder row

Passes 2 and 3 skip an adjustment that a stored call already carries, and no
call takes more than one adjustment per run. Together these keep overlapping
or repeated runs from double-counting.
"""

import logging

from callrecon.adjustments.merge import (
    AdjustmentPolicy,
    adjustment_fields,
    apply_adjustment,
    calls_in_window,
    closest_call,
    event_from_placeholder,
    is_already_applied,
    merge_in_batch,
    placeholder_for,
    same_adjustment,
)
from callrecon.config import Settings
from callrecon.matching.records import AdjustmentEvent, DateRange, LeadCallRecord
from callrecon.models.reconciliation import OutcomeStatus
from callrecon.normalizers.timestamps import parse_timestamp
from callrecon.reporting.report import ReconciliationReport
from callrecon.store.call_store import CallStore

logger = logging.getLogger("callrecon.adjustments")

ALREADY_APPLIED = "adjustment already applied"


class AdjustmentMergeEngine:
    def __init__(self, settings: Settings, store: CallStore):
        self.policy = AdjustmentPolicy.from_settings(settings)
        self.store = store

    async def run(
        self,
        calls: list[LeadCallRecord],
        events: list[AdjustmentEvent],
        date_range: DateRange,
        category: str,
        report: ReconciliationReport,
    ) -> None:
        """Save ``calls`` and merge ``events`` into them or into stored calls."""
        placeholders = await self.store.get_open_placeholders(date_range.start_str, date_range.end_str, category)
        events = self._with_retries(events, placeholders)
        report.bump("adjustments_received", len(events))

        # Pass 1
        in_batch, remaining = merge_in_batch(calls, events, self.policy)

        saved = await self.store.insert_calls_batch(calls)
        report.bump("calls_inserted", saved["inserted"])
        report.bump("calls_updated", saved["updated"])

        for match in in_batch:
            report.add(
                OutcomeStatus.MATCHED,
                match.event.key,
                "applied in batch",
                match.call.key,
                time_diff_minutes=round(match.time_diff_minutes, 2),
                amount=match.event.amount,
            )
            await self._close_placeholder(match.event, match.call)
        report.bump("adjustments_pass1", len(in_batch))

        # Stored calls take at most one adjustment per run, like Pass 1
        taken = {match.call.id for match in in_batch if match.call.id is not None}

        # Pass 2
        if remaining:
            stored = await self.store.get_calls_for_date_range(date_range.start_str, date_range.end_str, category)
            remaining = await self._merge_stored(
                remaining, stored, taken, report, same_day=True, counter="adjustments_pass2"
            )

        # Pass 3
        if remaining:
            remaining = await self._merge_widened(remaining, category, taken, report)

        await self._store_placeholders(remaining, category, report)

        logger.info(
            "Adjustment merge (%s %s..%s): %d received, %d in batch, %d stored, %d widened, %d unmatched",
            category,
            date_range.start_str,
            date_range.end_str,
            report.counters.get("adjustments_received", 0),
            report.counters.get("adjustments_pass1", 0),
            report.counters.get("adjustments_pass2", 0),
            report.counters.get("adjustments_pass3", 0),
            len(remaining),
        )

    def _with_retries(
        self, events: list[AdjustmentEvent], placeholders: list[LeadCallRecord]
    ) -> list[AdjustmentEvent]:
        merged = list(events)
        for row in placeholders:
            retry = event_from_placeholder(row)
            fresh = next((e for e in merged if e.placeholder_id is None and same_adjustment(e, retry, self.policy)), None)
            if fresh is not None:
                fresh.placeholder_id = row.id
            else:
                merged.append(retry)
        return merged

    async def _close_placeholder(self, event: AdjustmentEvent, call: LeadCallRecord) -> None:
        if event.placeholder_id is not None and call.id is not None:
            await self.store.mark_placeholder_merged(event.placeholder_id, call.id)

    async def _merge_stored(
        self,
        events: list[AdjustmentEvent],
        stored: list[LeadCallRecord],
        taken: set[int],
        report: ReconciliationReport,
        same_day: bool,
        counter: str,
    ) -> list[AdjustmentEvent]:
        """Apply ``events`` to ``stored`` calls; calls in ``taken`` are left alone.

        The guard runs over every event before anything is applied, so a call
        that already carries one of this run's adjustments is taken no matter
        where that event sits in the list.
        """
        pending = []
        for event in events:
            in_window = calls_in_window(event, stored, self.policy.window_minutes, same_day=same_day)
            already = next((call for call, _ in in_window if is_already_applied(call, event, self.policy)), None)
            if already is None:
                pending.append(event)
                continue
            report.add(OutcomeStatus.SKIPPED, event.key, ALREADY_APPLIED, already.key, amount=event.amount)
            await self._close_placeholder(event, already)
            taken.add(already.id)

        remaining = []
        applied = 0
        for event in pending:
            free = [call for call in stored if call.id not in taken]
            in_window = calls_in_window(event, free, self.policy.window_minutes, same_day=same_day)
            if not in_window:
                remaining.append(event)
                continue

            call, diff = closest_call(in_window)
            taken.add(call.id)
            apply_adjustment(call, event)
            await self.store.update_call_with_adjustment(call.id, {"payout": call.payout, **adjustment_fields(event)})
            report.add(
                OutcomeStatus.UPDATED,
                event.key,
                "applied to stored call" if same_day else "applied to stored call (widened)",
                call.key,
                time_diff_minutes=round(diff, 2),
                amount=event.amount,
                new_payout=call.payout,
            )
            await self._close_placeholder(event, call)
            applied += 1

        report.bump(counter, applied)
        return remaining

    async def _merge_widened(
        self,
        events: list[AdjustmentEvent],
        category: str,
        taken: set[int],
        report: ReconciliationReport,
    ) -> list[AdjustmentEvent]:
        days = [parse_timestamp(e.time_of_call) for e in events]
        days = [d.date() for d in days if d is not None]
        if not days:
            return events

        window = DateRange(min(days), max(days)).widen(self.policy.widen_days)
        stored = await self.store.get_calls_for_date_range(window.start_str, window.end_str, category)
        return await self._merge_stored(
            events, stored, taken, report, same_day=False, counter="adjustments_pass3"
        )

    async def _store_placeholders(
        self,
        events: list[AdjustmentEvent],
        category: str,
        report: ReconciliationReport,
    ) -> None:
        new_rows = []
        for event in events:
            if event.placeholder_id is not None:
                report.add(OutcomeStatus.UNMATCHED, event.key, "no matching call; placeholder retained")
                continue
            if parse_timestamp(event.time_of_call) is None:
                report.add(OutcomeStatus.UNMATCHED, event.key, "invalid time of call")
                continue
            new_rows.append(placeholder_for(event, category))
            report.add(OutcomeStatus.UNMATCHED, event.key, "no matching call; placeholder stored")

        if new_rows:
            saved = await self.store.insert_calls_batch(new_rows)
            report.bump("placeholders_inserted", saved["inserted"])
