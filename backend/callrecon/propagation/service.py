"""UpdatePropagator — writes resolved payouts to the store and to the remote ledger.

Flow per pairing:
1. Provenance pass (routing -> lead): write original payout/revenue once; a lead
   call that already has provenance is skipped as "preserved".
2. Cost pass (lead -> routing): push the lead payout as the remote payout and
   revenue; pairs already in sync are skipped, failed writes are recorded and
   the batch continues.

Remote writes are issued one at a time with a fixed delay between them.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from callrecon.clients.sources import RemoteCounterpart, WriteResult
from callrecon.config import Settings
from callrecon.errors import RemoteWriteError
from callrecon.matching.records import LeadCallRecord, RoutingCallRecord
from callrecon.matching.scoring import MatchCandidate
from callrecon.models.reconciliation import OutcomeStatus
from callrecon.propagation.transitions import PayoutTransition
from callrecon.reporting.report import ReconciliationReport
from callrecon.store.call_store import CallStore

logger = logging.getLogger("callrecon.propagation")

PRESERVED = "preserved"
COST_SYNC_REASON = "Payout synced from lead ledger."
CLEAR_CONVERTED_REASON = "Converted flag cleared by payout transition."


class UpdatePropagator:
    def __init__(
        self,
        settings: Settings,
        store: CallStore,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.store = store
        self._sleep = sleep
        self._writes = 0

    async def _remote_write(
        self,
        remote: RemoteCounterpart,
        counterpart_id: str,
        payout: float,
        revenue: float,
        reason: str,
    ) -> WriteResult:
        if self._writes:
            await self._sleep(self.settings.remote_write_delay_seconds)
        self._writes += 1
        try:
            return await remote.set_payout_and_revenue(counterpart_id, payout, revenue, reason)
        except RemoteWriteError as e:
            return WriteResult.failure(str(e))

    async def propagate_original(
        self,
        matches: Iterable[MatchCandidate],
        report: ReconciliationReport,
    ) -> None:
        """Write routing payout/revenue as write-once provenance on the matched lead calls."""
        for match in matches:
            routing: RoutingCallRecord = match.driver
            lead: LeadCallRecord = match.candidate

            if lead.has_provenance:
                report.add(
                    OutcomeStatus.SKIPPED,
                    lead.key,
                    PRESERVED,
                    routing.key,
                    existing_original_payout=lead.original_payout,
                    existing_original_revenue=lead.original_revenue,
                    incoming_payout=routing.payout_amount,
                    incoming_revenue=routing.revenue_amount,
                )
                continue

            written = await self.store.update_original_payout(
                lead.id, routing.payout_amount, routing.revenue_amount, routing.inbound_call_id
            )
            if not written:
                report.add(OutcomeStatus.SKIPPED, lead.key, PRESERVED, routing.key)
                continue

            lead.original_payout = routing.payout_amount
            lead.original_revenue = routing.revenue_amount
            lead.linked_inbound_call_id = routing.inbound_call_id
            report.add(
                OutcomeStatus.UPDATED,
                lead.key,
                "original payout recorded",
                routing.key,
                original_payout=routing.payout_amount,
                original_revenue=routing.revenue_amount,
            )

    async def push_cost(
        self,
        matches: Iterable[MatchCandidate],
        remote: RemoteCounterpart,
        report: ReconciliationReport,
    ) -> None:
        """Set remote payout and revenue to the lead payout for each matched pair."""
        tolerance = self.settings.payout_tolerance
        for match in matches:
            lead: LeadCallRecord = match.driver
            routing: RoutingCallRecord = match.candidate
            new_amount = lead.payout or 0.0

            if new_amount == 0 and routing.payout_amount == 0 and routing.revenue_amount == 0:
                report.add(OutcomeStatus.SKIPPED, lead.key, "all amounts zero", routing.key)
                continue

            payout_diff = abs(new_amount - routing.payout_amount)
            revenue_diff = abs(new_amount - routing.revenue_amount)
            if payout_diff <= tolerance and revenue_diff <= tolerance:
                report.add(OutcomeStatus.SKIPPED, lead.key, "already in sync", routing.key)
                continue

            result = await self._remote_write(
                remote, routing.inbound_call_id, new_amount, new_amount, COST_SYNC_REASON
            )
            if not result.ok:
                logger.warning("Remote update failed for %s: %s", routing.inbound_call_id, result.error)
                report.add(OutcomeStatus.FAILED, lead.key, result.error, routing.key)
                continue

            await self.store.update_routing_payout(routing.inbound_call_id, new_amount, new_amount)
            report.add(
                OutcomeStatus.UPDATED,
                lead.key,
                "remote payout and revenue set",
                routing.key,
                old_payout=routing.payout_amount,
                old_revenue=routing.revenue_amount,
                new_amount=new_amount,
            )
            routing.payout_amount = new_amount
            routing.revenue_amount = new_amount

    async def clear_converted(
        self,
        counterpart_ids: Iterable[str],
        remote: RemoteCounterpart,
        report: ReconciliationReport,
    ) -> list[PayoutTransition]:
        """Run the apply-nonzero -> apply-final transition for each remote call."""
        transitions = []
        for counterpart_id in counterpart_ids:
            transition = PayoutTransition(
                counterpart_id=counterpart_id,
                placeholder_amount=self.settings.converted_flag_placeholder_amount,
            )
            step = transition.next_step()
            while step is not None:
                kind, amount = step
                result = await self._remote_write(remote, counterpart_id, amount, amount, CLEAR_CONVERTED_REASON)
                transition.record(kind, result)
                step = transition.next_step()

            key = f"routing:{counterpart_id}"
            if transition.completed:
                report.add(OutcomeStatus.UPDATED, key, "converted flag cleared")
            else:
                report.add(
                    OutcomeStatus.FAILED,
                    key,
                    transition.error,
                    failed_step=transition.failed_step.value if transition.failed_step else None,
                )
            transitions.append(transition)
        return transitions
