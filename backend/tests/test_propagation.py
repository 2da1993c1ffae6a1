"""Tests for UpdatePropagator and the two-step payout transition."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeRemote
from callrecon.clients.sources import WriteResult
from callrecon.errors import RemoteWriteError
from callrecon.matching.records import LeadCallRecord, RoutingCallRecord
from callrecon.matching.scoring import MatchCandidate
from callrecon.models.reconciliation import OutcomeStatus
from callrecon.propagation.service import UpdatePropagator
from callrecon.propagation.transitions import PayoutTransition, TransitionState, TransitionStep
from callrecon.reporting.report import ReconciliationReport

CALLER = "+15551234567"


def lead(id=1, payout=15.0, original_payout=0.0):
    return LeadCallRecord(
        id=id,
        caller_id=CALLER,
        caller_id_e164=CALLER,
        call_timestamp="2025-12-02T10:00:00",
        category="STATIC",
        payout=payout,
        original_payout=original_payout,
    )


def routing(call_id="RB1", payout=0.0, revenue=0.0):
    return RoutingCallRecord(
        inbound_call_id=call_id,
        caller_id=CALLER,
        caller_id_e164=CALLER,
        call_timestamp="2025-12-02T10:05:00",
        routing_id="TA-static",
        payout_amount=payout,
        revenue_amount=revenue,
        category="STATIC",
    )


def pair(driver, candidate):
    return MatchCandidate(driver=driver, candidate=candidate, score=5.0, time_diff_minutes=5.0, day_diff=0)


@pytest.fixture
def store():
    mock = MagicMock()
    mock.update_original_payout = AsyncMock(return_value=True)
    mock.update_routing_payout = AsyncMock()
    return mock


class TestPayoutTransition:
    """Tests for the apply-nonzero -> apply-final state machine."""

    def test_happy_path(self):
        transition = PayoutTransition(counterpart_id="RB1")
        assert transition.next_step() == (TransitionStep.APPLY_NONZERO, 2.22)

        transition.record(TransitionStep.APPLY_NONZERO, WriteResult.success())
        assert transition.state == TransitionState.NONZERO_APPLIED
        assert transition.next_step() == (TransitionStep.APPLY_FINAL, 0.0)

        transition.record(TransitionStep.APPLY_FINAL, WriteResult.success())
        assert transition.completed is True
        assert transition.next_step() is None

    def test_failure_stops_sequence(self):
        transition = PayoutTransition(counterpart_id="RB1")
        transition.record(TransitionStep.APPLY_NONZERO, WriteResult.failure("HTTP 500"))

        assert transition.state == TransitionState.FAILED
        assert transition.failed_step == TransitionStep.APPLY_NONZERO
        assert transition.error == "HTTP 500"
        assert transition.next_step() is None
        assert transition.completed is False


class TestPropagateOriginal:
    """Tests for write-once provenance."""

    @pytest.mark.asyncio
    async def test_records_original_payout(self, test_settings, store):
        propagator = UpdatePropagator(test_settings, store)
        report = ReconciliationReport(operation="sync_original_payout")
        target = lead(payout=0.0)

        await propagator.propagate_original([pair(routing(payout=12.0, revenue=14.0), target)], report)

        store.update_original_payout.assert_awaited_once_with(1, 12.0, 14.0, "RB1")
        assert target.original_payout == 12.0
        assert target.linked_inbound_call_id == "RB1"
        assert report.reasons(OutcomeStatus.UPDATED) == {"original payout recorded": 1}

    @pytest.mark.asyncio
    async def test_existing_provenance_is_preserved(self, test_settings, store):
        propagator = UpdatePropagator(test_settings, store)
        report = ReconciliationReport(operation="sync_original_payout")

        await propagator.propagate_original([pair(routing(payout=20.0), lead(original_payout=12.0))], report)

        store.update_original_payout.assert_not_awaited()
        skipped = report.by_status(OutcomeStatus.SKIPPED)
        assert skipped[0].reason == "preserved"
        assert skipped[0].detail["existing_original_payout"] == 12.0
        assert skipped[0].detail["incoming_payout"] == 20.0

    @pytest.mark.asyncio
    async def test_lost_race_is_preserved(self, test_settings, store):
        store.update_original_payout = AsyncMock(return_value=False)
        propagator = UpdatePropagator(test_settings, store)
        report = ReconciliationReport(operation="sync_original_payout")

        await propagator.propagate_original([pair(routing(payout=20.0), lead())], report)
        assert report.reasons(OutcomeStatus.SKIPPED) == {"preserved": 1}


class TestPushCost:
    """Tests for lead -> routing payout pushes."""

    @pytest.mark.asyncio
    async def test_pushes_lead_payout(self, test_settings, store, no_sleep):
        remote = FakeRemote()
        propagator = UpdatePropagator(test_settings, store, sleep=no_sleep)
        report = ReconciliationReport(operation="sync_cost_to_counterpart")
        target = routing(payout=0.0)

        await propagator.push_cost([pair(lead(payout=15.0), target)], remote, report)

        assert remote.writes == [("RB1", 15.0, 15.0)]
        store.update_routing_payout.assert_awaited_once_with("RB1", 15.0, 15.0)
        assert target.payout_amount == 15.0
        assert report.count(OutcomeStatus.UPDATED) == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_skips_all_zero_and_in_sync(self, test_settings, store, no_sleep):
        remote = FakeRemote()
        propagator = UpdatePropagator(test_settings, store, sleep=no_sleep)
        report = ReconciliationReport(operation="sync_cost_to_counterpart")

        await propagator.push_cost(
            [
                pair(lead(id=1, payout=0.0), routing("RB1")),
                pair(lead(id=2, payout=15.0), routing("RB2", payout=15.005, revenue=14.995)),
            ],
            remote,
            report,
        )

        assert remote.writes == []
        assert report.reasons(OutcomeStatus.SKIPPED) == {"all amounts zero": 1, "already in sync": 1}

    @pytest.mark.asyncio
    async def test_revenue_out_of_sync_still_pushes(self, test_settings, store, no_sleep):
        remote = FakeRemote()
        propagator = UpdatePropagator(test_settings, store, sleep=no_sleep)
        report = ReconciliationReport(operation="sync_cost_to_counterpart")

        await propagator.push_cost([pair(lead(payout=15.0), routing(payout=15.0, revenue=20.0))], remote, report)
        assert remote.writes == [("RB1", 15.0, 15.0)]

    @pytest.mark.asyncio
    async def test_failure_is_recorded_and_batch_continues(self, test_settings, store, no_sleep):
        remote = FakeRemote(fail_ids={"RB1"})
        propagator = UpdatePropagator(test_settings, store, sleep=no_sleep)
        report = ReconciliationReport(operation="sync_cost_to_counterpart")

        await propagator.push_cost(
            [pair(lead(id=1), routing("RB1")), pair(lead(id=2), routing("RB2"))],
            remote,
            report,
        )

        assert [w[0] for w in remote.writes] == ["RB1", "RB2"]
        failed = report.by_status(OutcomeStatus.FAILED)
        assert failed[0].counterpart_key == "routing:RB1"
        assert "HTTP 500" in failed[0].reason
        assert report.count(OutcomeStatus.UPDATED) == 1
        store.update_routing_payout.assert_awaited_once_with("RB2", 15.0, 15.0)

    @pytest.mark.asyncio
    async def test_delay_between_remote_writes(self, test_settings, store, no_sleep):
        propagator = UpdatePropagator(test_settings, store, sleep=no_sleep)
        report = ReconciliationReport(operation="sync_cost_to_counterpart")

        await propagator.push_cost(
            [pair(lead(id=i), routing(f"RB{i}")) for i in range(3)],
            FakeRemote(),
            report,
        )
        assert no_sleep.delays == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_raised_remote_error_becomes_failure(self, test_settings, store, no_sleep):
        remote = MagicMock()
        remote.set_payout_and_revenue = AsyncMock(side_effect=RemoteWriteError("connection reset"))
        propagator = UpdatePropagator(test_settings, store, sleep=no_sleep)
        report = ReconciliationReport(operation="sync_cost_to_counterpart")

        await propagator.push_cost([pair(lead(), routing())], remote, report)
        assert report.reasons(OutcomeStatus.FAILED) == {"connection reset": 1}


class TestClearConverted:
    @pytest.mark.asyncio
    async def test_two_writes_in_order(self, test_settings, store, no_sleep):
        remote = FakeRemote()
        propagator = UpdatePropagator(test_settings, store, sleep=no_sleep)
        report = ReconciliationReport(operation="clear_converted_flags")

        transitions = await propagator.clear_converted(["RB1"], remote, report)

        assert remote.writes == [("RB1", 2.22, 2.22), ("RB1", 0.0, 0.0)]
        assert transitions[0].completed is True
        assert report.reasons(OutcomeStatus.UPDATED) == {"converted flag cleared": 1}

    @pytest.mark.asyncio
    async def test_failed_first_step_skips_final_write(self, test_settings, store, no_sleep):
        remote = FakeRemote(fail_amounts={2.22})
        propagator = UpdatePropagator(test_settings, store, sleep=no_sleep)
        report = ReconciliationReport(operation="clear_converted_flags")

        await propagator.clear_converted(["RB1", "RB2"], remote, report)

        assert remote.writes == [("RB1", 2.22, 2.22), ("RB2", 2.22, 2.22)]
        failed = report.by_status(OutcomeStatus.FAILED)
        assert [f.detail["failed_step"] for f in failed] == ["apply-nonzero", "apply-nonzero"]
