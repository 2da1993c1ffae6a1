"""Tests for CallStore persistence rules and the startup schema contract."""

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

from callrecon.errors import SchemaContractError
from callrecon.matching.records import LeadCallRecord, RoutingCallRecord
from callrecon.models.base import Base
from callrecon.models.calls import LeadCall
from callrecon.models.reconciliation import OutcomeStatus, ReconciliationOutcome, RunStatus
from callrecon.reporting.report import ReconciliationReport
from callrecon.store.call_store import CallStore
from callrecon.store.schema_contract import SCHEMA_VERSION, verify_schema

CALLER = "+15551234567"


def lead(ts="2025-12-02T10:00:00", payout=10.0, **kwargs):
    return LeadCallRecord(
        caller_id=kwargs.pop("caller_id", CALLER),
        caller_id_e164=CALLER,
        call_timestamp=ts,
        category=kwargs.pop("category", "STATIC"),
        payout=payout,
        **kwargs,
    )


def routing(call_id="RB1", ts="2025-12-02T10:05:00", payout=12.0, routing_id="TA-static"):
    return RoutingCallRecord(
        inbound_call_id=call_id,
        caller_id=CALLER,
        caller_id_e164=CALLER,
        call_timestamp=ts,
        routing_id=routing_id,
        payout_amount=payout,
        revenue_amount=payout,
    )


class TestLeadCalls:
    """Tests for lead-call upsert and update rules."""

    @pytest.mark.asyncio
    async def test_insert_assigns_ids(self, db_session):
        store = CallStore(db_session)
        records = [lead(), lead(ts="2025-12-02T11:00:00")]
        result = await store.insert_calls_batch(records)

        assert result == {"inserted": 2, "updated": 0, "unchanged": 0}
        assert all(r.id is not None for r in records)
        assert (await store.get_call_by_id(records[0].id)).payout == 10.0

    @pytest.mark.asyncio
    async def test_upsert_on_natural_key(self, db_session):
        store = CallStore(db_session)
        await store.insert_calls_batch([lead(payout=10.0)])
        result = await store.insert_calls_batch([lead(payout=11.0, duration_seconds=90)])

        assert result["updated"] == 1
        stored = await store.get_calls_for_date_range("2025-12-02", "2025-12-02")
        assert len(stored) == 1
        assert stored[0].payout == 11.0
        assert stored[0].duration_seconds == 90

    @pytest.mark.asyncio
    async def test_refresh_keeps_applied_adjustment(self, db_session):
        store = CallStore(db_session)
        record = lead(payout=10.0)
        await store.insert_calls_batch([record])
        await store.update_call_with_adjustment(
            record.id, {"payout": 15.0, "adjustment_amount": 5.0, "adjustment_time": "2025-12-05T09:00:00"}
        )

        await store.insert_calls_batch([lead(payout=10.0)])
        stored = await store.get_call_by_id(record.id)
        assert stored.payout == 15.0
        assert stored.adjustment_amount == 5.0

    @pytest.mark.asyncio
    async def test_placeholder_never_overwrites_real_call(self, db_session):
        store = CallStore(db_session)
        real = lead(payout=10.0)
        await store.insert_calls_batch([real])
        placeholder = lead(payout=0.0, unmatched=True, adjustment_amount=5.0)

        result = await store.insert_calls_batch([placeholder])
        assert result["unchanged"] == 1
        assert placeholder.id == real.id
        assert (await store.get_call_by_id(real.id)).payout == 10.0

    @pytest.mark.asyncio
    async def test_real_call_absorbs_placeholder(self, db_session):
        store = CallStore(db_session)
        placeholder = lead(payout=0.0, unmatched=True, adjustment_amount=5.0, adjustment_time="2025-12-05T09:00:00")
        await store.insert_calls_batch([placeholder])

        await store.insert_calls_batch([lead(payout=10.0)])
        stored = await store.get_call_by_id(placeholder.id)
        assert stored.unmatched is False
        assert stored.payout == 15.0

    @pytest.mark.asyncio
    async def test_date_range_filters(self, db_session):
        store = CallStore(db_session)
        await store.insert_calls_batch(
            [
                lead(ts="2025-12-01T23:59:59"),
                lead(ts="2025-12-02T00:00:00"),
                lead(ts="2025-12-02T23:59:59", category="API"),
                lead(ts="2025-12-03T00:00:00"),
                lead(ts="2025-12-02T12:00:00", payout=0.0, unmatched=True),
            ]
        )
        day = await store.get_calls_for_date_range("2025-12-02", "2025-12-02")
        assert [c.call_timestamp for c in day] == ["2025-12-02T00:00:00", "2025-12-02T23:59:59"]

        static = await store.get_calls_for_date_range("2025-12-02", "2025-12-02", "STATIC")
        assert len(static) == 1

        with_placeholders = await store.get_calls_for_date_range("2025-12-02", "2025-12-02", include_unmatched=True)
        assert len(with_placeholders) == 3

    @pytest.mark.asyncio
    async def test_original_payout_is_write_once(self, db_session):
        store = CallStore(db_session)
        record = lead()
        await store.insert_calls_batch([record])

        assert await store.update_original_payout(record.id, 12.0, 14.0, "RB1") is True
        assert await store.update_original_payout(record.id, 20.0, 20.0, "RB2") is False

        stored = await store.get_call_by_id(record.id)
        assert stored.original_payout == 12.0
        assert stored.original_revenue == 14.0
        assert stored.linked_inbound_call_id == "RB1"

    @pytest.mark.asyncio
    async def test_update_original_payout_missing_call(self, db_session):
        assert await CallStore(db_session).update_original_payout(999, 1.0, 1.0, "RB1") is False

    @pytest.mark.asyncio
    async def test_mark_placeholder_merged(self, db_session):
        store = CallStore(db_session)
        placeholder = lead(payout=0.0, unmatched=True, adjustment_amount=5.0)
        real = lead(ts="2025-12-02T09:58:00")
        await store.insert_calls_batch([placeholder, real])

        await store.mark_placeholder_merged(placeholder.id, real.id)
        assert await store.get_open_placeholders("2025-12-02", "2025-12-02") == []

        row = (await db_session.execute(select(LeadCall).where(LeadCall.id == placeholder.id))).scalar_one()
        assert row.merged_into_call_id == real.id


class TestRoutingMirror:
    """Tests for the local routing-ledger mirror."""

    @pytest.mark.asyncio
    async def test_upsert_by_inbound_call_id(self, db_session):
        store = CallStore(db_session)
        assert await store.insert_routing_calls_batch([routing(payout=12.0)]) == {"inserted": 1, "updated": 0}
        assert await store.insert_routing_calls_batch([routing(payout=13.0)]) == {"inserted": 0, "updated": 1}

        rows = await store.get_routing_calls_for_date_range("2025-12-02", "2025-12-02")
        assert [(r.inbound_call_id, r.payout_amount) for r in rows] == [("RB1", 13.0)]

    @pytest.mark.asyncio
    async def test_rows_without_timestamp_are_skipped(self, db_session):
        store = CallStore(db_session)
        result = await store.insert_routing_calls_batch([routing(ts=None)])
        assert result == {"inserted": 0, "updated": 0}

    @pytest.mark.asyncio
    async def test_filter_by_routing_id(self, db_session):
        store = CallStore(db_session)
        await store.insert_routing_calls_batch([routing("RB1"), routing("RB2", routing_id="PI-api")])

        rows = await store.get_routing_calls_for_date_range("2025-12-02", "2025-12-02", ["PI-api"])
        assert [r.inbound_call_id for r in rows] == ["RB2"]

    @pytest.mark.asyncio
    async def test_update_routing_payout(self, db_session):
        store = CallStore(db_session)
        await store.insert_routing_calls_batch([routing(payout=12.0)])
        await store.update_routing_payout("RB1", 15.0, 15.0)

        rows = await store.get_routing_calls_for_date_range("2025-12-02", "2025-12-02")
        assert (rows[0].payout_amount, rows[0].revenue_amount) == (15.0, 15.0)


class TestSaveReport:
    @pytest.mark.asyncio
    async def test_persists_run_and_outcomes(self, db_session):
        report = ReconciliationReport(operation="sync_original_payout", strategy="original_sync", category="STATIC")
        report.add(OutcomeStatus.MATCHED, "routing:RB1", None, "lead:1", score=1.5)
        report.add(OutcomeStatus.UNMATCHED, "routing:RB2", "invalid caller id")

        run = await CallStore(db_session).save_report(report, processing_time_ms=12)

        assert run.status == RunStatus.COMPLETED
        assert run.matched_count == 1
        assert run.unmatched_count == 1
        assert run.summary["summary"]["matched"] == 1
        assert run.created_at is not None

        outcomes = (
            await db_session.execute(select(ReconciliationOutcome).where(ReconciliationOutcome.run_id == run.id))
        ).scalars().all()
        assert sorted(o.record_key for o in outcomes) == ["routing:RB1", "routing:RB2"]

    @pytest.mark.asyncio
    async def test_failed_run(self, db_session):
        report = ReconciliationReport(operation="ingest_routing_calls")
        run = await CallStore(db_session).save_report(report, error_message="boom")
        assert run.status == RunStatus.FAILED
        assert run.error_message == "boom"


class TestSchemaContract:
    """Tests for verify_schema."""

    @pytest.mark.asyncio
    async def test_created_schema_satisfies_contract(self, test_engine):
        await verify_schema(test_engine)

    @pytest.mark.asyncio
    async def test_empty_database_fails(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        try:
            with pytest.raises(SchemaContractError) as exc_info:
                await verify_schema(engine)
        finally:
            await engine.dispose()
        assert "lead_calls" in exc_info.value.missing

    @pytest.mark.asyncio
    async def test_missing_column_is_reported(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'partial.db'}")
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
                await conn.exec_driver_sql("ALTER TABLE routing_calls DROP COLUMN revenue_amount")
            with pytest.raises(SchemaContractError) as exc_info:
                await verify_schema(engine)
        finally:
            await engine.dispose()
        assert exc_info.value.missing == {"routing_calls": ["revenue_amount"]}

    @pytest.mark.asyncio
    async def test_unexpected_revision_fails(self, test_engine):
        async with test_engine.begin() as conn:
            await conn.exec_driver_sql("CREATE TABLE alembic_version (version_num VARCHAR(32) NOT NULL)")
            await conn.exec_driver_sql("INSERT INTO alembic_version VALUES ('005_old_revision')")

        with pytest.raises(SchemaContractError) as exc_info:
            await verify_schema(test_engine)
        assert SCHEMA_VERSION in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_expected_revision_passes(self, test_engine):
        async with test_engine.begin() as conn:
            await conn.exec_driver_sql("CREATE TABLE alembic_version (version_num VARCHAR(32) NOT NULL)")
            await conn.exec_driver_sql(f"INSERT INTO alembic_version VALUES ('{SCHEMA_VERSION}')")

        await verify_schema(test_engine)
