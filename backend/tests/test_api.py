"""API tests for the reconciliation endpoints."""

import pytest

from callrecon.dependencies import get_routing_client
from callrecon.errors import ConfigurationError, FetchError
from callrecon.main import app
from callrecon.matching.records import LeadCallRecord, RoutingCallRecord
from callrecon.store.call_store import CallStore

CALLER = "+15551234567"

BATCH = {
    "start": "2025-12-02",
    "end": "2025-12-02",
    "category": "STATIC",
    "calls": [{"caller_id": "(555) 123-4567", "date_of_call": "12/02/2025 10:00:00 AM", "payout": 10.0}],
    "adjustments": [
        {
            "caller_id": "5551234567",
            "time_of_call": "12/02/2025 10:02 AM",
            "adjustment_time": "12/05/2025 09:00 AM",
            "amount": 5.0,
        }
    ],
}


async def _seed_pair(db_session, lead_payout=15.0, routing_payout=0.0):
    store = CallStore(db_session)
    await store.insert_calls_batch(
        [
            LeadCallRecord(
                caller_id="5551234567",
                caller_id_e164=CALLER,
                call_timestamp="2025-12-02T10:00:00",
                category="STATIC",
                payout=lead_payout,
            )
        ]
    )
    await store.insert_routing_calls_batch(
        [
            RoutingCallRecord(
                inbound_call_id="RB1",
                caller_id=CALLER,
                caller_id_e164=CALLER,
                call_timestamp="2025-12-02T10:10:00",
                routing_id="TA-static",
                payout_amount=routing_payout,
                revenue_amount=routing_payout,
            )
        ]
    )


class TestLeadCallEndpoints:
    """Tests for lead-call ingest and listing."""

    @pytest.mark.asyncio
    async def test_ingest_returns_report(self, client):
        response = await client.post("/api/v1/reconciliation/lead-calls", json=BATCH)
        assert response.status_code == 200
        data = response.json()
        assert data["operation"] == "ingest_lead_calls"
        assert data["summary"]["matched"] == 1
        assert data["counters"]["calls_inserted"] == 1
        assert data["run_id"] is not None

    @pytest.mark.asyncio
    async def test_list_lead_calls(self, client):
        await client.post("/api/v1/reconciliation/lead-calls", json=BATCH)

        response = await client.get(
            "/api/v1/reconciliation/lead-calls", params={"start": "2025-12-02", "end": "2025-12-02"}
        )
        assert response.status_code == 200
        calls = response.json()
        assert len(calls) == 1
        assert calls[0]["caller_id_e164"] == CALLER
        assert calls[0]["payout"] == 15.0
        assert calls[0]["adjustment_amount"] == 5.0

    @pytest.mark.asyncio
    async def test_placeholders_listed_on_request(self, client):
        batch = dict(BATCH, calls=[])
        await client.post("/api/v1/reconciliation/lead-calls", json=batch)

        params = {"start": "2025-12-02", "end": "2025-12-02"}
        assert (await client.get("/api/v1/reconciliation/lead-calls", params=params)).json() == []

        response = await client.get(
            "/api/v1/reconciliation/lead-calls", params={**params, "include_unmatched": "true"}
        )
        placeholders = response.json()
        assert len(placeholders) == 1
        assert placeholders[0]["unmatched"] is True

    @pytest.mark.asyncio
    async def test_reversed_range_rejected(self, client):
        response = await client.post(
            "/api/v1/reconciliation/lead-calls", json=dict(BATCH, start="2025-12-03", end="2025-12-02")
        )
        assert response.status_code == 422


class TestRunEndpoints:
    """Tests for run history and stats."""

    @pytest.mark.asyncio
    async def test_runs_and_run_detail(self, client):
        created = (await client.post("/api/v1/reconciliation/lead-calls", json=BATCH)).json()

        response = await client.get("/api/v1/reconciliation/runs")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["runs"][0]["operation"] == "ingest_lead_calls"
        assert data["runs"][0]["outcomes"] == []

        detail = await client.get(f"/api/v1/reconciliation/runs/{created['run_id']}")
        assert detail.status_code == 200
        run = detail.json()
        assert run["status"] == "completed"
        assert run["matched_count"] == 1
        assert [o["status"] for o in run["outcomes"]] == ["matched"]

    @pytest.mark.asyncio
    async def test_runs_filter_by_operation(self, client):
        await client.post("/api/v1/reconciliation/lead-calls", json=BATCH)
        response = await client.get("/api/v1/reconciliation/runs", params={"operation": "cost_sync"})
        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_unknown_run_is_404(self, client):
        response = await client.get("/api/v1/reconciliation/runs/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_stats(self, client):
        orphan = {"caller_id": "5559999999", "time_of_call": "12/03/2025 11:00 AM", "amount": 2.0}
        await client.post("/api/v1/reconciliation/lead-calls", json=BATCH)
        await client.post(
            "/api/v1/reconciliation/lead-calls",
            json=dict(BATCH, start="2025-12-03", end="2025-12-03", calls=[], adjustments=[orphan]),
        )

        response = await client.get("/api/v1/reconciliation/stats")
        assert response.status_code == 200
        stats = response.json()
        assert stats["total_runs"] == 2
        assert stats["failed_runs"] == 0
        assert stats["total_matched"] == 1
        assert stats["lead_calls"] == 1
        assert stats["open_placeholders"] == 1
        assert stats["last_run_at"] is not None


class TestSyncEndpoints:
    """Tests for routing ingest and the sync passes."""

    @pytest.mark.asyncio
    async def test_original_sync_from_mirror(self, client, db_session):
        await _seed_pair(db_session, lead_payout=0.0, routing_payout=12.0)

        response = await client.post(
            "/api/v1/reconciliation/original-sync",
            json={"start": "2025-12-02", "end": "2025-12-02", "category": "STATIC"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["strategy"] == "original_sync"
        assert data["summary"]["updated"] == 1

    @pytest.mark.asyncio
    async def test_cost_sync_pushes_to_counterpart(self, client, db_session, routing_client):
        await _seed_pair(db_session)

        response = await client.post(
            "/api/v1/reconciliation/cost-sync",
            json={"start": "2025-12-02", "end": "2025-12-02", "category": "STATIC"},
        )
        assert response.status_code == 200
        assert routing_client.writes == [("RB1", 15.0, 15.0)]
        assert routing_client.requested == []

    @pytest.mark.asyncio
    async def test_cost_sync_with_refresh_reads_source(self, client, routing_client):
        response = await client.post(
            "/api/v1/reconciliation/cost-sync",
            json={"start": "2025-12-02", "end": "2025-12-02", "refresh": True},
        )
        assert response.status_code == 200
        assert len(routing_client.requested) == 1

    @pytest.mark.asyncio
    async def test_clear_converted(self, client, routing_client):
        response = await client.post(
            "/api/v1/reconciliation/clear-converted", json={"inbound_call_ids": ["RB1"]}
        )
        assert response.status_code == 200
        assert response.json()["summary"]["updated"] == 1
        assert routing_client.writes == [("RB1", 2.22, 2.22), ("RB1", 0.0, 0.0)]

    @pytest.mark.asyncio
    async def test_clear_converted_requires_ids(self, client):
        response = await client.post("/api/v1/reconciliation/clear-converted", json={"inbound_call_ids": []})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_fetch_error_is_502(self, client, routing_client):
        routing_client.error = FetchError("routing ledger (STATIC)", "first page failed: 503")

        response = await client.post(
            "/api/v1/reconciliation/routing-calls", json={"start": "2025-12-02", "end": "2025-12-02"}
        )
        assert response.status_code == 502
        assert response.json()["source"] == "routing ledger (STATIC)"

        runs = (await client.get("/api/v1/reconciliation/runs")).json()
        assert runs["runs"][0]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_missing_credentials_is_400(self, client):
        async def unconfigured():
            raise ConfigurationError("Routing ledger account id and API token are required")
            yield

        app.dependency_overrides[get_routing_client] = unconfigured
        response = await client.post(
            "/api/v1/reconciliation/routing-calls", json={"start": "2025-12-02", "end": "2025-12-02"}
        )
        assert response.status_code == 400
        assert "API token" in response.json()["detail"]
