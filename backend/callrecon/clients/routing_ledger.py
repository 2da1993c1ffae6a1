"""HTTP client for the call-routing ledger (Source B).

Reads the call log page by page and writes payout/revenue through the payment
override endpoint. An error response comes back as a failed ``WriteResult``; a
request that never got a response raises RemoteWriteError, and a failed first
page of a read raises FetchError.
"""

import logging
from datetime import datetime, time, timedelta

import httpx

from callrecon.clients.pagination import Page, collect_pages
from callrecon.clients.sources import WriteResult
from callrecon.config import Settings
from callrecon.errors import RemoteWriteError
from callrecon.matching.records import DateRange
from callrecon.schemas.calls import RawRoutingCall

logger = logging.getLogger("callrecon.routing_client")

CALLER_ID_COLUMN = "tag:InboundNumber:Number"

VALUE_COLUMNS = [
    "inboundCallId",
    "callDt",
    "targetName",
    "targetId",
    "conversionAmount",
    "payoutAmount",
    "callLengthInSeconds",
    CALLER_ID_COLUMN,
]

DEFAULT_REASON = "Call payments adjusted by reconciliation sync."


def _as_float(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _as_int(value) -> int | None:
    try:
        return int(float(value)) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def parse_call_record(record: dict) -> RawRoutingCall | None:
    """Map one call-log record to a RawRoutingCall. Records without an id are skipped."""
    inbound_call_id = record.get("inboundCallId")
    if not inbound_call_id:
        return None
    return RawRoutingCall(
        inbound_call_id=str(inbound_call_id),
        call_date_time=record.get("callDt"),
        caller_id=record.get(CALLER_ID_COLUMN),
        routing_id=record.get("targetId"),
        target_name=record.get("targetName"),
        payout_amount=_as_float(record.get("payoutAmount")),
        revenue_amount=_as_float(record.get("conversionAmount")),
        duration_seconds=_as_int(record.get("callLengthInSeconds")),
    )


class RoutingLedgerClient:
    """Routing-ledger API client. Implements RoutingLedgerSource and RemoteCounterpart."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        settings.require_routing_credentials()
        self.settings = settings
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=settings.routing_api_base_url,
            timeout=settings.routing_request_timeout_seconds,
        )

    async def __aenter__(self) -> "RoutingLedgerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Token {self.settings.routing_api_token}",
            "Content-Type": "application/json",
        }

    def _report_window(self, date_range: DateRange) -> tuple[str, str]:
        """UTC bounds covering every local day of the range in either offset."""
        start = datetime.combine(date_range.start, time.min) + timedelta(
            hours=self.settings.local_daylight_offset_hours
        )
        end = datetime.combine(date_range.end + timedelta(days=1), time.min) + timedelta(
            hours=self.settings.local_standard_offset_hours, seconds=-1
        )
        return start.strftime("%Y-%m-%dT%H:%M:%SZ"), end.strftime("%Y-%m-%dT%H:%M:%SZ")

    async def fetch_call_page(
        self,
        routing_id: str,
        date_range: DateRange,
        page_number: int,
    ) -> Page[RawRoutingCall]:
        page_size = self.settings.routing_page_size
        report_start, report_end = self._report_window(date_range)
        body = {
            "reportStart": report_start,
            "reportEnd": report_end,
            "offset": (page_number - 1) * page_size,
            "size": page_size,
            "formatDateTime": True,
            "orderByColumns": [{"column": "callDt", "direction": "asc"}],
            "valueColumns": [{"column": column} for column in VALUE_COLUMNS],
            "filters": [
                {
                    "anyConditionToMatch": [
                        {
                            "column": "targetId",
                            "comparisonType": "EQUALS",
                            "value": routing_id,
                            "isNegativeMatch": False,
                        }
                    ]
                }
            ],
        }
        response = await self._client.post(
            f"/{self.settings.routing_account_id}/calllogs", json=body, headers=self._headers
        )
        response.raise_for_status()

        report = response.json().get("report") or {}
        records = report.get("records") or []
        calls = [call for call in (parse_call_record(r) for r in records) if call is not None]
        return Page(
            items=calls,
            total_count=report.get("totalCount"),
            last=len(records) < page_size,
        )

    async def fetch_calls_by_category_and_date_range(self, date_range: DateRange) -> list[RawRoutingCall]:
        """All call-log records of every configured routing id within the range."""
        calls: list[RawRoutingCall] = []
        for routing_id, category in self.settings.routing_targets.items():

            async def fetch(page_number: int, routing_id: str = routing_id) -> Page[RawRoutingCall]:
                return await self.fetch_call_page(routing_id, date_range, page_number)

            fetched = await collect_pages(
                fetch,
                source=f"routing ledger ({category})",
                max_pages=self.settings.pagination_max_pages,
                empty_page_threshold=self.settings.pagination_empty_page_threshold,
            )
            logger.info("Fetched %d routing calls for %s (%s)", len(fetched), category, routing_id)
            calls.extend(fetched)
        return calls

    async def set_payout_and_revenue(
        self,
        counterpart_id: str,
        new_payout: float,
        new_revenue: float,
        reason: str = DEFAULT_REASON,
    ) -> WriteResult:
        """Absolute override of payout and revenue for one call."""
        body = {
            "inboundCallId": counterpart_id,
            "reason": reason or DEFAULT_REASON,
            "adjustConversion": True,
            "newConversionAmount": float(new_revenue),
            "adjustPayout": True,
            "newPayoutAmount": float(new_payout),
        }
        try:
            response = await self._client.post(
                f"/{self.settings.routing_account_id}/calls/payments/override",
                json=body,
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            logger.warning("Payment override for %s failed: %s", counterpart_id, e)
            raise RemoteWriteError(f"request failed: {e}") from e

        if response.is_error:
            logger.warning("Payment override for %s returned %d", counterpart_id, response.status_code)
            return WriteResult.failure(f"HTTP {response.status_code}: {response.text}")

        try:
            payload = response.json()
        except ValueError:
            payload = {"raw": response.text}
        return WriteResult.success(payload)
