"""Raw ledger rows -> normalized records — pure, no DB or network dependency."""

import logging
from collections.abc import Iterable

from callrecon.matching.categories import CategoryResolver
from callrecon.matching.records import AdjustmentEvent, LeadCallRecord, RoutingCallRecord
from callrecon.normalizers.phone import normalize_phone
from callrecon.normalizers.timestamps import normalize_timestamp, utc_to_local
from callrecon.schemas.calls import RawAdjustment, RawLeadCall, RawRoutingCall

logger = logging.getLogger("callrecon.ingestion")


def offset_seconds(timestamp: str, count: int) -> str:
    """Shift the seconds field of a canonical timestamp by ``count`` (mod 60)."""
    date_part, time_part = timestamp.split("T")
    hours, minutes, seconds = time_part.split(":")
    return f"{date_part}T{hours}:{minutes}:{(int(seconds) + count) % 60:02d}"


def prepare_lead_calls(
    rows: Iterable[RawLeadCall],
    default_category: str | None = None,
) -> tuple[list[LeadCallRecord], list[dict]]:
    """Normalize and de-duplicate lead-ledger calls.

    Calls sharing caller, timestamp and category get a seconds offset (+1, +2, ...)
    so distinct calls within one minute survive; the offsets are stable across
    re-runs over the same input. Rows without a usable timestamp are dropped and
    returned in the second element.
    """
    records: list[LeadCallRecord] = []
    dropped: list[dict] = []
    seen: set[str] = set()
    occurrences: dict[str, int] = {}

    for row in rows:
        timestamp = normalize_timestamp(row.date_of_call)
        if timestamp is None:
            logger.warning("Skipping call with invalid date %r for caller %r", row.date_of_call, row.caller_id)
            dropped.append({"caller_id": row.caller_id, "date_of_call": row.date_of_call, "reason": "invalid timestamp"})
            continue

        category = row.category or default_category
        base_key = f"{row.caller_id}|{timestamp}|{category}"
        count = occurrences.get(base_key, 0)
        occurrences[base_key] = count + 1
        if count:
            timestamp = offset_seconds(timestamp, count)

        key = f"{row.caller_id}|{timestamp}|{category}"
        if key in seen:
            logger.warning("Duplicate call skipped: %s", key)
            dropped.append({"caller_id": row.caller_id, "date_of_call": row.date_of_call, "reason": "duplicate"})
            continue
        seen.add(key)

        records.append(
            LeadCallRecord(
                caller_id=row.caller_id or "",
                caller_id_e164=normalize_phone(row.caller_id),
                call_timestamp=timestamp,
                category=category,
                payout=row.payout or 0.0,
                duration_seconds=row.duration_seconds,
            )
        )

    if dropped:
        logger.info("Prepared %d lead calls (%d dropped)", len(records), len(dropped))
    return records, dropped


def prepare_adjustments(rows: Iterable[RawAdjustment]) -> list[AdjustmentEvent]:
    events = []
    for row in rows:
        time_of_call = normalize_timestamp(row.time_of_call) or row.time_of_call
        events.append(
            AdjustmentEvent(
                caller_id=row.caller_id or "",
                caller_id_e164=normalize_phone(row.caller_id),
                time_of_call=time_of_call,
                adjustment_time=normalize_timestamp(row.adjustment_time) or row.adjustment_time,
                amount=row.amount or 0.0,
                classification=row.classification,
                duration=row.duration,
            )
        )
    return events


def prepare_routing_calls(
    rows: Iterable[RawRoutingCall],
    resolver: CategoryResolver,
    standard_offset_hours: int = 5,
    daylight_offset_hours: int = 4,
) -> list[RoutingCallRecord]:
    """Normalize routing-ledger rows: UTC -> local time, E.164 caller, resolved category."""
    records = []
    for row in rows:
        records.append(
            RoutingCallRecord(
                inbound_call_id=row.inbound_call_id,
                caller_id=row.caller_id,
                caller_id_e164=normalize_phone(row.caller_id),
                call_timestamp=utc_to_local(row.call_date_time, standard_offset_hours, daylight_offset_hours),
                routing_id=row.routing_id,
                target_name=row.target_name,
                payout_amount=row.payout_amount or 0.0,
                revenue_amount=row.revenue_amount or 0.0,
                duration_seconds=row.duration_seconds,
            )
        )
    return resolver.annotate(records)
