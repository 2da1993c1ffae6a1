"""Adjustment merge rules — pure functions, no DB dependency.

An adjustment identifies its call only by caller id and original call time. The
helpers here pick the closest call inside a time window, apply the payout delta,
and implement the guard that keeps a re-run from applying the same adjustment to
the same call twice.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

from callrecon.config import Settings
from callrecon.matching.records import AdjustmentEvent, LeadCallRecord
from callrecon.normalizers.timestamps import day_difference, minutes_between, parse_timestamp


@dataclass(frozen=True)
class AdjustmentPolicy:
    window_minutes: int = 30
    amount_tolerance: float = 0.01
    time_tolerance_minutes: float = 1.0
    widen_days: int = 1

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdjustmentPolicy":
        return cls(
            window_minutes=settings.adjustment_window_minutes,
            amount_tolerance=settings.adjustment_amount_tolerance,
            time_tolerance_minutes=settings.adjustment_time_tolerance_minutes,
            widen_days=settings.adjustment_widen_days,
        )


@dataclass
class AdjustmentMatch:
    event: AdjustmentEvent
    call: LeadCallRecord
    time_diff_minutes: float


def calls_in_window(
    event: AdjustmentEvent,
    calls: Iterable[LeadCallRecord],
    window_minutes: int,
    same_day: bool = True,
) -> list[tuple[LeadCallRecord, float]]:
    """Calls of the event's caller within ``window_minutes`` of its call time, with their distance."""
    event_time = parse_timestamp(event.time_of_call)
    if event_time is None or not event.caller_id_e164:
        return []

    found = []
    for call in calls:
        if call.caller_id_e164 != event.caller_id_e164:
            continue
        call_time = parse_timestamp(call.call_timestamp)
        if call_time is None:
            continue
        if same_day and day_difference(call_time, event_time) != 0:
            continue
        diff = minutes_between(call_time, event_time)
        if diff <= window_minutes:
            found.append((call, diff))
    return found


def closest_call(candidates: list[tuple[LeadCallRecord, float]]) -> tuple[LeadCallRecord, float] | None:
    """The candidate with the smallest time distance; the first one wins ties."""
    best = None
    for call, diff in candidates:
        if best is None or diff < best[1]:
            best = (call, diff)
    return best


def adjustment_times_agree(recorded: str | None, incoming: str | None, tolerance_minutes: float) -> bool:
    recorded_time = parse_timestamp(recorded)
    incoming_time = parse_timestamp(incoming)
    if recorded_time is None or incoming_time is None:
        return (recorded or "") == (incoming or "")
    return minutes_between(recorded_time, incoming_time) <= tolerance_minutes


def is_already_applied(call: LeadCallRecord, event: AdjustmentEvent, policy: AdjustmentPolicy) -> bool:
    """True when ``call`` already carries this adjustment (same amount and adjustment time)."""
    if not call.adjustment_amount:
        return False
    if abs(call.adjustment_amount - event.amount) > policy.amount_tolerance:
        return False
    return adjustment_times_agree(call.adjustment_time, event.adjustment_time, policy.time_tolerance_minutes)


def adjustment_fields(event: AdjustmentEvent) -> dict:
    return {
        "adjustment_amount": event.amount,
        "adjustment_time": event.adjustment_time,
        "adjustment_classification": event.classification,
        "adjustment_duration": event.duration,
    }


def apply_adjustment(call: LeadCallRecord, event: AdjustmentEvent) -> None:
    """Add the event amount to the call payout and record the adjustment on it."""
    call.payout = round((call.payout or 0.0) + event.amount, 2)
    for name, value in adjustment_fields(event).items():
        setattr(call, name, value)


def merge_in_batch(
    calls: list[LeadCallRecord],
    events: list[AdjustmentEvent],
    policy: AdjustmentPolicy,
) -> tuple[list[AdjustmentMatch], list[AdjustmentEvent]]:
    """Apply adjustments to calls ingested in the same run.

    Candidates are the same caller on the same calendar day within the window;
    the closest one wins. A call takes at most one adjustment per run. Returns
    the applied matches and the events left for the persisted-store passes.
    """
    by_caller: dict[str, list[LeadCallRecord]] = defaultdict(list)
    for call in calls:
        if call.caller_id_e164:
            by_caller[call.caller_id_e164].append(call)

    taken: set[int] = set()
    matches: list[AdjustmentMatch] = []
    remaining: list[AdjustmentEvent] = []

    for event in events:
        pool = [c for c in by_caller.get(event.caller_id_e164 or "", []) if id(c) not in taken]
        best = closest_call(calls_in_window(event, pool, policy.window_minutes, same_day=True))
        if best is None:
            remaining.append(event)
            continue
        call, diff = best
        apply_adjustment(call, event)
        taken.add(id(call))
        matches.append(AdjustmentMatch(event=event, call=call, time_diff_minutes=diff))

    return matches, remaining


def placeholder_for(event: AdjustmentEvent, category: str) -> LeadCallRecord:
    """A zero-payout ``unmatched`` row carrying the adjustment, for later runs to retry."""
    return LeadCallRecord(
        caller_id=event.caller_id or "",
        caller_id_e164=event.caller_id_e164,
        call_timestamp=event.time_of_call,
        category=category,
        payout=0.0,
        unmatched=True,
        **adjustment_fields(event),
    )


def event_from_placeholder(row: LeadCallRecord) -> AdjustmentEvent:
    return AdjustmentEvent(
        caller_id=row.caller_id,
        caller_id_e164=row.caller_id_e164,
        time_of_call=row.call_timestamp,
        adjustment_time=row.adjustment_time,
        amount=row.adjustment_amount or 0.0,
        classification=row.adjustment_classification,
        duration=row.adjustment_duration,
        placeholder_id=row.id,
    )


def same_adjustment(a: AdjustmentEvent, b: AdjustmentEvent, policy: AdjustmentPolicy) -> bool:
    return (
        a.caller_id_e164 == b.caller_id_e164
        and a.time_of_call == b.time_of_call
        and abs(a.amount - b.amount) <= policy.amount_tolerance
        and adjustment_times_agree(a.adjustment_time, b.adjustment_time, policy.time_tolerance_minutes)
    )
