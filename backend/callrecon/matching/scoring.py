"""Pair scoring for call matching — pure functions, no DB dependency.

A pair is scored only after it passes every gate, in this order: category,
caller id, timestamps, calendar-day distance, time window, duration. Lower
scores are better.
"""

import enum
from dataclasses import dataclass, field
from typing import Any

from callrecon.config import Settings
from callrecon.normalizers.timestamps import day_difference, minutes_between, parse_timestamp

ADJACENT_DAY_WINDOW_MINUTES = 24 * 60

ORIGINAL_SYNC = "original_sync"
COST_SYNC = "cost_sync"


class RejectReason(str, enum.Enum):
    CATEGORY_MISMATCH = "category_mismatch"
    CALLER_MISMATCH = "caller_mismatch"
    INVALID_TIMESTAMP = "invalid_timestamp"
    DAY_DIFFERENCE = "day_difference"
    TIME_WINDOW = "time_window"
    DURATION = "duration"


@dataclass(frozen=True)
class MatchStrategy:
    """Tunable parameters of one matching pass.

    ``duration_tolerance_seconds`` of None disables the duration gate and bonus.
    """

    name: str
    window_minutes: int
    ignore_seconds: bool = False
    payout_tolerance: float = 0.01
    duration_tolerance_seconds: int | None = None
    duration_exact_tolerance_seconds: int | None = None
    duration_match_bonus: float = 0.0


def strategies_from_settings(settings: Settings) -> dict[str, MatchStrategy]:
    """Build the tagged strategies used by the two sync passes."""
    return {
        ORIGINAL_SYNC: MatchStrategy(
            name=ORIGINAL_SYNC,
            window_minutes=settings.original_sync_window_minutes,
            ignore_seconds=True,
            payout_tolerance=settings.payout_tolerance,
        ),
        COST_SYNC: MatchStrategy(
            name=COST_SYNC,
            window_minutes=settings.cost_sync_window_minutes,
            payout_tolerance=settings.payout_tolerance,
            duration_tolerance_seconds=settings.duration_tolerance_seconds,
            duration_exact_tolerance_seconds=settings.duration_exact_tolerance_seconds,
            duration_match_bonus=settings.duration_match_bonus,
        ),
    }


@dataclass
class MatchCandidate:
    driver: Any
    candidate: Any
    score: float
    time_diff_minutes: float
    day_diff: int
    duration_diff: float | None = None
    payout_diff: float | None = None


@dataclass
class PairRejection:
    candidate: Any
    reason: RejectReason
    detail: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {"candidate": self.candidate.key, "reason": self.reason.value, **self.detail}


def _present(value: float | int | None) -> bool:
    return value is not None and value > 0


def evaluate_pair(driver: Any, candidate: Any, strategy: MatchStrategy) -> MatchCandidate | PairRejection:
    """Score a (driver, candidate) pair or explain why it cannot match.

    Both records expose ``category``, ``caller_id_e164``, ``call_timestamp``,
    ``duration_seconds`` and ``payout``.
    """
    if not driver.category or not candidate.category or driver.category != candidate.category:
        return PairRejection(
            candidate,
            RejectReason.CATEGORY_MISMATCH,
            {"driver_category": driver.category, "candidate_category": candidate.category},
        )

    if not driver.caller_id_e164 or driver.caller_id_e164 != candidate.caller_id_e164:
        return PairRejection(candidate, RejectReason.CALLER_MISMATCH)

    driver_time = parse_timestamp(driver.call_timestamp)
    candidate_time = parse_timestamp(candidate.call_timestamp)
    if driver_time is None or candidate_time is None:
        return PairRejection(
            candidate,
            RejectReason.INVALID_TIMESTAMP,
            {"driver_timestamp": driver.call_timestamp, "candidate_timestamp": candidate.call_timestamp},
        )

    day_diff = day_difference(driver_time, candidate_time)
    if day_diff > 1:
        return PairRejection(candidate, RejectReason.DAY_DIFFERENCE, {"day_diff": day_diff})

    time_diff = minutes_between(driver_time, candidate_time, ignore_seconds=strategy.ignore_seconds)
    window = strategy.window_minutes if day_diff == 0 else ADJACENT_DAY_WINDOW_MINUTES
    if time_diff > window:
        return PairRejection(
            candidate,
            RejectReason.TIME_WINDOW,
            {"time_diff_minutes": round(time_diff, 2), "window_minutes": window},
        )

    duration_diff = None
    durations_known = _present(driver.duration_seconds) and _present(candidate.duration_seconds)
    if durations_known:
        duration_diff = abs(driver.duration_seconds - candidate.duration_seconds)
        if strategy.duration_tolerance_seconds is not None and duration_diff > strategy.duration_tolerance_seconds:
            return PairRejection(
                candidate,
                RejectReason.DURATION,
                {"duration_diff": duration_diff, "tolerance": strategy.duration_tolerance_seconds},
            )

    score = time_diff
    payout_diff = None
    if _present(driver.payout) and _present(candidate.payout):
        payout_diff = abs(driver.payout - candidate.payout)
        if payout_diff <= strategy.payout_tolerance:
            score *= 0.1
        else:
            score += payout_diff * 10

    if (
        duration_diff is not None
        and strategy.duration_exact_tolerance_seconds is not None
        and duration_diff <= strategy.duration_exact_tolerance_seconds
    ):
        score -= strategy.duration_match_bonus

    return MatchCandidate(
        driver=driver,
        candidate=candidate,
        score=score,
        time_diff_minutes=time_diff,
        day_diff=day_diff,
        duration_diff=duration_diff,
        payout_diff=payout_diff,
    )
