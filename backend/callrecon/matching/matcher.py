"""Greedy one-to-one matcher.

Each driving record, in input order, takes the lowest-scoring candidate that is
still available; the winner is consumed for the rest of the pass. Ties keep the
first candidate scanned.
"""

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from callrecon.matching.index import CandidateIndex
from callrecon.matching.scoring import MatchCandidate, MatchStrategy, PairRejection, evaluate_pair
from callrecon.normalizers.timestamps import parse_timestamp

logger = logging.getLogger("callrecon.matching")


class UnmatchedReason(str, enum.Enum):
    INVALID_CATEGORY = "invalid category"
    INVALID_CALLER_ID = "invalid caller id"
    INVALID_TIMESTAMP = "invalid timestamp"
    NO_CANDIDATES = "no candidates for category and caller"
    MISMATCH = "time/duration/payout mismatch"


@dataclass
class UnmatchedRecord:
    record: Any
    reason: UnmatchedReason
    message: str
    diagnostics: list[dict] = field(default_factory=list)
    # "driver" for records of the driving side, "candidate" for index exclusions
    side: str = "driver"


@dataclass
class MatchRun:
    strategy: str
    matches: list[MatchCandidate] = field(default_factory=list)
    unmatched: list[UnmatchedRecord] = field(default_factory=list)


def match_calls(
    drivers: Iterable[Any],
    index: CandidateIndex,
    strategy: MatchStrategy,
    report_excluded: bool = True,
) -> MatchRun:
    """Assign each driving record to at most one candidate from ``index``."""
    run = MatchRun(strategy=strategy.name)
    consumed: set[str] = set()

    if report_excluded:
        for record, reason in index.excluded:
            run.unmatched.append(
                UnmatchedRecord(
                    record=record,
                    reason=UnmatchedReason(reason),
                    message=f"Candidate excluded from index: {reason}",
                    side="candidate",
                )
            )

    for driver in drivers:
        if not driver.category:
            run.unmatched.append(UnmatchedRecord(driver, UnmatchedReason.INVALID_CATEGORY, "Invalid or unknown category"))
            continue
        if not driver.caller_id_e164:
            run.unmatched.append(
                UnmatchedRecord(driver, UnmatchedReason.INVALID_CALLER_ID, f"Invalid caller id: {driver.caller_id!r}")
            )
            continue
        if parse_timestamp(driver.call_timestamp) is None:
            run.unmatched.append(
                UnmatchedRecord(
                    driver, UnmatchedReason.INVALID_TIMESTAMP, f"Invalid timestamp: {driver.call_timestamp!r}"
                )
            )
            continue

        if not index.has_category(driver.category):
            run.unmatched.append(
                UnmatchedRecord(
                    driver, UnmatchedReason.NO_CANDIDATES, f"No candidates found for category {driver.category}"
                )
            )
            continue

        available = [c for c in index.candidates(driver.category, driver.caller_id_e164) if c.key not in consumed]
        if not available:
            run.unmatched.append(
                UnmatchedRecord(
                    driver,
                    UnmatchedReason.NO_CANDIDATES,
                    f"No candidates for category {driver.category} and caller {driver.caller_id_e164}",
                )
            )
            continue

        best: MatchCandidate | None = None
        rejections: list[PairRejection] = []
        for candidate in available:
            result = evaluate_pair(driver, candidate, strategy)
            if isinstance(result, PairRejection):
                rejections.append(result)
                continue
            if best is None or result.score < best.score:
                best = result

        if best is None:
            run.unmatched.append(
                UnmatchedRecord(
                    driver,
                    UnmatchedReason.MISMATCH,
                    f"{len(rejections)} candidate(s) rejected on time/duration/payout",
                    diagnostics=[r.as_dict() for r in rejections],
                )
            )
            continue

        consumed.add(best.candidate.key)
        run.matches.append(best)

    logger.info(
        "Matching pass %s: %d matched, %d unmatched",
        strategy.name,
        len(run.matches),
        len(run.unmatched),
    )
    return run
