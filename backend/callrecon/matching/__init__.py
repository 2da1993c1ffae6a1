from callrecon.matching.categories import CategoryResolver
from callrecon.matching.index import CandidateIndex
from callrecon.matching.matcher import MatchRun, UnmatchedReason, UnmatchedRecord, match_calls
from callrecon.matching.records import AdjustmentEvent, DateRange, LeadCallRecord, RoutingCallRecord
from callrecon.matching.scoring import (
    COST_SYNC,
    ORIGINAL_SYNC,
    MatchCandidate,
    MatchStrategy,
    PairRejection,
    RejectReason,
    evaluate_pair,
    strategies_from_settings,
)

__all__ = [
    "AdjustmentEvent",
    "COST_SYNC",
    "CandidateIndex",
    "CategoryResolver",
    "DateRange",
    "LeadCallRecord",
    "MatchCandidate",
    "MatchRun",
    "MatchStrategy",
    "ORIGINAL_SYNC",
    "PairRejection",
    "RejectReason",
    "RoutingCallRecord",
    "UnmatchedReason",
    "UnmatchedRecord",
    "evaluate_pair",
    "match_calls",
    "strategies_from_settings",
]
