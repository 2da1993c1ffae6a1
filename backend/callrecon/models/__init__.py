from callrecon.models.base import Base, TimestampMixin
from callrecon.models.calls import LeadCall, RoutingCall
from callrecon.models.reconciliation import (
    OutcomeStatus,
    ReconciliationOutcome,
    ReconciliationRun,
    RunStatus,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "LeadCall",
    "RoutingCall",
    "OutcomeStatus",
    "ReconciliationOutcome",
    "ReconciliationRun",
    "RunStatus",
]
