from callrecon.schemas.calls import LeadCallResponse, RawAdjustment, RawLeadCall, RawRoutingCall
from callrecon.schemas.health import HealthResponse

__all__ = [
    "HealthResponse",
    "LeadCallResponse",
    "RawAdjustment",
    "RawLeadCall",
    "RawRoutingCall",
]
