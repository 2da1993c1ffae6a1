from callrecon.clients.routing_ledger import RoutingLedgerClient
from callrecon.config import settings
from callrecon.database import get_db
from callrecon.reconciliation_engine.service import ReconciliationEngine

# Re-export get_db for use in Depends()
get_db = get_db


def get_reconciliation_engine() -> ReconciliationEngine:
    return ReconciliationEngine(settings)


async def get_routing_client():
    """Routing-ledger client for one request; raises ConfigurationError without credentials."""
    client = RoutingLedgerClient(settings)
    try:
        yield client
    finally:
        await client.aclose()
