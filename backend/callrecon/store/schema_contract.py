"""Versioned schema contract, checked once at startup.

The engine writes a fixed set of columns. Instead of probing the live schema
before each write, the required columns are declared here and verified when the
application starts; a database that does not satisfy the contract fails fast.
"""

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine

from callrecon.errors import SchemaContractError

logger = logging.getLogger("callrecon.store.schema")

# Alembic head revision that provides the columns below.
SCHEMA_VERSION = "001_call_reconciliation"

REQUIRED_COLUMNS: dict[str, tuple[str, ...]] = {
    "lead_calls": (
        "id",
        "caller_id",
        "caller_id_e164",
        "call_timestamp",
        "payout",
        "category",
        "duration_seconds",
        "original_payout",
        "original_revenue",
        "linked_inbound_call_id",
        "adjustment_amount",
        "adjustment_time",
        "adjustment_classification",
        "adjustment_duration",
        "unmatched",
        "merged_into_call_id",
    ),
    "routing_calls": (
        "id",
        "inbound_call_id",
        "call_timestamp",
        "caller_id",
        "caller_id_e164",
        "payout_amount",
        "revenue_amount",
        "routing_id",
        "duration_seconds",
    ),
    "reconciliation_runs": ("id", "operation", "status", "summary"),
    "reconciliation_outcomes": ("id", "run_id", "record_key", "status", "reason"),
}


def missing_columns(connection: Connection) -> dict[str, list[str]]:
    """Required columns absent from the connected database, per table."""
    inspector = inspect(connection)
    tables = set(inspector.get_table_names())
    missing: dict[str, list[str]] = {}
    for table, required in REQUIRED_COLUMNS.items():
        if table not in tables:
            missing[table] = list(required)
            continue
        present = {col["name"] for col in inspector.get_columns(table)}
        absent = [name for name in required if name not in present]
        if absent:
            missing[table] = absent
    return missing


def applied_revision(connection: Connection) -> str | None:
    """The Alembic revision recorded in the database, or None if unmanaged."""
    if "alembic_version" not in inspect(connection).get_table_names():
        return None
    row = connection.exec_driver_sql("SELECT version_num FROM alembic_version").first()
    return row[0] if row else None


async def verify_schema(engine: AsyncEngine) -> None:
    """Raise SchemaContractError if the database does not satisfy the contract."""
    async with engine.connect() as conn:
        missing = await conn.run_sync(missing_columns)
        revision = await conn.run_sync(applied_revision)

    if missing:
        raise SchemaContractError(missing)
    if revision is not None and revision != SCHEMA_VERSION:
        raise SchemaContractError({"alembic_version": [f"expected {SCHEMA_VERSION}, found {revision}"]})
    logger.info("Schema contract satisfied (version=%s)", revision or "unmanaged")
