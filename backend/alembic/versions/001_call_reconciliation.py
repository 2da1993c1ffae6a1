"""Call ledgers and reconciliation run reports

Revision ID: 001_call_reconciliation
Revises:
Create Date: 2026-09-28

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_call_reconciliation"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Lead ledger (Source A); unmatched rows are adjustment placeholders
    op.create_table(
        "lead_calls",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("caller_id", sa.String(64), nullable=False),
        sa.Column("caller_id_e164", sa.String(32), nullable=True),
        sa.Column("call_timestamp", sa.String(19), nullable=False),
        sa.Column("payout", sa.Float, nullable=False, server_default="0"),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("duration_seconds", sa.Integer, nullable=True),
        sa.Column("original_payout", sa.Float, nullable=True),
        sa.Column("original_revenue", sa.Float, nullable=True),
        sa.Column("linked_inbound_call_id", sa.String(128), nullable=True),
        sa.Column("adjustment_amount", sa.Float, nullable=True),
        sa.Column("adjustment_time", sa.String(64), nullable=True),
        sa.Column("adjustment_classification", sa.String(200), nullable=True),
        sa.Column("adjustment_duration", sa.Integer, nullable=True),
        sa.Column("unmatched", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "merged_into_call_id",
            sa.Integer,
            sa.ForeignKey("lead_calls.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
        sa.UniqueConstraint("caller_id", "call_timestamp", "category", name="uq_lead_calls_natural_key"),
    )
    op.create_index("ix_lead_calls_e164_timestamp", "lead_calls", ["caller_id_e164", "call_timestamp"])

    # Local mirror of the routing ledger (Source B)
    op.create_table(
        "routing_calls",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("inbound_call_id", sa.String(128), nullable=False, unique=True),
        sa.Column("call_timestamp", sa.String(19), nullable=False),
        sa.Column("caller_id", sa.String(64), nullable=True),
        sa.Column("caller_id_e164", sa.String(32), nullable=True),
        sa.Column("payout_amount", sa.Float, nullable=False, server_default="0"),
        sa.Column("revenue_amount", sa.Float, nullable=False, server_default="0"),
        sa.Column("routing_id", sa.String(128), nullable=True),
        sa.Column("target_name", sa.String(200), nullable=True),
        sa.Column("duration_seconds", sa.Integer, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_routing_calls_call_timestamp", "routing_calls", ["call_timestamp"])
    op.create_index("ix_routing_calls_caller_id_e164", "routing_calls", ["caller_id_e164"])

    op.create_table(
        "reconciliation_runs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("operation", sa.String(64), nullable=False),
        sa.Column("strategy", sa.String(64), nullable=True),
        sa.Column(
            "status",
            sa.Enum("running", "completed", "failed", name="run_status"),
            nullable=False,
            server_default="running",
        ),
        sa.Column("category", sa.String(32), nullable=True),
        sa.Column("date_start", sa.String(10), nullable=True),
        sa.Column("date_end", sa.String(10), nullable=True),
        sa.Column("matched_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("updated_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("unmatched_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("processing_time_ms", sa.Integer, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("summary", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "reconciliation_outcomes",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "run_id",
            UUID(as_uuid=True),
            sa.ForeignKey("reconciliation_runs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("record_key", sa.String(255), nullable=False),
        sa.Column(
            "status",
            sa.Enum("matched", "updated", "skipped", "unmatched", "failed", name="outcome_status"),
            nullable=False,
        ),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("counterpart_key", sa.String(255), nullable=True),
        sa.Column("detail", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_reconciliation_outcomes_run_id", "reconciliation_outcomes", ["run_id"])


def downgrade() -> None:
    op.drop_index("ix_reconciliation_outcomes_run_id", table_name="reconciliation_outcomes")
    op.drop_table("reconciliation_outcomes")
    op.drop_table("reconciliation_runs")
    op.drop_index("ix_routing_calls_caller_id_e164", table_name="routing_calls")
    op.drop_index("ix_routing_calls_call_timestamp", table_name="routing_calls")
    op.drop_table("routing_calls")
    op.drop_index("ix_lead_calls_e164_timestamp", table_name="lead_calls")
    op.drop_table("lead_calls")
    op.execute("DROP TYPE IF EXISTS outcome_status")
    op.execute("DROP TYPE IF EXISTS run_status")
