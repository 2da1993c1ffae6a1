"""ORM models for the two call ledgers."""

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from callrecon.models.base import Base, TimestampMixin


class LeadCall(Base, TimestampMixin):
    """A lead-ledger call. Placeholder rows (``unmatched``) hold an adjustment whose call is not known yet."""

    __tablename__ = "lead_calls"
    __table_args__ = (
        UniqueConstraint("caller_id", "call_timestamp", "category", name="uq_lead_calls_natural_key"),
        Index("ix_lead_calls_e164_timestamp", "caller_id_e164", "call_timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    caller_id: Mapped[str] = mapped_column(String(64), nullable=False)
    caller_id_e164: Mapped[str | None] = mapped_column(String(32), nullable=True)
    # Canonical local wall-clock string, YYYY-MM-DDTHH:MM:SS
    call_timestamp: Mapped[str] = mapped_column(String(19), nullable=False)
    payout: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Write-once provenance from the routing ledger
    original_payout: Mapped[float | None] = mapped_column(Float, nullable=True)
    original_revenue: Mapped[float | None] = mapped_column(Float, nullable=True)
    linked_inbound_call_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    adjustment_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    adjustment_time: Mapped[str | None] = mapped_column(String(64), nullable=True)
    adjustment_classification: Mapped[str | None] = mapped_column(String(200), nullable=True)
    adjustment_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)

    unmatched: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    merged_into_call_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("lead_calls.id", ondelete="SET NULL"), nullable=True
    )


class RoutingCall(Base, TimestampMixin):
    """Local mirror of a routing-ledger call."""

    __tablename__ = "routing_calls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    inbound_call_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    call_timestamp: Mapped[str] = mapped_column(String(19), nullable=False, index=True)
    caller_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    caller_id_e164: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    payout_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    revenue_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    routing_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    target_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
