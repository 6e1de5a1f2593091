"""Payout, workflow audit, quarterly report and batch models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from royalty_engine.models.base import Base

WORKFLOW_STAGES = (
    "draft",
    "pending_review",
    "approved",
    "processing",
    "paid",
    "payment_failed",
    "cancelled",
    "expired",
)


class PayoutModel(Base):
    """One payee, one period."""

    __tablename__ = "payout"

    payout_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    payee_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    period: Mapped[str] = mapped_column(String, nullable=False)
    period_start: Mapped[date | None] = mapped_column(nullable=True)
    period_end: Mapped[date | None] = mapped_column(nullable=True)
    gross_royalties: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    commission_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_expenses: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    net_payable: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    advance_recoupment: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    amount_due: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    royalties_to_date: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    payments_to_date: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    calculation_method: Mapped[str] = mapped_column(String, nullable=False, default="manual")
    agreement_id: Mapped[UUID | None] = mapped_column(nullable=True)
    workflow_stage: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    quarterly_report_id: Mapped[UUID | None] = mapped_column(nullable=True)
    payment_date: Mapped[date | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "workflow_stage IN ('" + "', '".join(WORKFLOW_STAGES) + "')",
            name="payout_workflow_stage_check",
        ),
        CheckConstraint("amount_due >= 0", name="payout_amount_due_non_negative"),
        CheckConstraint(
            "calculation_method IN ('agreement_based', 'manual')",
            name="payout_calculation_method_check",
        ),
    )


class WorkflowAuditEntryModel(Base):
    """Append-only stage transition record."""

    __tablename__ = "payout_workflow_audit"

    entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payout_id: Mapped[UUID] = mapped_column(
        ForeignKey("payout.payout_id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[UUID] = mapped_column(nullable=False)
    from_stage: Mapped[str] = mapped_column(String, nullable=False)
    to_stage: Mapped[str] = mapped_column(String, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    entry_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", nullable=False, default=dict
    )
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class QuarterlyBalanceReportModel(Base):
    """Per-payee quarterly reconciliation snapshot."""

    __tablename__ = "quarterly_balance_report"

    report_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False)
    payee_id: Mapped[UUID] = mapped_column(nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    opening_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    royalties_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    expenses_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    payments_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    closing_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    agreement_id: Mapped[UUID | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "payee_id", "year", "quarter", name="quarterly_report_period_unique"
        ),
        CheckConstraint("quarter BETWEEN 1 AND 4", name="quarterly_report_quarter_check"),
    )


class BatchOperationModel(Base):
    """Resumable bulk operation."""

    __tablename__ = "batch_operation"

    batch_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    operation_type: Mapped[str] = mapped_column(String, nullable=False)
    target_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    config: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    outcomes: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    total_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
