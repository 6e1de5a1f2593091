"""Royalty statement rows and expenses."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from royalty_engine.models.base import Base, TimestampMixin


class RoyaltyAllocationModel(Base):
    """One ingested royalty statement line. Never updated."""

    __tablename__ = "royalty_allocation"

    allocation_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False)
    work_id: Mapped[UUID | None] = mapped_column(nullable=True)
    payee_id: Mapped[UUID | None] = mapped_column(nullable=True)
    writer_id: Mapped[UUID | None] = mapped_column(nullable=True)
    song_title: Mapped[str | None] = mapped_column(String, nullable=True)
    gross_royalty_amount: Mapped[Decimal] = mapped_column(nullable=False)
    net_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    controlled_status: Mapped[str] = mapped_column(
        String, nullable=False, default="controlled"
    )
    territory: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("royalty_allocation_user_created_idx", "user_id", "created_at"),
    )


class ExpenseModel(Base, TimestampMixin):
    """Expense netted against payouts. Flags are stored as one JSON object."""

    __tablename__ = "expense"

    expense_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_percentage: Mapped[bool] = mapped_column(nullable=False, default=False)
    percentage_rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    expense_flags: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    expense_type: Mapped[str] = mapped_column(String, nullable=False, default="general")
    payout_id: Mapped[UUID | None] = mapped_column(nullable=True)
    payee_id: Mapped[UUID | None] = mapped_column(nullable=True)
    work_id: Mapped[UUID | None] = mapped_column(nullable=True)
    agreement_id: Mapped[UUID | None] = mapped_column(nullable=True)
    expense_cap: Mapped[Decimal | None] = mapped_column(nullable=True)
    valid_from: Mapped[date | None] = mapped_column(nullable=True)
    valid_to: Mapped[date | None] = mapped_column(nullable=True)
    date_incurred: Mapped[date | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="expense_status_check",
        ),
    )
