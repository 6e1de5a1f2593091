"""Catalog and ownership models: works, shares, writers, payees, agreements."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from royalty_engine.models.base import Base, TimestampMixin


class WorkModel(Base, TimestampMixin):
    """Registered copyright."""

    __tablename__ = "work"

    work_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)

    writers: Mapped[list[WorkWriterModel]] = relationship(
        back_populates="work",
        order_by="WorkWriterModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    publishers: Mapped[list[WorkPublisherModel]] = relationship(
        back_populates="work",
        order_by="WorkPublisherModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class WorkWriterModel(Base):
    """A writer's share of a work."""

    __tablename__ = "work_writer"

    work_writer_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    work_id: Mapped[UUID] = mapped_column(
        ForeignKey("work.work_id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    writer_id: Mapped[UUID] = mapped_column(nullable=False)
    writer_name: Mapped[str] = mapped_column(String, nullable=False)
    ownership_percentage: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    controlled_status: Mapped[str] = mapped_column(
        String, nullable=False, default="controlled"
    )

    __table_args__ = (
        CheckConstraint(
            "controlled_status IN ('controlled', 'non_controlled')",
            name="work_writer_controlled_status_check",
        ),
    )

    work: Mapped[WorkModel] = relationship(back_populates="writers")


class WorkPublisherModel(Base):
    """A publisher's share of a work."""

    __tablename__ = "work_publisher"

    work_publisher_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    work_id: Mapped[UUID] = mapped_column(
        ForeignKey("work.work_id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    publisher_id: Mapped[UUID] = mapped_column(nullable=False)
    publisher_name: Mapped[str] = mapped_column(String, nullable=False)
    ownership_percentage: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    controlled_status: Mapped[str] = mapped_column(
        String, nullable=False, default="controlled"
    )

    work: Mapped[WorkModel] = relationship(back_populates="publishers")


class AgreementModel(Base, TimestampMixin):
    """Publishing agreement with commission and advance terms."""

    __tablename__ = "agreement"

    agreement_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    counterparty_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    commission_percentage: Mapped[Decimal] = mapped_column(
        Numeric(7, 4), nullable=False, default=Decimal("0")
    )
    advance_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    advance_recouped_to_date: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    territory_restrictions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "commission_percentage >= 0 AND commission_percentage <= 100",
            name="agreement_commission_range_check",
        ),
    )


class OriginalPublisherModel(Base, TimestampMixin):
    __tablename__ = "original_publisher"

    publisher_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    publisher_name: Mapped[str] = mapped_column(String, nullable=False)
    agreement_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("agreement.agreement_id", ondelete="SET NULL"), nullable=True
    )


class WriterModel(Base, TimestampMixin):
    __tablename__ = "writer"

    writer_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    writer_name: Mapped[str] = mapped_column(String, nullable=False)
    original_publisher_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("original_publisher.publisher_id", ondelete="SET NULL"), nullable=True
    )


class PayeeModel(Base, TimestampMixin):
    """A payable party."""

    __tablename__ = "payee"

    payee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    payee_name: Mapped[str] = mapped_column(String, nullable=False)
    writer_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("writer.writer_id", ondelete="SET NULL"), nullable=True
    )
    payee_type: Mapped[str] = mapped_column(String, nullable=False, default="writer")
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
