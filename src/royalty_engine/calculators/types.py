"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from royalty_engine.calculators.money import ZERO, round_money, within_tolerance
from royalty_engine.domain import CalculationMethod, ReportingPeriod


class AllocationType(str, Enum):
    """Which fee a writer allocation came from."""

    PUBLISHING = "publishing"
    MASTER = "master"
    BOTH = "both"


@dataclass
class WriterAllocation:
    """One controlled writer's share of a work's controlled amount."""

    work_id: UUID
    writer_id: UUID
    writer_name: str
    ownership_percentage: Decimal
    allocated_amount: Decimal  # Rounded to cents
    allocation_type: AllocationType = AllocationType.PUBLISHING
    payment_priority: int = 1
    publishing_amount: Decimal = Decimal("0")
    master_amount: Decimal = Decimal("0")


@dataclass
class FeeAllocation:
    """Proration of a fee onto a single work."""

    work_id: UUID
    title: str
    allocated_amount: Decimal
    controlled_share: Decimal  # 0..1
    controlled_amount: Decimal
    is_custom: bool = False
    fully_uncontrolled: bool = False
    writers: list[WriterAllocation] = field(default_factory=list)

    @property
    def writer_total(self) -> Decimal:
        return sum((w.allocated_amount for w in self.writers), Decimal("0"))


@dataclass
class ProrationResult:
    """Result of prorating one fee across a selection of works."""

    fee: Decimal
    allocations: list[FeeAllocation] = field(default_factory=list)
    unallocated_remainder: Decimal = Decimal("0")

    @property
    def total_allocated(self) -> Decimal:
        return sum((a.allocated_amount for a in self.allocations), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        """True when the fee is fully distributed across the works."""
        return within_tolerance(self.unallocated_remainder, ZERO)

    @property
    def uncontrolled_work_ids(self) -> list[UUID]:
        return [a.work_id for a in self.allocations if a.fully_uncontrolled]

    def writer_allocations(self) -> list[WriterAllocation]:
        return [w for a in self.allocations for w in a.writers]


@dataclass
class PayeeBreakdown:
    """Per-writer totals across every work of a licence."""

    writer_id: UUID
    writer_name: str
    total_allocation: Decimal = Decimal("0")
    publishing_allocation: Decimal = Decimal("0")
    master_allocation: Decimal = Decimal("0")
    priority_level: int = 1


@dataclass
class PayoutCalculationRequest:
    """Inputs for a payee/period royalty calculation."""

    user_id: UUID
    period: ReportingPeriod
    payee_ids: list[UUID] = field(default_factory=list)
    payee_name: str | None = None
    agreement_id: UUID | None = None
    manual_expenses: Decimal | None = None
    # Look up the agreement through the payee hierarchy when no id is given
    resolve_agreement_from_payees: bool = False


@dataclass
class RoyaltyCalculationResult:
    """Gross → net figures for a payee and period."""

    user_id: UUID
    payee_ids: list[UUID]
    period: ReportingPeriod
    gross_royalties: Decimal
    commission_deduction: Decimal
    total_expenses: Decimal
    net_royalties: Decimal
    net_payable: Decimal
    advance_recoupment: Decimal
    amount_due: Decimal
    calculation_method: CalculationMethod
    agreement_id: UUID | None = None
    commission_percentage: Decimal = Decimal("0")
    fee_expenses: Decimal = Decimal("0")
    territory_adjustments: dict[str, Decimal] = field(default_factory=dict)
    royalties_to_date: Decimal = Decimal("0")
    payments_to_date: Decimal = Decimal("0")
    fallback_reason: str | None = None
    row_count: int = 0

    def rounded(self) -> RoyaltyCalculationResult:
        """Return a copy with every money field rounded to cents."""
        return RoyaltyCalculationResult(
            user_id=self.user_id,
            payee_ids=list(self.payee_ids),
            period=self.period,
            gross_royalties=round_money(self.gross_royalties),
            commission_deduction=round_money(self.commission_deduction),
            total_expenses=round_money(self.total_expenses),
            net_royalties=round_money(self.net_royalties),
            net_payable=round_money(self.net_payable),
            advance_recoupment=round_money(self.advance_recoupment),
            amount_due=round_money(self.amount_due),
            calculation_method=self.calculation_method,
            agreement_id=self.agreement_id,
            commission_percentage=self.commission_percentage,
            fee_expenses=round_money(self.fee_expenses),
            territory_adjustments={
                k: round_money(v) for k, v in self.territory_adjustments.items()
            },
            royalties_to_date=round_money(self.royalties_to_date),
            payments_to_date=round_money(self.payments_to_date),
            fallback_reason=self.fallback_reason,
            row_count=self.row_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "gross_royalties": str(self.gross_royalties),
            "commission_deduction": str(self.commission_deduction),
            "total_expenses": str(self.total_expenses),
            "net_royalties": str(self.net_royalties),
            "net_payable": str(self.net_payable),
            "advance_recoupment": str(self.advance_recoupment),
            "amount_due": str(self.amount_due),
            "calculation_method": self.calculation_method.value,
            "agreement_id": str(self.agreement_id) if self.agreement_id else None,
        }
