"""Domain records exchanged between the engine and its repository.

Records are plain dataclasses. The repository returns them and the engine
produces new ones (via ``dataclasses.replace``) instead of mutating what it
was handed, so a failed write never leaves a half-updated object behind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID, uuid4

from royalty_engine.exceptions import InvalidInputError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ControlledStatus(str, Enum):
    """Whether a party's share is administered by the paying publisher."""

    CONTROLLED = "controlled"
    NON_CONTROLLED = "non_controlled"

    @classmethod
    def parse(cls, value: str | ControlledStatus | None) -> ControlledStatus:
        """Normalize imported spellings ('C', 'Controlled', 'NC', ...)."""
        if isinstance(value, ControlledStatus):
            return value
        normalized = (value or "").strip().lower().replace("-", "_").replace(" ", "_")
        if normalized in {"c", "controlled", "yes", "true"}:
            return cls.CONTROLLED
        return cls.NON_CONTROLLED


class ExpenseStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CalculationMethod(str, Enum):
    """How commission terms were obtained for a payout."""

    AGREEMENT_BASED = "agreement_based"
    MANUAL = "manual"


# =============================================================================
# Catalog / ownership
# =============================================================================


@dataclass(frozen=True)
class WriterShare:
    """A writer's share of a work."""

    writer_id: UUID
    writer_name: str
    ownership_percentage: Decimal
    controlled_status: ControlledStatus = ControlledStatus.CONTROLLED

    @property
    def is_controlled(self) -> bool:
        return self.controlled_status == ControlledStatus.CONTROLLED


@dataclass(frozen=True)
class PublisherShare:
    """A publisher's share of a work."""

    publisher_id: UUID
    publisher_name: str
    ownership_percentage: Decimal
    controlled_status: ControlledStatus = ControlledStatus.CONTROLLED

    @property
    def is_controlled(self) -> bool:
        return self.controlled_status == ControlledStatus.CONTROLLED


@dataclass(frozen=True)
class Work:
    """A registered copyright with ordered writer and publisher shares."""

    work_id: UUID
    title: str
    writers: tuple[WriterShare, ...] = ()
    publishers: tuple[PublisherShare, ...] = ()
    user_id: UUID | None = None


@dataclass(frozen=True)
class Agreement:
    """Publishing agreement (contract) carrying commission and advance terms."""

    agreement_id: UUID
    user_id: UUID
    title: str
    counterparty_name: str = ""
    commission_percentage: Decimal = Decimal("0")
    advance_amount: Decimal = Decimal("0")
    advance_recouped_to_date: Decimal = Decimal("0")
    status: str = "active"
    territory_restrictions: tuple[str, ...] = ()

    @property
    def remaining_advance(self) -> Decimal:
        """Advance still to be recouped."""
        return max(Decimal("0"), self.advance_amount - self.advance_recouped_to_date)


@dataclass(frozen=True)
class OriginalPublisher:
    publisher_id: UUID
    user_id: UUID
    publisher_name: str
    agreement_id: UUID | None = None


@dataclass(frozen=True)
class Writer:
    writer_id: UUID
    user_id: UUID
    writer_name: str
    original_publisher_id: UUID | None = None


@dataclass(frozen=True)
class Payee:
    """A payable party, linked to a writer."""

    payee_id: UUID
    user_id: UUID
    payee_name: str
    writer_id: UUID | None = None
    payee_type: str = "writer"
    is_primary: bool = False


# =============================================================================
# Royalty rows and expenses
# =============================================================================


@dataclass(frozen=True)
class RoyaltyAllocation:
    """One ingested royalty statement line. Immutable once created."""

    allocation_id: UUID
    user_id: UUID
    gross_royalty_amount: Decimal
    created_at: datetime
    work_id: UUID | None = None
    payee_id: UUID | None = None
    writer_id: UUID | None = None
    net_amount: Decimal | None = None
    controlled_status: ControlledStatus = ControlledStatus.CONTROLLED
    territory: str | None = None
    song_title: str | None = None


@dataclass(frozen=True)
class ExpenseFlags:
    """Normalized, non-exclusive expense flags."""

    recoupable: bool = False
    commission_fee: bool = False
    finder_fee: bool = False

    @property
    def is_fee(self) -> bool:
        """Fee-type expenses count toward commission, not recoupable expenses."""
        return self.commission_fee or self.finder_fee

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any] | None = None, **legacy: Any) -> ExpenseFlags:
        """Build flags from an imported row.

        Accepts either a combined mapping (``{"recoupable": True}``) or the
        legacy ``is_recoupable`` / ``is_commission_fee`` / ``is_finder_fee``
        columns. A flag is set if either spelling sets it.
        """
        raw = raw or {}
        return cls(
            recoupable=bool(raw.get("recoupable") or legacy.get("is_recoupable")),
            commission_fee=bool(raw.get("commission_fee") or legacy.get("is_commission_fee")),
            finder_fee=bool(raw.get("finder_fee") or legacy.get("is_finder_fee")),
        )


@dataclass(frozen=True)
class Expense:
    """An expense that may be netted against a payout."""

    expense_id: UUID
    user_id: UUID
    description: str
    amount: Decimal = Decimal("0")
    is_percentage: bool = False
    percentage_rate: Decimal = Decimal("0")
    flags: ExpenseFlags = field(default_factory=ExpenseFlags)
    status: ExpenseStatus = ExpenseStatus.PENDING
    expense_type: str = "general"
    payout_id: UUID | None = None
    payee_id: UUID | None = None
    work_id: UUID | None = None
    agreement_id: UUID | None = None
    expense_cap: Decimal | None = None
    valid_from: date | None = None
    valid_to: date | None = None
    date_incurred: date | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_approved(self) -> bool:
        return self.status == ExpenseStatus.APPROVED

    def overlaps(self, period: ReportingPeriod) -> bool:
        """Validity window intersects the period."""
        if self.valid_from and self.valid_from > period.end:
            return False
        if self.valid_to and self.valid_to < period.start:
            return False
        return True


# =============================================================================
# Periods
# =============================================================================


@dataclass(frozen=True)
class ReportingPeriod:
    """Inclusive date range; ``end`` covers the whole end day."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise InvalidInputError(
                "period", f"start {self.start} is after end {self.end}"
            )

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.start, time.min, tzinfo=timezone.utc)

    @property
    def end_before(self) -> datetime:
        """Exclusive upper bound: midnight after the end day."""
        return datetime.combine(self.end + timedelta(days=1), time.min, tzinfo=timezone.utc)

    def contains(self, moment: datetime | date) -> bool:
        if not isinstance(moment, datetime):
            return self.start <= moment <= self.end
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return self.start_at <= moment < self.end_before


# =============================================================================
# Payouts, reports, audit
# =============================================================================


@dataclass(frozen=True)
class Payout:
    """One payee, one period."""

    payout_id: UUID
    user_id: UUID
    payee_id: UUID
    period: str
    period_start: date | None = None
    period_end: date | None = None
    gross_royalties: Decimal = Decimal("0")
    commission_deduction: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    net_payable: Decimal = Decimal("0")
    advance_recoupment: Decimal = Decimal("0")
    amount_due: Decimal = Decimal("0")
    royalties_to_date: Decimal = Decimal("0")
    payments_to_date: Decimal = Decimal("0")
    calculation_method: CalculationMethod = CalculationMethod.MANUAL
    agreement_id: UUID | None = None
    workflow_stage: str = "draft"
    status: str = "pending"
    failure_reason: str | None = None
    quarterly_report_id: UUID | None = None
    payment_date: date | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def net_royalties(self) -> Decimal:
        return self.gross_royalties - self.commission_deduction


@dataclass(frozen=True)
class QuarterlyBalanceReport:
    """Per-payee, per-quarter reconciliation snapshot."""

    report_id: UUID
    user_id: UUID
    payee_id: UUID
    year: int
    quarter: int
    opening_balance: Decimal = Decimal("0")
    royalties_amount: Decimal = Decimal("0")
    expenses_amount: Decimal = Decimal("0")
    payments_amount: Decimal = Decimal("0")
    agreement_id: UUID | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def closing_balance(self) -> Decimal:
        return (
            self.opening_balance
            + self.royalties_amount
            - self.expenses_amount
            - self.payments_amount
        )

    @property
    def period_label(self) -> str:
        return f"Q{self.quarter} {self.year}"

    @property
    def key(self) -> tuple[UUID, UUID, int, int]:
        return (self.user_id, self.payee_id, self.year, self.quarter)


@dataclass(frozen=True)
class WorkflowAuditEntry:
    """Append-only record of a workflow stage transition."""

    entry_id: UUID
    payout_id: UUID
    user_id: UUID
    from_stage: str
    to_stage: str
    reason: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    actor_id: UUID | None = None
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        payout: Payout,
        to_stage: str,
        reason: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        actor_id: UUID | None = None,
    ) -> WorkflowAuditEntry:
        return cls(
            entry_id=uuid4(),
            payout_id=payout.payout_id,
            user_id=payout.user_id,
            from_stage=payout.workflow_stage,
            to_stage=to_stage,
            reason=reason,
            metadata=dict(metadata or {}),
            actor_id=actor_id,
        )


class BatchStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


@dataclass(frozen=True)
class BatchTargetOutcome:
    target_id: UUID
    status: str = "pending"  # pending, completed, failed
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class BatchOperation:
    """Explicit record of a bulk operation over many payouts."""

    batch_id: UUID
    user_id: UUID
    operation_type: str
    target_ids: tuple[UUID, ...]
    config: Mapping[str, Any] = field(default_factory=dict)
    outcomes: Mapping[UUID, BatchTargetOutcome] = field(default_factory=dict)
    status: BatchStatus = BatchStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def total_count(self) -> int:
        return len(self.target_ids)

    @property
    def completed_count(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.status == "completed")

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.status == "failed")

    def unfinished_targets(self) -> list[UUID]:
        """Targets not yet completed, in submission order."""
        return [
            target_id
            for target_id in self.target_ids
            if self.outcomes.get(target_id, BatchTargetOutcome(target_id)).status
            != "completed"
        ]
