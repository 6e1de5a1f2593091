"""Persistence boundary for the royalty engine.

All repository adapters implement the RoyaltyRepository protocol. User
isolation is enforced by the adapter: every call carries the caller's
``user_id`` and the engine passes it through unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AsyncContextManager, Protocol, Sequence
from uuid import UUID

from royalty_engine.domain import (
    Agreement,
    BatchOperation,
    Expense,
    ExpenseStatus,
    OriginalPublisher,
    Payee,
    Payout,
    QuarterlyBalanceReport,
    ReportingPeriod,
    RoyaltyAllocation,
    Work,
    WorkflowAuditEntry,
    Writer,
)


@dataclass(frozen=True)
class ExpenseFilter:
    """Filter for expense queries. ``None`` fields do not filter."""

    user_id: UUID
    period: ReportingPeriod | None = None
    payee_ids: Sequence[UUID] | None = None
    status: ExpenseStatus | None = ExpenseStatus.APPROVED
    payout_id: UUID | None = None
    recoupable_only: bool = False


@dataclass(frozen=True)
class PayoutFilter:
    """Filter for payout queries. ``None`` fields do not filter."""

    user_id: UUID
    payee_ids: Sequence[UUID] | None = None
    status: str | None = None
    workflow_stage: str | None = None
    agreement_id: UUID | None = None
    paid_within: ReportingPeriod | None = None
    exclude_ids: Sequence[UUID] = field(default_factory=tuple)


class RoyaltyRepository(Protocol):
    """Protocol for persistence adapters.

    Implementations:
    - InMemoryRepository: embedding callers and tests
    - SqlAlchemyRepository: async SQLAlchemy session
    """

    def transaction(self) -> AsyncContextManager[None]:
        """All-or-nothing unit of work.

        Writes made inside the block are committed together when it exits
        normally and discarded when it raises.
        """
        ...

    # Ownership

    async def get_work(self, user_id: UUID, work_id: UUID) -> Work | None:
        ...

    async def get_payee(self, user_id: UUID, payee_id: UUID) -> Payee | None:
        ...

    async def find_payees_by_name(self, user_id: UUID, name: str) -> list[Payee]:
        """Payees whose name equals or contains ``name`` (case-insensitive)."""
        ...

    async def get_writer(self, user_id: UUID, writer_id: UUID) -> Writer | None:
        ...

    async def get_original_publisher(
        self, user_id: UUID, publisher_id: UUID
    ) -> OriginalPublisher | None:
        ...

    async def get_agreement(self, user_id: UUID, agreement_id: UUID) -> Agreement | None:
        ...

    async def find_agreements_by_counterparty(
        self, user_id: UUID, name: str
    ) -> list[Agreement]:
        ...

    # Royalty rows and expenses

    async def list_royalty_allocations(
        self,
        user_id: UUID,
        period: ReportingPeriod,
        payee_ids: Sequence[UUID] | None = None,
    ) -> list[RoyaltyAllocation]:
        """Rows created within the period (end day inclusive)."""
        ...

    async def list_expenses(self, expense_filter: ExpenseFilter) -> list[Expense]:
        ...

    # Payouts

    async def get_payout(self, user_id: UUID, payout_id: UUID) -> Payout | None:
        ...

    async def list_payouts(self, payout_filter: PayoutFilter) -> list[Payout]:
        ...

    async def upsert_payout(self, payout: Payout) -> Payout:
        ...

    async def insert_workflow_audit_entry(self, entry: WorkflowAuditEntry) -> None:
        ...

    async def list_workflow_audit_entries(
        self, user_id: UUID, payout_id: UUID
    ) -> list[WorkflowAuditEntry]:
        """Entries for a payout, newest first."""
        ...

    # Quarterly reports

    async def get_quarterly_report(
        self, user_id: UUID, payee_id: UUID, year: int, quarter: int
    ) -> QuarterlyBalanceReport | None:
        ...

    async def list_quarterly_reports(
        self, user_id: UUID, payee_id: UUID | None = None
    ) -> list[QuarterlyBalanceReport]:
        """Reports newest first."""
        ...

    async def upsert_quarterly_report(
        self, report: QuarterlyBalanceReport
    ) -> QuarterlyBalanceReport:
        """Insert or replace by (user_id, payee_id, year, quarter)."""
        ...

    # Batch operations

    async def save_batch(self, batch: BatchOperation) -> BatchOperation:
        ...

    async def get_batch(self, user_id: UUID, batch_id: UUID) -> BatchOperation | None:
        ...
