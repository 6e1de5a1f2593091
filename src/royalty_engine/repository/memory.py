"""In-memory repository for embedding callers, local development and tests.

Replace with SqlAlchemyRepository (or another adapter) for durable storage.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, AsyncGenerator, Sequence
from uuid import UUID

from royalty_engine.domain import (
    Agreement,
    BatchOperation,
    Expense,
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
from royalty_engine.repository.base import ExpenseFilter, PayoutFilter


class InMemoryRepository:
    """Dict-backed RoyaltyRepository.

    Transactions snapshot every table on entry and restore the snapshot if
    the block raises. Records are frozen dataclasses, so shallow copies of
    the tables are enough. No method suspends, so a block that only awaits
    repository calls cannot interleave with another task's block.

    ``inject_failure`` makes the next call to a named method raise, which
    lets callers exercise partial-failure paths.
    """

    _TABLES = (
        "works",
        "payees",
        "writers",
        "original_publishers",
        "agreements",
        "royalty_allocations",
        "expenses",
        "payouts",
        "audit_entries",
        "quarterly_reports",
        "batches",
    )

    def __init__(self) -> None:
        self.works: dict[UUID, Work] = {}
        self.payees: dict[UUID, Payee] = {}
        self.writers: dict[UUID, Writer] = {}
        self.original_publishers: dict[UUID, OriginalPublisher] = {}
        self.agreements: dict[UUID, Agreement] = {}
        self.royalty_allocations: dict[UUID, RoyaltyAllocation] = {}
        self.expenses: dict[UUID, Expense] = {}
        self.payouts: dict[UUID, Payout] = {}
        self.audit_entries: list[WorkflowAuditEntry] = []
        self.quarterly_reports: dict[tuple[UUID, UUID, int, int], QuarterlyBalanceReport] = {}
        self.batches: dict[UUID, BatchOperation] = {}

        self._depth = 0
        self._failures: dict[str, list[Exception]] = {}
        self.calls: list[str] = []

    # -------------------------------------------------------------------------
    # Seeding and test hooks
    # -------------------------------------------------------------------------

    def add(self, *records: Any) -> None:
        """Seed records of any supported type."""
        for record in records:
            if isinstance(record, Work):
                self.works[record.work_id] = record
            elif isinstance(record, Payee):
                self.payees[record.payee_id] = record
            elif isinstance(record, Writer):
                self.writers[record.writer_id] = record
            elif isinstance(record, OriginalPublisher):
                self.original_publishers[record.publisher_id] = record
            elif isinstance(record, Agreement):
                self.agreements[record.agreement_id] = record
            elif isinstance(record, RoyaltyAllocation):
                self.royalty_allocations[record.allocation_id] = record
            elif isinstance(record, Expense):
                self.expenses[record.expense_id] = record
            elif isinstance(record, Payout):
                self.payouts[record.payout_id] = record
            elif isinstance(record, QuarterlyBalanceReport):
                self.quarterly_reports[record.key] = record
            else:
                raise TypeError(f"Unsupported record type: {type(record).__name__}")

    def inject_failure(self, method: str, error: Exception, times: int = 1) -> None:
        """Make the next ``times`` calls to ``method`` raise ``error``."""
        self._failures.setdefault(method, []).extend([error] * times)

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[None, None]:
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        snapshot = {name: self._copy(getattr(self, name)) for name in self._TABLES}
        self._depth = 1
        try:
            yield
        except BaseException:
            for name, table in snapshot.items():
                setattr(self, name, table)
            raise
        finally:
            self._depth = 0

    @staticmethod
    def _copy(table: Any) -> Any:
        return list(table) if isinstance(table, list) else dict(table)

    # -------------------------------------------------------------------------
    # Ownership
    # -------------------------------------------------------------------------

    async def get_work(self, user_id: UUID, work_id: UUID) -> Work | None:
        self._enter("get_work")
        work = self.works.get(work_id)
        if work is None or (work.user_id is not None and work.user_id != user_id):
            return None
        return work

    async def get_payee(self, user_id: UUID, payee_id: UUID) -> Payee | None:
        self._enter("get_payee")
        payee = self.payees.get(payee_id)
        return payee if payee and payee.user_id == user_id else None

    async def find_payees_by_name(self, user_id: UUID, name: str) -> list[Payee]:
        self._enter("find_payees_by_name")
        needle = name.strip().lower()
        if not needle:
            return []
        return [
            p
            for p in self.payees.values()
            if p.user_id == user_id and needle in p.payee_name.lower()
        ]

    async def get_writer(self, user_id: UUID, writer_id: UUID) -> Writer | None:
        self._enter("get_writer")
        writer = self.writers.get(writer_id)
        return writer if writer and writer.user_id == user_id else None

    async def get_original_publisher(
        self, user_id: UUID, publisher_id: UUID
    ) -> OriginalPublisher | None:
        self._enter("get_original_publisher")
        publisher = self.original_publishers.get(publisher_id)
        return publisher if publisher and publisher.user_id == user_id else None

    async def get_agreement(self, user_id: UUID, agreement_id: UUID) -> Agreement | None:
        self._enter("get_agreement")
        agreement = self.agreements.get(agreement_id)
        return agreement if agreement and agreement.user_id == user_id else None

    async def find_agreements_by_counterparty(
        self, user_id: UUID, name: str
    ) -> list[Agreement]:
        self._enter("find_agreements_by_counterparty")
        needle = name.strip().lower()
        if not needle:
            return []
        return [
            a
            for a in self.agreements.values()
            if a.user_id == user_id and needle in a.counterparty_name.lower()
        ]

    # -------------------------------------------------------------------------
    # Royalty rows and expenses
    # -------------------------------------------------------------------------

    async def list_royalty_allocations(
        self,
        user_id: UUID,
        period: ReportingPeriod,
        payee_ids: Sequence[UUID] | None = None,
    ) -> list[RoyaltyAllocation]:
        self._enter("list_royalty_allocations")
        rows = [
            row
            for row in self.royalty_allocations.values()
            if row.user_id == user_id and period.contains(row.created_at)
        ]
        if payee_ids is not None:
            wanted = set(payee_ids)
            rows = [row for row in rows if row.payee_id in wanted]
        return sorted(rows, key=lambda r: r.created_at)

    async def list_expenses(self, expense_filter: ExpenseFilter) -> list[Expense]:
        self._enter("list_expenses")
        f = expense_filter
        result = []
        for expense in self.expenses.values():
            if expense.user_id != f.user_id:
                continue
            if f.status is not None and expense.status != f.status:
                continue
            if f.payout_id is not None and expense.payout_id != f.payout_id:
                continue
            if f.payee_ids is not None and expense.payee_id not in set(f.payee_ids):
                continue
            if f.recoupable_only and not expense.flags.recoupable:
                continue
            if f.period is not None:
                incurred = expense.date_incurred or expense.created_at
                if not f.period.contains(incurred):
                    continue
            result.append(expense)
        return sorted(result, key=lambda e: e.created_at)

    # -------------------------------------------------------------------------
    # Payouts
    # -------------------------------------------------------------------------

    async def get_payout(self, user_id: UUID, payout_id: UUID) -> Payout | None:
        self._enter("get_payout")
        payout = self.payouts.get(payout_id)
        return payout if payout and payout.user_id == user_id else None

    async def list_payouts(self, payout_filter: PayoutFilter) -> list[Payout]:
        self._enter("list_payouts")
        f = payout_filter
        result = []
        for payout in self.payouts.values():
            if payout.user_id != f.user_id or payout.payout_id in set(f.exclude_ids):
                continue
            if f.payee_ids is not None and payout.payee_id not in set(f.payee_ids):
                continue
            if f.status is not None and payout.status != f.status:
                continue
            if f.workflow_stage is not None and payout.workflow_stage != f.workflow_stage:
                continue
            if f.agreement_id is not None and payout.agreement_id != f.agreement_id:
                continue
            if f.paid_within is not None:
                paid_on = payout.payment_date or payout.updated_at
                if not f.paid_within.contains(paid_on):
                    continue
            result.append(payout)
        return sorted(result, key=lambda p: p.created_at, reverse=True)

    async def upsert_payout(self, payout: Payout) -> Payout:
        self._enter("upsert_payout")
        self.payouts[payout.payout_id] = payout
        return payout

    async def insert_workflow_audit_entry(self, entry: WorkflowAuditEntry) -> None:
        self._enter("insert_workflow_audit_entry")
        self.audit_entries.append(entry)

    async def list_workflow_audit_entries(
        self, user_id: UUID, payout_id: UUID
    ) -> list[WorkflowAuditEntry]:
        self._enter("list_workflow_audit_entries")
        entries = [
            e for e in self.audit_entries if e.user_id == user_id and e.payout_id == payout_id
        ]
        # Stable sort keeps insertion order for equal timestamps
        return list(reversed(sorted(entries, key=lambda e: e.created_at)))

    # -------------------------------------------------------------------------
    # Quarterly reports
    # -------------------------------------------------------------------------

    async def get_quarterly_report(
        self, user_id: UUID, payee_id: UUID, year: int, quarter: int
    ) -> QuarterlyBalanceReport | None:
        self._enter("get_quarterly_report")
        return self.quarterly_reports.get((user_id, payee_id, year, quarter))

    async def list_quarterly_reports(
        self, user_id: UUID, payee_id: UUID | None = None
    ) -> list[QuarterlyBalanceReport]:
        self._enter("list_quarterly_reports")
        reports = [
            r
            for r in self.quarterly_reports.values()
            if r.user_id == user_id and (payee_id is None or r.payee_id == payee_id)
        ]
        return sorted(reports, key=lambda r: (r.year, r.quarter), reverse=True)

    async def upsert_quarterly_report(
        self, report: QuarterlyBalanceReport
    ) -> QuarterlyBalanceReport:
        self._enter("upsert_quarterly_report")
        existing = self.quarterly_reports.get(report.key)
        if existing is not None and existing.report_id != report.report_id:
            # Keep the original identity for the (payee, year, quarter) slot
            report = replace(report, report_id=existing.report_id, created_at=existing.created_at)
        self.quarterly_reports[report.key] = report
        return report

    # -------------------------------------------------------------------------
    # Batch operations
    # -------------------------------------------------------------------------

    async def save_batch(self, batch: BatchOperation) -> BatchOperation:
        self._enter("save_batch")
        self.batches[batch.batch_id] = batch
        return batch

    async def get_batch(self, user_id: UUID, batch_id: UUID) -> BatchOperation | None:
        self._enter("get_batch")
        batch = self.batches.get(batch_id)
        return batch if batch and batch.user_id == user_id else None
