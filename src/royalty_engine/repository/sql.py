"""SQLAlchemy implementation of the RoyaltyRepository protocol."""

from __future__ import annotations

import functools
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Awaitable, Callable, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from royalty_engine.domain import (
    Agreement,
    BatchOperation,
    BatchStatus,
    BatchTargetOutcome,
    CalculationMethod,
    ControlledStatus,
    Expense,
    ExpenseFlags,
    ExpenseStatus,
    OriginalPublisher,
    Payee,
    Payout,
    PublisherShare,
    QuarterlyBalanceReport,
    ReportingPeriod,
    RoyaltyAllocation,
    Work,
    WorkflowAuditEntry,
    Writer,
    WriterShare,
)
from royalty_engine.exceptions import ExternalServiceError
from royalty_engine.models import (
    AgreementModel,
    Base,
    BatchOperationModel,
    ExpenseModel,
    OriginalPublisherModel,
    PayeeModel,
    PayoutModel,
    QuarterlyBalanceReportModel,
    RoyaltyAllocationModel,
    WorkflowAuditEntryModel,
    WorkModel,
    WorkPublisherModel,
    WorkWriterModel,
    WriterModel,
)
from royalty_engine.repository.base import ExpenseFilter, PayoutFilter

logger = logging.getLogger(__name__)

R = TypeVar("R")


def _external(method: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R]]:
    """Surface connection-level database failures as ExternalServiceError."""

    @functools.wraps(method)
    async def wrapper(*args: Any, **kwargs: Any) -> R:
        try:
            return await method(*args, **kwargs)
        except (OperationalError, InterfaceError) as e:
            logger.warning("Database call %s failed: %s", method.__name__, e)
            raise ExternalServiceError(f"database unavailable during {method.__name__}") from e

    return wrapper


def _aware(value: datetime) -> datetime:
    """SQLite returns naive datetimes; everything is stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _json_safe(data: dict[str, Any]) -> dict[str, Any]:
    return {k: str(v) if isinstance(v, UUID) else v for k, v in data.items()}


class SqlAlchemyRepository:
    """RoyaltyRepository backed by an async session factory.

    ``transaction()`` binds one session to the current task; every call
    made inside the block uses it and the block commits or rolls back as a
    unit. Calls made outside a transaction run in their own short-lived
    session and commit immediately. Concurrent tasks never share a session.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._current: ContextVar[AsyncSession | None] = ContextVar(
            f"royalty_session_{id(self)}", default=None
        )

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[None, None]:
        if self._current.get() is not None:
            yield
            return

        async with self.session_factory() as session:
            async with session.begin():
                token = self._current.set(session)
                try:
                    yield
                finally:
                    self._current.reset(token)

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        current = self._current.get()
        if current is not None:
            yield current
            await current.flush()
            return

        async with self.session_factory() as session:
            async with session.begin():
                yield session

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    async def add(self, *records: Any) -> None:
        """Insert records of any supported domain type."""
        async with self._session() as session:
            for record in records:
                session.add(_model_for(record))

    # -------------------------------------------------------------------------
    # Ownership
    # -------------------------------------------------------------------------

    @_external
    async def get_work(self, user_id: UUID, work_id: UUID) -> Work | None:
        async with self._session() as session:
            result = await session.execute(
                select(WorkModel).where(
                    WorkModel.work_id == work_id,
                    or_(WorkModel.user_id == user_id, WorkModel.user_id.is_(None)),
                )
            )
            model = result.scalar_one_or_none()
            return _work(model) if model else None

    @_external
    async def get_payee(self, user_id: UUID, payee_id: UUID) -> Payee | None:
        async with self._session() as session:
            result = await session.execute(
                select(PayeeModel).where(
                    PayeeModel.payee_id == payee_id, PayeeModel.user_id == user_id
                )
            )
            model = result.scalar_one_or_none()
            return _payee(model) if model else None

    @_external
    async def find_payees_by_name(self, user_id: UUID, name: str) -> list[Payee]:
        needle = name.strip()
        if not needle:
            return []
        async with self._session() as session:
            result = await session.execute(
                select(PayeeModel)
                .where(
                    PayeeModel.user_id == user_id,
                    PayeeModel.payee_name.ilike(f"%{needle}%"),
                )
                .order_by(PayeeModel.payee_name)
            )
            return [_payee(m) for m in result.scalars()]

    @_external
    async def get_writer(self, user_id: UUID, writer_id: UUID) -> Writer | None:
        async with self._session() as session:
            result = await session.execute(
                select(WriterModel).where(
                    WriterModel.writer_id == writer_id, WriterModel.user_id == user_id
                )
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return Writer(
                writer_id=model.writer_id,
                user_id=model.user_id,
                writer_name=model.writer_name,
                original_publisher_id=model.original_publisher_id,
            )

    @_external
    async def get_original_publisher(
        self, user_id: UUID, publisher_id: UUID
    ) -> OriginalPublisher | None:
        async with self._session() as session:
            result = await session.execute(
                select(OriginalPublisherModel).where(
                    OriginalPublisherModel.publisher_id == publisher_id,
                    OriginalPublisherModel.user_id == user_id,
                )
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return OriginalPublisher(
                publisher_id=model.publisher_id,
                user_id=model.user_id,
                publisher_name=model.publisher_name,
                agreement_id=model.agreement_id,
            )

    @_external
    async def get_agreement(self, user_id: UUID, agreement_id: UUID) -> Agreement | None:
        async with self._session() as session:
            result = await session.execute(
                select(AgreementModel).where(
                    AgreementModel.agreement_id == agreement_id,
                    AgreementModel.user_id == user_id,
                )
            )
            model = result.scalar_one_or_none()
            return _agreement(model) if model else None

    @_external
    async def find_agreements_by_counterparty(
        self, user_id: UUID, name: str
    ) -> list[Agreement]:
        needle = name.strip()
        if not needle:
            return []
        async with self._session() as session:
            result = await session.execute(
                select(AgreementModel).where(
                    AgreementModel.user_id == user_id,
                    AgreementModel.counterparty_name.ilike(f"%{needle}%"),
                )
            )
            return [_agreement(m) for m in result.scalars()]

    # -------------------------------------------------------------------------
    # Royalty rows and expenses
    # -------------------------------------------------------------------------

    @_external
    async def list_royalty_allocations(
        self,
        user_id: UUID,
        period: ReportingPeriod,
        payee_ids: Sequence[UUID] | None = None,
    ) -> list[RoyaltyAllocation]:
        query = select(RoyaltyAllocationModel).where(
            RoyaltyAllocationModel.user_id == user_id,
            RoyaltyAllocationModel.created_at >= period.start_at,
            RoyaltyAllocationModel.created_at < period.end_before,
        )
        if payee_ids is not None:
            query = query.where(RoyaltyAllocationModel.payee_id.in_(list(payee_ids)))
        async with self._session() as session:
            result = await session.execute(query.order_by(RoyaltyAllocationModel.created_at))
            return [_allocation(m) for m in result.scalars()]

    @_external
    async def list_expenses(self, expense_filter: ExpenseFilter) -> list[Expense]:
        f = expense_filter
        query = select(ExpenseModel).where(ExpenseModel.user_id == f.user_id)
        if f.status is not None:
            query = query.where(ExpenseModel.status == ExpenseStatus(f.status).value)
        if f.payout_id is not None:
            query = query.where(ExpenseModel.payout_id == f.payout_id)
        if f.payee_ids is not None:
            query = query.where(ExpenseModel.payee_id.in_(list(f.payee_ids)))
        if f.period is not None:
            query = query.where(
                or_(
                    and_(
                        ExpenseModel.date_incurred.is_not(None),
                        ExpenseModel.date_incurred >= f.period.start,
                        ExpenseModel.date_incurred <= f.period.end,
                    ),
                    and_(
                        ExpenseModel.date_incurred.is_(None),
                        ExpenseModel.created_at >= f.period.start_at,
                        ExpenseModel.created_at < f.period.end_before,
                    ),
                )
            )
        async with self._session() as session:
            result = await session.execute(query.order_by(ExpenseModel.created_at))
            expenses = [_expense(m) for m in result.scalars()]
        if f.recoupable_only:
            # Flags are JSON; filter after loading to stay dialect-neutral
            expenses = [e for e in expenses if e.flags.recoupable]
        return expenses

    # -------------------------------------------------------------------------
    # Payouts
    # -------------------------------------------------------------------------

    @_external
    async def get_payout(self, user_id: UUID, payout_id: UUID) -> Payout | None:
        async with self._session() as session:
            result = await session.execute(
                select(PayoutModel).where(
                    PayoutModel.payout_id == payout_id, PayoutModel.user_id == user_id
                )
            )
            model = result.scalar_one_or_none()
            return _payout(model) if model else None

    @_external
    async def list_payouts(self, payout_filter: PayoutFilter) -> list[Payout]:
        f = payout_filter
        query = select(PayoutModel).where(PayoutModel.user_id == f.user_id)
        if f.exclude_ids:
            query = query.where(PayoutModel.payout_id.not_in(list(f.exclude_ids)))
        if f.payee_ids is not None:
            query = query.where(PayoutModel.payee_id.in_(list(f.payee_ids)))
        if f.status is not None:
            query = query.where(PayoutModel.status == f.status)
        if f.workflow_stage is not None:
            query = query.where(PayoutModel.workflow_stage == f.workflow_stage)
        if f.agreement_id is not None:
            query = query.where(PayoutModel.agreement_id == f.agreement_id)
        if f.paid_within is not None:
            query = query.where(
                or_(
                    and_(
                        PayoutModel.payment_date.is_not(None),
                        PayoutModel.payment_date >= f.paid_within.start,
                        PayoutModel.payment_date <= f.paid_within.end,
                    ),
                    and_(
                        PayoutModel.payment_date.is_(None),
                        PayoutModel.updated_at >= f.paid_within.start_at,
                        PayoutModel.updated_at < f.paid_within.end_before,
                    ),
                )
            )
        async with self._session() as session:
            result = await session.execute(query.order_by(PayoutModel.created_at.desc()))
            return [_payout(m) for m in result.scalars()]

    @_external
    async def upsert_payout(self, payout: Payout) -> Payout:
        async with self._session() as session:
            await session.merge(_payout_model(payout))
        return payout

    @_external
    async def insert_workflow_audit_entry(self, entry: WorkflowAuditEntry) -> None:
        async with self._session() as session:
            session.add(
                WorkflowAuditEntryModel(
                    entry_id=entry.entry_id,
                    payout_id=entry.payout_id,
                    user_id=entry.user_id,
                    from_stage=entry.from_stage,
                    to_stage=entry.to_stage,
                    reason=entry.reason,
                    entry_metadata=_json_safe(dict(entry.metadata)),
                    actor_id=entry.actor_id,
                    created_at=entry.created_at,
                )
            )

    @_external
    async def list_workflow_audit_entries(
        self, user_id: UUID, payout_id: UUID
    ) -> list[WorkflowAuditEntry]:
        async with self._session() as session:
            result = await session.execute(
                select(WorkflowAuditEntryModel)
                .where(
                    WorkflowAuditEntryModel.user_id == user_id,
                    WorkflowAuditEntryModel.payout_id == payout_id,
                )
                .order_by(WorkflowAuditEntryModel.created_at.desc())
            )
            return [
                WorkflowAuditEntry(
                    entry_id=m.entry_id,
                    payout_id=m.payout_id,
                    user_id=m.user_id,
                    from_stage=m.from_stage,
                    to_stage=m.to_stage,
                    reason=m.reason,
                    metadata=dict(m.entry_metadata or {}),
                    actor_id=m.actor_id,
                    created_at=_aware(m.created_at),
                )
                for m in result.scalars()
            ]

    # -------------------------------------------------------------------------
    # Quarterly reports
    # -------------------------------------------------------------------------

    @staticmethod
    async def _report_model_for(
        session: AsyncSession, user_id: UUID, payee_id: UUID, year: int, quarter: int
    ) -> QuarterlyBalanceReportModel | None:
        result = await session.execute(
            select(QuarterlyBalanceReportModel).where(
                QuarterlyBalanceReportModel.user_id == user_id,
                QuarterlyBalanceReportModel.payee_id == payee_id,
                QuarterlyBalanceReportModel.year == year,
                QuarterlyBalanceReportModel.quarter == quarter,
            )
        )
        return result.scalar_one_or_none()

    @_external
    async def get_quarterly_report(
        self, user_id: UUID, payee_id: UUID, year: int, quarter: int
    ) -> QuarterlyBalanceReport | None:
        async with self._session() as session:
            model = await self._report_model_for(session, user_id, payee_id, year, quarter)
            return _report(model) if model else None

    @_external
    async def list_quarterly_reports(
        self, user_id: UUID, payee_id: UUID | None = None
    ) -> list[QuarterlyBalanceReport]:
        query = select(QuarterlyBalanceReportModel).where(
            QuarterlyBalanceReportModel.user_id == user_id
        )
        if payee_id is not None:
            query = query.where(QuarterlyBalanceReportModel.payee_id == payee_id)
        async with self._session() as session:
            result = await session.execute(
                query.order_by(
                    QuarterlyBalanceReportModel.year.desc(),
                    QuarterlyBalanceReportModel.quarter.desc(),
                )
            )
            return [_report(m) for m in result.scalars()]

    @_external
    async def upsert_quarterly_report(
        self, report: QuarterlyBalanceReport
    ) -> QuarterlyBalanceReport:
        async with self._session() as session:
            model = await self._report_model_for(session, *report.key)
            if model is None:
                model = _report_model(report)
                session.add(model)
            else:
                model.opening_balance = report.opening_balance
                model.royalties_amount = report.royalties_amount
                model.expenses_amount = report.expenses_amount
                model.payments_amount = report.payments_amount
                model.closing_balance = report.closing_balance
                model.agreement_id = report.agreement_id
            await session.flush()
            return _report(model)

    # -------------------------------------------------------------------------
    # Batch operations
    # -------------------------------------------------------------------------

    @_external
    async def save_batch(self, batch: BatchOperation) -> BatchOperation:
        async with self._session() as session:
            await session.merge(
                BatchOperationModel(
                    batch_id=batch.batch_id,
                    user_id=batch.user_id,
                    operation_type=batch.operation_type,
                    target_ids=[str(t) for t in batch.target_ids],
                    config=_json_safe(dict(batch.config)),
                    outcomes={
                        str(target_id): {
                            "status": outcome.status,
                            "error_code": outcome.error_code,
                            "error_message": outcome.error_message,
                        }
                        for target_id, outcome in batch.outcomes.items()
                    },
                    status=BatchStatus(batch.status).value,
                    total_count=batch.total_count,
                    completed_count=batch.completed_count,
                    failed_count=batch.failed_count,
                    created_at=batch.created_at,
                    updated_at=batch.updated_at,
                )
            )
        return batch

    @_external
    async def get_batch(self, user_id: UUID, batch_id: UUID) -> BatchOperation | None:
        async with self._session() as session:
            result = await session.execute(
                select(BatchOperationModel).where(
                    BatchOperationModel.batch_id == batch_id,
                    BatchOperationModel.user_id == user_id,
                )
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return BatchOperation(
                batch_id=model.batch_id,
                user_id=model.user_id,
                operation_type=model.operation_type,
                target_ids=tuple(UUID(t) for t in model.target_ids),
                config=dict(model.config or {}),
                outcomes={
                    UUID(target_id): BatchTargetOutcome(
                        target_id=UUID(target_id),
                        status=data["status"],
                        error_code=data.get("error_code"),
                        error_message=data.get("error_message"),
                    )
                    for target_id, data in (model.outcomes or {}).items()
                },
                status=BatchStatus(model.status),
                created_at=_aware(model.created_at),
                updated_at=_aware(model.updated_at),
            )


# =============================================================================
# Domain <-> ORM conversion
# =============================================================================


def _work_model(work: Work) -> WorkModel:
    return WorkModel(
        work_id=work.work_id,
        user_id=work.user_id,
        title=work.title,
        writers=[
            WorkWriterModel(
                position=index,
                writer_id=w.writer_id,
                writer_name=w.writer_name,
                ownership_percentage=w.ownership_percentage,
                controlled_status=w.controlled_status.value,
            )
            for index, w in enumerate(work.writers)
        ],
        publishers=[
            WorkPublisherModel(
                position=index,
                publisher_id=p.publisher_id,
                publisher_name=p.publisher_name,
                ownership_percentage=p.ownership_percentage,
                controlled_status=p.controlled_status.value,
            )
            for index, p in enumerate(work.publishers)
        ],
    )


def _work(model: WorkModel) -> Work:
    return Work(
        work_id=model.work_id,
        title=model.title,
        user_id=model.user_id,
        writers=tuple(
            WriterShare(
                writer_id=w.writer_id,
                writer_name=w.writer_name,
                ownership_percentage=w.ownership_percentage,
                controlled_status=ControlledStatus.parse(w.controlled_status),
            )
            for w in model.writers
        ),
        publishers=tuple(
            PublisherShare(
                publisher_id=p.publisher_id,
                publisher_name=p.publisher_name,
                ownership_percentage=p.ownership_percentage,
                controlled_status=ControlledStatus.parse(p.controlled_status),
            )
            for p in model.publishers
        ),
    )


def _payee(model: PayeeModel) -> Payee:
    return Payee(
        payee_id=model.payee_id,
        user_id=model.user_id,
        payee_name=model.payee_name,
        writer_id=model.writer_id,
        payee_type=model.payee_type,
        is_primary=model.is_primary,
    )


def _agreement(model: AgreementModel) -> Agreement:
    return Agreement(
        agreement_id=model.agreement_id,
        user_id=model.user_id,
        title=model.title,
        counterparty_name=model.counterparty_name,
        commission_percentage=Decimal(model.commission_percentage),
        advance_amount=Decimal(model.advance_amount),
        advance_recouped_to_date=Decimal(model.advance_recouped_to_date),
        status=model.status,
        territory_restrictions=tuple(model.territory_restrictions or ()),
    )


def _allocation_model(row: RoyaltyAllocation) -> RoyaltyAllocationModel:
    return RoyaltyAllocationModel(
        allocation_id=row.allocation_id,
        user_id=row.user_id,
        work_id=row.work_id,
        payee_id=row.payee_id,
        writer_id=row.writer_id,
        song_title=row.song_title,
        gross_royalty_amount=row.gross_royalty_amount,
        net_amount=row.net_amount,
        controlled_status=row.controlled_status.value,
        territory=row.territory,
        created_at=row.created_at,
    )


def _allocation(model: RoyaltyAllocationModel) -> RoyaltyAllocation:
    return RoyaltyAllocation(
        allocation_id=model.allocation_id,
        user_id=model.user_id,
        gross_royalty_amount=Decimal(model.gross_royalty_amount),
        created_at=_aware(model.created_at),
        work_id=model.work_id,
        payee_id=model.payee_id,
        writer_id=model.writer_id,
        net_amount=Decimal(model.net_amount) if model.net_amount is not None else None,
        controlled_status=ControlledStatus.parse(model.controlled_status),
        territory=model.territory,
        song_title=model.song_title,
    )


def _expense_model(expense: Expense) -> ExpenseModel:
    return ExpenseModel(
        expense_id=expense.expense_id,
        user_id=expense.user_id,
        description=expense.description,
        amount=expense.amount,
        is_percentage=expense.is_percentage,
        percentage_rate=expense.percentage_rate,
        expense_flags={
            "recoupable": expense.flags.recoupable,
            "commission_fee": expense.flags.commission_fee,
            "finder_fee": expense.flags.finder_fee,
        },
        status=ExpenseStatus(expense.status).value,
        expense_type=expense.expense_type,
        payout_id=expense.payout_id,
        payee_id=expense.payee_id,
        work_id=expense.work_id,
        agreement_id=expense.agreement_id,
        expense_cap=expense.expense_cap,
        valid_from=expense.valid_from,
        valid_to=expense.valid_to,
        date_incurred=expense.date_incurred,
        created_at=expense.created_at,
    )


def _expense(model: ExpenseModel) -> Expense:
    return Expense(
        expense_id=model.expense_id,
        user_id=model.user_id,
        description=model.description,
        amount=Decimal(model.amount),
        is_percentage=model.is_percentage,
        percentage_rate=Decimal(model.percentage_rate),
        flags=ExpenseFlags.from_raw(model.expense_flags),
        status=ExpenseStatus(model.status),
        expense_type=model.expense_type,
        payout_id=model.payout_id,
        payee_id=model.payee_id,
        work_id=model.work_id,
        agreement_id=model.agreement_id,
        expense_cap=Decimal(model.expense_cap) if model.expense_cap is not None else None,
        valid_from=model.valid_from,
        valid_to=model.valid_to,
        date_incurred=model.date_incurred,
        created_at=_aware(model.created_at),
    )


def _payout_model(payout: Payout) -> PayoutModel:
    return PayoutModel(
        payout_id=payout.payout_id,
        user_id=payout.user_id,
        payee_id=payout.payee_id,
        period=payout.period,
        period_start=payout.period_start,
        period_end=payout.period_end,
        gross_royalties=payout.gross_royalties,
        commission_deduction=payout.commission_deduction,
        total_expenses=payout.total_expenses,
        net_payable=payout.net_payable,
        advance_recoupment=payout.advance_recoupment,
        amount_due=payout.amount_due,
        royalties_to_date=payout.royalties_to_date,
        payments_to_date=payout.payments_to_date,
        calculation_method=CalculationMethod(payout.calculation_method).value,
        agreement_id=payout.agreement_id,
        workflow_stage=payout.workflow_stage,
        status=payout.status,
        failure_reason=payout.failure_reason,
        quarterly_report_id=payout.quarterly_report_id,
        payment_date=payout.payment_date,
        created_at=payout.created_at,
        updated_at=payout.updated_at,
    )


def _payout(model: PayoutModel) -> Payout:
    return Payout(
        payout_id=model.payout_id,
        user_id=model.user_id,
        payee_id=model.payee_id,
        period=model.period,
        period_start=model.period_start,
        period_end=model.period_end,
        gross_royalties=Decimal(model.gross_royalties),
        commission_deduction=Decimal(model.commission_deduction),
        total_expenses=Decimal(model.total_expenses),
        net_payable=Decimal(model.net_payable),
        advance_recoupment=Decimal(model.advance_recoupment),
        amount_due=Decimal(model.amount_due),
        royalties_to_date=Decimal(model.royalties_to_date),
        payments_to_date=Decimal(model.payments_to_date),
        calculation_method=CalculationMethod(model.calculation_method),
        agreement_id=model.agreement_id,
        workflow_stage=model.workflow_stage,
        status=model.status,
        failure_reason=model.failure_reason,
        quarterly_report_id=model.quarterly_report_id,
        payment_date=model.payment_date,
        created_at=_aware(model.created_at),
        updated_at=_aware(model.updated_at),
    )


def _report_model(report: QuarterlyBalanceReport) -> QuarterlyBalanceReportModel:
    return QuarterlyBalanceReportModel(
        report_id=report.report_id,
        user_id=report.user_id,
        payee_id=report.payee_id,
        year=report.year,
        quarter=report.quarter,
        opening_balance=report.opening_balance,
        royalties_amount=report.royalties_amount,
        expenses_amount=report.expenses_amount,
        payments_amount=report.payments_amount,
        closing_balance=report.closing_balance,
        agreement_id=report.agreement_id,
        created_at=report.created_at,
    )


def _report(model: QuarterlyBalanceReportModel) -> QuarterlyBalanceReport:
    return QuarterlyBalanceReport(
        report_id=model.report_id,
        user_id=model.user_id,
        payee_id=model.payee_id,
        year=model.year,
        quarter=model.quarter,
        opening_balance=Decimal(model.opening_balance),
        royalties_amount=Decimal(model.royalties_amount),
        expenses_amount=Decimal(model.expenses_amount),
        payments_amount=Decimal(model.payments_amount),
        agreement_id=model.agreement_id,
        created_at=_aware(model.created_at),
    )


def _model_for(record: Any) -> Base:
    if isinstance(record, Work):
        return _work_model(record)
    if isinstance(record, Payee):
        return PayeeModel(
            payee_id=record.payee_id,
            user_id=record.user_id,
            payee_name=record.payee_name,
            writer_id=record.writer_id,
            payee_type=record.payee_type,
            is_primary=record.is_primary,
        )
    if isinstance(record, Writer):
        return WriterModel(
            writer_id=record.writer_id,
            user_id=record.user_id,
            writer_name=record.writer_name,
            original_publisher_id=record.original_publisher_id,
        )
    if isinstance(record, OriginalPublisher):
        return OriginalPublisherModel(
            publisher_id=record.publisher_id,
            user_id=record.user_id,
            publisher_name=record.publisher_name,
            agreement_id=record.agreement_id,
        )
    if isinstance(record, Agreement):
        return AgreementModel(
            agreement_id=record.agreement_id,
            user_id=record.user_id,
            title=record.title,
            counterparty_name=record.counterparty_name,
            commission_percentage=record.commission_percentage,
            advance_amount=record.advance_amount,
            advance_recouped_to_date=record.advance_recouped_to_date,
            status=record.status,
            territory_restrictions=list(record.territory_restrictions),
        )
    if isinstance(record, RoyaltyAllocation):
        return _allocation_model(record)
    if isinstance(record, Expense):
        return _expense_model(record)
    if isinstance(record, Payout):
        return _payout_model(record)
    if isinstance(record, QuarterlyBalanceReport):
        return _report_model(record)
    raise TypeError(f"Unsupported record type: {type(record).__name__}")
