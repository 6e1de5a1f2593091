"""Quarterly balance reports.

One report per (user, payee, year, quarter):

    closing = opening + royalties - expenses - payments

The opening balance is the closing balance of the payee's previous
quarter report, or zero when there is none.
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from royalty_engine.calculators.money import ZERO, percent_of, round_money, sum_money
from royalty_engine.config import ReportConfig
from royalty_engine.domain import ExpenseStatus, Payout, QuarterlyBalanceReport
from royalty_engine.events.emitter import AsyncEventEmitter
from royalty_engine.events.types import EventMetadata, QuarterlyReportCreated
from royalty_engine.exceptions import ResolutionFailureError
from royalty_engine.periods import (
    parse_period,
    previous_quarter,
    quarter_bounds,
    trailing_quarters,
)
from royalty_engine.repository.base import ExpenseFilter, PayoutFilter, RoyaltyRepository

logger = logging.getLogger(__name__)

CSV_COLUMNS = (
    "period",
    "opening_balance",
    "royalties",
    "expenses",
    "payments",
    "closing_balance",
)


class QuarterlyReportService:
    """Creates and rebuilds quarterly balance reports."""

    def __init__(
        self,
        repository: RoyaltyRepository,
        emitter: AsyncEventEmitter | None = None,
        config: ReportConfig | None = None,
    ):
        self.repository = repository
        self.emitter = emitter
        self.config = config or ReportConfig()

    def parse_period(self, label: str | None, today: date | None = None) -> tuple[int, int]:
        """Parse a payout period label using the configured fallback policy."""
        return parse_period(label, self.config.period_fallback_to_today, today)

    async def opening_balance(
        self, user_id: UUID, payee_id: UUID, year: int, quarter: int
    ) -> Decimal:
        previous = await self.repository.get_quarterly_report(
            user_id, payee_id, *previous_quarter(year, quarter)
        )
        return previous.closing_balance if previous else ZERO

    async def ensure_report_for_payout(
        self, payout: Payout
    ) -> tuple[QuarterlyBalanceReport, bool]:
        """Return the payout's quarterly report, creating it if missing.

        Idempotent: calling it again for the same payee and quarter returns
        the existing report and writes nothing.

        Raises:
            ResolutionFailureError: the payout's payee does not exist.
            InvalidInputError: the period label does not parse.
        """
        payee = await self.repository.get_payee(payout.user_id, payout.payee_id)
        if payee is None:
            raise ResolutionFailureError("payee", payout.payee_id)

        year, quarter = self.parse_period(payout.period)

        existing = await self.repository.get_quarterly_report(
            payout.user_id, payee.payee_id, year, quarter
        )
        if existing is not None:
            logger.debug(
                "Quarterly report %s already exists for payee %s %s",
                existing.report_id,
                payee.payee_id,
                existing.period_label,
            )
            return existing, False

        report = QuarterlyBalanceReport(
            report_id=uuid4(),
            user_id=payout.user_id,
            payee_id=payee.payee_id,
            year=year,
            quarter=quarter,
            opening_balance=await self.opening_balance(
                payout.user_id, payee.payee_id, year, quarter
            ),
            royalties_amount=round_money(payout.net_royalties),
            expenses_amount=round_money(payout.total_expenses),
            payments_amount=round_money(payout.amount_due),
            agreement_id=payout.agreement_id,
        )
        report = await self.repository.upsert_quarterly_report(report)
        logger.info(
            "Created quarterly report %s for payee %s %s",
            report.report_id,
            report.payee_id,
            report.period_label,
        )

        if self.emitter is not None:
            await self.emitter.emit(
                QuarterlyReportCreated.from_report(
                    EventMetadata.create(payout.user_id), report, payout.payout_id
                )
            )
        return report, True

    async def generate_trailing_reports(
        self,
        user_id: UUID,
        payee_id: UUID,
        as_of: date | None = None,
        count: int | None = None,
    ) -> list[QuarterlyBalanceReport]:
        """Rebuild the last ``count`` quarters for a payee from stored data.

        Quarters are processed oldest first so each opening balance chains
        from the previous closing balance. Reports are upserted by key.
        """
        quarters = trailing_quarters(as_of or date.today(), count or self.config.trailing_quarters)
        opening = await self.opening_balance(user_id, payee_id, *quarters[0])

        reports: list[QuarterlyBalanceReport] = []
        for year, quarter in quarters:
            period = quarter_bounds(year, quarter)

            rows = await self.repository.list_royalty_allocations(user_id, period, [payee_id])
            royalties = sum_money(
                r.net_amount if r.net_amount is not None else r.gross_royalty_amount
                for r in rows
            )
            gross = sum_money(r.gross_royalty_amount for r in rows)

            expenses = await self.repository.list_expenses(
                ExpenseFilter(
                    user_id=user_id,
                    period=period,
                    payee_ids=[payee_id],
                    status=ExpenseStatus.APPROVED,
                    recoupable_only=True,
                )
            )
            expense_total = sum_money(
                percent_of(gross, e.percentage_rate) if e.is_percentage else e.amount
                for e in expenses
                if not e.flags.is_fee
            )

            paid = await self.repository.list_payouts(
                PayoutFilter(
                    user_id=user_id,
                    payee_ids=[payee_id],
                    workflow_stage="paid",
                    paid_within=period,
                )
            )
            payments = sum_money(p.amount_due for p in paid)

            existing = await self.repository.get_quarterly_report(
                user_id, payee_id, year, quarter
            )
            report = QuarterlyBalanceReport(
                report_id=existing.report_id if existing else uuid4(),
                user_id=user_id,
                payee_id=payee_id,
                year=year,
                quarter=quarter,
                opening_balance=round_money(opening),
                royalties_amount=round_money(royalties),
                expenses_amount=round_money(expense_total),
                payments_amount=round_money(payments),
                agreement_id=existing.agreement_id if existing else None,
            )
            report = await self.repository.upsert_quarterly_report(report)
            reports.append(report)
            opening = report.closing_balance

        logger.info(
            "Rebuilt %d quarterly report(s) for payee %s", len(reports), payee_id
        )
        return reports


def export_csv(reports: Sequence[QuarterlyBalanceReport]) -> str:
    """Render reports as a reconciliation CSV, oldest quarter first."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for report in sorted(reports, key=lambda r: (r.year, r.quarter)):
        writer.writerow(
            [
                report.period_label,
                f"{round_money(report.opening_balance):.2f}",
                f"{round_money(report.royalties_amount):.2f}",
                f"{round_money(report.expenses_amount):.2f}",
                f"{round_money(report.payments_amount):.2f}",
                f"{round_money(report.closing_balance):.2f}",
            ]
        )
    return buffer.getvalue()
