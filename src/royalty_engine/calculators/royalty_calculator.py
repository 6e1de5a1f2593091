"""Royalty aggregation and commission calculator.

Computes gross → net for a payee and period:

    commission     = gross * commission% / 100 + fee-flagged expenses
    net_royalties  = gross - commission
    net_payable    = max(0, net_royalties - recoupable expenses)
    advance        = min(net_payable, remaining advance)
    amount_due     = max(0, net_payable - advance)

Commission terms come from the payout's agreement when one resolves;
otherwise the calculation falls back to manual mode (0% commission) and
says so on the result.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from royalty_engine.calculators.money import (
    ZERO,
    clamp_non_negative,
    percent_of,
    sum_money,
    to_decimal,
    validate_percentage,
)
from royalty_engine.calculators.types import (
    PayoutCalculationRequest,
    RoyaltyCalculationResult,
)
from royalty_engine.config import CalculationConfig
from royalty_engine.domain import (
    Agreement,
    CalculationMethod,
    ControlledStatus,
    Expense,
    ExpenseStatus,
    Payout,
    ReportingPeriod,
    RoyaltyAllocation,
    utcnow,
)
from royalty_engine.exceptions import (
    ExternalServiceError,
    InvalidInputError,
    InvalidTransitionError,
    ResolutionFailureError,
)
from royalty_engine.periods import parse_period, quarter_bounds
from royalty_engine.repository.base import ExpenseFilter, PayoutFilter, RoyaltyRepository
from royalty_engine.services.ownership import OwnershipLedger
from royalty_engine.services.state_machine import PayoutStage, PayoutStateMachine

logger = logging.getLogger(__name__)

WORLDWIDE = "Worldwide"


class RoyaltyCalculator:
    """Aggregates royalty rows and applies commission, expense and advance rules."""

    def __init__(
        self,
        repository: RoyaltyRepository,
        config: CalculationConfig | None = None,
        ownership: OwnershipLedger | None = None,
    ):
        self.repository = repository
        self.config = config or CalculationConfig()
        self.ownership = ownership or OwnershipLedger(
            repository, self.config.agreement_statuses
        )

    async def calculate(self, request: PayoutCalculationRequest) -> RoyaltyCalculationResult:
        """Calculate a payee's royalties for a period.

        Agreement resolution problems never fail the calculation; they
        switch it to manual mode. Invalid inputs raise InvalidInputError.
        """
        payee_ids = await self._resolve_payee_ids(request)
        scope = payee_ids or None

        rows = await self.repository.list_royalty_allocations(
            request.user_id, request.period, scope
        )
        if self.config.controlled_only:
            rows = [r for r in rows if r.controlled_status == ControlledStatus.CONTROLLED]
        gross = sum_money(to_decimal(r.gross_royalty_amount, "gross_royalty_amount") for r in rows)

        agreement, fallback_reason = await self._resolve_agreement(request, payee_ids)
        method = (
            CalculationMethod.AGREEMENT_BASED if agreement else CalculationMethod.MANUAL
        )
        commission_pct = (
            validate_percentage(agreement.commission_percentage, "commission_percentage")
            if agreement
            else ZERO
        )

        expenses = await self.repository.list_expenses(
            ExpenseFilter(
                user_id=request.user_id,
                period=request.period,
                payee_ids=scope,
                status=ExpenseStatus.APPROVED,
            )
        )
        fee_expenses, recoupable_expenses = self._total_expenses(
            expenses, gross, request.period
        )

        if request.manual_expenses is not None:
            total_expenses = to_decimal(request.manual_expenses, "manual_expenses")
            if total_expenses < ZERO:
                raise InvalidInputError("manual_expenses", "must not be negative", total_expenses)
        else:
            total_expenses = recoupable_expenses

        commission = percent_of(gross, commission_pct) + fee_expenses
        net_royalties = gross - commission
        net_payable = clamp_non_negative(net_royalties - total_expenses)
        advance_recoupment = (
            min(net_payable, await self._remaining_advance(request.user_id, agreement))
            if agreement
            else ZERO
        )
        amount_due = clamp_non_negative(net_payable - advance_recoupment)

        royalties_to_date, payments_to_date = await self._to_date(
            request.user_id, payee_ids, gross
        )

        result = RoyaltyCalculationResult(
            user_id=request.user_id,
            payee_ids=payee_ids,
            period=request.period,
            gross_royalties=gross,
            commission_deduction=commission,
            total_expenses=total_expenses,
            net_royalties=net_royalties,
            net_payable=net_payable,
            advance_recoupment=advance_recoupment,
            amount_due=amount_due,
            calculation_method=method,
            agreement_id=agreement.agreement_id if agreement else None,
            commission_percentage=commission_pct,
            fee_expenses=fee_expenses,
            territory_adjustments=self.territory_breakdown(rows),
            royalties_to_date=royalties_to_date,
            payments_to_date=payments_to_date,
            fallback_reason=fallback_reason,
            row_count=len(rows),
        )
        logger.debug(
            "Calculated %s payout for %d payee(s): gross=%s amount_due=%s",
            method.value,
            len(payee_ids),
            gross,
            amount_due,
        )
        return result.rounded()

    def build_payout(
        self,
        result: RoyaltyCalculationResult,
        payee_id: UUID,
        period_label: str,
    ) -> Payout:
        """Create a draft payout from a calculation result."""
        rounded = result.rounded()
        return Payout(
            payout_id=uuid4(),
            user_id=result.user_id,
            payee_id=payee_id,
            period=period_label,
            period_start=result.period.start,
            period_end=result.period.end,
            gross_royalties=rounded.gross_royalties,
            commission_deduction=rounded.commission_deduction,
            total_expenses=rounded.total_expenses,
            net_payable=rounded.net_payable,
            advance_recoupment=rounded.advance_recoupment,
            amount_due=rounded.amount_due,
            royalties_to_date=rounded.royalties_to_date,
            payments_to_date=rounded.payments_to_date,
            calculation_method=result.calculation_method,
            agreement_id=result.agreement_id,
        )

    async def recalculate(self, payout: Payout) -> Payout:
        """Refresh the money fields of a non-terminal payout.

        Raises:
            InvalidTransitionError: the payout is already paid, cancelled
                or expired.
        """
        if PayoutStateMachine.is_terminal(payout.workflow_stage):
            raise InvalidTransitionError(
                payout.workflow_stage,
                payout.workflow_stage,
                "terminal payouts cannot be recalculated",
            )

        result = await self.calculate(
            PayoutCalculationRequest(
                user_id=payout.user_id,
                period=self.period_for(payout),
                payee_ids=[payout.payee_id],
                agreement_id=payout.agreement_id,
            )
        )
        return replace(
            payout,
            gross_royalties=result.gross_royalties,
            commission_deduction=result.commission_deduction,
            total_expenses=result.total_expenses,
            net_payable=result.net_payable,
            advance_recoupment=result.advance_recoupment,
            amount_due=result.amount_due,
            royalties_to_date=result.royalties_to_date,
            payments_to_date=result.payments_to_date,
            calculation_method=result.calculation_method,
            updated_at=utcnow(),
        )

    @staticmethod
    def period_for(payout: Payout) -> ReportingPeriod:
        """Date range of a payout, from its stored bounds or its quarter label."""
        if payout.period_start and payout.period_end:
            return ReportingPeriod(start=payout.period_start, end=payout.period_end)
        return quarter_bounds(*parse_period(payout.period))

    @staticmethod
    def territory_breakdown(rows: Sequence[RoyaltyAllocation]) -> dict[str, Decimal]:
        """Gross grouped by territory."""
        totals: dict[str, Decimal] = {}
        for row in rows:
            territory = (row.territory or "").strip() or WORLDWIDE
            totals[territory] = totals.get(territory, ZERO) + row.gross_royalty_amount
        return totals

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _resolve_payee_ids(self, request: PayoutCalculationRequest) -> list[UUID]:
        payee_ids = list(dict.fromkeys(request.payee_ids))
        if request.payee_name:
            for payee in await self.ownership.resolve_payees_by_name(
                request.user_id, request.payee_name
            ):
                if payee.payee_id not in payee_ids:
                    payee_ids.append(payee.payee_id)
        return payee_ids

    async def _resolve_agreement(
        self, request: PayoutCalculationRequest, payee_ids: list[UUID]
    ) -> tuple[Agreement | None, str | None]:
        """Return (agreement, fallback_reason)."""
        if request.agreement_id is None and not (
            request.resolve_agreement_from_payees and payee_ids
        ):
            return None, None

        try:
            agreement = await self.ownership.resolve_agreement(
                request.user_id, payee_ids, request.agreement_id
            )
        except (ResolutionFailureError, ExternalServiceError) as e:
            logger.warning(
                "Agreement resolution failed, falling back to manual calculation: %s", e
            )
            return None, str(e)
        return agreement, None

    @staticmethod
    def _expense_amount(expense: Expense, gross: Decimal) -> Decimal:
        if expense.is_percentage:
            amount = percent_of(gross, to_decimal(expense.percentage_rate, "percentage_rate"))
        else:
            amount = to_decimal(expense.amount, "amount")
        if expense.expense_cap is not None:
            amount = min(amount, to_decimal(expense.expense_cap, "expense_cap"))
        return clamp_non_negative(amount)

    def _total_expenses(
        self, expenses: Sequence[Expense], gross: Decimal, period: ReportingPeriod
    ) -> tuple[Decimal, Decimal]:
        """Return (fee-flagged total, recoupable total) for approved expenses.

        Fee-flagged expenses count toward commission only.
        """
        fees = ZERO
        recoupable = ZERO
        for expense in expenses:
            if not expense.is_approved or not expense.overlaps(period):
                continue
            if expense.flags.is_fee:
                fees += self._expense_amount(expense, gross)
            elif expense.flags.recoupable:
                recoupable += self._expense_amount(expense, gross)
        return fees, recoupable

    async def _to_date(
        self, user_id: UUID, payee_ids: list[UUID], gross: Decimal
    ) -> tuple[Decimal, Decimal]:
        """Return (royalties to date, payments to date) from prior paid payouts."""
        if not payee_ids:
            return gross, ZERO
        paid = await self.repository.list_payouts(
            PayoutFilter(
                user_id=user_id,
                payee_ids=payee_ids,
                workflow_stage=PayoutStage.PAID.value,
            )
        )
        royalties = sum_money(p.gross_royalties for p in paid) + gross
        payments = sum_money(p.amount_due for p in paid)
        return royalties, payments

    async def _remaining_advance(self, user_id: UUID, agreement: Agreement) -> Decimal:
        """Advance still unrecouped after the agreement's paid payouts.

        ``advance_recouped_to_date`` holds recoupment recorded before the
        engine tracked payouts for the agreement.
        """
        paid = await self.repository.list_payouts(
            PayoutFilter(
                user_id=user_id,
                agreement_id=agreement.agreement_id,
                workflow_stage=PayoutStage.PAID.value,
            )
        )
        recouped = sum_money(p.advance_recoupment for p in paid)
        return clamp_non_negative(agreement.remaining_advance - recouped)
