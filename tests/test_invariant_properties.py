"""Property-based tests for royalty engine invariants.

These tests use hypothesis to generate random fees, ownership splits,
expense mixes and mutation sequences, and verify that the money and
coordination invariants hold for all of them.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import date
from decimal import ROUND_DOWN, Decimal
from uuid import uuid4

from hypothesis import given, settings, strategies as st
from hypothesis.stateful import RuleBasedStateMachine, invariant, rule

from royalty_engine.calculators.money import EPSILON
from royalty_engine.calculators.proration import FeeProrationEngine
from royalty_engine.calculators.royalty_calculator import RoyaltyCalculator
from royalty_engine.calculators.types import PayoutCalculationRequest
from royalty_engine.coordination.optimistic import OptimisticCollection
from royalty_engine.coordination.retry import RetryPolicy, execute_with_retry
from royalty_engine.domain import Expense, ExpenseFlags, ExpenseStatus
from royalty_engine.exceptions import ExternalServiceError
from royalty_engine.repository.memory import InMemoryRepository
from tests.factories import Q1_2024, RecordingSleep, make_row, make_work, seed_catalog

money = st.decimals(min_value=Decimal("0"), max_value=Decimal("1000000"), places=2)


@st.composite
def works(draw, min_size: int = 1, max_size: int = 6):
    """Works whose writer shares total at most 100%."""
    result = []
    for index in range(draw(st.integers(min_size, max_size))):
        weights = draw(st.lists(st.integers(1, 100), min_size=1, max_size=5))
        controlled = draw(st.lists(st.booleans(), min_size=len(weights), max_size=len(weights)))
        total = sum(weights)
        writers = [
            (
                f"W{index}-{n}",
                str((Decimal(w) * 100 / total).quantize(Decimal("0.0001"), rounding=ROUND_DOWN)),
                c,
            )
            for n, (w, c) in enumerate(zip(weights, controlled))
        ]
        result.append(make_work(f"Work {index}", *writers))
    return result


class TestProrationInvariants:
    """Property tests for fee proration."""

    @given(fee=money, selected=works())
    @settings(max_examples=100)
    def test_allocations_sum_to_fee(self, fee: Decimal, selected):
        """Without overrides every cent of the fee lands on a work."""
        result = FeeProrationEngine().prorate(fee, selected)

        assert abs(result.total_allocated - fee) <= EPSILON
        assert all(a.allocated_amount >= 0 for a in result.allocations)

    @given(fee=money, selected=works())
    @settings(max_examples=100)
    def test_writer_amounts_sum_to_controlled_amount(self, fee: Decimal, selected):
        result = FeeProrationEngine().prorate(fee, selected)

        for allocation in result.allocations:
            if allocation.writers:
                assert allocation.writer_total == allocation.controlled_amount
                assert all(w.allocated_amount >= 0 for w in allocation.writers)

    @given(fee=money, writer_count=st.integers(1, 5))
    @settings(max_examples=50)
    def test_uncontrolled_work_gets_nothing(self, fee: Decimal, writer_count: int):
        work = make_work(
            "Uncontrolled",
            *[(f"W{n}", str(100 // writer_count), False) for n in range(writer_count)],
        )

        (allocation,) = FeeProrationEngine().prorate(fee, [work]).allocations

        assert allocation.controlled_amount == 0
        assert allocation.writers == []
        assert allocation.fully_uncontrolled


async def _calculate(grosses, expense_amounts, commission, advance, manual):
    repo = InMemoryRepository()
    user_id = uuid4()
    catalog = seed_catalog(repo, user_id)
    repo.agreements[catalog.agreement.agreement_id] = replace(
        catalog.agreement, commission_percentage=commission, advance_amount=advance
    )
    for amount in grosses:
        repo.add(make_row(user_id, catalog.payee.payee_id, str(amount)))
    for amount in expense_amounts:
        repo.add(
            Expense(
                expense_id=uuid4(),
                user_id=user_id,
                description="Generated",
                amount=amount,
                flags=ExpenseFlags(recoupable=True),
                status=ExpenseStatus.APPROVED,
                payee_id=catalog.payee.payee_id,
                date_incurred=date(2024, 2, 1),
            )
        )
    return await RoyaltyCalculator(repo).calculate(
        PayoutCalculationRequest(
            user_id=user_id,
            period=Q1_2024,
            payee_ids=[catalog.payee.payee_id],
            agreement_id=catalog.agreement.agreement_id,
            manual_expenses=manual,
        )
    )


class TestCalculationInvariants:
    """Property tests for the gross → net calculation."""

    @given(
        grosses=st.lists(
            st.decimals(min_value=Decimal("-5000"), max_value=Decimal("50000"), places=2),
            max_size=8,
        ),
        expense_amounts=st.lists(
            st.decimals(min_value=Decimal("-1000"), max_value=Decimal("20000"), places=2),
            max_size=5,
        ),
        commission=st.decimals(min_value=Decimal("0"), max_value=Decimal("100"), places=2),
        advance=st.decimals(min_value=Decimal("0"), max_value=Decimal("100000"), places=2),
        manual=st.none() | money,
    )
    @settings(max_examples=100, deadline=None)
    def test_amount_due_never_negative(self, grosses, expense_amounts, commission, advance, manual):
        result = asyncio.run(_calculate(grosses, expense_amounts, commission, advance, manual))

        assert result.net_payable >= 0
        assert result.advance_recoupment >= 0
        assert result.advance_recoupment <= result.net_payable
        assert result.amount_due >= 0
        assert result.amount_due == result.net_payable - result.advance_recoupment


class TestRetryInvariants:
    """Property tests for retry termination."""

    @given(
        failures=st.integers(0, 10),
        initial=st.floats(min_value=0.001, max_value=5),
        multiplier=st.floats(min_value=1, max_value=4),
        cap=st.floats(min_value=0.001, max_value=30),
    )
    @settings(max_examples=100, deadline=None)
    def test_bounded_attempts_and_capped_delays(self, failures, initial, multiplier, cap):
        policy = RetryPolicy(
            max_retries=3, initial_delay=initial, backoff_multiplier=multiplier, max_delay=cap
        )
        sleep = RecordingSleep()
        attempts = 0

        async def operation() -> str:
            nonlocal attempts
            attempts += 1
            if attempts <= failures:
                raise ExternalServiceError("unavailable")
            return "ok"

        async def run() -> None:
            try:
                await execute_with_retry(operation, policy, sleep=sleep)
            except ExternalServiceError:
                assert failures >= 4

        asyncio.run(run())

        assert attempts <= 4
        assert attempts == min(failures + 1, 4)
        assert all(d <= cap for d in sleep.delays)
        assert sleep.delays == sorted(sleep.delays)


# =============================================================================
# Stateful Property Tests (State Machine)
# =============================================================================


@dataclass(frozen=True)
class Row:
    id: str
    value: int


class OptimisticRevertMachine(RuleBasedStateMachine):
    """
    Applies random optimistic mutations and reverts or confirms each one.

    A reverted mutation must leave the collection exactly as it was
    before the mutation was applied.
    """

    def __init__(self):
        super().__init__()
        self.collection = OptimisticCollection([Row(f"r{i}", 0) for i in range(3)])
        self.created = 0

    def _finish(self, update_id: int, before: list[Row], revert: bool) -> None:
        if revert:
            self.collection.revert(update_id)
            assert self.collection.items == before
        else:
            self.collection.confirm(update_id)

    @rule(index=st.integers(0, 50), value=st.integers(), revert=st.booleans())
    def update(self, index, value, revert):
        if not self.collection.items:
            return
        before = list(self.collection.items)
        original = before[index % len(before)]
        update_id = self.collection.apply("update", Row(original.id, value), original=original)
        self._finish(update_id, before, revert)

    @rule(revert=st.booleans())
    def create(self, revert):
        before = list(self.collection.items)
        self.created += 1
        update_id = self.collection.apply("create", Row(f"new{self.created}", 0))
        self._finish(update_id, before, revert)

    @rule(index=st.integers(0, 50), revert=st.booleans())
    def delete(self, index, revert):
        if not self.collection.items:
            return
        before = list(self.collection.items)
        update_id = self.collection.apply("delete", before[index % len(before)])
        self._finish(update_id, before, revert)

    @invariant()
    def nothing_left_pending(self):
        assert self.collection.pending == []

    @invariant()
    def ids_unique(self):
        ids = [row.id for row in self.collection.items]
        assert len(ids) == len(set(ids))


TestOptimisticRevert = OptimisticRevertMachine.TestCase
