"""Fee proration across works and their controlled writers."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Sequence
from uuid import UUID

from royalty_engine.calculators.money import (
    HUNDRED,
    ZERO,
    Numeric,
    distribute_evenly,
    floor_money,
    round_money,
    sum_money,
    to_decimal,
)
from royalty_engine.calculators.types import (
    AllocationType,
    FeeAllocation,
    PayeeBreakdown,
    ProrationResult,
    WriterAllocation,
)
from royalty_engine.domain import Work
from royalty_engine.exceptions import InvalidInputError
from royalty_engine.services.ownership import controlled_writers, share_errors


@dataclass
class LicenseProration:
    """Publishing and master fee prorations for one licence."""

    publishing: ProrationResult
    master: ProrationResult
    writer_allocations: list[WriterAllocation] = field(default_factory=list)

    @property
    def total_fee(self) -> Decimal:
        return self.publishing.fee + self.master.fee


class FeeProrationEngine:
    """Splits a fee across works, then across each work's controlled writers.

    Rules:
    - Works with a custom amount keep it; the rest split the remaining fee
      equally, leftover cents going to the leading works.
    - controlled_share = sum of controlled writer percentages / 100
    - Each controlled writer gets controlled_amount * pct / total controlled pct,
      truncated to cents; the last writer absorbs the remainder, so the
      per-work total is exact and no writer amount is negative.
    - Work and controlled amounts are rounded to cents (half-up).
    """

    def prorate(
        self,
        fee: Numeric,
        works: Sequence[Work],
        custom_amounts: Mapping[UUID, Numeric] | None = None,
        allocation_type: AllocationType = AllocationType.PUBLISHING,
    ) -> ProrationResult:
        """Prorate ``fee`` across ``works``.

        Raises:
            InvalidInputError: negative fee or custom amount, a custom amount
                for a work that is not selected, or invalid ownership shares.
        """
        total_fee = to_decimal(fee, "fee")
        if total_fee < ZERO:
            raise InvalidInputError("fee", "must not be negative", total_fee)

        if not works:
            return ProrationResult(fee=total_fee, unallocated_remainder=total_fee)

        overrides = self._validate_custom_amounts(works, custom_amounts or {})
        for work in works:
            errors = share_errors(work)
            if errors:
                raise InvalidInputError(f"works[{work.work_id}]", "; ".join(errors))

        work_amounts, remainder = self._split_fee(total_fee, works, overrides)

        allocations = [
            self._allocate_work(work, amount, work.work_id in overrides, allocation_type)
            for work, amount in zip(works, work_amounts)
        ]
        return ProrationResult(
            fee=total_fee,
            allocations=allocations,
            unallocated_remainder=remainder,
        )

    def prorate_license(
        self,
        publishing_fee: Numeric,
        master_fee: Numeric,
        works: Sequence[Work],
        publishing_custom: Mapping[UUID, Numeric] | None = None,
        master_custom: Mapping[UUID, Numeric] | None = None,
    ) -> LicenseProration:
        """Prorate publishing and master fees separately, merged per writer."""
        publishing = self.prorate(
            publishing_fee, works, publishing_custom, AllocationType.PUBLISHING
        )
        master = self.prorate(master_fee, works, master_custom, AllocationType.MASTER)

        if publishing.fee > ZERO and master.fee > ZERO:
            merged_type = AllocationType.BOTH
        elif master.fee > ZERO:
            merged_type = AllocationType.MASTER
        else:
            merged_type = AllocationType.PUBLISHING

        master_by_key = {
            (w.work_id, w.writer_id): w for w in master.writer_allocations()
        }
        merged: list[WriterAllocation] = []
        for pub in publishing.writer_allocations():
            mas = master_by_key.get((pub.work_id, pub.writer_id))
            master_amount = mas.allocated_amount if mas else ZERO
            merged.append(
                WriterAllocation(
                    work_id=pub.work_id,
                    writer_id=pub.writer_id,
                    writer_name=pub.writer_name,
                    ownership_percentage=pub.ownership_percentage,
                    allocated_amount=pub.allocated_amount + master_amount,
                    allocation_type=merged_type,
                    payment_priority=pub.payment_priority,
                    publishing_amount=pub.allocated_amount,
                    master_amount=master_amount,
                )
            )

        return LicenseProration(
            publishing=publishing, master=master, writer_allocations=merged
        )

    @staticmethod
    def payee_breakdown(allocations: Sequence[WriterAllocation]) -> list[PayeeBreakdown]:
        """Group writer allocations into per-writer totals, by payment priority."""
        by_writer: dict[UUID, PayeeBreakdown] = {}
        for allocation in allocations:
            entry = by_writer.get(allocation.writer_id)
            if entry is None:
                entry = PayeeBreakdown(
                    writer_id=allocation.writer_id,
                    writer_name=allocation.writer_name,
                    priority_level=allocation.payment_priority,
                )
                by_writer[allocation.writer_id] = entry

            entry.total_allocation += allocation.allocated_amount
            if allocation.allocation_type == AllocationType.BOTH:
                entry.publishing_allocation += allocation.publishing_amount
                entry.master_allocation += allocation.master_amount
            elif allocation.allocation_type == AllocationType.MASTER:
                entry.master_allocation += allocation.allocated_amount
            else:
                entry.publishing_allocation += allocation.allocated_amount
            entry.priority_level = min(entry.priority_level, allocation.payment_priority)

        return sorted(by_writer.values(), key=lambda b: b.priority_level)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _validate_custom_amounts(
        works: Sequence[Work], custom_amounts: Mapping[UUID, Numeric]
    ) -> dict[UUID, Decimal]:
        selected = {work.work_id for work in works}
        overrides: dict[UUID, Decimal] = {}
        for work_id, raw in custom_amounts.items():
            if work_id not in selected:
                raise InvalidInputError(
                    f"custom_amounts[{work_id}]", "work is not in the selection"
                )
            amount = to_decimal(raw, f"custom_amounts[{work_id}]")
            if amount < ZERO:
                raise InvalidInputError(
                    f"custom_amounts[{work_id}]", "must not be negative", amount
                )
            overrides[work_id] = amount
        return overrides

    @staticmethod
    def _split_fee(
        fee: Decimal, works: Sequence[Work], overrides: Mapping[UUID, Decimal]
    ) -> tuple[list[Decimal], Decimal]:
        """Return per-work amounts (cents) and the unallocated remainder."""
        custom_total = sum_money(overrides.values())
        equal_ids = [w.work_id for w in works if w.work_id not in overrides]
        pool = fee - custom_total

        equal_amounts: dict[UUID, Decimal] = {}
        if equal_ids and pool > ZERO:
            equal_amounts = dict(zip(equal_ids, distribute_evenly(pool, len(equal_ids))))
            remainder = pool - sum_money(equal_amounts.values())
        else:
            # Every work overridden, or overrides exceed the fee
            equal_amounts = {work_id: ZERO for work_id in equal_ids}
            remainder = pool

        amounts = [
            round_money(overrides[w.work_id]) if w.work_id in overrides else equal_amounts[w.work_id]
            for w in works
        ]
        return amounts, remainder

    @staticmethod
    def _allocate_work(
        work: Work,
        allocated: Decimal,
        is_custom: bool,
        allocation_type: AllocationType,
    ) -> FeeAllocation:
        controlled = controlled_writers(work)
        total_pct = sum_money(w.ownership_percentage for w in controlled)
        controlled_share = total_pct / HUNDRED

        if total_pct == ZERO:
            return FeeAllocation(
                work_id=work.work_id,
                title=work.title,
                allocated_amount=allocated,
                controlled_share=ZERO,
                controlled_amount=ZERO,
                is_custom=is_custom,
                fully_uncontrolled=True,
                writers=[
                    WriterAllocation(
                        work_id=work.work_id,
                        writer_id=w.writer_id,
                        writer_name=w.writer_name,
                        ownership_percentage=w.ownership_percentage,
                        allocated_amount=ZERO,
                        allocation_type=allocation_type,
                        payment_priority=index + 1,
                    )
                    for index, w in enumerate(controlled)
                ],
            )

        controlled_amount = round_money(allocated * controlled_share)
        writers: list[WriterAllocation] = []
        running = ZERO
        for index, writer in enumerate(controlled):
            if index == len(controlled) - 1:
                amount = controlled_amount - running
            else:
                amount = floor_money(
                    controlled_amount * writer.ownership_percentage / total_pct
                )
            running += amount
            writers.append(
                WriterAllocation(
                    work_id=work.work_id,
                    writer_id=writer.writer_id,
                    writer_name=writer.writer_name,
                    ownership_percentage=writer.ownership_percentage,
                    allocated_amount=amount,
                    allocation_type=allocation_type,
                    payment_priority=index + 1,
                )
            )

        return FeeAllocation(
            work_id=work.work_id,
            title=work.title,
            allocated_amount=allocated,
            controlled_share=controlled_share,
            controlled_amount=controlled_amount,
            is_custom=is_custom,
            fully_uncontrolled=False,
            writers=writers,
        )
