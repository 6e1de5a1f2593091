"""Record builders shared by the test suite."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TypeVar
from uuid import UUID, uuid4

from royalty_engine.domain import (
    Agreement,
    ControlledStatus,
    OriginalPublisher,
    Payee,
    Payout,
    ReportingPeriod,
    RoyaltyAllocation,
    Work,
    Writer,
    WriterShare,
)
from royalty_engine.events.types import DomainEvent
from royalty_engine.repository.memory import InMemoryRepository

E = TypeVar("E", bound=DomainEvent)

Q1_2024 = ReportingPeriod(date(2024, 1, 1), date(2024, 3, 31))


def at(day: date) -> datetime:
    """Noon UTC on ``day``."""
    return datetime(day.year, day.month, day.day, 12, tzinfo=timezone.utc)


def make_work(title: str, *writers: tuple[str, str, bool], user_id: UUID | None = None) -> Work:
    """Build a work from (name, percentage, controlled) tuples."""
    return Work(
        work_id=uuid4(),
        title=title,
        user_id=user_id,
        writers=tuple(
            WriterShare(
                writer_id=uuid4(),
                writer_name=name,
                ownership_percentage=Decimal(pct),
                controlled_status=(
                    ControlledStatus.CONTROLLED if controlled else ControlledStatus.NON_CONTROLLED
                ),
            )
            for name, pct, controlled in writers
        ),
    )


def make_row(
    user_id: UUID,
    payee_id: UUID,
    amount: str,
    day: date = date(2024, 2, 15),
    controlled: bool = True,
    territory: str | None = None,
) -> RoyaltyAllocation:
    return RoyaltyAllocation(
        allocation_id=uuid4(),
        user_id=user_id,
        payee_id=payee_id,
        gross_royalty_amount=Decimal(amount),
        created_at=at(day),
        controlled_status=(
            ControlledStatus.CONTROLLED if controlled else ControlledStatus.NON_CONTROLLED
        ),
        territory=territory,
    )


@dataclass
class Catalog:
    """A payee wired through writer and original publisher to an agreement."""

    user_id: UUID
    payee: Payee
    writer: Writer
    publisher: OriginalPublisher
    agreement: Agreement

    def records(self) -> tuple:
        return (self.agreement, self.publisher, self.writer, self.payee)


class RecordingHandler:
    """Async handler that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    async def __call__(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type[E]) -> list[E]:
        return [e for e in self.events if isinstance(e, event_type)]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def build_catalog(user_id: UUID) -> Catalog:
    """An agreement at 15% commission with a 2000 advance."""
    agreement = Agreement(
        agreement_id=uuid4(),
        user_id=user_id,
        title="Admin Agreement",
        counterparty_name="Jane Writer",
        commission_percentage=Decimal("15"),
        advance_amount=Decimal("2000"),
    )
    publisher = OriginalPublisher(
        publisher_id=uuid4(),
        user_id=user_id,
        publisher_name="Jane Songs",
        agreement_id=agreement.agreement_id,
    )
    writer = Writer(
        writer_id=uuid4(),
        user_id=user_id,
        writer_name="Jane Writer",
        original_publisher_id=publisher.publisher_id,
    )
    payee = Payee(
        payee_id=uuid4(),
        user_id=user_id,
        payee_name="Jane Writer",
        writer_id=writer.writer_id,
        is_primary=True,
    )
    return Catalog(user_id, payee, writer, publisher, agreement)


def seed_catalog(repo: InMemoryRepository, user_id: UUID) -> Catalog:
    catalog = build_catalog(user_id)
    repo.add(*catalog.records())
    return catalog


def approved_payout(catalog: Catalog, amount_due: str = "6000.00", **overrides) -> Payout:
    """A payout for Q1 2024 already in the approved stage."""
    fields = dict(
        payout_id=uuid4(),
        user_id=catalog.user_id,
        payee_id=catalog.payee.payee_id,
        period="Q1 2024",
        period_start=Q1_2024.start,
        period_end=Q1_2024.end,
        gross_royalties=Decimal("10000.00"),
        commission_deduction=Decimal("1500.00"),
        total_expenses=Decimal("500.00"),
        net_payable=Decimal("8000.00"),
        advance_recoupment=Decimal("2000.00"),
        amount_due=Decimal(amount_due),
        agreement_id=catalog.agreement.agreement_id,
        workflow_stage="approved",
    )
    fields.update(overrides)
    return Payout(**fields)


class SuspendingRepository(InMemoryRepository):
    """In-memory repository that yields to the event loop on payout fetches."""

    async def get_payout(self, user_id: UUID, payout_id: UUID) -> Payout | None:
        await asyncio.sleep(0)
        return await super().get_payout(user_id, payout_id)
