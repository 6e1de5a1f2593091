"""Ownership ledger: work shares and the payee hierarchy.

Read-only. Resolves a Work to its writer/publisher shares and a Payee
through Payee → Writer → Original Publisher → Agreement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from royalty_engine.calculators.money import HUNDRED, ZERO, sum_money
from royalty_engine.domain import (
    Agreement,
    OriginalPublisher,
    Payee,
    Work,
    Writer,
    WriterShare,
)
from royalty_engine.exceptions import ResolutionFailureError
from royalty_engine.repository.base import RoyaltyRepository

logger = logging.getLogger(__name__)

USABLE_AGREEMENT_STATUSES = frozenset({"active", "signed", "draft"})


def controlled_writers(work: Work) -> list[WriterShare]:
    """Controlled writers of a work, in registration order."""
    return [w for w in work.writers if w.is_controlled]


def controlled_percentage(work: Work) -> Decimal:
    return sum_money(w.ownership_percentage for w in controlled_writers(work))


def share_errors(work: Work) -> list[str]:
    """Validate a work's ownership shares, returning any errors.

    Writer and publisher totals are checked independently.
    """
    errors: list[str] = []
    for kind, shares in (("writer", work.writers), ("publisher", work.publishers)):
        for share in shares:
            if share.ownership_percentage < ZERO or share.ownership_percentage > HUNDRED:
                errors.append(
                    f"{kind} ownership_percentage {share.ownership_percentage} "
                    "is outside 0-100"
                )
        total = sum_money(s.ownership_percentage for s in shares)
        if total > HUNDRED:
            errors.append(f"{kind} shares total {total}%, exceeding 100%")
    return errors


@dataclass
class PayeeChain:
    """A payee resolved through the ownership hierarchy.

    Links that could not be resolved are None and named in ``missing``.
    """

    payee: Payee
    writer: Writer | None = None
    original_publisher: OriginalPublisher | None = None
    agreement: Agreement | None = None
    missing: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing


class OwnershipLedger:
    """Read-only view over works, payees and agreements."""

    def __init__(
        self,
        repository: RoyaltyRepository,
        agreement_statuses: Iterable[str] = USABLE_AGREEMENT_STATUSES,
    ):
        self.repository = repository
        self.agreement_statuses = frozenset(agreement_statuses)

    async def get_work(self, user_id: UUID, work_id: UUID) -> Work:
        work = await self.repository.get_work(user_id, work_id)
        if work is None:
            raise ResolutionFailureError("work", work_id)
        return work

    async def get_works(self, user_id: UUID, work_ids: Sequence[UUID]) -> list[Work]:
        """Load works in the given order."""
        return [await self.get_work(user_id, work_id) for work_id in work_ids]

    async def resolve_payee_chain(self, user_id: UUID, payee_id: UUID) -> PayeeChain:
        """Walk Payee → Writer → Original Publisher → Agreement."""
        payee = await self.repository.get_payee(user_id, payee_id)
        if payee is None:
            raise ResolutionFailureError("payee", payee_id)

        chain = PayeeChain(payee=payee)
        if payee.writer_id is None:
            chain.missing.append("writer")
            return chain

        chain.writer = await self.repository.get_writer(user_id, payee.writer_id)
        if chain.writer is None or chain.writer.original_publisher_id is None:
            chain.missing.append("writer" if chain.writer is None else "original_publisher")
            return chain

        chain.original_publisher = await self.repository.get_original_publisher(
            user_id, chain.writer.original_publisher_id
        )
        if chain.original_publisher is None or chain.original_publisher.agreement_id is None:
            chain.missing.append(
                "original_publisher" if chain.original_publisher is None else "agreement"
            )
            return chain

        chain.agreement = await self.repository.get_agreement(
            user_id, chain.original_publisher.agreement_id
        )
        if chain.agreement is None:
            chain.missing.append("agreement")
        return chain

    async def resolve_payees_by_name(self, user_id: UUID, name: str) -> list[Payee]:
        """All payee records matching a contact name.

        A single contact frequently maps to several payee rows (one per
        writer alias), so callers must aggregate across the whole list.
        """
        payees = await self.repository.find_payees_by_name(user_id, name)
        if not payees:
            raise ResolutionFailureError("payee", name, "no payee matches this name")
        return payees

    async def resolve_agreement(
        self,
        user_id: UUID,
        payee_ids: Sequence[UUID],
        agreement_id: UUID | None = None,
    ) -> Agreement:
        """Resolve the agreement governing a payout.

        Order:
        1. An explicit ``agreement_id``
        2. The first usable agreement along each payee's hierarchy
        """
        if agreement_id is not None:
            agreement = await self.repository.get_agreement(user_id, agreement_id)
            if agreement is None:
                raise ResolutionFailureError("agreement", agreement_id)
            if agreement.status not in self.agreement_statuses:
                raise ResolutionFailureError(
                    "agreement", agreement_id, f"status '{agreement.status}' is not usable"
                )
            return agreement

        for payee_id in payee_ids:
            chain = await self.resolve_payee_chain(user_id, payee_id)
            if chain.agreement and chain.agreement.status in self.agreement_statuses:
                return chain.agreement
            logger.debug(
                "Payee %s has no usable agreement (missing: %s)",
                payee_id,
                ", ".join(chain.missing) or "none",
            )

        raise ResolutionFailureError(
            "agreement", None, "no agreement found through the payee hierarchy"
        )

    async def agreements_for_contact(self, user_id: UUID, name: str) -> list[Agreement]:
        """Agreements for a contact: by counterparty name, then via payee hierarchy."""
        found: dict[UUID, Agreement] = {}
        for agreement in await self.repository.find_agreements_by_counterparty(user_id, name):
            if agreement.status in self.agreement_statuses:
                found.setdefault(agreement.agreement_id, agreement)

        for payee in await self.repository.find_payees_by_name(user_id, name):
            chain = await self.resolve_payee_chain(user_id, payee.payee_id)
            if chain.agreement and chain.agreement.status in self.agreement_statuses:
                found.setdefault(chain.agreement.agreement_id, chain.agreement)

        return list(found.values())
