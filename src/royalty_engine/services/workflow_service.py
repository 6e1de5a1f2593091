"""Payout workflow service.

Moves payouts through review, approval and payment. Each transition
commits the new stage, the derived status and an audit entry in one
repository transaction; events are published only after the commit.

Entering ``paid`` creates the payee's quarterly balance report. That side
effect runs after the transition commits: if it fails the payout stays
paid, the failure is logged and kept for ``retry_pending_side_effects``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Mapping
from uuid import UUID

from royalty_engine.calculators.royalty_calculator import RoyaltyCalculator
from royalty_engine.calculators.types import PayoutCalculationRequest
from royalty_engine.config import EngineConfig
from royalty_engine.coordination.retry import (
    RetryPolicy,
    execute_with_retry,
    payout_fetch_should_retry,
)
from royalty_engine.coordination.serializer import ResourceSerializer
from royalty_engine.domain import Payout, WorkflowAuditEntry, utcnow
from royalty_engine.events.emitter import AsyncEventEmitter
from royalty_engine.events.types import (
    DomainEvent,
    EventMetadata,
    PayoutStatusChanged,
    PayoutUpdated,
)
from royalty_engine.exceptions import InvalidTransitionError, ResolutionFailureError
from royalty_engine.repository.base import RoyaltyRepository
from royalty_engine.services.quarterly_reports import QuarterlyReportService
from royalty_engine.services.state_machine import PayoutStage, PayoutStateMachine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingSideEffect:
    """A post-commit side effect that failed and can be retried."""

    payout_id: UUID
    user_id: UUID
    effect: str
    error: str
    failed_at: datetime


class PayoutWorkflowService:
    """Stage transitions, history and calculation for payouts."""

    def __init__(
        self,
        repository: RoyaltyRepository,
        emitter: AsyncEventEmitter | None = None,
        reports: QuarterlyReportService | None = None,
        config: EngineConfig | None = None,
        serializer: ResourceSerializer | None = None,
        calculator: RoyaltyCalculator | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.repository = repository
        self.config = config or EngineConfig()
        self.emitter = emitter or AsyncEventEmitter()
        self.reports = reports or QuarterlyReportService(
            repository, self.emitter, self.config.reports
        )
        self.serializer = serializer or ResourceSerializer(self.config.workflow.conflict_policy)
        self.calculator = calculator or RoyaltyCalculator(repository, self.config.calculation)
        self.retry_policy = RetryPolicy.from_config(self.config.retry)
        self._sleep = sleep
        self._pending: dict[UUID, PendingSideEffect] = {}

    @property
    def pending_side_effects(self) -> list[PendingSideEffect]:
        return self.pending_for()

    def pending_for(self, user_id: UUID | None = None) -> list[PendingSideEffect]:
        """Pending side effects, only ``user_id``'s when given."""
        return [
            p for p in self._pending.values() if user_id is None or p.user_id == user_id
        ]

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_payout(self, user_id: UUID, payout_id: UUID) -> Payout:
        """Fetch a payout, retrying transient failures.

        Raises:
            ResolutionFailureError: no such payout for this user.
        """
        payout = await execute_with_retry(
            lambda: self.repository.get_payout(user_id, payout_id),
            self.retry_policy,
            should_retry=payout_fetch_should_retry,
            operation_name=f"fetch payout {payout_id}",
            sleep=self._sleep,
        )
        if payout is None:
            raise ResolutionFailureError("payout", payout_id)
        return payout

    async def history(self, user_id: UUID, payout_id: UUID) -> list[WorkflowAuditEntry]:
        """Audit entries for a payout, newest first."""
        return await self.repository.list_workflow_audit_entries(user_id, payout_id)

    # -------------------------------------------------------------------------
    # Creation and recalculation
    # -------------------------------------------------------------------------

    async def create_payout(
        self,
        request: PayoutCalculationRequest,
        payee_id: UUID,
        period_label: str,
    ) -> Payout:
        """Calculate and store a draft payout."""
        self.reports.parse_period(period_label)
        result = await self.calculator.calculate(request)
        payout = self.calculator.build_payout(result, payee_id, period_label)

        async with self.repository.transaction():
            payout = await self.repository.upsert_payout(payout)

        logger.info(
            "Created %s payout %s for payee %s (%s): amount_due=%s",
            payout.calculation_method.value,
            payout.payout_id,
            payee_id,
            period_label,
            payout.amount_due,
        )
        await self._publish([PayoutUpdated.from_payout(EventMetadata.create(payout.user_id), payout)])
        return payout

    async def recalculate(self, user_id: UUID, payout_id: UUID) -> Payout:
        """Refresh a payout's money fields from current data.

        Raises:
            InvalidTransitionError: the payout's stage no longer allows it.
        """
        async with self.serializer.guard(payout_id, "recalculate"):
            payout = await self.get_payout(user_id, payout_id)
            if not PayoutStateMachine.can_calculate(payout.workflow_stage):
                raise InvalidTransitionError(
                    payout.workflow_stage,
                    payout.workflow_stage,
                    "recalculation is not allowed in this stage",
                )
            updated = await self.calculator.recalculate(payout)
            async with self.repository.transaction():
                updated = await self.repository.upsert_payout(updated)

        await self._publish([PayoutUpdated.from_payout(EventMetadata.create(user_id), updated)])
        return updated

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def transition(
        self,
        user_id: UUID,
        payout_id: UUID,
        new_stage: str,
        reason: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        actor_id: UUID | None = None,
    ) -> Payout:
        """Move a payout to ``new_stage``.

        Raises:
            InvalidTransitionError: illegal edge or failed precondition;
                nothing is written.
            ConflictingOperationError: another transition for this payout
                is in flight (reject policy).
            ResolutionFailureError: no such payout.
        """
        async with self.serializer.guard(payout_id, f"transition to {new_stage}"):
            payout = await self.get_payout(user_id, payout_id)
            from_stage = payout.workflow_stage

            PayoutStateMachine.validate_transition(from_stage, new_stage)
            errors = PayoutStateMachine.validate_payout_for_transition(
                payout,
                new_stage,
                reason,
                require_failure_reason=self.config.workflow.require_failure_reason,
            )
            if errors:
                raise InvalidTransitionError(from_stage, new_stage, "; ".join(errors))

            stage = PayoutStage(new_stage).value
            now = utcnow()
            updated = replace(
                payout,
                workflow_stage=stage,
                status=PayoutStateMachine.status_for(stage),
                failure_reason=reason if stage == PayoutStage.PAYMENT_FAILED else None,
                payment_date=date.today() if stage == PayoutStage.PAID else payout.payment_date,
                updated_at=now,
            )
            entry = WorkflowAuditEntry.create(payout, stage, reason, metadata, actor_id)

            async with self.repository.transaction():
                updated = await self.repository.upsert_payout(updated)
                await self.repository.insert_workflow_audit_entry(entry)

            logger.info(
                "Payout %s moved %s -> %s",
                payout_id,
                from_stage,
                stage,
            )

            event_meta = EventMetadata.create(user_id, actor_id=actor_id)
            await self._publish(
                [
                    PayoutStatusChanged(
                        metadata=event_meta,
                        payout_id=payout_id,
                        from_stage=from_stage,
                        to_stage=stage,
                        reason=reason,
                        audit_entry_id=entry.entry_id,
                    ),
                    PayoutUpdated.from_payout(
                        EventMetadata.create(
                            user_id, correlation_id=event_meta.correlation_id, actor_id=actor_id
                        ),
                        updated,
                    ),
                ]
            )

            if stage == PayoutStage.PAID:
                updated = await self._ensure_quarterly_report(updated)

        return updated

    async def retry_pending_side_effects(
        self, user_id: UUID | None = None
    ) -> dict[UUID, bool]:
        """Re-run failed post-commit side effects.

        With ``user_id``, only that user's entries are retried. Returns a map
        of payout id to whether the retry succeeded.
        """
        results: dict[UUID, bool] = {}
        for pending in self.pending_for(user_id):
            try:
                payout = await self.get_payout(pending.user_id, pending.payout_id)
            except ResolutionFailureError:
                logger.warning(
                    "Dropping pending %s for missing payout %s",
                    pending.effect,
                    pending.payout_id,
                )
                self._pending.pop(pending.payout_id, None)
                results[pending.payout_id] = False
                continue
            await self._ensure_quarterly_report(payout)
            results[pending.payout_id] = pending.payout_id not in self._pending
        return results

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _ensure_quarterly_report(self, payout: Payout) -> Payout:
        try:
            report, created = await self.reports.ensure_report_for_payout(payout)
            if payout.quarterly_report_id != report.report_id:
                payout = await self.repository.upsert_payout(
                    replace(payout, quarterly_report_id=report.report_id)
                )
        except Exception as e:
            logger.exception(
                "Quarterly report for paid payout %s failed; kept for retry",
                payout.payout_id,
            )
            self._pending[payout.payout_id] = PendingSideEffect(
                payout_id=payout.payout_id,
                user_id=payout.user_id,
                effect="quarterly_report",
                error=str(e),
                failed_at=utcnow(),
            )
            return payout

        self._pending.pop(payout.payout_id, None)
        if not created:
            logger.debug("Payout %s reused quarterly report %s", payout.payout_id, report.report_id)
        return payout

    async def _publish(self, events: list[DomainEvent]) -> None:
        async with self.emitter.batch() as batch:
            for event in events:
                await batch.add(event)
        if batch.errors:
            logger.warning(
                "%d handler(s) failed for %s",
                len(batch.errors),
                ", ".join(e.event_type for e in events),
            )
