"""Bulk operations over many payouts.

A BatchOperation is stored before any target is touched and updated after
every chunk, so an interrupted run can be resumed: ``resume`` re-runs
only the targets that have not completed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Mapping, Sequence
from uuid import UUID, uuid4

from royalty_engine.config import WorkflowConfig
from royalty_engine.domain import BatchOperation, BatchStatus, BatchTargetOutcome, utcnow
from royalty_engine.exceptions import (
    InvalidInputError,
    ResolutionFailureError,
    RoyaltyEngineError,
)
from royalty_engine.repository.base import RoyaltyRepository
from royalty_engine.services.state_machine import PayoutStateMachine
from royalty_engine.services.workflow_service import PayoutWorkflowService

logger = logging.getLogger(__name__)

OPERATION_TYPES = frozenset({"transition", "recalculate"})


class BatchService:
    """Creates, runs and resumes batch operations."""

    def __init__(
        self,
        repository: RoyaltyRepository,
        workflow: PayoutWorkflowService,
        config: WorkflowConfig | None = None,
    ):
        self.repository = repository
        self.workflow = workflow
        self.config = config or workflow.config.workflow

    async def create(
        self,
        user_id: UUID,
        operation_type: str,
        target_ids: Sequence[UUID],
        config: Mapping[str, Any] | None = None,
    ) -> BatchOperation:
        """Record a new batch without running it.

        Raises:
            InvalidInputError: unknown operation, no targets, or a transition
                batch without a valid ``to_stage``.
        """
        config = dict(config or {})
        if operation_type not in OPERATION_TYPES:
            raise InvalidInputError(
                "operation_type", f"must be one of {sorted(OPERATION_TYPES)}", operation_type
            )
        targets = tuple(dict.fromkeys(target_ids))
        if not targets:
            raise InvalidInputError("target_ids", "at least one target is required")
        if operation_type == "transition":
            to_stage = config.get("to_stage")
            if to_stage not in PayoutStateMachine.VALID_TRANSITIONS:
                raise InvalidInputError("config.to_stage", "unknown workflow stage", to_stage)

        batch = BatchOperation(
            batch_id=uuid4(),
            user_id=user_id,
            operation_type=operation_type,
            target_ids=targets,
            config=config,
            outcomes={t: BatchTargetOutcome(t) for t in targets},
        )
        return await self.repository.save_batch(batch)

    async def get(self, user_id: UUID, batch_id: UUID) -> BatchOperation:
        batch = await self.repository.get_batch(user_id, batch_id)
        if batch is None:
            raise ResolutionFailureError("batch", batch_id)
        return batch

    async def run(self, user_id: UUID, batch_id: UUID) -> BatchOperation:
        """Process every unfinished target in chunks of ``batch_size``."""
        batch = await self.get(user_id, batch_id)
        targets = batch.unfinished_targets()
        if not targets:
            return batch

        batch = await self.repository.save_batch(
            replace(batch, status=BatchStatus.PROCESSING, updated_at=utcnow())
        )

        size = self.config.batch_size
        for start in range(0, len(targets), size):
            chunk = targets[start : start + size]
            results = await asyncio.gather(
                *(self._run_target(batch, target_id) for target_id in chunk),
                return_exceptions=True,
            )
            outcomes = dict(batch.outcomes)
            for target_id, result in zip(chunk, results):
                outcomes[target_id] = self._outcome(target_id, result)
            batch = await self.repository.save_batch(
                replace(batch, outcomes=outcomes, updated_at=utcnow())
            )

        batch = await self.repository.save_batch(
            replace(batch, status=self._final_status(batch), updated_at=utcnow())
        )
        logger.info(
            "Batch %s (%s): %d completed, %d failed of %d",
            batch.batch_id,
            batch.operation_type,
            batch.completed_count,
            batch.failed_count,
            batch.total_count,
        )
        return batch

    async def resume(self, user_id: UUID, batch_id: UUID) -> BatchOperation:
        """Re-run only the failed and pending targets of a batch."""
        batch = await self.get(user_id, batch_id)
        if batch.status == BatchStatus.COMPLETED:
            return batch
        logger.info(
            "Resuming batch %s with %d unfinished target(s)",
            batch_id,
            len(batch.unfinished_targets()),
        )
        return await self.run(user_id, batch_id)

    async def _run_target(self, batch: BatchOperation, target_id: UUID) -> None:
        if batch.operation_type == "transition":
            # Config round-trips through JSON storage
            actor_id = batch.config.get("actor_id")
            await self.workflow.transition(
                batch.user_id,
                target_id,
                batch.config["to_stage"],
                reason=batch.config.get("reason"),
                metadata={"batch_id": str(batch.batch_id)},
                actor_id=UUID(str(actor_id)) if actor_id else None,
            )
        else:
            await self.workflow.recalculate(batch.user_id, target_id)

    @staticmethod
    def _outcome(target_id: UUID, result: Any) -> BatchTargetOutcome:
        if isinstance(result, RoyaltyEngineError):
            return BatchTargetOutcome(target_id, "failed", result.code, str(result))
        if isinstance(result, Exception):
            logger.error("Batch target %s failed unexpectedly: %r", target_id, result)
            return BatchTargetOutcome(target_id, "failed", "INTERNAL_ERROR", str(result))
        if isinstance(result, BaseException):
            raise result
        return BatchTargetOutcome(target_id, "completed")

    @staticmethod
    def _final_status(batch: BatchOperation) -> BatchStatus:
        if batch.completed_count == batch.total_count:
            return BatchStatus.COMPLETED
        if batch.completed_count == 0:
            return BatchStatus.FAILED
        return BatchStatus.PARTIALLY_FAILED
