"""FastAPI dependencies for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status

from royalty_engine.calculators.proration import FeeProrationEngine
from royalty_engine.calculators.royalty_calculator import RoyaltyCalculator
from royalty_engine.config import EngineConfig
from royalty_engine.database import Database
from royalty_engine.events.emitter import AsyncEventEmitter
from royalty_engine.repository.base import RoyaltyRepository
from royalty_engine.services.batch_service import BatchService
from royalty_engine.services.ownership import OwnershipLedger
from royalty_engine.services.quarterly_reports import QuarterlyReportService
from royalty_engine.services.workflow_service import PayoutWorkflowService


@dataclass
class EngineServices:
    """Services shared by every request of one application instance."""

    repository: RoyaltyRepository
    emitter: AsyncEventEmitter
    ownership: OwnershipLedger
    proration: FeeProrationEngine
    calculator: RoyaltyCalculator
    reports: QuarterlyReportService
    workflow: PayoutWorkflowService
    batches: BatchService
    database: Database | None = None

    @classmethod
    def build(
        cls,
        repository: RoyaltyRepository,
        config: EngineConfig | None = None,
        database: Database | None = None,
    ) -> EngineServices:
        config = config or EngineConfig()
        emitter = AsyncEventEmitter()
        ownership = OwnershipLedger(repository, config.calculation.agreement_statuses)
        calculator = RoyaltyCalculator(repository, config.calculation, ownership)
        reports = QuarterlyReportService(repository, emitter, config.reports)
        workflow = PayoutWorkflowService(
            repository,
            emitter,
            reports=reports,
            config=config,
            calculator=calculator,
        )
        return cls(
            repository=repository,
            emitter=emitter,
            ownership=ownership,
            proration=FeeProrationEngine(),
            calculator=calculator,
            reports=reports,
            workflow=workflow,
            batches=BatchService(repository, workflow),
            database=database,
        )


def get_services(request: Request) -> EngineServices:
    """Get the application's service container."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Engine is not initialised",
        )
    return services


async def get_user_id(
    x_user_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract the owning user ID from header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID header is required",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )


# Type aliases for cleaner dependency injection
Services = Annotated[EngineServices, Depends(get_services)]
UserId = Annotated[UUID, Depends(get_user_id)]
