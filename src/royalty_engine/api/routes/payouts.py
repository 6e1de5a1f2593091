"""Payout API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from royalty_engine.api.dependencies import Services, UserId
from royalty_engine.api.schemas import (
    AuditEntryResponse,
    CalculationResponse,
    ErrorResponse,
    HistoryResponse,
    PayoutCalculate,
    PayoutCreate,
    PayoutResponse,
    SideEffectRetryResponse,
    TransitionRequest,
)
from royalty_engine.calculators.types import PayoutCalculationRequest
from royalty_engine.domain import ReportingPeriod

router = APIRouter(prefix="/payouts", tags=["payouts"])


def _calculation_request(user_id: UUID, payload: PayoutCalculate) -> PayoutCalculationRequest:
    return PayoutCalculationRequest(
        user_id=user_id,
        period=ReportingPeriod(payload.period_start, payload.period_end),
        payee_ids=list(payload.payee_ids),
        payee_name=payload.payee_name,
        agreement_id=payload.agreement_id,
        manual_expenses=payload.manual_expenses,
        resolve_agreement_from_payees=payload.resolve_agreement_from_payees,
    )


# ============================================================================
# Calculation and creation
# ============================================================================


@router.post(
    "/calculate",
    response_model=CalculationResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def calculate_payout(
    services: Services,
    user_id: UserId,
    payload: PayoutCalculate,
) -> CalculationResponse:
    """Calculate gross-to-net figures without storing a payout."""
    result = await services.calculator.calculate(_calculation_request(user_id, payload))
    return CalculationResponse.model_validate(result)


@router.post(
    "",
    response_model=PayoutResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_payout(
    services: Services,
    user_id: UserId,
    payload: PayoutCreate,
) -> PayoutResponse:
    """Calculate and store a payout in draft."""
    payout = await services.workflow.create_payout(
        _calculation_request(user_id, payload), payload.payee_id, payload.period_label
    )
    return PayoutResponse.model_validate(payout)


@router.post(
    "/pending-side-effects/retry",
    response_model=SideEffectRetryResponse,
)
async def retry_side_effects(services: Services, user_id: UserId) -> SideEffectRetryResponse:
    """Re-run quarterly report creation for paid payouts where it failed."""
    retried = await services.workflow.retry_pending_side_effects(user_id)
    return SideEffectRetryResponse(
        retried=retried,
        still_pending=len(services.workflow.pending_for(user_id)),
    )


@router.get(
    "/{payout_id}",
    response_model=PayoutResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payout(
    services: Services,
    user_id: UserId,
    payout_id: Annotated[UUID, Path()],
) -> PayoutResponse:
    """Get a specific payout by ID."""
    payout = await services.workflow.get_payout(user_id, payout_id)
    return PayoutResponse.model_validate(payout)


@router.post(
    "/{payout_id}/recalculate",
    response_model=PayoutResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def recalculate_payout(
    services: Services,
    user_id: UserId,
    payout_id: Annotated[UUID, Path()],
) -> PayoutResponse:
    """Recompute a non-terminal payout from current rows and terms."""
    payout = await services.workflow.recalculate(user_id, payout_id)
    return PayoutResponse.model_validate(payout)


# ============================================================================
# Workflow
# ============================================================================


@router.post(
    "/{payout_id}/transition",
    response_model=PayoutResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def transition_payout(
    services: Services,
    user_id: UserId,
    payout_id: Annotated[UUID, Path()],
    payload: TransitionRequest,
) -> PayoutResponse:
    """Move a payout to another workflow stage."""
    payout = await services.workflow.transition(
        user_id,
        payout_id,
        payload.to_stage,
        reason=payload.reason,
        metadata=payload.metadata,
        actor_id=payload.actor_id,
    )
    return PayoutResponse.model_validate(payout)


@router.get(
    "/{payout_id}/history",
    response_model=HistoryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def payout_history(
    services: Services,
    user_id: UserId,
    payout_id: Annotated[UUID, Path()],
) -> HistoryResponse:
    """Workflow audit entries for a payout, newest first."""
    await services.workflow.get_payout(user_id, payout_id)
    entries = await services.workflow.history(user_id, payout_id)
    return HistoryResponse(
        items=[AuditEntryResponse.model_validate(e) for e in entries],
        total=len(entries),
    )
