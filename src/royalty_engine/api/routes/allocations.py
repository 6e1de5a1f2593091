"""Fee proration endpoints. Previews only; nothing is stored."""

from fastapi import APIRouter

from royalty_engine.api.dependencies import Services, UserId
from royalty_engine.api.schemas import (
    ErrorResponse,
    LicenseProrationRequest,
    LicenseProrationResponse,
    PayeeBreakdownResponse,
    ProrationRequest,
    ProrationResponse,
    WriterAllocationResponse,
)
from royalty_engine.calculators.proration import FeeProrationEngine

router = APIRouter(prefix="/allocations", tags=["allocations"])


@router.post(
    "/prorate",
    response_model=ProrationResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def prorate_fee(
    services: Services,
    user_id: UserId,
    payload: ProrationRequest,
) -> ProrationResponse:
    """Split one fee across works and their controlled writers."""
    works = await services.ownership.get_works(user_id, payload.work_ids)
    result = services.proration.prorate(
        payload.fee, works, payload.custom_amounts, payload.allocation_type
    )
    return ProrationResponse.model_validate(result)


@router.post(
    "/prorate-license",
    response_model=LicenseProrationResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def prorate_license(
    services: Services,
    user_id: UserId,
    payload: LicenseProrationRequest,
) -> LicenseProrationResponse:
    """Split publishing and master fees, merged per writer."""
    works = await services.ownership.get_works(user_id, payload.work_ids)
    result = services.proration.prorate_license(
        payload.publishing_fee,
        payload.master_fee,
        works,
        payload.publishing_custom,
        payload.master_custom,
    )
    return LicenseProrationResponse(
        publishing=ProrationResponse.model_validate(result.publishing),
        master=ProrationResponse.model_validate(result.master),
        writer_allocations=[
            WriterAllocationResponse.model_validate(w) for w in result.writer_allocations
        ],
        payee_breakdown=[
            PayeeBreakdownResponse.model_validate(b)
            for b in FeeProrationEngine.payee_breakdown(result.writer_allocations)
        ],
    )
