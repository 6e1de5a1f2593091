"""Batch operation endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from royalty_engine.api.dependencies import Services, UserId
from royalty_engine.api.schemas import BatchCreate, BatchResponse, ErrorResponse

router = APIRouter(prefix="/batches", tags=["batches"])


@router.post(
    "",
    response_model=BatchResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_batch(
    services: Services,
    user_id: UserId,
    payload: BatchCreate,
) -> BatchResponse:
    """Record a batch operation. Run it with POST /batches/{id}/run."""
    batch = await services.batches.create(
        user_id, payload.operation_type, payload.target_ids, payload.config
    )
    return BatchResponse.from_batch(batch)


@router.get(
    "/{batch_id}",
    response_model=BatchResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_batch(
    services: Services,
    user_id: UserId,
    batch_id: Annotated[UUID, Path()],
) -> BatchResponse:
    batch = await services.batches.get(user_id, batch_id)
    return BatchResponse.from_batch(batch)


@router.post(
    "/{batch_id}/run",
    response_model=BatchResponse,
    responses={404: {"model": ErrorResponse}},
)
async def run_batch(
    services: Services,
    user_id: UserId,
    batch_id: Annotated[UUID, Path()],
) -> BatchResponse:
    """Process every unfinished target; per-target failures are recorded."""
    batch = await services.batches.run(user_id, batch_id)
    return BatchResponse.from_batch(batch)


@router.post(
    "/{batch_id}/resume",
    response_model=BatchResponse,
    responses={404: {"model": ErrorResponse}},
)
async def resume_batch(
    services: Services,
    user_id: UserId,
    batch_id: Annotated[UUID, Path()],
) -> BatchResponse:
    """Retry only the failed and pending targets."""
    batch = await services.batches.resume(user_id, batch_id)
    return BatchResponse.from_batch(batch)
