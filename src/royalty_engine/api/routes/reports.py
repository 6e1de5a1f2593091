"""Quarterly balance report endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, Response

from royalty_engine.api.dependencies import Services, UserId
from royalty_engine.api.schemas import (
    ErrorResponse,
    QuarterlyReportListResponse,
    QuarterlyReportResponse,
    TrailingReportsRequest,
)
from royalty_engine.services.quarterly_reports import export_csv

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("", response_model=QuarterlyReportListResponse)
async def list_reports(
    services: Services,
    user_id: UserId,
    payee_id: Annotated[UUID | None, Query()] = None,
) -> QuarterlyReportListResponse:
    """List quarterly reports, newest first."""
    reports = await services.repository.list_quarterly_reports(user_id, payee_id)
    return QuarterlyReportListResponse(
        items=[QuarterlyReportResponse.model_validate(r) for r in reports],
        total=len(reports),
    )


@router.post(
    "/trailing",
    response_model=QuarterlyReportListResponse,
    responses={400: {"model": ErrorResponse}},
)
async def generate_trailing_reports(
    services: Services,
    user_id: UserId,
    payload: TrailingReportsRequest,
) -> QuarterlyReportListResponse:
    """Rebuild the payee's trailing quarters, oldest first."""
    reports = await services.reports.generate_trailing_reports(
        user_id, payload.payee_id, payload.as_of, payload.count
    )
    return QuarterlyReportListResponse(
        items=[QuarterlyReportResponse.model_validate(r) for r in reports],
        total=len(reports),
    )


@router.get("/export")
async def export_reports(
    services: Services,
    user_id: UserId,
    payee_id: Annotated[UUID | None, Query()] = None,
) -> Response:
    """Export quarterly reports as CSV, oldest first."""
    reports = await services.repository.list_quarterly_reports(user_id, payee_id)
    return Response(
        content=export_csv(reports),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="quarterly_reports.csv"'},
    )
