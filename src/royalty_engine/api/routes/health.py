"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status
from pydantic import BaseModel

from royalty_engine.api.dependencies import Services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str
    pending_side_effects: int


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(services: Services) -> HealthResponse:
    """Check API and database health."""
    if services.database is None:
        db_status = "not_configured"
    else:
        db_status = "unhealthy"
        try:
            await services.database.ping()
            db_status = "healthy"
        except Exception as e:
            logger.warning("Database health check failed: %s", e)

    return HealthResponse(
        status="degraded" if db_status == "unhealthy" else "healthy",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        pending_side_effects=len(services.workflow.pending_side_effects),
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check() -> dict[str, str]:
    """Readiness check for container orchestration."""
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
