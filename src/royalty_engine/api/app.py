"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from royalty_engine import __version__
from royalty_engine.api.dependencies import EngineServices
from royalty_engine.api.routes import (
    allocations_router,
    batches_router,
    health_router,
    payouts_router,
    reports_router,
)
from royalty_engine.config import EngineConfig, Settings
from royalty_engine.database import Database
from royalty_engine.exceptions import (
    CalculationError,
    ConflictingOperationError,
    ExternalServiceError,
    InvalidTransitionError,
    OperationAbandoned,
    OperationTimeoutError,
    ResolutionFailureError,
    RoyaltyEngineError,
)
from royalty_engine.repository.base import RoyaltyRepository
from royalty_engine.repository.sql import SqlAlchemyRepository

logger = logging.getLogger(__name__)

# First match wins; subclasses before their bases
ERROR_STATUS: list[tuple[type[RoyaltyEngineError], int]] = [
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ConflictingOperationError, status.HTTP_409_CONFLICT),
    (ResolutionFailureError, status.HTTP_404_NOT_FOUND),
    (CalculationError, status.HTTP_400_BAD_REQUEST),
    (OperationTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
    (OperationAbandoned, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(error: RoyaltyEngineError) -> int:
    for error_type, code in ERROR_STATUS:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup: an injected repository needs no database
    database: Database | None = None
    if app.state.services is None:
        settings: Settings = app.state.settings
        database = Database(settings.database_url, echo=settings.debug)
        if settings.debug:
            await database.create_all()
        app.state.services = EngineServices.build(
            SqlAlchemyRepository(database.session_factory),
            app.state.engine_config,
            database,
        )
    yield
    # Shutdown
    if database is not None:
        await database.dispose()
        app.state.services = None


def create_app(
    settings: Settings | None = None,
    repository: RoyaltyRepository | None = None,
    config: EngineConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    With ``repository`` the engine runs against it directly (tests and
    embedded use); otherwise the lifespan opens the configured database.
    """
    app = FastAPI(
        title="Royalty Engine API",
        description="Royalty allocation and payout engine",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings or Settings.from_env()
    app.state.engine_config = config or EngineConfig()
    app.state.services = (
        EngineServices.build(repository, app.state.engine_config)
        if repository is not None
        else None
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(RoyaltyEngineError)
    async def engine_exception_handler(
        request: Request, exc: RoyaltyEngineError
    ) -> JSONResponse:
        """Render engine errors with their structured body."""
        code = status_for(exc)
        if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        body = exc.to_dict()
        return JSONResponse(
            status_code=code,
            content={
                "detail": body.pop("message"),
                "code": body.pop("code"),
                "context": body or None,
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(allocations_router, prefix="/api/v1")
    app.include_router(payouts_router, prefix="/api/v1")
    app.include_router(batches_router, prefix="/api/v1")
    app.include_router(reports_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
