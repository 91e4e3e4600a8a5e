"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mypayroll import __version__
from mypayroll.api.routes import (
    contributions_router,
    health_router,
    payroll_runs_router,
    resignations_router,
)
from mypayroll.database import dispose_db, init_db
from mypayroll.errors import PayrollError

logger = logging.getLogger(__name__)

# HTTP status per domain error code
ERROR_STATUS: dict[str, int] = {
    "VALIDATION_ERROR": 422,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "DUPLICATE_RUN": status.HTTP_409_CONFLICT,
    "ALREADY_FINALIZED": status.HTTP_409_CONFLICT,
    "EMPLOYEE_ALREADY_IN_PERIOD": status.HTTP_409_CONFLICT,
    "LEAVES_PENDING": status.HTTP_409_CONFLICT,
    "INVALID_TRANSITION": status.HTTP_409_CONFLICT,
    "APPROVAL_REQUIRED": status.HTTP_409_CONFLICT,
    "RUN_NOT_FINALIZED": status.HTTP_409_CONFLICT,
    "CONCURRENCY_CONFLICT": status.HTTP_423_LOCKED,
    "STATUTORY_TABLE_MISSING": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    init_db()
    yield
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Payroll Run Engine API",
        description="Malaysian monthly payroll: runs, statutory contributions and resignations",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PayrollError)
    async def payroll_error_handler(request: Request, exc: PayrollError) -> JSONResponse:
        """Map domain errors to their HTTP status."""
        status_code = ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "code": exc.code, **exc.context()},
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

    app.include_router(health_router)
    app.include_router(payroll_runs_router, prefix="/api/v1")
    app.include_router(contributions_router, prefix="/api/v1")
    app.include_router(resignations_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
