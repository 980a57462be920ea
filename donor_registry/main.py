from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from donor_registry.config import Settings, get_settings
from donor_registry.database import (
    close_db,
    create_engine_from_settings,
    create_session_factory,
    init_db,
)
from donor_registry.dependencies import get_db
from donor_registry.eligibility import DonorValidationError
from donor_registry.middlewares.logging_middleware import LoggingMiddleware
from donor_registry.routes import router as api_router
from donor_registry.utils.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application startup and shutdown events.
    """
    logger.info("Application starting up...")
    await init_db(app.state.engine)

    yield

    logger.info("Application shutting down...")
    await close_db(app.state.engine)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DonorValidationError)
    async def donor_validation_handler(request: Request, exc: DonorValidationError):
        logger.info(
            f"Donor validation failed: {exc.message}",
            extra={
                "extra_fields": {
                    "path": str(request.url.path),
                    "fields": [e.field for e in exc.errors],
                    "kinds": [e.kind.value for e in exc.errors],
                }
            },
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST, content=exc.to_response_body()
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = {
            ".".join(str(part) for part in error["loc"] if part != "body") or "body": error[
                "msg"
            ]
            for error in exc.errors()
        }
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Invalid request", "validationErrors": errors},
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(
            f"Database error on {request.method} {request.url.path}: {type(exc).__name__}",
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Internal server error"},
        )


def create_application(
    settings: Optional[Settings] = None, engine: Optional[AsyncEngine] = None
) -> FastAPI:
    """Create the FastAPI application"""
    settings = settings or get_settings()
    setup_logging(
        level=settings.LOG_LEVEL,
        environment=settings.ENVIRONMENT,
        log_to_file=settings.LOG_TO_FILE,
    )

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description=settings.PROJECT_DESCRIPTION,
        version=settings.VERSION,
        docs_url=settings.DOCS_URL,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine or create_engine_from_settings(settings)
    app.state.session_factory = create_session_factory(app.state.engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
        expose_headers=["Content-Disposition", "X-Request-ID"],
        max_age=600,
    )
    app.add_middleware(LoggingMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.API_PREFIX)

    @app.get("/health")
    async def health_check(db: AsyncSession = Depends(get_db)):
        """Health check with database connectivity test"""
        try:
            await db.execute(select(1))
        except SQLAlchemyError as e:
            logger.error(f"Health check failed: {e}")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unhealthy", "database": "disconnected"},
            )
        return {
            "status": "healthy",
            "database": "connected",
            "environment": settings.ENVIRONMENT,
        }

    return app


def run() -> None:
    """Console entry point: serve the application with uvicorn."""
    uvicorn.run(
        "donor_registry.main:create_application",
        factory=True,
        host="0.0.0.0",
        port=5000,
    )


if __name__ == "__main__":
    run()
