from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from services.common.http_errors import register_huddle_exception_handlers
from services.common.logging_config import (
    create_request_logging_middleware,
    get_logger,
    log_service_shutdown,
    log_service_startup,
    setup_service_logging,
)
from services.scheduler.api import invitations_router, join_router, meetings_router
from services.scheduler.settings import get_settings

# Set up centralized logging - will be initialized in lifespan
logger = get_logger(__name__)

SERVICE_NAME = "scheduler"
SERVICE_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()

    setup_service_logging(
        service_name=SERVICE_NAME,
        log_level=settings.log_level,
        log_format=settings.log_format,
    )

    if settings.repository_backend.lower() == "sql":
        from services.scheduler.models import upgrade_database

        upgrade_database()
        logger.info("Database schema is up to date")

    log_service_startup(
        SERVICE_NAME,
        version=SERVICE_VERSION,
        repository_backend=settings.repository_backend,
        calendar_sync_enabled=bool(settings.office_service_url),
    )
    yield
    if settings.repository_backend.lower() == "sql":
        from services.scheduler.models import close_db

        close_db()
    log_service_shutdown(SERVICE_NAME)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Huddle Scheduler Service",
        version=SERVICE_VERSION,
        description="Meeting availability and slot resolution service for Huddle.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add request logging middleware
    app.middleware("http")(create_request_logging_middleware())

    # Register standardized exception handlers
    register_huddle_exception_handlers(app)

    app.include_router(
        meetings_router, prefix="/api/v1/scheduler/meetings", tags=["meetings"]
    )
    app.include_router(
        invitations_router, prefix="/api/v1/public/invitations", tags=["public"]
    )
    app.include_router(join_router, prefix="/api/v1/public/join", tags=["public"])

    @app.get("/health")
    def health() -> dict:
        logger.info("Health check endpoint accessed")
        return {"status": "ok"}

    return app


app = create_app()
