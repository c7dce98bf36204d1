"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.middleware.error_handler import error_handler_middleware
from src.api.middleware.request_logging import request_logging_middleware
from src.api.routes import (
    auth,
    care,
    connections,
    health,
    invite_codes,
    live,
    profiles,
    schedules,
    session,
    templates,
)
from src.core.config import get_settings
from src.core.scheduler import init_template_scheduler, shutdown_template_scheduler
from src.core.session import init_session_registry, shutdown_session_registry
from src.services.template_service import TemplateService

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control back to the application.
    """
    # Startup
    settings = get_settings()
    logger.info("Starting %s in %s mode (%s store)", settings.app_name, settings.app_env, settings.store_backend)

    # Expire idle session contexts in the background
    await init_session_registry()
    logger.info("Session registry initialized")

    # Re-arm weekly template jobs, then start polling for due ones
    restored = await TemplateService().restore_weekly_jobs()
    await init_template_scheduler()
    logger.info("Template scheduler initialized with %d weekly jobs", restored)

    yield
    # Shutdown
    await shutdown_template_scheduler()
    logger.info("Template scheduler shutdown")
    await shutdown_session_registry()
    logger.info("Session registry shutdown")
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="CareLink API",
        description="Shared schedules, meals, medications and notes between parents and care providers",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add error handler middleware (outermost - catches all errors)
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)

    # Add request logging middleware (tracks request timing)
    app.add_middleware(BaseHTTPMiddleware, dispatch=request_logging_middleware)

    # Mount health routes at root level (no prefix)
    app.include_router(health.router)

    # Create API v1 router for versioned endpoints
    api_v1_router = APIRouter(prefix="/api/v1")

    # Authentication and session routes
    api_v1_router.include_router(auth.router)
    api_v1_router.include_router(session.router)

    # Profile and pairing routes
    api_v1_router.include_router(profiles.router)
    api_v1_router.include_router(invite_codes.router)
    api_v1_router.include_router(connections.router)

    # Shared record routes, scoped to a connection
    api_v1_router.include_router(schedules.router)
    api_v1_router.include_router(care.router)
    api_v1_router.include_router(templates.router)

    # Live queries
    api_v1_router.include_router(live.router)

    app.include_router(api_v1_router)

    return app


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=settings.web_concurrency,
    )
