"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskauth.api.admin import router as admin_router
from taskauth.api.auth import router as auth_router
from taskauth.api.error_handling import register_exception_handlers
from taskauth.api.middleware import CorrelationIdMiddleware
from taskauth.api.routes import router
from taskauth.config import Settings, get_settings
from taskauth.container import Container, build_container
from taskauth.services.logging_service import configure_logging, get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    settings: Settings = app.state.settings
    configure_logging(settings.log_level)
    logger = get_logger("main")

    container: Optional[Container] = getattr(app.state, "container", None)
    if container is None:
        container = build_container(settings)
        app.state.container = container

    if settings.storage_backend == "postgres":
        from taskauth.database import init_database, run_migrations

        await init_database()
        await run_migrations()
        logger.info("database_initialized")

    if settings.revocation_backend == "redis":
        from taskauth.services.redis_service import get_redis

        if await get_redis() is None:
            logger.warning(
                "redis_initialization_failed",
                note="Revocation checks will fail until Redis is reachable",
            )
        else:
            logger.info("redis_initialized")

    if settings.admin_email and settings.admin_password:
        admin = await container.auth_service.ensure_admin(
            settings.admin_email,
            settings.admin_username,
            settings.admin_password,
        )
        logger.info("admin_account_ready", user_id=str(admin.id))

    container.sweeper.start()

    logger.info(
        "application_started",
        storage_backend=settings.storage_backend,
        revocation_backend=settings.revocation_backend,
        access_ttl_seconds=settings.access_ttl_seconds,
        log_level=settings.log_level,
    )

    yield

    # Shutdown
    await container.sweeper.stop()

    if settings.storage_backend == "postgres":
        from taskauth.database import close_database

        await close_database()

    if settings.revocation_backend == "redis":
        from taskauth.services.redis_service import close_redis

        await close_redis()

    logger.info("application_shutdown")


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[Container] = None,
) -> FastAPI:
    """Build the FastAPI app.

    Args:
        settings: Settings to use (defaults to the environment)
        container: Pre-built components; built from settings at startup if omitted
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Task Management - Auth API",
        description="Registration, login, token refresh and logout",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    if container is not None:
        app.state.container = container

    register_exception_handlers(app)

    # CORS middleware for browser clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware for request tracking and observability
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(router)
    app.include_router(auth_router)
    app.include_router(admin_router)

    return app


app = create_app()
