import importlib
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from scalar_fastapi import get_scalar_api_reference

from src.config.database import database, init_db
from src.config.settings import settings
from src.core.exceptions import register_exception_handlers
from src.core.observability import configure_logging, init_observability
from src.core.scheduler import BackgroundScheduler
from src.domains.admin.router import router as admin_router
from src.domains.auth.router import router as auth_router
from src.domains.notifications.router import router as notifications_router
from src.domains.plans.service import PlanService
from src.domains.renewals.admin_router import router as admin_renewals_router
from src.domains.renewals.router import router as renewals_router
from src.domains.slots.router import router as personal_router
from src.domains.students.router import router as students_router
from src.domains.tokens.router import router as tokens_router
from src.domains.transitions.router import router as transitions_router

logger = structlog.get_logger(__name__)

# Data migrations run in order on every startup; each must be idempotent
MIGRATIONS = [
    ("migrate_legacy_tokens", "src.migrations.migrate_legacy_tokens"),
]


async def run_pending_migrations():
    """Run any pending data migrations."""
    for name, module_path in MIGRATIONS:
        try:
            module = importlib.import_module(module_path)
            await module.migrate(settings.DATABASE_URL)
            logger.info("migration_completed", name=name)
        except Exception as e:
            logger.warning("migration_error", name=name, error=str(e), type=type(e).__name__)


async def seed_plans_if_missing():
    """Create the initial plan catalog entries that do not exist yet."""
    async with database.session() as session:
        created = await PlanService(session).ensure_initial_plans()
    if created:
        logger.info("plans_seeded", count=created)
    else:
        logger.info("plans_seed_skipped")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    # Startup
    logger.info("app_starting", app_name=settings.APP_NAME, environment=settings.APP_ENV)

    # Initialize database tables
    try:
        await init_db()
        logger.info("database_initialized")
    except Exception as e:
        logger.error("database_init_failed", error=str(e), type=type(e).__name__)
        # Re-raise in production to prevent unhealthy startup
        if settings.is_production:
            raise

    await run_pending_migrations()

    try:
        await seed_plans_if_missing()
    except Exception as e:
        logger.warning("plan_seed_failed", error=str(e), type=type(e).__name__)

    scheduler = BackgroundScheduler()
    app.state.scheduler = scheduler
    if settings.SCHEDULER_ENABLED:
        await scheduler.start()
        logger.info("scheduler_started")

    yield
    # Shutdown
    logger.info("app_shutting_down", app_name=settings.APP_NAME)
    if scheduler.is_running:
        await scheduler.stop()
        logger.info("scheduler_stopped")
    await database.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()
    # Initialize observability (GlitchTip/Sentry)
    init_observability()

    app = FastAPI(
        title=settings.APP_NAME,
        description="DyFit API - plans, tokens and student slots for personal trainers",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
        # Disable automatic trailing slash redirects - they lose Authorization headers
        redirect_slashes=False,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
    )

    register_exception_handlers(app)

    # Include routers
    prefix = settings.API_PREFIX
    app.include_router(auth_router, prefix=f"{prefix}/auth", tags=["Authentication"])
    app.include_router(personal_router, prefix=prefix)
    app.include_router(renewals_router, prefix=prefix)
    app.include_router(tokens_router, prefix=prefix)
    app.include_router(students_router, prefix=prefix)
    app.include_router(transitions_router, prefix=prefix)
    app.include_router(notifications_router, prefix=prefix)
    app.include_router(admin_router, prefix=prefix)
    app.include_router(admin_renewals_router, prefix=prefix)

    # Health check endpoint
    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.APP_ENV,
        }

    # Scalar API Reference - Modern API documentation
    @app.get("/reference", include_in_schema=False)
    async def scalar_html():
        return get_scalar_api_reference(
            openapi_url=app.openapi_url,
            title=f"{settings.APP_NAME} - API Reference",
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
