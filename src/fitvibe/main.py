"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from fitvibe.activities.router import router as activities_router
from fitvibe.activities.seed import seed_activity_templates
from fitvibe.auth.router import router as auth_router
from fitvibe.challenges.router import router as challenges_router
from fitvibe.clubs.router import router as clubs_router
from fitvibe.config import get_settings
from fitvibe.database import close_db, get_session_factory, init_db
from fitvibe.gamification.router import router as gamification_router
from fitvibe.gamification.seed import seed_badges
from fitvibe.goals.router import router as goals_router
from fitvibe.health.router import router as health_router
from fitvibe.health_data.router import router as health_data_router
from fitvibe.middleware import setup_middleware
from fitvibe.notifications.router import router as notifications_router
from fitvibe.redis_client import close_redis, init_redis
from fitvibe.social.router import router as social_router
from fitvibe.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Reference data is idempotent; missing tables just mean migrations haven't run
    try:
        async with get_session_factory()() as db:
            await seed_badges(db)
            await seed_activity_templates(db)
    except SQLAlchemyError:
        logger.warning("reference_data_seeding_failed", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="FitVibe API",
        description="Backend API for FitVibe, a social fitness tracking platform",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(activities_router)
    app.include_router(gamification_router)
    app.include_router(goals_router)
    app.include_router(challenges_router)
    app.include_router(clubs_router)
    app.include_router(social_router)
    app.include_router(notifications_router)
    app.include_router(health_data_router)

    return app


app = create_app()
