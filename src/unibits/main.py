"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from unibits.admin.router import router as admin_router
from unibits.config import get_settings
from unibits.database import close_db, init_db, session_scope
from unibits.health.router import router as health_router
from unibits.learning.router import router as learning_router
from unibits.middleware import setup_middleware
from unibits.progression.router import router as progression_router
from unibits.progression.seed import seed_achievements
from unibits.redis_client import close_redis, init_redis
from unibits.shop.router import router as shop_router
from unibits.social.router import router as social_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    if settings.seed_achievements:
        try:
            async with session_scope() as db:
                await seed_achievements(db)
        except SQLAlchemyError:
            logger.warning("Achievement seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="UniBits API",
        description="Progression, rewards, shop and social backend for the UniBits learning platform",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router)
    app.include_router(progression_router)
    app.include_router(learning_router)
    app.include_router(shop_router)
    app.include_router(social_router)
    app.include_router(admin_router)

    return app


app = create_app()
