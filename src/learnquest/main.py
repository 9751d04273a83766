"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from learnquest.config import get_settings
from learnquest.database import close_db, get_session, init_db
from learnquest.execution.router import router as execution_router
from learnquest.gamification.router import router as gamification_router
from learnquest.gamification.seed import seed_achievements
from learnquest.health.router import router as health_router
from learnquest.middleware import setup_middleware
from learnquest.progress.router import router as progress_router
from learnquest.redis_client import close_redis, init_redis

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        statement_cache_size=settings.db_statement_cache_size,
    )
    await init_redis(settings.redis_url)

    if settings.seed_catalog_on_startup:
        try:
            async for db in get_session():
                created = await seed_achievements(db)
                logger.info("achievement_catalog_seeded", created=created)
                break
        except Exception:
            logger.warning("achievement_seed_failed", hint="tables may not exist yet", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="LearnQuest API",
        description="Progress tracking and gamification backend for the LearnQuest learning platform",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)
    app.include_router(progress_router)
    app.include_router(execution_router)

    return app


app = create_app()
