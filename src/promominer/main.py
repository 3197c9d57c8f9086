"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from promominer.config import get_settings
from promominer.database import close_db, get_session_factory, init_db
from promominer.dependencies import build_mining_engine, set_mining_engine
from promominer.health.router import router as health_router
from promominer.middleware import setup_middleware
from promominer.miner.router import router as miner_router
from promominer.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    redis = await init_redis(settings.redis_url)

    set_mining_engine(build_mining_engine(settings, get_session_factory(), redis))
    logger.info("Miner API started (%s)", settings.environment)

    yield

    set_mining_engine(None)
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Promo Miner API",
        description="Idle mining mini-game: taps, bots, passive income and bonus coins",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(miner_router)

    return app


app = create_app()
