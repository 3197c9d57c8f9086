"""Auto-collect arq worker.

Run with ``arq promominer.miner.worker.AutoCollectWorkerSettings``. The sweep
fires every 30 seconds, the shortest auto-collect tier interval.
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from promominer.config import get_settings
from promominer.database import close_db, get_session_factory, init_db
from promominer.dependencies import build_mining_engine
from promominer.middleware.logging import setup_logging
from promominer.miner.auto_collect import run_auto_collect
from promominer.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


async def auto_collect_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB + Redis connections and the engine on worker startup."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    redis_client = await init_redis(settings.redis_url, max_connections=10)
    ctx["redis"] = redis_client
    ctx["engine"] = build_mining_engine(settings, get_session_factory(), redis_client)
    logger.info("Auto-collect worker started")


async def auto_collect_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    await close_redis()
    await close_db()
    logger.info("Auto-collect worker shut down")


async def auto_collect_sweep(ctx: dict) -> dict[str, int] | None:  # type: ignore[type-arg]
    """Scheduled arq task: claim for every user whose auto-collect interval elapsed."""
    try:
        return await run_auto_collect(ctx["engine"], batch_size=get_settings().auto_collect_batch_size)
    except Exception:
        logger.exception("Auto-collect sweep failed")
        return None


class AutoCollectWorkerSettings:
    """arq worker settings for the auto-collect scheduler."""

    functions = [auto_collect_sweep]
    cron_jobs = [
        cron(auto_collect_sweep, second={0, 30}, unique=True, run_at_startup=True),
    ]
    on_startup = auto_collect_startup
    on_shutdown = auto_collect_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 1
    job_timeout = get_settings().auto_collect_job_timeout_seconds
