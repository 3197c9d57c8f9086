"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from promominer.config import get_settings
from promominer.database import get_session
from promominer.db.models import AppSetting
from promominer.miner.economy_config import CONFIG_KEY, parse_economy_config
from promominer.miner.errors import EconomyConfigError
from promominer.redis_client import get_redis

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe — returns 200 if the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe — checks DB, Redis and the stored economy config."""
    checks: dict[str, object] = {}

    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        checks["database"] = "ok"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    try:
        redis = get_redis()
        await redis.ping()
        checks["redis"] = "ok"
    except Exception as exc:
        checks["redis"] = f"error: {exc}"

    # A broken miner_config row would fail every miner request
    if checks["database"] == "ok":
        try:
            row = (await db.execute(select(AppSetting).where(AppSetting.key == CONFIG_KEY))).scalar_one_or_none()
            parse_economy_config(row.value if row else None)
            checks["economy_config"] = "ok"
        except EconomyConfigError as exc:
            checks["economy_config"] = f"error: {exc}"

    all_ok = all(v == "ok" for v in checks.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version and environment."""
    settings = get_settings()
    return {
        "service": "promominer",
        "version": settings.app_version,
        "environment": settings.environment,
    }
