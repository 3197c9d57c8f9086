"""Shared FastAPI dependencies."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from promominer.config import Settings
from promominer.miner.economy_config import EconomyConfigProvider
from promominer.miner.service import MiningEngine
from promominer.miner.store import SqlLedgerStore

_engine: MiningEngine | None = None


def build_mining_engine(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    redis: object = None,
) -> MiningEngine:
    """Mining engine backed by the SQL ledger store."""
    return MiningEngine(
        SqlLedgerStore(session_factory),
        EconomyConfigProvider(session_factory, ttl_seconds=settings.config_cache_ttl_seconds),
        redis=redis,
        max_retries=settings.mutation_max_retries,
        retry_backoff=settings.mutation_retry_backoff_ms / 1000,
    )


def set_mining_engine(engine: MiningEngine | None) -> None:
    """Install the process-wide engine (app startup, tests)."""
    global _engine  # noqa: PLW0603
    _engine = engine


def get_mining_engine() -> MiningEngine:
    """Get the mining engine (FastAPI dependency)."""
    if _engine is None:
        msg = "Mining engine not initialized."
        raise RuntimeError(msg)
    return _engine

