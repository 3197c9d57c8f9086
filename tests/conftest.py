"""Shared test fixtures."""

from __future__ import annotations

import random
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from promominer.config import get_settings
from promominer.database import close_db, get_engine, get_session_factory, init_db
from promominer.db import models  # noqa: F401
from promominer.db.base import Base
from promominer.dependencies import set_mining_engine
from promominer.main import create_app
from promominer.miner.economy_config import EconomyConfig, EconomyConfigProvider
from promominer.miner.service import MiningEngine
from promominer.miner.store import InMemoryLedgerStore, SqlLedgerStore

SQLITE_URL = "sqlite+aiosqlite:///:memory:"
START = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_token(user_id: str, **overrides: object) -> str:
    """Access token signed the way the main platform signs them."""
    settings = get_settings()
    payload: dict[str, object] = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        "type": "access",
    }
    payload.update(overrides)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def economy_config() -> EconomyConfig:
    return EconomyConfig()


@pytest.fixture
def memory_engine(clock: FrozenClock, economy_config: EconomyConfig) -> MiningEngine:
    """Engine over the in-memory store with deterministic taps and no backoff."""
    return MiningEngine(
        InMemoryLedgerStore(),
        EconomyConfigProvider(static=economy_config),
        clock=clock,
        rng=random.Random(7),
        retry_backoff=0,
    )


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory SQLite schema per test."""
    engine = create_async_engine(
        SQLITE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def sql_engine(
    session_factory: async_sessionmaker[AsyncSession],
    clock: FrozenClock,
    economy_config: EconomyConfig,
) -> MiningEngine:
    return MiningEngine(
        SqlLedgerStore(session_factory),
        EconomyConfigProvider(static=economy_config),
        clock=clock,
        rng=random.Random(7),
        retry_backoff=0,
    )


@pytest_asyncio.fixture
async def client(clock: FrozenClock, economy_config: EconomyConfig) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the full app, backed by SQLite and without Redis."""
    app = create_app()
    await init_db(SQLITE_URL)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    set_mining_engine(
        MiningEngine(
            SqlLedgerStore(get_session_factory()),
            EconomyConfigProvider(static=economy_config),
            clock=clock,
            rng=random.Random(7),
            retry_backoff=0,
        )
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    set_mining_engine(None)
    await close_db()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token('user-1')}"}


@pytest.fixture
def token_for():
    """Factory for signed access tokens: token_for("user-2", exp=...)."""
    return make_token
