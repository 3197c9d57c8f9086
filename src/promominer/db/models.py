"""ORM models for the miner economy.

Table layout matches alembic/versions/001_miner_tables.py.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from promominer.db.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")
# SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class AppSetting(Base):
    """Admin-editable key/value settings. The economy lives under 'miner_config'."""

    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Miner ledger
# ---------------------------------------------------------------------------


class MinerLedger(Base):
    """One row per user, the only mutable aggregate of the miner economy."""

    __tablename__ = "miner_ledgers"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_miner_ledgers_balance_non_negative"),
        CheckConstraint("energy >= 0", name="ck_miner_ledgers_energy_non_negative"),
    )

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    energy: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_energy_update: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    storage_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_claim: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    auto_collect_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_collect_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    auto_collect_unlocked_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_auto_collect: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    bots_owned: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    achievements: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    daily_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_daily_claim: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_daily_claims: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __mapper_args__ = {"version_id_col": version}  # noqa: RUF012


class CoinTransaction(Base):
    """Append-only journal of every balance movement."""

    __tablename__ = "miner_coin_transactions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("miner_ledgers.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(256), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
