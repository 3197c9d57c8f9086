"""Economy constants for the miner game.

The admin panel stores these as JSON under ``app_settings['miner_config']``.
Older documents use the admin panel's legacy key names (``cost``,
``earnings_per_hour``, ``bot_upgrade_cost_multiplier``, ...); both spellings
are accepted. Missing keys fall back to the defaults below.
"""

from __future__ import annotations

import logging
import math
import time
from decimal import Decimal
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from promominer.db.models import AppSetting
from promominer.miner.errors import EconomyConfigError

logger = logging.getLogger(__name__)

CONFIG_KEY = "miner_config"

AchievementMetric = Literal[
    "total_earned",
    "bots_owned",
    "max_bot_level",
    "hourly_rate",
    "bot_types_owned",
]


class _ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BotDef(_ConfigModel):
    id: str
    name: str = ""
    base_cost: int = Field(gt=0, validation_alias=AliasChoices("base_cost", "cost"))
    base_earnings_per_hour: int = Field(
        ge=0, validation_alias=AliasChoices("base_earnings_per_hour", "earnings_per_hour")
    )
    max_level: int = Field(default=10, ge=1)


class StorageTier(_ConfigModel):
    level: int = Field(ge=1)
    max_accrual_hours: float = Field(gt=0)
    upgrade_cost: int = Field(default=0, ge=0)


class AutoCollectTier(_ConfigModel):
    level: int = Field(ge=1)
    interval_minutes: float = Field(gt=0)
    unlock_cost: int = Field(default=0, ge=0)


class AchievementDef(_ConfigModel):
    key: str
    name: str = ""
    category: str = "beginner"
    threshold_metric: AchievementMetric
    threshold_value: int = Field(ge=0)
    reward_coins: int = Field(ge=0)


class DailyReward(_ConfigModel):
    day: int = Field(ge=1)
    coins: int = Field(ge=0)
    bonus_bot_id: str | None = None


DEFAULT_BOTS: list[dict] = [
    {"id": "basic_miner", "name": "Basic Miner", "base_cost": 150, "base_earnings_per_hour": 5},
    {"id": "turbo_miner", "name": "Turbo Miner", "base_cost": 1200, "base_earnings_per_hour": 30},
    {"id": "mega_miner", "name": "Mega Miner", "base_cost": 6000, "base_earnings_per_hour": 125},
    {"id": "quantum_miner", "name": "Quantum Miner", "base_cost": 36000, "base_earnings_per_hour": 600},
    {"id": "ai_miner", "name": "AI Miner", "base_cost": 210000, "base_earnings_per_hour": 3000},
    {"id": "cosmic_miner", "name": "Cosmic Miner", "base_cost": 1200000, "base_earnings_per_hour": 15000},
]

DEFAULT_AUTO_COLLECT_TIERS: list[dict] = [
    {"level": 1, "interval_minutes": 5, "unlock_cost": 0},
    {"level": 2, "interval_minutes": 3, "unlock_cost": 10_000},
    {"level": 3, "interval_minutes": 1, "unlock_cost": 50_000},
    {"level": 4, "interval_minutes": 0.5, "unlock_cost": 100_000},
]

DEFAULT_ACHIEVEMENTS: list[dict] = [
    # Beginner
    {"key": "first_bot", "name": "First Bot", "category": "beginner",
     "threshold_metric": "bots_owned", "threshold_value": 1, "reward_coins": 50},
    {"key": "upgrade_first", "name": "First Upgrade", "category": "beginner",
     "threshold_metric": "max_bot_level", "threshold_value": 2, "reward_coins": 100},
    {"key": "own_3_bots", "name": "Small Farm", "category": "beginner",
     "threshold_metric": "bots_owned", "threshold_value": 3, "reward_coins": 150},
    {"key": "earn_1k", "name": "First Thousand", "category": "beginner",
     "threshold_metric": "total_earned", "threshold_value": 1_000, "reward_coins": 100},
    # Active
    {"key": "earn_10k", "name": "Ten Grand", "category": "active",
     "threshold_metric": "total_earned", "threshold_value": 10_000, "reward_coins": 500},
    {"key": "earn_50k", "name": "Serious Miner", "category": "active",
     "threshold_metric": "total_earned", "threshold_value": 50_000, "reward_coins": 2_000},
    {"key": "level_5_bot", "name": "Tuned Up", "category": "active",
     "threshold_metric": "max_bot_level", "threshold_value": 5, "reward_coins": 1_000},
    {"key": "earn_10k_per_hour", "name": "Income Stream", "category": "active",
     "threshold_metric": "hourly_rate", "threshold_value": 10_000, "reward_coins": 10_000},
    # Pro
    {"key": "magnate", "name": "Magnate", "category": "pro",
     "threshold_metric": "total_earned", "threshold_value": 100_000, "reward_coins": 5_000},
    {"key": "all_bot_types", "name": "Collector", "category": "pro",
     "threshold_metric": "bot_types_owned", "threshold_value": 6, "reward_coins": 25_000},
    {"key": "earn_1m", "name": "Millionaire", "category": "pro",
     "threshold_metric": "total_earned", "threshold_value": 1_000_000, "reward_coins": 50_000},
    {"key": "max_income", "name": "Money Printer", "category": "pro",
     "threshold_metric": "hourly_rate", "threshold_value": 100_000, "reward_coins": 100_000},
]

DEFAULT_DAILY_REWARDS: list[dict] = [
    {"day": 1, "coins": 20},
    {"day": 2, "coins": 30},
    {"day": 3, "coins": 50},
    {"day": 4, "coins": 75},
    {"day": 5, "coins": 150},
    {"day": 6, "coins": 300},
    {"day": 7, "coins": 500, "bonus_bot_id": "basic_miner"},
]


def build_storage_tiers(
    base_hours: float,
    hours_per_level: float,
    base_cost: int,
    cost_multiplier: float,
    max_level: int,
) -> list[StorageTier]:
    """Generate storage tiers from the admin panel's linear/exponential formulas.

    hours(level) = base_hours + (level - 1) * hours_per_level
    cost(level)  = floor(base_cost * cost_multiplier ** (level - 2)), level >= 2
    """
    tiers = [StorageTier(level=1, max_accrual_hours=base_hours, upgrade_cost=0)]
    multiplier = Decimal(str(cost_multiplier))
    for level in range(2, max_level + 1):
        tiers.append(
            StorageTier(
                level=level,
                max_accrual_hours=base_hours + (level - 1) * hours_per_level,
                upgrade_cost=math.floor(base_cost * multiplier ** (level - 2)),
            )
        )
    return tiers


class EconomyConfig(_ConfigModel):
    """All tunables of the miner economy."""

    # --- Energy ---
    max_energy: int = Field(default=1000, ge=1)
    energy_per_action: int = Field(
        default=1, ge=1, validation_alias=AliasChoices("energy_per_action", "energy_per_tap")
    )
    energy_regen_rate: int = Field(default=1, ge=0)
    energy_regen_interval_seconds: int = Field(
        default=10, ge=1,
        validation_alias=AliasChoices("energy_regen_interval_seconds", "energy_regen_interval"),
    )

    # --- Tapping ---
    coins_per_click_min: int = Field(
        default=1, ge=0, validation_alias=AliasChoices("coins_per_click_min", "base_mining_power")
    )
    coins_per_click_max: int | None = Field(default=None, ge=0)

    # --- New players ---
    starting_balance: int = Field(
        default=1000, ge=0, validation_alias=AliasChoices("starting_balance", "starting_coins")
    )
    starting_energy: int | None = Field(default=None, ge=0)

    # --- Bots ---
    cost_growth_multiplier: float = Field(
        default=1.5, gt=0,
        validation_alias=AliasChoices("cost_growth_multiplier", "bot_upgrade_cost_multiplier"),
    )
    earning_growth_multiplier: float = Field(
        default=1.2, gt=0,
        validation_alias=AliasChoices("earning_growth_multiplier", "bot_level_earning_multiplier"),
    )
    bots: list[BotDef] = Field(default_factory=lambda: [BotDef(**b) for b in DEFAULT_BOTS])

    # --- Storage ---
    storage_base_hours: float = Field(
        default=6, gt=0, validation_alias=AliasChoices("storage_base_hours", "max_claim_hours")
    )
    storage_hours_per_level: float = Field(default=2, ge=0)
    storage_base_cost: int = Field(default=100, ge=0)
    storage_cost_multiplier: float = Field(default=1.5, gt=0)
    storage_max_level: int = Field(default=10, ge=1)
    storage_tiers: list[StorageTier] = Field(default_factory=list)

    # --- Auto-collect ---
    auto_collect_tiers: list[AutoCollectTier] = Field(
        default_factory=lambda: [AutoCollectTier(**t) for t in DEFAULT_AUTO_COLLECT_TIERS]
    )

    # --- Rewards ---
    achievements: list[AchievementDef] = Field(
        default_factory=lambda: [AchievementDef(**a) for a in DEFAULT_ACHIEVEMENTS]
    )
    daily_rewards: list[DailyReward] = Field(
        default_factory=lambda: [DailyReward(**d) for d in DEFAULT_DAILY_REWARDS]
    )

    @model_validator(mode="after")
    def _normalize(self) -> EconomyConfig:
        if self.coins_per_click_max is None:
            self.coins_per_click_max = self.coins_per_click_min
        if self.coins_per_click_max < self.coins_per_click_min:
            msg = "coins_per_click_max must be >= coins_per_click_min"
            raise ValueError(msg)
        if self.starting_energy is None:
            self.starting_energy = self.max_energy
        self.starting_energy = min(self.starting_energy, self.max_energy)

        if not self.storage_tiers:
            self.storage_tiers = build_storage_tiers(
                self.storage_base_hours,
                self.storage_hours_per_level,
                self.storage_base_cost,
                self.storage_cost_multiplier,
                self.storage_max_level,
            )

        for name, tiers in (("storage_tiers", self.storage_tiers), ("auto_collect_tiers", self.auto_collect_tiers)):
            levels = [t.level for t in tiers]
            if not levels or levels != list(range(1, len(levels) + 1)):
                msg = f"{name} must be numbered 1..N without gaps"
                raise ValueError(msg)

        days = [d.day for d in self.daily_rewards]
        if not days or days != list(range(1, len(days) + 1)):
            msg = "daily_rewards must be numbered 1..N without gaps"
            raise ValueError(msg)

        bot_ids = [b.id for b in self.bots]
        if len(set(bot_ids)) != len(bot_ids):
            msg = "bot ids must be unique"
            raise ValueError(msg)
        keys = [a.key for a in self.achievements]
        if len(set(keys)) != len(keys):
            msg = "achievement keys must be unique"
            raise ValueError(msg)
        return self

    def bot(self, bot_id: str) -> BotDef | None:
        for b in self.bots:
            if b.id == bot_id:
                return b
        return None

    def storage_tier(self, level: int) -> StorageTier | None:
        if 1 <= level <= len(self.storage_tiers):
            return self.storage_tiers[level - 1]
        return None

    def auto_collect_tier(self, level: int) -> AutoCollectTier | None:
        if 1 <= level <= len(self.auto_collect_tiers):
            return self.auto_collect_tiers[level - 1]
        return None


def parse_economy_config(raw: dict | None) -> EconomyConfig:
    """Validate a stored config document, filling gaps with defaults."""
    try:
        return EconomyConfig.model_validate(raw or {})
    except ValidationError as e:
        msg = f"Invalid {CONFIG_KEY}: {e}"
        raise EconomyConfigError(msg) from e


async def load_economy_config(db: AsyncSession) -> EconomyConfig:
    """Read the economy config from app_settings."""
    result = await db.execute(select(AppSetting).where(AppSetting.key == CONFIG_KEY))
    row = result.scalar_one_or_none()
    if row is None:
        logger.info("No %s row in app_settings, using defaults", CONFIG_KEY)
        return EconomyConfig()
    return parse_economy_config(row.value)


class EconomyConfigProvider:
    """Serves the economy config, re-reading the database at most every ``ttl_seconds``."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        ttl_seconds: float = 30,
        static: EconomyConfig | None = None,
    ) -> None:
        if session_factory is None and static is None:
            msg = "EconomyConfigProvider needs a session factory or a static config"
            raise ValueError(msg)
        self._session_factory = session_factory
        self._ttl = ttl_seconds
        self._cached: EconomyConfig | None = static
        self._loaded_at = time.monotonic() if static is not None else 0.0
        self._static = static is not None

    async def get(self) -> EconomyConfig:
        if self._static:
            return self._cached  # type: ignore[return-value]
        now = time.monotonic()
        if self._cached is None or now - self._loaded_at >= self._ttl:
            async with self._session_factory() as db:  # type: ignore[misc]
                self._cached = await load_economy_config(db)
            self._loaded_at = now
        return self._cached

    def invalidate(self) -> None:
        """Force the next get() to reload."""
        if not self._static:
            self._cached = None
