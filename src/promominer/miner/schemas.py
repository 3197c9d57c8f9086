"""Pydantic schemas for the miner API."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


# --- Ledger ---


class BotStateResponse(BaseModel):
    owned: int
    level: int
    cost: int
    earnings_per_hour: int
    upgrade_cost: int | None


class LedgerResponse(BaseModel):
    user_id: str
    balance: int
    total_earned: int
    energy: int
    max_energy: int
    last_energy_update: datetime
    storage_level: int
    last_claim: datetime
    auto_collect_enabled: bool
    auto_collect_level: int
    auto_collect_unlocked_level: int
    last_auto_collect: datetime | None
    daily_streak: int
    last_daily_claim: date | None
    total_daily_claims: int
    version: int


class MinerStateResponse(BaseModel):
    ledger: LedgerResponse
    hourly_rate: int
    pending_earnings: int
    storage_full: bool
    max_accrual_hours: float
    next_storage_cost: int | None
    auto_collect_interval_minutes: float | None
    seconds_to_next_energy: int
    bots: dict[str, BotStateResponse]


class AchievementEventResponse(BaseModel):
    key: str
    name: str
    reward_coins: int


class MutationResponse(BaseModel):
    """Committed ledger plus whatever the operation reports."""

    ledger: LedgerResponse
    result: dict[str, Any]
    achievements: list[AchievementEventResponse] = []


class ErrorResponse(BaseModel):
    detail: str
    error: str


# --- Requests ---


class AutoCollectRequest(BaseModel):
    enabled: bool
    level: int | None = Field(default=None, ge=1)


class AutoCollectUnlockRequest(BaseModel):
    level: int = Field(ge=1)


class ExternalCreditRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    # Range is checked by the engine so bad amounts get the InvalidAmount error body
    amount: int
    reason: str = Field(min_length=1, max_length=256)
    idempotency_key: str | None = Field(default=None, max_length=100)


# --- Achievements / journal / leaderboard ---


class AchievementResponse(BaseModel):
    key: str
    name: str
    category: str
    threshold_metric: str
    threshold_value: int
    reward_coins: int
    progress: int
    completed: bool
    completed_at: datetime | None


class AchievementListResponse(BaseModel):
    achievements: list[AchievementResponse]
    completed: int
    total: int


class TransactionResponse(BaseModel):
    id: int | None
    amount: int
    source: str
    reason: str | None
    balance_after: int
    created_at: datetime


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
    total: int
    page: int
    per_page: int


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    total_earned: int


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]


# --- Public config ---


class BotConfigResponse(BaseModel):
    id: str
    name: str
    base_cost: int
    base_earnings_per_hour: int
    max_level: int


class StorageTierResponse(BaseModel):
    level: int
    max_accrual_hours: float
    upgrade_cost: int


class AutoCollectTierResponse(BaseModel):
    level: int
    interval_minutes: float
    unlock_cost: int


class DailyRewardResponse(BaseModel):
    day: int
    coins: int
    bonus_bot_id: str | None


class EconomyConfigResponse(BaseModel):
    max_energy: int
    energy_per_action: int
    energy_regen_rate: int
    energy_regen_interval_seconds: int
    coins_per_click_min: int
    coins_per_click_max: int
    cost_growth_multiplier: float
    earning_growth_multiplier: float
    bots: list[BotConfigResponse]
    storage_tiers: list[StorageTierResponse]
    auto_collect_tiers: list[AutoCollectTierResponse]
    daily_rewards: list[DailyRewardResponse]
