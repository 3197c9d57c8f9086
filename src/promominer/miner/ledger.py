"""In-memory representation of a user's miner ledger."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from promominer.miner.economy_config import EconomyConfig


@dataclass
class BotHolding:
    level: int = 1
    owned: int = 0


@dataclass
class AchievementState:
    progress: int = 0
    completed: bool = False
    completed_at: datetime | None = None


@dataclass
class Ledger:
    """The authoritative per-user state. Mutated only inside a ledger transaction."""

    user_id: str
    balance: int
    total_earned: int
    energy: int
    last_energy_update: datetime
    storage_level: int
    last_claim: datetime
    auto_collect_enabled: bool = False
    auto_collect_level: int = 1
    auto_collect_unlocked_level: int = 1
    last_auto_collect: datetime | None = None
    bots: dict[str, BotHolding] = field(default_factory=dict)
    achievements: dict[str, AchievementState] = field(default_factory=dict)
    daily_streak: int = 0
    last_daily_claim: date | None = None
    total_daily_claims: int = 0
    version: int = 0

    @classmethod
    def new(cls, user_id: str, config: EconomyConfig, now: datetime) -> Ledger:
        """Starting state for a first-time player."""
        return cls(
            user_id=user_id,
            balance=config.starting_balance,
            total_earned=0,
            energy=config.starting_energy or 0,
            last_energy_update=now,
            storage_level=1,
            last_claim=now,
        )

    def snapshot(self) -> Ledger:
        """Detached copy safe to hand out after the transaction ends."""
        return copy.deepcopy(self)

    @property
    def total_bots_owned(self) -> int:
        return sum(h.owned for h in self.bots.values())

    @property
    def bot_types_owned(self) -> int:
        return sum(1 for h in self.bots.values() if h.owned > 0)

    @property
    def max_bot_level(self) -> int:
        return max((h.level for h in self.bots.values() if h.owned > 0), default=0)

    def bots_to_json(self) -> dict[str, Any]:
        return {bot_id: {"level": h.level, "owned": h.owned} for bot_id, h in self.bots.items()}

    def achievements_to_json(self) -> dict[str, Any]:
        return {
            key: {
                "progress": s.progress,
                "completed": s.completed,
                "completed_at": s.completed_at.isoformat() if s.completed_at else None,
            }
            for key, s in self.achievements.items()
        }


def bots_from_json(raw: dict[str, Any] | None) -> dict[str, BotHolding]:
    return {
        bot_id: BotHolding(level=int(v.get("level", 1)), owned=int(v.get("owned", 0)))
        for bot_id, v in (raw or {}).items()
    }


def achievements_from_json(raw: dict[str, Any] | None) -> dict[str, AchievementState]:
    states = {}
    for key, v in (raw or {}).items():
        completed_at = v.get("completed_at")
        states[key] = AchievementState(
            progress=int(v.get("progress", 0)),
            completed=bool(v.get("completed", False)),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
        )
    return states
