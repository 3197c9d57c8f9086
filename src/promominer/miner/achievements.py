"""Achievement evaluator: compares ledger metrics against achievement thresholds."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from promominer.miner.economy_config import EconomyConfig
from promominer.miner.ledger import AchievementState, Ledger
from promominer.miner.progression import hourly_rate


@dataclass(frozen=True)
class AchievementEvent:
    key: str
    name: str
    reward_coins: int


def compute_metrics(ledger: Ledger, config: EconomyConfig) -> dict[str, int]:
    """All metrics an achievement threshold can refer to."""
    return {
        "total_earned": ledger.total_earned,
        "bots_owned": ledger.total_bots_owned,
        "max_bot_level": ledger.max_bot_level,
        "hourly_rate": hourly_rate(config, ledger.bots),
        "bot_types_owned": ledger.bot_types_owned,
    }


def evaluate(ledger: Ledger, config: EconomyConfig, now: datetime) -> list[AchievementEvent]:
    """Update achievement progress on ``ledger`` in place.

    Completed achievements are never touched again, so calling this repeatedly
    on the same state emits each completion once.

    Returns:
        One event per achievement that completed during this call.
    """
    metrics = compute_metrics(ledger, config)
    events: list[AchievementEvent] = []

    for definition in config.achievements:
        state = ledger.achievements.get(definition.key)
        if state is not None and state.completed:
            continue
        if state is None:
            state = AchievementState()
            ledger.achievements[definition.key] = state

        value = metrics[definition.threshold_metric]
        state.progress = value
        if value >= definition.threshold_value:
            state.completed = True
            state.completed_at = now
            events.append(
                AchievementEvent(
                    key=definition.key,
                    name=definition.name,
                    reward_coins=definition.reward_coins,
                )
            )

    return events
