"""Daily login reward ladder."""

from __future__ import annotations

from datetime import date, timedelta

from promominer.miner.economy_config import DailyReward, EconomyConfig
from promominer.miner.errors import ErrorKind, Rejected


def next_streak(current: int, last_claim: date | None, today: date, ladder_length: int) -> int:
    """Streak day the claim made on ``today`` lands on.

    Claiming on consecutive days walks the ladder; after the last day the
    next consecutive claim starts over at day 1. Missing a day resets to 1.
    """
    if last_claim is not None and last_claim >= today:
        raise Rejected(ErrorKind.ALREADY_CLAIMED)
    if last_claim is not None and last_claim == today - timedelta(days=1):
        return 1 if current >= ladder_length else current + 1
    return 1


def reward_for_day(config: EconomyConfig, day: int) -> DailyReward:
    return config.daily_rewards[(day - 1) % len(config.daily_rewards)]
