"""Cost and earning curves for bots, storage and auto-collect tiers.

Curves use Decimal so that e.g. 125 * 1.2**2 floors to 180, not 179.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from decimal import Decimal

from promominer.miner.economy_config import AutoCollectTier, BotDef, EconomyConfig, StorageTier
from promominer.miner.errors import ErrorKind, Rejected
from promominer.miner.ledger import BotHolding


def _curve(base: int, multiplier: float, exponent: int) -> int:
    return math.floor(Decimal(base) * Decimal(str(multiplier)) ** exponent)


def get_bot(config: EconomyConfig, bot_id: str) -> BotDef:
    bot = config.bot(bot_id)
    if bot is None:
        raise Rejected(ErrorKind.UNKNOWN_BOT)
    return bot


def cost(config: EconomyConfig, bot_id: str, current_level: int = 1) -> int:  # noqa: ARG001
    """Price of one more unit of a bot.

    Additional units always cost the level-1 base price, however many are
    owned and whatever level the bot type has reached.
    """
    return get_bot(config, bot_id).base_cost


def earnings_per_hour(config: EconomyConfig, bot_id: str, current_level: int) -> int:
    """Hourly earnings of a single unit at ``current_level``."""
    bot = get_bot(config, bot_id)
    level = max(1, min(current_level, bot.max_level))
    return _curve(bot.base_earnings_per_hour, config.earning_growth_multiplier, level - 1)


def upgrade_cost(config: EconomyConfig, bot_id: str, current_level: int) -> int:
    """Price to move a bot type from ``current_level`` to ``current_level + 1``."""
    bot = get_bot(config, bot_id)
    if current_level >= bot.max_level:
        raise Rejected(ErrorKind.MAX_LEVEL_REACHED)
    return _curve(bot.base_cost, config.cost_growth_multiplier, current_level)


def hourly_rate(config: EconomyConfig, bots: Mapping[str, BotHolding]) -> int:
    """Total hourly income of everything owned. Bots missing from config earn nothing."""
    total = 0
    for bot_id, holding in bots.items():
        if holding.owned <= 0 or config.bot(bot_id) is None:
            continue
        total += earnings_per_hour(config, bot_id, holding.level) * holding.owned
    return total


def storage_tier(config: EconomyConfig, level: int) -> StorageTier:
    """Tier for ``level``; levels past the configured range use the last tier."""
    tier = config.storage_tier(level)
    if tier is None:
        tier = config.storage_tiers[-1] if level > 0 else config.storage_tiers[0]
    return tier


def storage_upgrade_cost(config: EconomyConfig, current_level: int) -> int:
    """Price of the next storage tier."""
    nxt = config.storage_tier(current_level + 1)
    if nxt is None:
        raise Rejected(ErrorKind.MAX_LEVEL_REACHED)
    return nxt.upgrade_cost


def auto_collect_tier(config: EconomyConfig, level: int) -> AutoCollectTier:
    tier = config.auto_collect_tier(level)
    if tier is None:
        raise Rejected(ErrorKind.TIER_LOCKED)
    return tier
