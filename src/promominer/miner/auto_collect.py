"""Automatic claiming for users who enabled auto-collect."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from promominer.miner.economy_config import EconomyConfig
from promominer.miner.ledger import Ledger

if TYPE_CHECKING:
    from promominer.miner.service import MiningEngine

logger = logging.getLogger(__name__)


def is_auto_collect_due(ledger: Ledger, config: EconomyConfig, now: datetime) -> bool:
    """True when auto-collect is on and the selected tier's interval has elapsed.

    The interval is measured from the last automatic collection, or from the
    last claim of any kind when auto-collect has never fired.
    """
    if not ledger.auto_collect_enabled:
        return False
    tier = config.auto_collect_tier(ledger.auto_collect_level)
    if tier is None:
        return False
    since = ledger.last_auto_collect or ledger.last_claim
    return now - since >= timedelta(minutes=tier.interval_minutes)


async def run_auto_collect(engine: MiningEngine, batch_size: int = 500) -> dict[str, int]:
    """Claim for every due user. Each claim is its own transaction.

    Returns:
        Counters: users checked, users that received coins, and coins collected.
    """
    checked = 0
    collected = 0
    coins = 0
    after: str | None = None

    while True:
        user_ids = await engine.store.list_auto_collect_user_ids(after, batch_size)
        if not user_ids:
            break
        for user_id in user_ids:
            checked += 1
            try:
                result = await engine.claim(user_id, auto=True)
            except Exception:
                logger.exception("Auto-collect failed for user %s", user_id)
                continue
            if not result.ok:
                logger.warning("Auto-collect rejected for user %s: %s", user_id, result.error)
                continue
            earned = result.data.get("earned", 0)
            if earned > 0:
                collected += 1
                coins += earned
        after = user_ids[-1]
        if len(user_ids) < batch_size:
            break

    logger.info("Auto-collect sweep: checked=%d collected=%d coins=%d", checked, collected, coins)
    return {"checked": checked, "collected": collected, "coins": coins}
