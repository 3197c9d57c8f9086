"""Redis pub/sub notifications for committed miner mutations."""

from __future__ import annotations

import logging

from promominer.miner.achievements import AchievementEvent
from promominer.redis_client import publish_json

logger = logging.getLogger(__name__)

ACHIEVEMENT_CHANNEL = "pubsub:miner_achievement"
CLAIM_CHANNEL = "pubsub:miner_claim"
USER_CHANNEL = "ws:user:{user_id}"


async def publish_achievements(redis: object, user_id: str, events: list[AchievementEvent]) -> None:
    """Broadcast completed achievements and push them to the user's sockets."""
    if redis is None or not events:
        return
    for event in events:
        payload = {
            "user_id": user_id,
            "achievement_key": event.key,
            "achievement_name": event.name,
            "reward_coins": event.reward_coins,
        }
        try:
            await publish_json(redis, ACHIEVEMENT_CHANNEL, payload)
            await publish_json(
                redis,
                USER_CHANNEL.format(user_id=user_id),
                {"type": "miner_achievement", "data": payload},
            )
        except Exception:
            logger.warning("Failed to publish miner_achievement notification", exc_info=True)


async def publish_claim(redis: object, user_id: str, earned: int, *, auto: bool, balance: int) -> None:
    """Tell the user's open sessions that income was collected."""
    if redis is None or earned <= 0:
        return
    try:
        await publish_json(
            redis,
            CLAIM_CHANNEL,
            {"user_id": user_id, "earned": earned, "auto": auto, "balance": balance},
        )
    except Exception:
        logger.warning("Failed to publish miner_claim notification", exc_info=True)
