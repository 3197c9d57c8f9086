"""Mining engine: the only writer of miner ledgers.

Every operation runs as one read-modify-write transaction on the user's
ledger, serialized per user by an in-process lock and by the store's row
lock / version check. Inside the transaction energy is regenerated first,
then the operation applies its effect, then achievements are evaluated and
their rewards credited. Events are published only after commit.
"""

from __future__ import annotations

import asyncio
import logging
import random
import weakref
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from promominer.miner.accrual import accrue
from promominer.miner.achievements import AchievementEvent, evaluate
from promominer.miner.auto_collect import is_auto_collect_due
from promominer.miner.daily_rewards import next_streak, reward_for_day
from promominer.miner.economy_config import EconomyConfig, EconomyConfigProvider
from promominer.miner.energy import regenerate, seconds_until_next_tick
from promominer.miner.errors import (
    ERROR_MESSAGES,
    ConcurrencyConflictError,
    ErrorKind,
    LedgerNotFoundError,
    Rejected,
    StaleLedgerError,
)
from promominer.miner.events import publish_achievements, publish_claim
from promominer.miner.ledger import BotHolding, Ledger
from promominer.miner.progression import (
    cost,
    earnings_per_hour,
    get_bot,
    hourly_rate,
    storage_tier,
    storage_upgrade_cost,
    upgrade_cost,
)
from promominer.miner.store import JournalEntry, LedgerStore, LedgerTransaction

logger = logging.getLogger(__name__)

Operation = Callable[[LedgerTransaction, EconomyConfig, datetime], Awaitable[dict[str, Any]]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MutationResult:
    """Outcome of an engine operation.

    On success ``snapshot`` holds the committed ledger and ``data`` the
    operation's payload. On rejection ``error`` is set and nothing was written.
    """

    ok: bool
    snapshot: Ledger | None = None
    error: ErrorKind | None = None
    message: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    achievements: list[AchievementEvent] = field(default_factory=list)

    @classmethod
    def rejected(cls, kind: ErrorKind, message: str | None = None) -> MutationResult:
        return cls(ok=False, error=kind, message=message or ERROR_MESSAGES[kind])


class _UserLock:
    """asyncio.Lock wrapper that can live in a WeakValueDictionary."""

    __slots__ = ("lock", "__weakref__")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()


class MiningEngine:
    """Coordinates all ledger mutations."""

    def __init__(
        self,
        store: LedgerStore,
        config_provider: EconomyConfigProvider,
        *,
        clock: Callable[[], datetime] = utc_now,
        redis: object = None,
        rng: random.Random | None = None,
        max_retries: int = 3,
        retry_backoff: float = 0.025,
    ) -> None:
        self.store = store
        self.config_provider = config_provider
        self._clock = clock
        self._redis = redis
        self._rng = rng or random.Random()
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff
        self._locks: weakref.WeakValueDictionary[str, _UserLock] = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str) -> _UserLock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = _UserLock()
            self._locks[user_id] = lock
        return lock

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    async def _mutate(self, user_id: str, operation: Operation) -> MutationResult:
        config = await self.config_provider.get()
        user_lock = self._lock_for(user_id)
        attempt = 0

        async with user_lock.lock:
            while True:
                now = self._clock()
                try:
                    async with self.store.transaction(
                        user_id,
                        create=lambda: Ledger.new(user_id, config, now),
                        now=now,
                    ) as tx:
                        self._regenerate_energy(tx.ledger, config, now)
                        data = await operation(tx, config, now)
                        events = self._settle_achievements(tx, config, now)
                except Rejected as e:
                    return MutationResult.rejected(e.kind, e.message)
                except Exception as e:
                    if not isinstance(e, StaleLedgerError) and not self.store.is_transient(e):
                        raise
                    attempt += 1
                    if attempt > self._max_retries:
                        logger.warning(
                            "Giving up on ledger mutation for user %s after %d attempts",
                            user_id, attempt,
                        )
                        return MutationResult.rejected(ErrorKind.CONCURRENCY_CONFLICT)
                    await asyncio.sleep(self._retry_backoff * attempt)
                    continue
                break

        snapshot = tx.ledger.snapshot()
        await publish_achievements(self._redis, user_id, events)
        return MutationResult(ok=True, snapshot=snapshot, data=data, achievements=events)

    @staticmethod
    def _regenerate_energy(ledger: Ledger, config: EconomyConfig, now: datetime) -> None:
        ledger.energy, ledger.last_energy_update = regenerate(
            ledger.energy,
            config.max_energy,
            ledger.last_energy_update,
            config.energy_regen_rate,
            config.energy_regen_interval_seconds,
            now,
        )

    @staticmethod
    def _settle_achievements(
        tx: LedgerTransaction, config: EconomyConfig, now: datetime
    ) -> list[AchievementEvent]:
        """Evaluate until no new completions; rewards can complete further achievements."""
        issued: list[AchievementEvent] = []
        for _ in range(len(config.achievements) + 1):
            events = evaluate(tx.ledger, config, now)
            if not events:
                break
            for event in events:
                tx.credit(
                    event.reward_coins,
                    "achievement",
                    reason=event.name or event.key,
                    idempotency_key=f"achievement:{tx.ledger.user_id}:{event.key}",
                )
            issued.extend(events)
        return issued

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get_ledger(self, user_id: str) -> Ledger:
        """Current ledger with energy brought up to date. Creates it on first access."""

        async def _noop(tx: LedgerTransaction, config: EconomyConfig, now: datetime) -> dict[str, Any]:
            return {}

        result = await self._mutate(user_id, _noop)
        if not result.ok:
            raise ConcurrencyConflictError(result.message)
        return result.snapshot  # type: ignore[return-value]

    async def tap(self, user_id: str) -> MutationResult:
        """Spend energy for a random amount of coins."""

        async def _tap(tx: LedgerTransaction, config: EconomyConfig, now: datetime) -> dict[str, Any]:
            ledger = tx.ledger
            if ledger.energy < config.energy_per_action:
                raise Rejected(ErrorKind.INSUFFICIENT_ENERGY)
            ledger.energy -= config.energy_per_action
            coins = self._rng.randint(config.coins_per_click_min, config.coins_per_click_max)  # type: ignore[arg-type]
            tx.credit(coins, "tap")
            return {"coins": coins, "energy": ledger.energy}

        return await self._mutate(user_id, _tap)

    async def claim(self, user_id: str, *, auto: bool = False) -> MutationResult:
        """Move accrued passive income into the balance.

        In auto mode the claim only happens when the user's auto-collect
        interval has elapsed; otherwise it is a successful no-op.
        """
        if auto:
            # The sweep only ever touches existing ledgers
            if await self.store.read(user_id) is None:
                raise LedgerNotFoundError(user_id)

        async def _claim(tx: LedgerTransaction, config: EconomyConfig, now: datetime) -> dict[str, Any]:
            ledger = tx.ledger
            if auto and not is_auto_collect_due(ledger, config, now):
                return {"earned": 0, "skipped": True}

            rate = hourly_rate(config, ledger.bots)
            tier = storage_tier(config, ledger.storage_level)
            accrual = accrue(ledger.last_claim, now, rate, tier.max_accrual_hours)
            data = {
                "earned": accrual.earned,
                "hours_passed": accrual.hours_passed,
                "capped_hours": accrual.capped_hours,
                "storage_full": accrual.storage_full,
                "skipped": False,
            }
            if accrual.earned == 0:
                return data

            tx.credit(accrual.earned, "auto_collect" if auto else "claim")
            ledger.last_claim = now
            if auto:
                ledger.last_auto_collect = now
            return data

        result = await self._mutate(user_id, _claim)
        if result.ok and result.snapshot is not None:
            await publish_claim(
                self._redis, user_id, result.data.get("earned", 0),
                auto=auto, balance=result.snapshot.balance,
            )
        return result

    async def buy_bot(self, user_id: str, bot_id: str) -> MutationResult:
        """Buy one more unit of a bot type."""

        async def _buy(tx: LedgerTransaction, config: EconomyConfig, now: datetime) -> dict[str, Any]:
            ledger = tx.ledger
            get_bot(config, bot_id)
            price = cost(config, bot_id)
            rate_before = hourly_rate(config, ledger.bots)
            tx.debit(price, "buy_bot", reason=bot_id)

            holding = ledger.bots.setdefault(bot_id, BotHolding())
            holding.owned += 1
            if rate_before == 0:
                # Nothing was accruing, so the first bot must not earn for the idle time
                ledger.last_claim = now
            return {"bot_id": bot_id, "cost": price, "owned": holding.owned, "level": holding.level}

        return await self._mutate(user_id, _buy)

    async def upgrade_bot(self, user_id: str, bot_id: str) -> MutationResult:
        """Raise a bot type's level by one; applies to every owned unit."""

        async def _upgrade(tx: LedgerTransaction, config: EconomyConfig, now: datetime) -> dict[str, Any]:
            ledger = tx.ledger
            get_bot(config, bot_id)
            holding = ledger.bots.get(bot_id)
            if holding is None or holding.owned <= 0:
                raise Rejected(ErrorKind.BOT_NOT_OWNED)
            price = upgrade_cost(config, bot_id, holding.level)
            tx.debit(price, "upgrade_bot", reason=f"{bot_id} level {holding.level + 1}")
            holding.level += 1
            return {
                "bot_id": bot_id,
                "cost": price,
                "level": holding.level,
                "earnings_per_hour": earnings_per_hour(config, bot_id, holding.level),
            }

        return await self._mutate(user_id, _upgrade)

    async def set_auto_collect(self, user_id: str, enabled: bool, level: int | None = None) -> MutationResult:
        """Turn auto-collect on or off and pick one of the unlocked tiers."""

        async def _set(tx: LedgerTransaction, config: EconomyConfig, now: datetime) -> dict[str, Any]:
            ledger = tx.ledger
            selected = ledger.auto_collect_level if level is None else level
            if (
                config.auto_collect_tier(selected) is None
                or selected > ledger.auto_collect_unlocked_level
            ):
                raise Rejected(ErrorKind.TIER_LOCKED)
            ledger.auto_collect_enabled = enabled
            ledger.auto_collect_level = selected
            return {"enabled": enabled, "level": selected}

        return await self._mutate(user_id, _set)

    async def unlock_auto_collect(self, user_id: str, level: int) -> MutationResult:
        """Buy the next auto-collect tier. Tiers unlock strictly in order."""

        async def _unlock(tx: LedgerTransaction, config: EconomyConfig, now: datetime) -> dict[str, Any]:
            ledger = tx.ledger
            tier = config.auto_collect_tier(level)
            if tier is None:
                raise Rejected(ErrorKind.TIER_LOCKED)
            if level <= ledger.auto_collect_unlocked_level:
                return {"unlocked_level": ledger.auto_collect_unlocked_level, "cost": 0}
            if level != ledger.auto_collect_unlocked_level + 1:
                raise Rejected(ErrorKind.TIER_LOCKED)
            tx.debit(tier.unlock_cost, "auto_collect_unlock", reason=f"tier {level}")
            ledger.auto_collect_unlocked_level = level
            ledger.auto_collect_level = level
            return {"unlocked_level": level, "cost": tier.unlock_cost}

        return await self._mutate(user_id, _unlock)

    async def upgrade_storage(self, user_id: str) -> MutationResult:
        """Buy the next storage tier. Unclaimed income is kept and the cap grows."""

        async def _upgrade(tx: LedgerTransaction, config: EconomyConfig, now: datetime) -> dict[str, Any]:
            ledger = tx.ledger
            price = storage_upgrade_cost(config, ledger.storage_level)
            tx.debit(price, "storage_upgrade", reason=f"level {ledger.storage_level + 1}")
            ledger.storage_level += 1
            return {
                "storage_level": ledger.storage_level,
                "cost": price,
                "max_accrual_hours": storage_tier(config, ledger.storage_level).max_accrual_hours,
            }

        return await self._mutate(user_id, _upgrade)

    async def claim_daily_reward(self, user_id: str) -> MutationResult:
        """Collect today's (UTC) login reward."""

        async def _daily(tx: LedgerTransaction, config: EconomyConfig, now: datetime) -> dict[str, Any]:
            ledger = tx.ledger
            today = now.date()
            day = next_streak(ledger.daily_streak, ledger.last_daily_claim, today, len(config.daily_rewards))
            reward = reward_for_day(config, day)

            tx.credit(
                reward.coins,
                "daily_reward",
                reason=f"day {day}",
                idempotency_key=f"daily:{user_id}:{today.isoformat()}",
            )
            bonus_bot = None
            if reward.bonus_bot_id and config.bot(reward.bonus_bot_id) is not None:
                if hourly_rate(config, ledger.bots) == 0:
                    ledger.last_claim = now
                ledger.bots.setdefault(reward.bonus_bot_id, BotHolding()).owned += 1
                bonus_bot = reward.bonus_bot_id

            ledger.daily_streak = day
            ledger.last_daily_claim = today
            ledger.total_daily_claims += 1
            return {"day": day, "coins": reward.coins, "bonus_bot_id": bonus_bot}

        return await self._mutate(user_id, _daily)

    async def external_credit(
        self,
        user_id: str,
        amount: int,
        reason: str,
        idempotency_key: str | None = None,
    ) -> MutationResult:
        """Credit coins from another subsystem (prize wheel, lottery, referrals).

        A repeated ``idempotency_key`` for the same user succeeds without
        crediting again. Keys are scoped per user.
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            return MutationResult.rejected(ErrorKind.INVALID_AMOUNT)
        key = f"external:{user_id}:{idempotency_key}" if idempotency_key else None

        async def _credit(tx: LedgerTransaction, config: EconomyConfig, now: datetime) -> dict[str, Any]:
            if key is not None and await tx.seen_key(key):
                return {"credited": 0, "duplicate": True}
            tx.credit(amount, "external", reason=reason, idempotency_key=key)
            return {"credited": amount, "duplicate": False}

        return await self._mutate(user_id, _credit)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def leaderboard(self, limit: int = 10) -> list[dict[str, Any]]:
        rows = await self.store.top_earners(max(1, limit))
        return [
            {"rank": i, "user_id": row.user_id, "total_earned": row.total_earned}
            for i, row in enumerate(rows, start=1)
        ]

    async def transactions(self, user_id: str, page: int = 1, per_page: int = 20) -> tuple[list[JournalEntry], int]:
        return await self.store.list_transactions(user_id, max(1, page), max(1, per_page))

    async def describe(self, user_id: str) -> tuple[Ledger, dict[str, Any]]:
        """Ledger plus the derived numbers a client needs to render it."""
        ledger = await self.get_ledger(user_id)
        config = await self.config_provider.get()
        return ledger, describe_ledger(ledger, config, self._clock())


def describe_ledger(ledger: Ledger, config: EconomyConfig, now: datetime) -> dict[str, Any]:
    rate = hourly_rate(config, ledger.bots)
    tier = storage_tier(config, ledger.storage_level)
    accrual = accrue(ledger.last_claim, now, rate, tier.max_accrual_hours)
    next_storage = config.storage_tier(ledger.storage_level + 1)
    auto_tier = config.auto_collect_tier(ledger.auto_collect_level)

    bots = {}
    for bot in config.bots:
        holding = ledger.bots.get(bot.id, BotHolding())
        bots[bot.id] = {
            "owned": holding.owned,
            "level": holding.level,
            "cost": bot.base_cost,
            "earnings_per_hour": earnings_per_hour(config, bot.id, holding.level),
            "upgrade_cost": (
                upgrade_cost(config, bot.id, holding.level) if holding.level < bot.max_level else None
            ),
        }

    return {
        "hourly_rate": rate,
        "pending_earnings": accrual.earned,
        "storage_full": accrual.storage_full,
        "max_accrual_hours": tier.max_accrual_hours,
        "next_storage_cost": next_storage.upgrade_cost if next_storage else None,
        "auto_collect_interval_minutes": auto_tier.interval_minutes if auto_tier else None,
        "seconds_to_next_energy": (
            0 if ledger.energy >= config.max_energy
            else seconds_until_next_tick(ledger.last_energy_update, config.energy_regen_interval_seconds, now)
        ),
        "bots": bots,
    }
