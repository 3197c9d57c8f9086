"""Miner API: tapping, claiming, bots, storage, auto-collect, daily rewards."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from promominer.auth.dependencies import get_current_user_id, require_internal_key
from promominer.config import get_settings
from promominer.dependencies import get_mining_engine
from promominer.miner.errors import ErrorKind, MinerRejectedError
from promominer.miner.ledger import Ledger
from promominer.miner.schemas import (
    AchievementEventResponse,
    AchievementListResponse,
    AchievementResponse,
    AutoCollectRequest,
    AutoCollectUnlockRequest,
    EconomyConfigResponse,
    ErrorResponse,
    ExternalCreditRequest,
    LeaderboardEntry,
    LeaderboardResponse,
    LedgerResponse,
    MinerStateResponse,
    MutationResponse,
    TransactionListResponse,
    TransactionResponse,
)
from promominer.miner.service import MiningEngine, MutationResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/miner", tags=["Miner"])

_ERROR_RESPONSES: dict[int | str, dict] = {  # type: ignore[type-arg]
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# ── Helpers ──


def _ledger_response(ledger: Ledger, max_energy: int) -> LedgerResponse:
    return LedgerResponse(
        user_id=ledger.user_id,
        balance=ledger.balance,
        total_earned=ledger.total_earned,
        energy=ledger.energy,
        max_energy=max_energy,
        last_energy_update=ledger.last_energy_update,
        storage_level=ledger.storage_level,
        last_claim=ledger.last_claim,
        auto_collect_enabled=ledger.auto_collect_enabled,
        auto_collect_level=ledger.auto_collect_level,
        auto_collect_unlocked_level=ledger.auto_collect_unlocked_level,
        last_auto_collect=ledger.last_auto_collect,
        daily_streak=ledger.daily_streak,
        last_daily_claim=ledger.last_daily_claim,
        total_daily_claims=ledger.total_daily_claims,
        version=ledger.version,
    )


async def _respond(engine: MiningEngine, result: MutationResult) -> MutationResponse:
    """Map an engine result to the response body. Rejections raise."""
    if not result.ok:
        raise MinerRejectedError(result.error or ErrorKind.CONCURRENCY_CONFLICT, result.message)
    config = await engine.config_provider.get()
    return MutationResponse(
        ledger=_ledger_response(result.snapshot, config.max_energy),  # type: ignore[arg-type]
        result=result.data,
        achievements=[
            AchievementEventResponse(key=e.key, name=e.name, reward_coins=e.reward_coins)
            for e in result.achievements
        ],
    )


# ── Public ──


@router.get("/config", response_model=EconomyConfigResponse)
async def get_config(
    engine: MiningEngine = Depends(get_mining_engine),
) -> EconomyConfigResponse:
    """Economy constants the client needs to render prices and timers."""
    config = await engine.config_provider.get()
    return EconomyConfigResponse.model_validate(config.model_dump())


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    engine: MiningEngine = Depends(get_mining_engine),
) -> LeaderboardResponse:
    """Top miners by total coins earned."""
    limit = min(limit, get_settings().leaderboard_max_limit)
    entries = await engine.leaderboard(limit)
    return LeaderboardResponse(entries=[LeaderboardEntry(**e) for e in entries])


# ── Player ──


@router.get("/me", response_model=MinerStateResponse)
async def get_me(
    user_id: str = Depends(get_current_user_id),
    engine: MiningEngine = Depends(get_mining_engine),
) -> MinerStateResponse:
    """Current ledger plus derived values (income rate, pending earnings, timers)."""
    ledger, view = await engine.describe(user_id)
    config = await engine.config_provider.get()
    return MinerStateResponse(ledger=_ledger_response(ledger, config.max_energy), **view)


@router.post("/me/tap", response_model=MutationResponse, responses=_ERROR_RESPONSES)
async def tap(
    user_id: str = Depends(get_current_user_id),
    engine: MiningEngine = Depends(get_mining_engine),
) -> MutationResponse:
    return await _respond(engine, await engine.tap(user_id))


@router.post("/me/claim", response_model=MutationResponse, responses=_ERROR_RESPONSES)
async def claim(
    user_id: str = Depends(get_current_user_id),
    engine: MiningEngine = Depends(get_mining_engine),
) -> MutationResponse:
    return await _respond(engine, await engine.claim(user_id))


@router.post("/me/bots/{bot_id}/buy", response_model=MutationResponse, responses=_ERROR_RESPONSES)
async def buy_bot(
    bot_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: MiningEngine = Depends(get_mining_engine),
) -> MutationResponse:
    return await _respond(engine, await engine.buy_bot(user_id, bot_id))


@router.post("/me/bots/{bot_id}/upgrade", response_model=MutationResponse, responses=_ERROR_RESPONSES)
async def upgrade_bot(
    bot_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: MiningEngine = Depends(get_mining_engine),
) -> MutationResponse:
    return await _respond(engine, await engine.upgrade_bot(user_id, bot_id))


@router.put("/me/auto-collect", response_model=MutationResponse, responses=_ERROR_RESPONSES)
async def set_auto_collect(
    body: AutoCollectRequest,
    user_id: str = Depends(get_current_user_id),
    engine: MiningEngine = Depends(get_mining_engine),
) -> MutationResponse:
    return await _respond(engine, await engine.set_auto_collect(user_id, body.enabled, body.level))


@router.post("/me/auto-collect/unlock", response_model=MutationResponse, responses=_ERROR_RESPONSES)
async def unlock_auto_collect(
    body: AutoCollectUnlockRequest,
    user_id: str = Depends(get_current_user_id),
    engine: MiningEngine = Depends(get_mining_engine),
) -> MutationResponse:
    return await _respond(engine, await engine.unlock_auto_collect(user_id, body.level))


@router.post("/me/storage/upgrade", response_model=MutationResponse, responses=_ERROR_RESPONSES)
async def upgrade_storage(
    user_id: str = Depends(get_current_user_id),
    engine: MiningEngine = Depends(get_mining_engine),
) -> MutationResponse:
    return await _respond(engine, await engine.upgrade_storage(user_id))


@router.post("/me/daily-reward", response_model=MutationResponse, responses=_ERROR_RESPONSES)
async def claim_daily_reward(
    user_id: str = Depends(get_current_user_id),
    engine: MiningEngine = Depends(get_mining_engine),
) -> MutationResponse:
    return await _respond(engine, await engine.claim_daily_reward(user_id))


@router.get("/me/achievements", response_model=AchievementListResponse)
async def list_achievements(
    user_id: str = Depends(get_current_user_id),
    engine: MiningEngine = Depends(get_mining_engine),
) -> AchievementListResponse:
    """Every configured achievement with the player's progress."""
    ledger = await engine.get_ledger(user_id)
    config = await engine.config_provider.get()

    items = []
    for definition in config.achievements:
        state = ledger.achievements.get(definition.key)
        items.append(AchievementResponse(
            key=definition.key,
            name=definition.name,
            category=definition.category,
            threshold_metric=definition.threshold_metric,
            threshold_value=definition.threshold_value,
            reward_coins=definition.reward_coins,
            progress=state.progress if state else 0,
            completed=state.completed if state else False,
            completed_at=state.completed_at if state else None,
        ))
    completed = sum(1 for a in items if a.completed)
    return AchievementListResponse(achievements=items, completed=completed, total=len(items))


@router.get("/me/transactions", response_model=TransactionListResponse)
async def list_transactions(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    engine: MiningEngine = Depends(get_mining_engine),
) -> TransactionListResponse:
    """Coin journal, newest first."""
    entries, total = await engine.transactions(user_id, page, per_page)
    return TransactionListResponse(
        transactions=[
            TransactionResponse(
                id=e.id,
                amount=e.amount,
                source=e.source,
                reason=e.reason,
                balance_after=e.balance_after,
                created_at=e.created_at,
            )
            for e in entries
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


# ── Internal ──


@router.post(
    "/internal/credit",
    response_model=MutationResponse,
    responses=_ERROR_RESPONSES,
    dependencies=[Depends(require_internal_key)],
)
async def external_credit(
    body: ExternalCreditRequest,
    engine: MiningEngine = Depends(get_mining_engine),
) -> MutationResponse:
    """Credit coins on behalf of another subsystem (prize wheel, lottery, referrals)."""
    result = await engine.external_credit(body.user_id, body.amount, body.reason, body.idempotency_key)
    if result.ok:
        logger.info(
            "External credit for %s: %s (%s)", body.user_id, result.data.get("credited"), body.reason,
        )
    return await _respond(engine, result)
