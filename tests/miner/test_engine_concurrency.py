"""Concurrent mutations must serialize without lost updates."""

import asyncio
import random

import pytest

from promominer.miner.economy_config import EconomyConfig, EconomyConfigProvider
from promominer.miner.errors import ErrorKind
from promominer.miner.service import MiningEngine
from promominer.miner.store import InMemoryLedgerStore


class TestConcurrentMutations:
    @pytest.mark.asyncio
    async def test_parallel_taps(self, memory_engine):
        results = await asyncio.gather(*(memory_engine.tap("user-1") for _ in range(50)))
        assert all(r.ok for r in results)

        ledger = await memory_engine.get_ledger("user-1")
        assert ledger.energy == 950
        assert ledger.balance == 1050

    @pytest.mark.asyncio
    async def test_parallel_buys_never_overspend(self, memory_engine):
        results = await asyncio.gather(*(memory_engine.buy_bot("user-1", "basic_miner") for _ in range(10)))

        succeeded = [r for r in results if r.ok]
        rejected = [r for r in results if not r.ok]
        # 1000 start, 150 each, +50 after the first and +150 after the third
        assert len(succeeded) == 8
        assert {r.error for r in rejected} == {ErrorKind.INSUFFICIENT_BALANCE}

        ledger = await memory_engine.get_ledger("user-1")
        assert ledger.balance == 0
        assert ledger.bots["basic_miner"].owned == 8

        entries, _ = await memory_engine.transactions("user-1", per_page=100)
        assert 1000 + sum(e.amount for e in entries) == ledger.balance

    @pytest.mark.asyncio
    async def test_mixed_operations_match_serial_outcome(self, memory_engine, clock):
        await memory_engine.buy_bot("user-1", "basic_miner")
        clock.advance(hours=2)

        ops = [memory_engine.tap("user-1") for _ in range(20)]
        ops += [memory_engine.claim("user-1") for _ in range(5)]
        ops += [memory_engine.external_credit("user-1", 7, "referral") for _ in range(3)]
        results = await asyncio.gather(*ops)
        assert all(r.ok for r in results)

        earned = sum(r.data.get("earned", 0) for r in results)
        assert earned == 10

        ledger = await memory_engine.get_ledger("user-1")
        assert ledger.balance == 900 + 20 + 10 + 21
        assert ledger.energy == 1000 - 20

    @pytest.mark.asyncio
    async def test_engines_sharing_a_store(self, clock):
        """Two engine instances (two API workers) over one store."""
        store = InMemoryLedgerStore()
        provider = EconomyConfigProvider(static=EconomyConfig())
        engines = [
            MiningEngine(store, provider, clock=clock, rng=random.Random(i), retry_backoff=0)
            for i in range(2)
        ]
        await engines[0].get_ledger("user-1")

        results = await asyncio.gather(*(engines[i % 2].tap("user-1") for i in range(40)))
        assert all(r.ok for r in results)

        ledger = await store.read("user-1")
        assert ledger.balance == 1040
        assert ledger.energy == 960

    @pytest.mark.asyncio
    async def test_users_do_not_block_each_other(self, memory_engine):
        results = await asyncio.gather(*(memory_engine.tap(f"user-{i}") for i in range(10)))
        assert all(r.ok for r in results)
        board = await memory_engine.leaderboard(limit=20)
        assert len(board) == 10
        assert all(row["total_earned"] == 1 for row in board)
