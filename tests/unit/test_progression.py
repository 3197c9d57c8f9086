"""Cost and earning curve tests."""

import pytest

from promominer.miner.economy_config import EconomyConfig
from promominer.miner.errors import ErrorKind, Rejected
from promominer.miner.ledger import BotHolding
from promominer.miner.progression import (
    auto_collect_tier,
    cost,
    earnings_per_hour,
    hourly_rate,
    storage_tier,
    storage_upgrade_cost,
    upgrade_cost,
)


@pytest.fixture
def config() -> EconomyConfig:
    return EconomyConfig()


class TestBotCurves:
    def test_buy_cost_is_base_cost(self, config):
        assert cost(config, "basic_miner") == 150

    def test_buy_cost_ignores_level(self, config):
        assert cost(config, "basic_miner", 7) == 150

    def test_first_upgrade(self, config):
        """floor(150 * 1.5^1)"""
        assert upgrade_cost(config, "basic_miner", 1) == 225

    def test_second_upgrade(self, config):
        """floor(150 * 1.5^2) = floor(337.5)"""
        assert upgrade_cost(config, "basic_miner", 2) == 337

    def test_upgrade_at_max_level(self, config):
        with pytest.raises(Rejected) as exc:
            upgrade_cost(config, "basic_miner", 10)
        assert exc.value.kind == ErrorKind.MAX_LEVEL_REACHED

    def test_earnings_level_1(self, config):
        assert earnings_per_hour(config, "mega_miner", 1) == 125

    def test_earnings_are_exact_for_decimal_multipliers(self, config):
        """125 * 1.2^2 = 180 exactly; binary floats would give 179."""
        assert earnings_per_hour(config, "mega_miner", 3) == 180

    def test_unknown_bot(self, config):
        with pytest.raises(Rejected) as exc:
            cost(config, "warp_miner")
        assert exc.value.kind == ErrorKind.UNKNOWN_BOT


class TestHourlyRate:
    def test_sums_units_times_level_earnings(self, config):
        bots = {
            "basic_miner": BotHolding(level=2, owned=3),  # 6 * 3
            "turbo_miner": BotHolding(level=1, owned=1),  # 30
        }
        assert hourly_rate(config, bots) == 48

    def test_ignores_unowned_and_unknown(self, config):
        bots = {
            "basic_miner": BotHolding(level=5, owned=0),
            "retired_miner": BotHolding(level=1, owned=4),
        }
        assert hourly_rate(config, bots) == 0


class TestStorageAndAutoCollect:
    def test_storage_tier_hours(self, config):
        assert storage_tier(config, 1).max_accrual_hours == 6
        assert storage_tier(config, 3).max_accrual_hours == 10

    def test_storage_upgrade_costs(self, config):
        assert storage_upgrade_cost(config, 1) == 100
        assert storage_upgrade_cost(config, 2) == 150
        assert storage_upgrade_cost(config, 3) == 225

    def test_storage_upgrade_at_last_tier(self, config):
        with pytest.raises(Rejected) as exc:
            storage_upgrade_cost(config, 10)
        assert exc.value.kind == ErrorKind.MAX_LEVEL_REACHED

    def test_auto_collect_tiers(self, config):
        assert auto_collect_tier(config, 1).interval_minutes == 5
        assert auto_collect_tier(config, 4).unlock_cost == 100_000

    def test_missing_auto_collect_tier(self, config):
        with pytest.raises(Rejected) as exc:
            auto_collect_tier(config, 5)
        assert exc.value.kind == ErrorKind.TIER_LOCKED
