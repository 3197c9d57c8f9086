"""Economy config parsing tests: defaults, legacy key names, validation."""

import pytest

from promominer.miner.economy_config import EconomyConfig, build_storage_tiers, parse_economy_config
from promominer.miner.errors import EconomyConfigError


class TestDefaults:
    def test_defaults_match_product(self):
        config = EconomyConfig()
        assert config.max_energy == 1000
        assert config.energy_regen_interval_seconds == 10
        assert config.starting_balance == 1000
        assert config.starting_energy == 1000
        assert config.coins_per_click_max == config.coins_per_click_min == 1
        assert [b.id for b in config.bots][:2] == ["basic_miner", "turbo_miner"]
        assert len(config.storage_tiers) == 10
        assert len(config.auto_collect_tiers) == 4
        assert len(config.daily_rewards) == 7

    def test_empty_document_uses_defaults(self):
        assert parse_economy_config(None) == EconomyConfig()


class TestLegacyKeys:
    def test_admin_panel_key_names(self):
        config = parse_economy_config({
            "energy_per_tap": 2,
            "energy_regen_interval": 30,
            "base_mining_power": 3,
            "starting_coins": 50,
            "max_claim_hours": 4,
            "bot_upgrade_cost_multiplier": 2,
            "bots": [{"id": "x", "name": "X", "cost": 10, "earnings_per_hour": 1}],
        })
        assert config.energy_per_action == 2
        assert config.energy_regen_interval_seconds == 30
        assert config.coins_per_click_min == 3
        assert config.starting_balance == 50
        assert config.storage_tiers[0].max_accrual_hours == 4
        assert config.cost_growth_multiplier == 2
        assert config.bots[0].base_cost == 10

    def test_unknown_keys_ignored(self):
        assert parse_economy_config({"theme": "dark"}).max_energy == 1000


class TestValidation:
    def test_click_range_inverted(self):
        with pytest.raises(EconomyConfigError):
            parse_economy_config({"coins_per_click_min": 5, "coins_per_click_max": 2})

    def test_duplicate_bot_ids(self):
        bot = {"id": "a", "base_cost": 1, "base_earnings_per_hour": 1}
        with pytest.raises(EconomyConfigError):
            parse_economy_config({"bots": [bot, bot]})

    def test_tier_gap(self):
        with pytest.raises(EconomyConfigError):
            parse_economy_config({"auto_collect_tiers": [
                {"level": 1, "interval_minutes": 5},
                {"level": 3, "interval_minutes": 1},
            ]})

    def test_starting_energy_clamped(self):
        assert parse_economy_config({"max_energy": 100, "starting_energy": 500}).starting_energy == 100


class TestStorageTierGeneration:
    def test_formulas(self):
        tiers = build_storage_tiers(6, 2, 100, 1.5, 5)
        assert [t.max_accrual_hours for t in tiers] == [6, 8, 10, 12, 14]
        assert [t.upgrade_cost for t in tiers] == [0, 100, 150, 225, 337]

    def test_explicit_tiers_win(self):
        config = parse_economy_config({"storage_tiers": [
            {"level": 1, "max_accrual_hours": 3},
            {"level": 2, "max_accrual_hours": 5, "upgrade_cost": 40},
        ]})
        assert len(config.storage_tiers) == 2
        assert config.storage_tier(2).upgrade_cost == 40
