"""
test_config.py - Unit tests for MarketConfig validation
"""

import pytest
from decimal import Decimal

from bazaar import MarketConfig, ResourceKind, DEFAULT_RATES


class TestDefaults:

    def test_default_values(self):
        config = MarketConfig()
        assert config.name == "BVC"
        assert config.max_lock_ticks == 12
        assert config.max_buy_locks == 4
        assert config.max_sell_locks == 4
        assert config.min_held_fraction == Decimal("0.25")
        assert config.min_reference_fraction == Decimal("0.20")
        assert config.sell_discount == Decimal("0.93")
        assert config.role_reset_ticks == 24
        assert config.max_tick == 2 ** 64 - 1

    def test_default_rates(self):
        config = MarketConfig()
        assert config.default_rate(ResourceKind.REFERENCE) == Decimal("1")
        assert config.default_rate(ResourceKind.B) == Decimal("0.0069")

    def test_float_fields_become_decimal(self):
        config = MarketConfig(sell_discount=0.9, rebalance_probability=0.5)
        assert config.sell_discount == Decimal("0.9")
        assert config.rebalance_probability == Decimal("0.5")

    def test_default_rates_are_read_only(self):
        config = MarketConfig()
        with pytest.raises(TypeError):
            config.default_rates[ResourceKind.A] = Decimal("2")


class TestValidation:

    @pytest.mark.parametrize("overrides", [
        {"name": "  "},
        {"max_lock_ticks": -1},
        {"max_buy_locks": 0},
        {"max_sell_locks": 0},
        {"min_held_fraction": Decimal("1.5")},
        {"min_reference_fraction": Decimal("-0.1")},
        {"rebalance_probability": Decimal("2")},
        {"sell_discount": Decimal("0")},
        {"sell_discount": Decimal("1")},
        {"sell_discount": Decimal("1.01")},
        {"history_limit": 0},
        {"role_reset_ticks": 0},
        {"max_tick": 13},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            MarketConfig(**overrides)

    def test_smallest_valid_max_tick(self):
        assert MarketConfig(max_tick=14).max_tick == 14

    def test_missing_default_rate(self):
        rates = {k: v for k, v in DEFAULT_RATES.items() if k != ResourceKind.C}
        with pytest.raises(ValueError, match="missing"):
            MarketConfig(default_rates=rates)

    def test_reference_rate_must_be_one(self):
        rates = dict(DEFAULT_RATES)
        rates[ResourceKind.REFERENCE] = Decimal("2")
        with pytest.raises(ValueError):
            MarketConfig(default_rates=rates)

    def test_rates_must_be_positive(self):
        rates = dict(DEFAULT_RATES)
        rates[ResourceKind.A] = Decimal("0")
        with pytest.raises(ValueError):
            MarketConfig(default_rates=rates)
