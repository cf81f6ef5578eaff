"""
test_pricing.py - Unit tests for rate computation and quotes

Tests:
- compute_buy_rate: inflation below the mean, deflation tiers above it
- quantity_discount: tier boundaries
- PricingEngine.quote_buy / quote_sell: prices, floors, rejections
- PricingEngine.reprice: sell rate follows buy rate, Reference is fixed
"""

import pytest
from decimal import Decimal

from bazaar import (
    ResourceKind, PricingEngine, compute_buy_rate, quantity_discount,
    NonPositiveQuantity, InsufficientAvailable, MarketInvariantError,
)


@pytest.fixture
def engine(inventory, config) -> PricingEngine:
    engine = PricingEngine(inventory, config)
    engine.reprice_all()
    return engine


class TestComputeBuyRate:

    def test_at_mean_rate_is_default(self):
        rate = compute_buy_rate(Decimal("2"), Decimal("100"), Decimal("100"), Decimal("100"), Decimal("0.25"))
        assert rate == Decimal("2")

    def test_at_floor_rate_is_inflated_by_ten_percent(self):
        rate = compute_buy_rate(Decimal("1"), Decimal("25"), Decimal("100"), Decimal("100"), Decimal("0.25"))
        assert rate == Decimal("1.10")

    def test_halfway_between_floor_and_mean(self):
        # floor 25, mean 125: 75 sits halfway
        rate = compute_buy_rate(Decimal("1"), Decimal("75"), Decimal("125"), Decimal("100"), Decimal("0.25"))
        assert rate == Decimal("1.05")

    def test_below_floor_is_clamped(self):
        rate = compute_buy_rate(Decimal("1"), Decimal("10"), Decimal("100"), Decimal("100"), Decimal("0.25"))
        assert rate == Decimal("1.10")

    def test_degenerate_span_applies_max_inflation(self):
        # floor (0.25 * 400 = 100) is above the mean
        rate = compute_buy_rate(Decimal("1"), Decimal("50"), Decimal("80"), Decimal("400"), Decimal("0.25"))
        assert rate == Decimal("1.10")

    def test_zero_mean_returns_default(self):
        rate = compute_buy_rate(Decimal("0.5"), Decimal("0"), Decimal("0"), Decimal("100"), Decimal("0.25"))
        assert rate == Decimal("0.5")

    @pytest.mark.parametrize("quantity,multiplier", [
        ("104", "1"),
        ("105", "0.98"),
        ("110", "0.975"),
        ("130", "0.97"),
        ("160", "0.965"),
        ("500", "0.965"),
    ])
    def test_deflation_tiers(self, quantity, multiplier):
        rate = compute_buy_rate(Decimal("1"), Decimal(quantity), Decimal("100"), Decimal("100"), Decimal("0.25"))
        assert rate == Decimal(multiplier)

    def test_scarcer_is_never_cheaper(self):
        rates = [
            compute_buy_rate(Decimal("1"), Decimal(q), Decimal("100"), Decimal("100"), Decimal("0.25"))
            for q in (20, 40, 60, 80, 100, 106, 120, 140, 200)
        ]
        assert rates == sorted(rates, reverse=True)


class TestQuantityDiscount:

    @pytest.mark.parametrize("fraction,multiplier", [
        ("0.10", "1"),
        ("0.2499", "1"),
        ("0.25", "0.99"),
        ("0.30", "0.985"),
        ("0.40", "0.975"),
        ("0.50", "0.965"),
        ("0.75", "0.965"),
    ])
    def test_tiers(self, fraction, multiplier):
        assert quantity_discount(Decimal(fraction)) == Decimal(multiplier)


class TestQuoteBuy:

    def test_balanced_rates(self, engine):
        """Every tradeable kind sits exactly at the mean."""
        for kind in ResourceKind.tradeable():
            entry = engine.inventory.entry(kind)
            assert entry.buy_rate == Decimal("1")
            assert entry.sell_rate == Decimal("0.93")

    def test_small_quote_has_no_discount(self, engine):
        assert engine.quote_buy(ResourceKind.A, Decimal("10")) == Decimal("10")

    def test_large_quote_is_discounted(self, engine):
        assert engine.quote_buy(ResourceKind.A, Decimal("70")) == Decimal("67.55")

    def test_quote_down_to_floor(self, engine):
        assert engine.quote_buy(ResourceKind.A, Decimal("75")) == Decimal("72.375")

    def test_floor_breach(self, engine):
        with pytest.raises(InsufficientAvailable) as exc_info:
            engine.quote_buy(ResourceKind.A, Decimal("80"))
        assert exc_info.value.kind == ResourceKind.A
        assert exc_info.value.requested == Decimal("80")
        assert exc_info.value.available == Decimal("75")

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_non_positive_amount(self, engine, amount):
        with pytest.raises(NonPositiveQuantity):
            engine.quote_buy(ResourceKind.B, Decimal(amount))

    def test_quote_does_not_mutate(self, engine):
        before = engine.inventory.list_inventory()
        engine.quote_buy(ResourceKind.C, Decimal("50"))
        assert engine.inventory.list_inventory() == before


class TestQuoteSell:

    def test_sell_price_uses_sell_rate(self, engine):
        assert engine.quote_sell(ResourceKind.A, Decimal("10")) == Decimal("9.30")

    def test_sell_has_no_quantity_discount(self, engine):
        assert engine.quote_sell(ResourceKind.A, Decimal("600")) == Decimal("558")

    def test_reference_floor(self, engine):
        with pytest.raises(InsufficientAvailable) as exc_info:
            engine.quote_sell(ResourceKind.A, Decimal("900"))
        assert exc_info.value.kind == ResourceKind.REFERENCE
        assert exc_info.value.requested == Decimal("837")
        assert exc_info.value.available == Decimal("800")

    def test_non_positive_amount(self, engine):
        with pytest.raises(NonPositiveQuantity):
            engine.quote_sell(ResourceKind.A, Decimal("0"))


class TestReprice:

    def test_scarce_kind_becomes_more_expensive(self, engine):
        engine.inventory.take(ResourceKind.A, Decimal("70"))
        engine.reprice(ResourceKind.A)
        entry = engine.inventory.entry(ResourceKind.A)
        assert Decimal("1.09") < entry.buy_rate < Decimal("1.10")
        assert entry.sell_rate == entry.buy_rate * Decimal("0.93")

    def test_reprice_only_touches_one_kind(self, engine):
        engine.inventory.take(ResourceKind.A, Decimal("70"))
        engine.reprice(ResourceKind.A)
        assert engine.inventory.entry(ResourceKind.B).buy_rate == Decimal("1")

    def test_reference_is_never_repriced(self, engine):
        with pytest.raises(MarketInvariantError):
            engine.reprice(ResourceKind.REFERENCE)

    def test_reference_rate_is_one(self, engine):
        entry = engine.inventory.entry(ResourceKind.REFERENCE)
        assert entry.buy_rate == Decimal("1")
        assert entry.sell_rate == Decimal("1")

    def test_sell_rate_below_buy_rate(self, engine):
        engine.inventory.take(ResourceKind.C, Decimal("40"))
        engine.reprice_all()
        for kind in ResourceKind.tradeable():
            entry = engine.inventory.entry(kind)
            assert entry.sell_rate < entry.buy_rate
