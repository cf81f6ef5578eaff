"""
conftest.py - Shared pytest fixtures for market tests

Provides common fixtures used across unit, functional and conformance tests:
- Flat-rate configs (every default rate is 1, so Reference-equivalents equal
  native quantities and the arithmetic in assertions stays readable)
- Balanced markets with rebalancing disabled
- A recording notification sink
"""

import pytest
from decimal import Decimal
from typing import List

from bazaar import (
    Market, MarketConfig, MarketEvent, ResourceKind,
    InventoryLedger,
)


FLAT_RATES = {
    ResourceKind.REFERENCE: Decimal("1"),
    ResourceKind.A: Decimal("1"),
    ResourceKind.B: Decimal("1"),
    ResourceKind.C: Decimal("1"),
}


class RecordingSink:
    """Notification sink that remembers every event."""

    def __init__(self):
        self.events: List[MarketEvent] = []

    def __call__(self, event: MarketEvent) -> None:
        self.events.append(event)


def _flat_config(**overrides) -> MarketConfig:
    params = dict(default_rates=FLAT_RATES, rebalance_probability=Decimal("0"), seed=7)
    params.update(overrides)
    return MarketConfig(**params)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def flat_config():
    """Factory for configs with unit default rates and no random rebalancing."""
    return _flat_config


@pytest.fixture
def config() -> MarketConfig:
    return _flat_config()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_market(sink):
    """Factory: make_market(reference, a, b, c, **config_overrides)."""
    def _make(reference=1000, a=100, b=100, c=100, **overrides) -> Market:
        return Market.with_quantities(
            reference, a, b, c, config=_flat_config(**overrides), sink=sink,
        )
    return _make


@pytest.fixture
def market(make_market) -> Market:
    """Balanced market: 1000 Reference, 100 of each tradeable kind."""
    return make_market()


@pytest.fixture
def inventory() -> InventoryLedger:
    return InventoryLedger(
        {
            ResourceKind.REFERENCE: Decimal("1000"),
            ResourceKind.A: Decimal("100"),
            ResourceKind.B: Decimal("100"),
            ResourceKind.C: Decimal("100"),
        },
        FLAT_RATES,
    )
