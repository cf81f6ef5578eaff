"""
test_clock.py - Unit tests for the logical clock and the rebalancer

Tests:
- LogicalClock: advance, limit, rebase and epochs
- Rebalancer: trigger probability, transfer ordering, roles, conservation
"""

import pytest
from decimal import Decimal

import numpy as np

from bazaar import (
    ResourceKind, Role, LogicalClock, Rebalancer, RebalanceTransfer,
)


class TestLogicalClock:

    def test_advance_returns_new_tick(self):
        clock = LogicalClock(max_tick=10)
        assert clock.advance() == 1
        assert clock.tick == 1

    def test_advance_at_limit_raises(self):
        clock = LogicalClock(max_tick=3, initial_tick=3)
        assert clock.at_limit()
        with pytest.raises(OverflowError):
            clock.advance()

    def test_rebase_starts_new_epoch(self):
        clock = LogicalClock(max_tick=20, initial_tick=20)
        clock.rebase(15)
        assert clock.tick == 5
        assert clock.epoch == 1

    @pytest.mark.parametrize("offset", [-1, 6])
    def test_rebase_out_of_range(self, offset):
        clock = LogicalClock(max_tick=20, initial_tick=5)
        with pytest.raises(ValueError):
            clock.rebase(offset)

    def test_initial_tick_validation(self):
        with pytest.raises(ValueError):
            LogicalClock(max_tick=5, initial_tick=6)


class TestRebalancerTrigger:

    def test_zero_probability_never_fires(self, inventory, flat_config):
        rebalancer = Rebalancer(inventory, flat_config(rebalance_probability=Decimal("0")))
        assert not any(rebalancer.should_fire() for _ in range(200))

    def test_certain_probability_always_fires(self, inventory, flat_config):
        rebalancer = Rebalancer(inventory, flat_config(rebalance_probability=Decimal("1")))
        assert all(rebalancer.should_fire() for _ in range(200))

    def test_seeded_trigger_is_reproducible(self, inventory, flat_config):
        config = flat_config(rebalance_probability=Decimal("0.3"), seed=42)
        first = Rebalancer(inventory, config)
        second = Rebalancer(inventory, config)
        assert [first.should_fire() for _ in range(50)] == [second.should_fire() for _ in range(50)]

    def test_injected_generator(self, inventory, flat_config):
        rng = np.random.default_rng(1)
        rebalancer = Rebalancer(inventory, flat_config(), rng=rng)
        assert rebalancer.rng is rng

    def test_roles_due(self, inventory, config):
        rebalancer = Rebalancer(inventory, config)
        assert rebalancer.roles_due(24)
        assert rebalancer.roles_due(48)
        assert not rebalancer.roles_due(23)


class TestRebalance:

    def test_reference_funds_every_poor_kind(self, inventory, config):
        """Mean of 1000/100/100/100 is 325; the Reference surplus feeds A, B and C in order."""
        transfers = Rebalancer(inventory, config).rebalance()
        assert transfers == [
            RebalanceTransfer(ResourceKind.REFERENCE, ResourceKind.A, Decimal("225")),
            RebalanceTransfer(ResourceKind.REFERENCE, ResourceKind.B, Decimal("225")),
            RebalanceTransfer(ResourceKind.REFERENCE, ResourceKind.C, Decimal("225")),
        ]
        for kind in ResourceKind:
            assert inventory.held(kind) == Decimal("325")

    def test_roles_after_rebalance(self, inventory, config):
        Rebalancer(inventory, config).rebalance()
        assert inventory.entry(ResourceKind.REFERENCE).role == Role.EXPORTING
        for kind in ResourceKind.tradeable():
            assert inventory.entry(kind).role == Role.IMPORTING

    def test_exporting_kind_cannot_import(self, inventory, config):
        inventory.entry(ResourceKind.A).role = Role.EXPORTING
        transfers = Rebalancer(inventory, config).rebalance()
        assert ResourceKind.A not in [t.dest for t in transfers]
        assert inventory.held(ResourceKind.A) == Decimal("100")

    def test_importing_kind_cannot_export(self, inventory, config):
        inventory.entry(ResourceKind.REFERENCE).role = Role.IMPORTING
        assert Rebalancer(inventory, config).rebalance() == []
        assert inventory.held(ResourceKind.REFERENCE) == Decimal("1000")

    def test_balanced_inventory_is_left_alone(self, inventory, config):
        rebalancer = Rebalancer(inventory, config)
        rebalancer.rebalance()
        inventory.reset_roles()
        assert rebalancer.rebalance() == []

    def test_rebalance_flows_keep_conservation(self, inventory, config):
        Rebalancer(inventory, config).rebalance()
        result = inventory.verify_conservation({})
        assert result['valid'], result['discrepancies']
        assert inventory.flows(ResourceKind.REFERENCE).rebalanced_out == Decimal("675")
        assert inventory.flows(ResourceKind.B).rebalanced_in == Decimal("225")

    def test_reset_roles(self, inventory, config):
        rebalancer = Rebalancer(inventory, config)
        rebalancer.rebalance()
        rebalancer.reset_roles()
        assert all(entry.role == Role.UNKNOWN for entry in inventory)
