"""
clock.py - Logical Clock & Rebalancer

Time in the market is a counter, advanced once per completed mutating
operation (or once per idle tick requested by the surrounding scheduler).

LogicalClock only counts; the Market decides what happens on each tick:
1. Renormalize if the clock sits at its maximum
2. Increment the tick
3. Sweep expired reservations
4. Reset rebalancing roles every role_reset_ticks
5. Possibly rebalance

Rebalancer moves Reference-equivalent value from over-supplied kinds to
under-supplied ones. Its random trigger comes from a numpy Generator so a
seeded market replays identically.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional

import numpy as np

from .config import MarketConfig
from .core import ResourceKind, Role, QUANTITY_EPSILON, ZERO
from .inventory import InventoryLedger


class LogicalClock:
    """
    Monotonic tick counter with overflow renormalization.

    Attributes:
        tick: Current tick
        epoch: Number of renormalizations so far
        max_tick: Largest representable tick
    """

    def __init__(self, max_tick: int, initial_tick: int = 0):
        if not 0 <= initial_tick <= max_tick:
            raise ValueError(f"initial_tick must be within [0, {max_tick}], got {initial_tick}")
        self.max_tick = max_tick
        self.tick = initial_tick
        self.epoch = 0

    def at_limit(self) -> bool:
        return self.tick >= self.max_tick

    def rebase(self, offset: int) -> None:
        """
        Move the clock back by `offset` ticks and start a new epoch.

        Raises:
            ValueError: If offset is negative or larger than the current tick
        """
        if not 0 <= offset <= self.tick:
            raise ValueError(f"Cannot rebase tick {self.tick} by {offset}")
        self.tick -= offset
        self.epoch += 1

    def advance(self) -> int:
        """Increment the tick and return the new value."""
        if self.at_limit():
            raise OverflowError(f"Clock at {self.tick} must be rebased before advancing")
        self.tick += 1
        return self.tick

    def __repr__(self) -> str:
        return f"LogicalClock(tick={self.tick}, epoch={self.epoch})"


@dataclass(frozen=True, slots=True)
class RebalanceTransfer:
    """Reference-equivalent value moved from `source` to `dest` in one step."""
    source: ResourceKind
    dest: ResourceKind
    reference_amount: Decimal


class Rebalancer:
    """
    Probabilistic inventory rebalancing.

    Roles make a rebalancing pass directional: once a kind has exported it
    cannot import in the same role period and vice versa. Roles stay sticky
    until reset_roles() (called every role_reset_ticks by the market).

    Ties between equally suffering or equally eligible kinds resolve by
    ResourceKind declaration order (REFERENCE, A, B, C).
    """

    def __init__(
        self,
        inventory: InventoryLedger,
        config: MarketConfig,
        rng: Optional[np.random.Generator] = None,
    ):
        self.inventory = inventory
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng(config.seed)

    def should_fire(self) -> bool:
        """Draw the per-tick trigger."""
        probability = float(self.config.rebalance_probability)
        if probability <= 0.0:
            return False
        return bool(self.rng.random() < probability)

    def roles_due(self, tick: int) -> bool:
        return tick % self.config.role_reset_ticks == 0

    def reset_roles(self) -> None:
        self.inventory.reset_roles()

    def rebalance(self) -> List[RebalanceTransfer]:
        """
        Move value from the richest eligible kind to the poorest suffering kind
        until no such pair remains.

        Returns:
            The transfers applied, in order
        """
        quantities: Dict[ResourceKind, Decimal] = self.inventory.reference_quantities()
        mean = sum(quantities.values(), ZERO) / len(quantities)
        transfers: List[RebalanceTransfer] = []

        while True:
            suffering = [
                kind for kind in ResourceKind
                if self.inventory.entry(kind).role != Role.EXPORTING
                and quantities[kind] < mean - QUANTITY_EPSILON
            ]
            eligible = [
                kind for kind in ResourceKind
                if self.inventory.entry(kind).role != Role.IMPORTING
                and quantities[kind] > mean + QUANTITY_EPSILON
            ]
            if not suffering or not eligible:
                break

            importer = min(suffering, key=lambda k: (quantities[k], k.order))
            exporter = max(eligible, key=lambda k: (quantities[k], -k.order))
            self.inventory.entry(importer).role = Role.IMPORTING
            self.inventory.entry(exporter).role = Role.EXPORTING

            amount = min(mean - quantities[importer], quantities[exporter] - mean)
            self.inventory.exchange(exporter, importer, amount)
            quantities[importer] += amount
            quantities[exporter] -= amount
            transfers.append(RebalanceTransfer(exporter, importer, amount))

        return transfers
