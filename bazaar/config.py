"""
config.py - Market configuration

Every tunable constant of the market lives on MarketConfig. The module-level
constants are the defaults; tests and simulations override them by building
their own config:

    config = MarketConfig(max_lock_ticks=3, rebalance_probability=Decimal("0"))
    market = Market.with_quantities(1000, 100, 100, 100, config=config)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional

from .core import ResourceKind, ZERO, ONE


# ============================================================================
# DEFAULTS
# ============================================================================

DEFAULT_MARKET_NAME = "BVC"

# Reservation limits
MAX_LOCK_TICKS = 12
MAX_BUY_LOCKS = 4
MAX_SELL_LOCKS = 4

# Floors, as fractions of each entry's initial amount
MIN_HELD_FRACTION = Decimal("0.25")
MIN_REFERENCE_FRACTION = Decimal("0.20")

# sell_rate = buy_rate * SELL_DISCOUNT
SELL_DISCOUNT = Decimal("0.93")

# Rebalancing
ROLE_RESET_TICKS = 24
REBALANCE_PROBABILITY = Decimal("0.05")

# Clock
MAX_TICK = 2 ** 64 - 1

# Random initialization
STARTING_CAPITAL = Decimal("1000000")

# Reference paid per native unit of each kind when inventory is balanced.
DEFAULT_RATES: Mapping[ResourceKind, Decimal] = MappingProxyType({
    ResourceKind.REFERENCE: ONE,
    ResourceKind.A: Decimal("0.97"),
    ResourceKind.B: Decimal("0.0069"),
    ResourceKind.C: Decimal("0.14"),
})


@dataclass(frozen=True)
class MarketConfig:
    """
    Immutable market parameters.

    Attributes:
        name: Market name used in audit lines and verbose output
        max_lock_ticks: Age (in ticks) a reservation may reach before expiring
        max_buy_locks: Maximum simultaneous buy reservations
        max_sell_locks: Maximum simultaneous sell reservations
        min_held_fraction: Floor for tradeable kinds, fraction of initial amount
        min_reference_fraction: Floor for the Reference kind
        sell_discount: Ratio between sell and buy rate (must be < 1)
        role_reset_ticks: Rebalancing roles reset whenever tick % this == 0
        rebalance_probability: Chance that a clock advance triggers a rebalance
        max_tick: Largest tick before the clock renormalizes
        starting_capital: Reference-equivalent budget for random initialization
        default_rates: Reference per native unit for each kind
        seed: Seed for the market's random generator (None = fresh entropy)
        history_limit: Most recent events, audit records and rebalance
            transfers kept in memory (None = keep all; drain older records
            with write_audit_log)
    """
    name: str = DEFAULT_MARKET_NAME
    max_lock_ticks: int = MAX_LOCK_TICKS
    max_buy_locks: int = MAX_BUY_LOCKS
    max_sell_locks: int = MAX_SELL_LOCKS
    min_held_fraction: Decimal = MIN_HELD_FRACTION
    min_reference_fraction: Decimal = MIN_REFERENCE_FRACTION
    sell_discount: Decimal = SELL_DISCOUNT
    role_reset_ticks: int = ROLE_RESET_TICKS
    rebalance_probability: Decimal = REBALANCE_PROBABILITY
    max_tick: int = MAX_TICK
    starting_capital: Decimal = STARTING_CAPITAL
    default_rates: Mapping[ResourceKind, Decimal] = field(default_factory=lambda: DEFAULT_RATES)
    seed: Optional[int] = None
    history_limit: Optional[int] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Market name cannot be empty")
        if self.max_lock_ticks < 0:
            raise ValueError(f"max_lock_ticks must be non-negative, got {self.max_lock_ticks}")
        if self.max_buy_locks < 1 or self.max_sell_locks < 1:
            raise ValueError("Lock limits must be at least 1")
        for label in ("min_held_fraction", "min_reference_fraction", "rebalance_probability"):
            value = Decimal(str(getattr(self, label)))
            if not ZERO <= value <= ONE:
                raise ValueError(f"{label} must be within [0, 1], got {value}")
            object.__setattr__(self, label, value)
        sell_discount = Decimal(str(self.sell_discount))
        if not ZERO < sell_discount < ONE:
            raise ValueError(f"sell_discount must be within (0, 1), got {sell_discount}")
        object.__setattr__(self, "sell_discount", sell_discount)
        if self.role_reset_ticks < 1:
            raise ValueError(f"role_reset_ticks must be at least 1, got {self.role_reset_ticks}")
        if self.history_limit is not None and self.history_limit < 1:
            raise ValueError(f"history_limit must be at least 1, got {self.history_limit}")
        # A reservation alive at max_tick must still be shiftable below it.
        if self.max_tick <= self.max_lock_ticks + 1:
            raise ValueError(
                f"max_tick must exceed max_lock_ticks + 1, got {self.max_tick}"
            )

        missing = set(ResourceKind) - set(self.default_rates)
        if missing:
            raise ValueError(f"default_rates missing kinds: {sorted(k.value for k in missing)}")
        rates = {kind: Decimal(str(rate)) for kind, rate in self.default_rates.items()}
        if rates[ResourceKind.REFERENCE] != ONE:
            raise ValueError("The Reference kind must have a default rate of 1")
        for kind, rate in rates.items():
            if rate <= ZERO:
                raise ValueError(f"Default rate for {kind} must be positive, got {rate}")
        object.__setattr__(self, "default_rates", MappingProxyType(rates))
        object.__setattr__(self, "starting_capital", Decimal(str(self.starting_capital)))

    def default_rate(self, kind: ResourceKind) -> Decimal:
        return self.default_rates[kind]
