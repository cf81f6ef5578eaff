"""
pricing.py - Pricing Engine

Computes exchange rates from inventory pressure and quotes prices for a
specific requested amount.

Rates:
    A kind's buy rate is its default rate scaled by how its Reference-equivalent
    holding compares to the mean holding of the tradeable kinds. Scarce kinds
    get up to 10% more expensive; abundant kinds get progressively cheaper.
    The sell rate is always buy_rate * sell_discount, so the market never loses
    on a round trip within one tick.

Quotes:
    quote_buy applies a quantity discount for large requests.
    quote_sell is checked against the Reference floor, since buying from a
    counterparty pays out Reference.

The module-level functions are pure; PricingEngine binds them to an
InventoryLedger and a MarketConfig.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Tuple

from .config import MarketConfig
from .core import (
    ResourceKind,
    NonPositiveQuantity, InsufficientAvailable, MarketInvariantError,
    ZERO, ONE,
)
from .inventory import InventoryLedger


# ============================================================================
# RATE TIERS
# ============================================================================

MAX_INFLATION = Decimal("0.10")

# (lower bound of qty / mean, multiplier on the default rate), highest first.
DEFLATION_TIERS: Tuple[Tuple[Decimal, Decimal], ...] = (
    (Decimal("1.60"), Decimal("0.965")),
    (Decimal("1.30"), Decimal("0.97")),
    (Decimal("1.10"), Decimal("0.975")),
    (Decimal("1.05"), Decimal("0.98")),
    (Decimal("1.00"), ONE),
)

# (lower bound of amount / held, multiplier on the quoted price), highest first.
QUANTITY_DISCOUNT_TIERS: Tuple[Tuple[Decimal, Decimal], ...] = (
    (Decimal("0.50"), Decimal("0.965")),
    (Decimal("0.40"), Decimal("0.975")),
    (Decimal("0.30"), Decimal("0.985")),
    (Decimal("0.25"), Decimal("0.99")),
)


def compute_buy_rate(
    default_rate: Decimal,
    quantity: Decimal,
    mean: Decimal,
    initial: Decimal,
    floor_fraction: Decimal,
) -> Decimal:
    """
    Buy rate for a kind given its inventory pressure.

    Args:
        default_rate: The kind's base rate
        quantity: Held quantity in Reference terms
        mean: Mean Reference-equivalent holding of the tradeable kinds
        initial: Initial quantity in Reference terms
        floor_fraction: Fraction of the initial quantity that is never sold

    Returns:
        The buy rate. Below the mean it rises linearly from default_rate
        (at the mean) to default_rate * 1.10 (at the floor); at or above the
        mean it follows DEFLATION_TIERS.
    """
    if mean <= ZERO:
        return default_rate

    ratio = quantity / mean
    if ratio < ONE:
        floor = floor_fraction * initial
        span = mean - floor
        if span <= ZERO:
            pressure = ONE
        else:
            pressure = ONE - (quantity - floor) / span
            pressure = min(max(pressure, ZERO), ONE)
        return default_rate * (ONE + MAX_INFLATION * pressure)

    for lower_bound, multiplier in DEFLATION_TIERS:
        if ratio >= lower_bound:
            return default_rate * multiplier
    return default_rate


def quantity_discount(fraction: Decimal) -> Decimal:
    """Price multiplier for a request that is `fraction` of the available stock."""
    for lower_bound, multiplier in QUANTITY_DISCOUNT_TIERS:
        if fraction >= lower_bound:
            return multiplier
    return ONE


class PricingEngine:
    """
    Quotes and reprices against a live inventory.

    The engine owns no state of its own; rates are stored on the inventory's
    ledger entries so that list_inventory() always reflects the latest reprice.
    """

    def __init__(self, inventory: InventoryLedger, config: MarketConfig):
        self.inventory = inventory
        self.config = config

    def quote_buy(self, kind: ResourceKind, amount: Decimal) -> Decimal:
        """
        Price, in Reference, for the market to sell `amount` of `kind`.

        Raises:
            NonPositiveQuantity: If amount <= 0
            InsufficientAvailable: If the sale would breach the kind's floor
        """
        if amount <= ZERO:
            raise NonPositiveQuantity(amount)

        entry = self.inventory.entry(kind)
        available = entry.quantity
        floor = entry.initial_amount * self.config.min_held_fraction
        if available - amount < floor:
            raise InsufficientAvailable(
                kind=kind,
                requested=amount,
                available=max(available - floor, ZERO),
            )

        price = entry.buy_rate * amount
        return price * quantity_discount(amount / available)

    def quote_sell(self, kind: ResourceKind, amount: Decimal) -> Decimal:
        """
        Price, in Reference, the market pays to buy `amount` of `kind`.

        Raises:
            NonPositiveQuantity: If amount <= 0
            InsufficientAvailable: If paying would breach the Reference floor
        """
        if amount <= ZERO:
            raise NonPositiveQuantity(amount)

        price = self.inventory.entry(kind).sell_rate * amount
        reference = self.inventory.entry(ResourceKind.REFERENCE)
        floor = reference.initial_amount * self.config.min_reference_fraction
        if reference.quantity - price < floor:
            raise InsufficientAvailable(
                kind=ResourceKind.REFERENCE,
                requested=price,
                available=max(reference.quantity - floor, ZERO),
            )
        return price

    def reprice(self, kind: ResourceKind) -> None:
        """
        Recompute a tradeable kind's buy and sell rates.

        Raises:
            MarketInvariantError: If called for the Reference kind
        """
        if kind == ResourceKind.REFERENCE:
            raise MarketInvariantError("The Reference kind is never repriced")

        entry = self.inventory.entry(kind)
        entry.buy_rate = compute_buy_rate(
            default_rate=entry.default_rate,
            quantity=entry.reference_quantity,
            mean=self.inventory.tradeable_mean(),
            initial=entry.reference_initial,
            floor_fraction=self.config.min_held_fraction,
        )
        entry.sell_rate = entry.buy_rate * self.config.sell_discount

    def reprice_all(self) -> None:
        for kind in ResourceKind.tradeable():
            self.reprice(kind)
