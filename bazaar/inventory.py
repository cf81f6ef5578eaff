"""
inventory.py - Inventory Ledger

The Inventory Ledger is the source of truth for available supply. It holds
one LedgerEntry per ResourceKind for the lifetime of the market and keeps
flow counters so that conservation can be verified at any tick:

    held + reserved + finalized_out + rebalanced_out
        == initial + finalized_in + rebalanced_in

Entries are never created or destroyed after construction. Quantity only
enters or leaves an entry through ResourceUnit.split() and merge().
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterator, List, Mapping, Any

from .core import (
    ResourceKind, ResourceUnit, Role,
    MarketInvariantError,
    QUANTITY_EPSILON, ZERO, ONE,
)


@dataclass(slots=True)
class LedgerEntry:
    """
    Per-kind inventory record.

    Attributes:
        held: The physical quantity currently available in the market
        buy_rate: Reference charged per native unit when the market sells
        sell_rate: Reference paid per native unit when the market buys
        initial_amount: Quantity held at initialization (floors derive from it)
        default_rate: Base rate when inventory is balanced
        role: Rebalancing role in the current role period
    """
    held: ResourceUnit
    buy_rate: Decimal
    sell_rate: Decimal
    initial_amount: Decimal
    default_rate: Decimal
    role: Role = Role.UNKNOWN

    @property
    def kind(self) -> ResourceKind:
        return self.held.kind

    @property
    def quantity(self) -> Decimal:
        return self.held.amount

    @property
    def reference_quantity(self) -> Decimal:
        """Held quantity expressed in Reference terms."""
        return self.held.amount * self.default_rate

    @property
    def reference_initial(self) -> Decimal:
        """Initial quantity expressed in Reference terms."""
        return self.initial_amount * self.default_rate


@dataclass(frozen=True, slots=True)
class InventoryLabel:
    """Public snapshot of one ledger entry, as returned by list_inventory()."""
    kind: ResourceKind
    quantity: Decimal
    buy_rate: Decimal
    sell_rate: Decimal


@dataclass(slots=True)
class FlowCounters:
    """Cumulative quantity that crossed the market boundary for one kind."""
    finalized_in: Decimal = ZERO
    finalized_out: Decimal = ZERO
    rebalanced_in: Decimal = ZERO
    rebalanced_out: Decimal = ZERO


class InventoryLedger:
    """
    Holds the four ledger entries and their boundary flows.

    Example:
        inventory = InventoryLedger(
            {ResourceKind.REFERENCE: Decimal("1000"), ResourceKind.A: Decimal("100"),
             ResourceKind.B: Decimal("100"), ResourceKind.C: Decimal("100")},
            default_rates=DEFAULT_RATES,
        )
        unit = inventory.take(ResourceKind.A, Decimal("10"))
        inventory.put(unit)
    """

    def __init__(
        self,
        quantities: Mapping[ResourceKind, Decimal],
        default_rates: Mapping[ResourceKind, Decimal],
    ):
        """
        Create one entry per kind.

        Tradeable kinds start with zero rates until the pricing engine
        reprices them; the Reference kind is fixed at 1.

        Raises:
            ValueError: If a kind is missing or a quantity is negative
        """
        missing = set(ResourceKind) - set(quantities)
        if missing:
            raise ValueError(f"Missing initial quantities for: {sorted(k.value for k in missing)}")

        self._entries: Dict[ResourceKind, LedgerEntry] = {}
        self._flows: Dict[ResourceKind, FlowCounters] = {}
        for kind in ResourceKind:
            held = ResourceUnit(kind, quantities[kind])
            rate = ONE if kind == ResourceKind.REFERENCE else ZERO
            self._entries[kind] = LedgerEntry(
                held=held,
                buy_rate=rate,
                sell_rate=rate,
                initial_amount=held.amount,
                default_rate=Decimal(str(default_rates[kind])),
            )
            self._flows[kind] = FlowCounters()

    # ========================================================================
    # READ ACCESS
    # ========================================================================

    def entry(self, kind: ResourceKind) -> LedgerEntry:
        """
        Return the live entry for a kind.

        Raises:
            MarketInvariantError: If the kind has no entry (never reachable
                for a valid ResourceKind)
        """
        try:
            return self._entries[kind]
        except KeyError:
            raise MarketInvariantError(f"No ledger entry for {kind!r}") from None

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(self._entries.values())

    def held(self, kind: ResourceKind) -> Decimal:
        return self.entry(kind).quantity

    def initial(self, kind: ResourceKind) -> Decimal:
        return self.entry(kind).initial_amount

    def flows(self, kind: ResourceKind) -> FlowCounters:
        return self._flows[kind]

    def floor(self, kind: ResourceKind, fraction: Decimal) -> Decimal:
        """Lowest quantity the entry may be drawn down to."""
        return self.entry(kind).initial_amount * fraction

    def reference_quantities(self) -> Dict[ResourceKind, Decimal]:
        """Reference-equivalent holdings of every kind."""
        return {kind: entry.reference_quantity for kind, entry in self._entries.items()}

    def tradeable_mean(self) -> Decimal:
        """Mean Reference-equivalent holding of the three tradeable kinds."""
        kinds = ResourceKind.tradeable()
        return sum((self.entry(k).reference_quantity for k in kinds), ZERO) / len(kinds)

    def list_inventory(self) -> List[InventoryLabel]:
        """Snapshot of every entry's quantity and rates."""
        return [
            InventoryLabel(
                kind=entry.kind,
                quantity=entry.quantity,
                buy_rate=entry.buy_rate,
                sell_rate=entry.sell_rate,
            )
            for entry in self._entries.values()
        ]

    # ========================================================================
    # QUANTITY MOVEMENT (Mutating)
    # ========================================================================

    def take(self, kind: ResourceKind, amount: Decimal) -> ResourceUnit:
        """Split `amount` out of an entry. The entry keeps the remainder."""
        return self.entry(kind).held.split(amount)

    def put(self, unit: ResourceUnit) -> None:
        """Merge a unit back into the entry of its kind."""
        self.entry(unit.kind).held.merge(unit)

    def receive(self, unit: ResourceUnit) -> None:
        """Merge a unit arriving from a counterparty."""
        self._flows[unit.kind].finalized_in += unit.amount
        self.put(unit)

    def release(self, unit: ResourceUnit) -> ResourceUnit:
        """Record a unit leaving the market to a counterparty and return it."""
        self._flows[unit.kind].finalized_out += unit.amount
        return unit

    def exchange(
        self,
        source: ResourceKind,
        dest: ResourceKind,
        reference_amount: Decimal,
    ) -> None:
        """
        Convert a Reference-equivalent amount from one entry into another.

        The source quantity leaves the market and the destination quantity
        arrives from outside it at the kinds' default rates; both sides are
        recorded as rebalance flows.
        """
        source_entry = self.entry(source)
        dest_entry = self.entry(dest)
        native = min(reference_amount / source_entry.default_rate, source_entry.quantity)
        outgoing = source_entry.held.split(native)
        self._flows[source].rebalanced_out += outgoing.amount
        incoming = ResourceUnit(dest, reference_amount / dest_entry.default_rate)
        self._flows[dest].rebalanced_in += incoming.amount
        dest_entry.held.merge(incoming)

    def reset_roles(self) -> None:
        for entry in self._entries.values():
            entry.role = Role.UNKNOWN

    # ========================================================================
    # CONSERVATION
    # ========================================================================

    def verify_conservation(
        self,
        reserved: Mapping[ResourceKind, Decimal],
        tolerance: Decimal = QUANTITY_EPSILON,
    ) -> Dict[str, Any]:
        """
        Check the conservation law for every kind.

        Args:
            reserved: Quantity of each kind currently held by reservations
            tolerance: Maximum allowed difference

        Returns:
            Dict with keys:
            - 'valid': bool - True if conservation holds for every kind
            - 'discrepancies': List[Dict] - kind, accounted, expected, difference
        """
        discrepancies = []
        for kind, entry in self._entries.items():
            flows = self._flows[kind]
            accounted = (
                entry.quantity
                + reserved.get(kind, ZERO)
                + flows.finalized_out
                + flows.rebalanced_out
            )
            expected = entry.initial_amount + flows.finalized_in + flows.rebalanced_in
            difference = abs(accounted - expected)
            if difference > tolerance:
                discrepancies.append({
                    'kind': kind,
                    'accounted': accounted,
                    'expected': expected,
                    'difference': difference,
                })
        return {
            'valid': len(discrepancies) == 0,
            'discrepancies': discrepancies,
        }
