"""
Core types and pure helpers for the market simulator.

This module provides the foundational data structures used by every other
part of the market:
1. Enums: ResourceKind, Role, EventKind, TokenStatus
2. ResourceUnit: the only carrier of quantity (split/merge)
3. MarketEvent and the NotificationSink protocol
4. Exceptions: MarketError hierarchy and MarketInvariantError
5. Decimal helpers

Quantity is never created or destroyed silently. Every transfer between the
inventory and a reservation (or the counterparty) is exactly one split paired
with exactly one merge.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN, getcontext
from enum import Enum
from typing import Any, Protocol, Tuple, runtime_checkable


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Prices are products of rates, discounts and quantities. A wide context keeps
# intermediate results exact enough that conservation checks can use a tight
# epsilon.
#
_MARKET_DECIMAL_CONTEXT = getcontext()
_MARKET_DECIMAL_CONTEXT.prec = 50
_MARKET_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Quantities whose absolute difference is below this threshold are equal.
QUANTITY_EPSILON = Decimal("1e-12")

ZERO = Decimal("0")
ONE = Decimal("1")


# ============================================================================
# ENUMS
# ============================================================================

class ResourceKind(Enum):
    """
    The closed set of fungible resource kinds held by the market.

    REFERENCE is the numeraire: its rates are fixed at 1 and it is never
    repriced. Declaration order is the total order used for tie-breaks.
    """
    REFERENCE = "REFERENCE"
    A = "A"
    B = "B"
    C = "C"

    @property
    def order(self) -> int:
        return _KIND_ORDER[self]

    @classmethod
    def tradeable(cls) -> Tuple['ResourceKind', ...]:
        """Kinds that are repriced from inventory pressure."""
        return (cls.A, cls.B, cls.C)

    def __str__(self) -> str:
        return self.value


_KIND_ORDER = {kind: index for index, kind in enumerate(ResourceKind)}


class Role(Enum):
    """Rebalancing role of a ledger entry within the current role period."""
    UNKNOWN = "unknown"
    EXPORTING = "exporting"
    IMPORTING = "importing"


class EventKind(Enum):
    """
    Kind of a state change announced to the notification sink.

    WAIT is never emitted by the market itself; it is what an idle peer
    broadcasts to move other markets' clocks.
    """
    RESERVED_BUY = "reserved_buy"
    FINALIZED_BUY = "finalized_buy"
    RESERVED_SELL = "reserved_sell"
    FINALIZED_SELL = "finalized_sell"
    WAIT = "wait"


class TokenStatus(Enum):
    """Observable fate of a reservation token."""
    ACTIVE = "active"
    EXPIRED = "expired"
    UNKNOWN = "unknown"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class MarketError(Exception):
    """Base exception for every caller-facing market failure."""
    pass


class NonPositiveQuantity(MarketError):
    """Raised when a requested quantity is zero or negative."""

    def __init__(self, quantity: Decimal):
        self.quantity = quantity
        super().__init__(f"Quantity must be positive, got {quantity}")


class InsufficientAvailable(MarketError):
    """Raised when a request would push a ledger entry below its floor."""

    def __init__(self, kind: ResourceKind, requested: Decimal, available: Decimal):
        self.kind = kind
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient {kind}: requested {requested}, available {available}"
        )


class NonPositiveBid(MarketError):
    def __init__(self, bid: Decimal):
        self.bid = bid
        super().__init__(f"Bid must be positive, got {bid}")


class NonPositiveOffer(MarketError):
    def __init__(self, offer: Decimal):
        self.offer = offer
        super().__init__(f"Offer must be positive, got {offer}")


class MaxLocksReached(MarketError):
    """Raised when a side already holds its maximum number of reservations."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Maximum number of active locks reached ({limit})")


class BidTooLow(MarketError):
    def __init__(self, bid: Decimal, quoted: Decimal):
        self.bid = bid
        self.quoted = quoted
        super().__init__(f"Bid {bid} is below the quoted price {quoted}")


class OfferTooHigh(MarketError):
    def __init__(self, offer: Decimal, quoted: Decimal):
        self.offer = offer
        self.quoted = quoted
        super().__init__(f"Offer {offer} is above the quoted price {quoted}")


class TokenError(MarketError):
    """Base for failures that concern the identity of a reservation token."""

    def __init__(self, token: str, message: str):
        self.token = token
        super().__init__(message)


class UnrecognizedToken(TokenError):
    """The token was never issued (or was already finalized)."""

    def __init__(self, token: str):
        super().__init__(token, f"Unrecognized token: {token}")


class ExpiredToken(TokenError):
    """The token was issued but its reservation timed out."""

    def __init__(self, token: str):
        super().__init__(token, f"Expired token: {token}")


class WrongPaymentKind(MarketError):
    def __init__(self, kind: ResourceKind):
        self.kind = kind
        super().__init__(f"Payment must be {ResourceKind.REFERENCE}, got {kind}")


class InsufficientPayment(MarketError):
    def __init__(self, contained: Decimal, required: Decimal):
        self.contained = contained
        self.required = required
        super().__init__(f"Payment of {contained} is below the agreed {required}")


class WrongKind(MarketError):
    def __init__(self, delivered: ResourceKind, agreed: ResourceKind):
        self.delivered = delivered
        self.agreed = agreed
        super().__init__(f"Delivered {delivered}, agreed {agreed}")


class InsufficientAmount(MarketError):
    """Raised when a unit holds less than the amount asked of it."""

    def __init__(self, contained: Decimal, required: Decimal):
        self.contained = contained
        self.required = required
        super().__init__(f"Unit contains {contained}, {required} required")


class KindMismatch(MarketError):
    def __init__(self, expected: ResourceKind, actual: ResourceKind):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Cannot merge {actual} into {expected}")


class MarketInvariantError(Exception):
    """
    An internal invariant was violated.

    Deliberately not a MarketError: it signals a bug in the market itself and
    must never be reachable from any combination of public inputs.
    """
    pass


# ============================================================================
# DECIMAL HELPERS
# ============================================================================

def to_decimal(value: Any) -> Decimal:
    """
    Convert a number to Decimal through its string form.

    Going through str() keeps 0.1 as Decimal("0.1") instead of the binary
    expansion of the float.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Booleans are not quantities")
    return Decimal(str(value))


# ============================================================================
# RESOURCE UNIT
# ============================================================================

@dataclass(slots=True)
class ResourceUnit:
    """
    An amount-tagged quantity of one resource kind.

    Units are deliberately mutable and not copyable: split() and merge() are
    the only legal ways to move quantity, so the same quantity can never be
    counted twice.

    Attributes:
        kind: Resource kind of the quantity
        amount: Quantity held, never negative
    """
    kind: ResourceKind
    amount: Decimal

    def __post_init__(self):
        if not isinstance(self.kind, ResourceKind):
            raise ValueError(f"ResourceUnit kind must be ResourceKind, got {type(self.kind)}")
        self.amount = to_decimal(self.amount)
        if self.amount.is_nan() or self.amount.is_infinite():
            raise ValueError(f"ResourceUnit amount must be finite, got {self.amount}")
        if self.amount < ZERO:
            raise ValueError(f"ResourceUnit amount cannot be negative, got {self.amount}")

    def split(self, amount: Any) -> ResourceUnit:
        """
        Remove an amount from this unit and return it as a new unit.

        Args:
            amount: Quantity to take out

        Returns:
            A new unit of the same kind holding exactly `amount`

        Raises:
            ValueError: If amount is negative
            InsufficientAmount: If this unit holds less than `amount`
        """
        amount = to_decimal(amount)
        if amount < ZERO:
            raise ValueError(f"Cannot split a negative amount: {amount}")
        if amount > self.amount:
            raise InsufficientAmount(contained=self.amount, required=amount)
        self.amount -= amount
        return ResourceUnit(self.kind, amount)

    def merge(self, other: ResourceUnit) -> None:
        """
        Absorb another unit of the same kind. The other unit is left empty.

        Raises:
            KindMismatch: If the kinds differ
        """
        if other.kind != self.kind:
            raise KindMismatch(expected=self.kind, actual=other.kind)
        self.amount += other.amount
        other.amount = ZERO

    def __repr__(self) -> str:
        return f"ResourceUnit({self.amount} {self.kind})"


# ============================================================================
# EVENTS AND SINKS
# ============================================================================

@dataclass(frozen=True, slots=True)
class MarketEvent:
    """
    Description of a completed state change.

    Attributes:
        kind: What happened
        resource_kind: The traded (non-payment) kind
        amount: Quantity of resource_kind involved
        price: Reference amount agreed for the trade
    """
    kind: EventKind
    resource_kind: ResourceKind
    amount: Decimal
    price: Decimal


@runtime_checkable
class NotificationSink(Protocol):
    """
    Receiver of market events.

    The market calls the sink once per completed state change, after the
    change is applied. A sink must not call back into the market that is
    notifying it; the reservation caches are only consistent between
    operations. An exception raised by the sink is recorded in the
    market's audit trail and does not undo or interrupt the operation.
    """

    def __call__(self, event: MarketEvent) -> None:
        ...
