"""
reservations.py - Reservation Ledger

Outstanding buy and sell reservations (locks), keyed by token.

Each side is a ReservationBook that caches a pointer to its oldest
reservation. Expiry checks only look at that pointer, so a sweep costs O(1)
when nothing expires and O(active) when something does (the new oldest is
found by a linear scan, bounded by the side's lock limit).

Oldest-pointer invariant: after every insert, removal and expiry the cached
pointer equals the minimum created_at among the side's reservations, or is
None exactly when the side is empty.

A token is in exactly one of three places: an active book, the expired set,
or nowhere (never issued, or finalized and forgotten).
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import (
    Dict, Generic, Iterable, Iterator, List, Mapping, NamedTuple, Optional,
    Set, Tuple, TypeVar, Union,
)

from .core import (
    ResourceKind, ResourceUnit, TokenStatus,
    UnrecognizedToken, ExpiredToken, MarketInvariantError,
    ZERO,
)


# ============================================================================
# RESERVATIONS
# ============================================================================

@dataclass(slots=True)
class BuyReservation:
    """
    A counterparty's hold on quantity the market agreed to sell.

    The reserved unit is the very quantity split out of the inventory; it is
    held here exclusively until finalize hands it out or expiry merges it back.
    """
    token: str
    reserved_unit: ResourceUnit
    agreed_price: Decimal
    created_at: int
    counterparty: str

    @property
    def kind(self) -> ResourceKind:
        return self.reserved_unit.kind


@dataclass(slots=True)
class SellReservation:
    """
    The market's pre-funded promise to buy `agreed_amount` of `agreed_kind`.

    The Reference unit was split out of the inventory at reservation time.
    """
    token: str
    reserved_reference_unit: ResourceUnit
    agreed_kind: ResourceKind
    agreed_amount: Decimal
    created_at: int
    counterparty: str

    @property
    def kind(self) -> ResourceKind:
        return self.reserved_reference_unit.kind


Reservation = Union[BuyReservation, SellReservation]
R = TypeVar("R", BuyReservation, SellReservation)


class OldestPointer(NamedTuple):
    """Cached (created_at, token) of a side's oldest reservation."""
    tick: int
    token: str


def find_oldest(reservations: Iterable[Reservation]) -> Optional[OldestPointer]:
    """
    Return a pointer to the oldest reservation, or None if there are none.

    Ties on created_at (only possible after renormalization collapses ticks)
    resolve by token so the result does not depend on dict ordering.
    """
    oldest: Optional[OldestPointer] = None
    for reservation in reservations:
        candidate = OldestPointer(reservation.created_at, reservation.token)
        if oldest is None or candidate < oldest:
            oldest = candidate
    return oldest


def make_token(operation: str, counterparty: str, tick: int, epoch: int = 0) -> str:
    """
    Derive a reservation token from the operation, counterparty and tick.

    Ticks repeat after a clock renormalization, so later epochs are appended
    to keep tokens unique for the lifetime of the market.
    """
    token = f"{operation}-{counterparty}-{tick}"
    if epoch:
        token = f"{token}-e{epoch}"
    return token


# ============================================================================
# RESERVATION BOOK
# ============================================================================

class ReservationBook(Generic[R]):
    """
    Token-indexed reservations of one side with a cached oldest pointer.

    Attributes:
        side: "buy" or "sell"
        limit: Maximum number of simultaneous reservations
        oldest: Pointer to the oldest reservation, None iff the book is empty
    """

    def __init__(self, side: str, limit: int):
        self.side = side
        self.limit = limit
        self.oldest: Optional[OldestPointer] = None
        self._active: Dict[str, R] = {}

    def __len__(self) -> int:
        return len(self._active)

    def __contains__(self, token: object) -> bool:
        return token in self._active

    def __iter__(self) -> Iterator[R]:
        return iter(self._active.values())

    @property
    def active_count(self) -> int:
        return len(self._active)

    def is_full(self) -> bool:
        return len(self._active) >= self.limit

    def get(self, token: str) -> Optional[R]:
        return self._active.get(token)

    def check_insert(self, token: str) -> None:
        """
        Verify that a reservation under `token` could be added.

        Callers run this before splitting quantity out of the inventory, so a
        refused insert never strands a split unit.

        Raises:
            MarketInvariantError: If the token is already active or the side
                is at its limit
        """
        if token in self._active:
            raise MarketInvariantError(f"Duplicate {self.side} token {token}")
        if self.is_full():
            raise MarketInvariantError(f"{self.side} book is over its limit of {self.limit}")

    def add(self, reservation: R) -> None:
        """Insert a reservation and keep the oldest pointer current. See check_insert()."""
        self.check_insert(reservation.token)
        self._active[reservation.token] = reservation
        candidate = OldestPointer(reservation.created_at, reservation.token)
        if self.oldest is None or candidate < self.oldest:
            self.oldest = candidate

    def remove(self, token: str) -> R:
        """
        Remove and return a reservation; rescan if it was the oldest.

        Raises:
            MarketInvariantError: If the token is not active
        """
        try:
            reservation = self._active.pop(token)
        except KeyError:
            raise MarketInvariantError(f"No active {self.side} reservation {token}") from None
        if self.oldest is not None and self.oldest.token == token:
            self.oldest = find_oldest(self._active.values())
        return reservation

    def pop_expired(self, now: int, max_age: int) -> List[R]:
        """
        Remove every reservation older than max_age ticks at tick `now`.

        A reservation created at tick t is still active at t + max_age and
        expires from t + max_age + 1 on. Only the oldest pointer is inspected,
        so nothing is scanned unless something expires.
        """
        expired: List[R] = []
        while self.oldest is not None and self.oldest.tick + max_age < now:
            expired.append(self.remove(self.oldest.token))
        return expired

    def shift(self, offset: int) -> None:
        """Move every reservation (and the cached pointer) back by `offset` ticks."""
        for reservation in self._active.values():
            reservation.created_at -= offset
        if self.oldest is not None:
            self.oldest = OldestPointer(self.oldest.tick - offset, self.oldest.token)


# ============================================================================
# RESERVATION LEDGER
# ============================================================================

class ReservationLedger:
    """
    Both reservation books plus the set of tokens that expired this epoch.

    Example:
        reservations = ReservationLedger(max_buy_locks=4, max_sell_locks=4)
        reservations.buys.add(BuyReservation(...))
        reservation = reservations.get_buy(token)   # raises if absent
    """

    def __init__(self, max_buy_locks: int, max_sell_locks: int):
        self.buys: ReservationBook[BuyReservation] = ReservationBook("buy", max_buy_locks)
        self.sells: ReservationBook[SellReservation] = ReservationBook("sell", max_sell_locks)
        self.expired_tokens: Set[str] = set()

    def status(self, token: str) -> TokenStatus:
        if token in self.buys or token in self.sells:
            return TokenStatus.ACTIVE
        if token in self.expired_tokens:
            return TokenStatus.EXPIRED
        return TokenStatus.UNKNOWN

    def _missing(self, token: str) -> Exception:
        if token in self.expired_tokens:
            return ExpiredToken(token)
        return UnrecognizedToken(token)

    def get_buy(self, token: str) -> BuyReservation:
        """
        Look up an active buy reservation without removing it.

        Raises:
            ExpiredToken: If the token expired this epoch
            UnrecognizedToken: Otherwise, if the token is not active
        """
        reservation = self.buys.get(token)
        if reservation is None:
            raise self._missing(token)
        return reservation

    def get_sell(self, token: str) -> SellReservation:
        """Sell-side counterpart of get_buy()."""
        reservation = self.sells.get(token)
        if reservation is None:
            raise self._missing(token)
        return reservation

    def expire(
        self,
        now: int,
        max_age: int,
    ) -> Tuple[List[BuyReservation], List[SellReservation]]:
        """
        Sweep both sides and remember the expired tokens.

        The caller is responsible for returning the reserved units to the
        inventory.
        """
        expired_buys = self.buys.pop_expired(now, max_age)
        expired_sells = self.sells.pop_expired(now, max_age)
        for reservation in (*expired_buys, *expired_sells):
            self.expired_tokens.add(reservation.token)
        return expired_buys, expired_sells

    def min_created_at(self) -> Optional[int]:
        ticks = [p.tick for p in (self.buys.oldest, self.sells.oldest) if p is not None]
        return min(ticks) if ticks else None

    def rebase(self, offset: int) -> None:
        """
        Move every reservation back by `offset` ticks for a new clock epoch.

        The expired-token set is cleared: it only needs to distinguish
        expired tokens within one clock epoch.

        Raises:
            MarketInvariantError: If the offset would make a created_at negative
        """
        oldest = self.min_created_at()
        if oldest is not None and offset > oldest:
            raise MarketInvariantError(f"Rebase offset {offset} exceeds oldest tick {oldest}")
        self.buys.shift(offset)
        self.sells.shift(offset)
        self.expired_tokens.clear()

    def reserved_quantities(self) -> Mapping[ResourceKind, Decimal]:
        """Total quantity of each kind currently held by reservations."""
        totals: Dict[ResourceKind, Decimal] = defaultdict(lambda: ZERO)
        for buy in self.buys:
            totals[buy.kind] += buy.reserved_unit.amount
        for sell in self.sells:
            totals[sell.kind] += sell.reserved_reference_unit.amount
        return dict(totals)
