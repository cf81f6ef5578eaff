"""
market.py - The market aggregate

Market owns every piece of state: the inventory, the pricing engine, both
reservation books, the logical clock and the rebalancer. It is the only
object that mutates them, and every mutating operation follows the same
sequence:

    1. Validate against the inventory and the pricing engine
       (a failure changes nothing, emits nothing and does not tick)
    2. Move quantity with exactly one split and one merge per transfer
    3. Record the outcome in the audit trail
    4. Emit one MarketEvent to the sink (a sink failure is audited, not raised)
    5. Advance the clock (expiry sweep, role reset, maybe rebalance)
    6. Reprice the traded kind

Re-entrancy:
    The market is single-threaded and has exactly one owner. A sink must not
    call back into the market while it is being notified; the oldest-pointer
    caches are only consistent between operations.
"""

from __future__ import annotations
from collections import deque
from decimal import Decimal
from typing import Any, Deque, Dict, List, Mapping, Optional, Tuple

import numpy as np

from .audit import AuditRecord, OUTCOME_OK, OUTCOME_ERROR
from .clock import LogicalClock, Rebalancer, RebalanceTransfer
from .config import MarketConfig
from .core import (
    ResourceKind, ResourceUnit, EventKind, TokenStatus,
    MarketEvent, NotificationSink,
    MarketError, NonPositiveBid, NonPositiveOffer, MaxLocksReached,
    BidTooLow, OfferTooHigh, WrongPaymentKind, InsufficientPayment,
    WrongKind, InsufficientAmount,
    to_decimal, ZERO,
)
from .inventory import InventoryLedger, InventoryLabel
from .pricing import PricingEngine
from .reservations import (
    BuyReservation, SellReservation, ReservationLedger, make_token,
)


# Share of the remaining budget given to each kind by Market.random():
# Reference first, then the tradeable kinds in shuffled order; the last
# tradeable kind takes whatever is left.
REFERENCE_INIT_BOUNDS = (0.25, 0.35)
SECOND_INIT_BOUNDS = (0.30, 0.36)
THIRD_INIT_BOUNDS = (0.45, 0.55)


def random_quantities(
    config: MarketConfig,
    rng: np.random.Generator,
) -> Dict[ResourceKind, Decimal]:
    """
    Draw starting inventories whose Reference-equivalent total is the
    configured starting capital.

    Returns:
        Native quantity of every kind
    """
    remaining = config.starting_capital
    values: Dict[ResourceKind, Decimal] = {}

    values[ResourceKind.REFERENCE] = remaining * to_decimal(rng.uniform(*REFERENCE_INIT_BOUNDS))
    remaining -= values[ResourceKind.REFERENCE]

    tradeable = ResourceKind.tradeable()
    order = [tradeable[i] for i in rng.permutation(len(tradeable))]
    for kind, bounds in zip(order, (SECOND_INIT_BOUNDS, THIRD_INIT_BOUNDS)):
        values[kind] = remaining * to_decimal(rng.uniform(*bounds))
        remaining -= values[kind]
    values[order[-1]] = remaining

    return {kind: value / config.default_rate(kind) for kind, value in values.items()}


class Market:
    """
    Single-actor market with dynamic pricing and two-phase trades.

    A trade is reserved first (reserve_buy / reserve_sell returns a token) and
    finalized later with that token. Unfinalized reservations expire after
    config.max_lock_ticks ticks and their quantity returns to the inventory.

    Caller mistakes raise MarketError subclasses. MarketInvariantError means
    the market itself is broken and is never caught here.

    Example:
        market = Market.with_quantities(1000, 100, 100, 100)
        price = market.quote_buy(ResourceKind.A, 10)
        token = market.reserve_buy(ResourceKind.A, 10, price, "alice")
        goods = market.finalize_buy(token, ResourceUnit(ResourceKind.REFERENCE, price))
    """

    def __init__(
        self,
        quantities: Mapping[ResourceKind, Any],
        config: Optional[MarketConfig] = None,
        sink: Optional[NotificationSink] = None,
        verbose: bool = False,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Create a market with explicit starting quantities.

        Args:
            quantities: Native starting quantity for every ResourceKind
            config: Market parameters (defaults to MarketConfig())
            sink: Receiver of one MarketEvent per completed state change
            verbose: Print one line per applied or rejected operation
            rng: Random generator for the rebalance trigger
                 (default: seeded from config.seed)
        """
        self.config = config or MarketConfig()
        self.name = self.config.name
        self.sink = sink
        self.verbose = verbose

        self.inventory = InventoryLedger(
            {kind: to_decimal(qty) for kind, qty in quantities.items()},
            self.config.default_rates,
        )
        self.pricing = PricingEngine(self.inventory, self.config)
        self.reservations = ReservationLedger(
            self.config.max_buy_locks, self.config.max_sell_locks,
        )
        self.clock = LogicalClock(self.config.max_tick)
        self.rebalancer = Rebalancer(self.inventory, self.config, rng)

        # Bounded by config.history_limit; oldest records drop first.
        limit = self.config.history_limit
        self.event_log: Deque[MarketEvent] = deque(maxlen=limit)
        self.audit_trail: Deque[AuditRecord] = deque(maxlen=limit)
        self.rebalance_log: Deque[RebalanceTransfer] = deque(maxlen=limit)

        self.pricing.reprice_all()
        self._record("INIT", "", tuple(
            (kind.value, str(self.inventory.held(kind))) for kind in ResourceKind
        ))

    @classmethod
    def with_quantities(
        cls,
        reference: Any,
        a: Any,
        b: Any,
        c: Any,
        config: Optional[MarketConfig] = None,
        sink: Optional[NotificationSink] = None,
        verbose: bool = False,
    ) -> Market:
        """Create a market from four native starting quantities."""
        return cls(
            {
                ResourceKind.REFERENCE: reference,
                ResourceKind.A: a,
                ResourceKind.B: b,
                ResourceKind.C: c,
            },
            config=config,
            sink=sink,
            verbose=verbose,
        )

    @classmethod
    def random(
        cls,
        config: Optional[MarketConfig] = None,
        sink: Optional[NotificationSink] = None,
        verbose: bool = False,
    ) -> Market:
        """
        Create a market with randomly split starting capital.

        The same generator later drives the rebalance trigger, so a fixed
        config.seed reproduces the whole run.
        """
        config = config or MarketConfig()
        rng = np.random.default_rng(config.seed)
        return cls(random_quantities(config, rng), config=config, sink=sink, verbose=verbose, rng=rng)

    # ========================================================================
    # READ-ONLY ACCESS
    # ========================================================================

    @property
    def current_tick(self) -> int:
        return self.clock.tick

    @property
    def budget(self) -> Decimal:
        """Reference currently held (excluding Reference pre-funding sells)."""
        return self.inventory.held(ResourceKind.REFERENCE)

    @property
    def active_buy_locks(self) -> int:
        return self.reservations.buys.active_count

    @property
    def active_sell_locks(self) -> int:
        return self.reservations.sells.active_count

    def held(self, kind: ResourceKind) -> Decimal:
        return self.inventory.held(_check_kind(kind))

    def quote_buy(self, kind: ResourceKind, amount: Any) -> Decimal:
        """
        Price, in Reference, of buying `amount` of `kind` from the market.

        Raises:
            NonPositiveQuantity: If amount <= 0
            InsufficientAvailable: If the sale would breach the kind's floor
        """
        return self.pricing.quote_buy(_check_kind(kind), _finite(amount))

    def quote_sell(self, kind: ResourceKind, amount: Any) -> Decimal:
        """
        Reference the market pays for `amount` of `kind`.

        Raises:
            NonPositiveQuantity: If amount <= 0
            InsufficientAvailable: If paying would breach the Reference floor
        """
        return self.pricing.quote_sell(_check_kind(kind), _finite(amount))

    def list_inventory(self) -> List[InventoryLabel]:
        return self.inventory.list_inventory()

    def status(self, token: str) -> TokenStatus:
        return self.reservations.status(token)

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Check that no quantity was created or lost.

        Returns:
            Dict with 'valid' (bool) and 'discrepancies' (list), see
            InventoryLedger.verify_conservation()
        """
        return self.inventory.verify_conservation(self.reservations.reserved_quantities())

    # ========================================================================
    # BUY SIDE (Mutating)
    # ========================================================================

    def reserve_buy(self, kind: ResourceKind, amount: Any, bid: Any, counterparty: str) -> str:
        """
        Reserve `amount` of `kind` for a counterparty at the bid price.

        The quantity leaves the inventory immediately and is held by the
        reservation until finalize_buy() or expiry.

        Returns:
            The reservation token

        Raises:
            NonPositiveQuantity, InsufficientAvailable: From quote_buy()
            NonPositiveBid: If bid <= 0
            MaxLocksReached: If the buy side is full
            BidTooLow: If bid is below the quoted price
        """
        kind = _check_kind(kind)
        amount, bid = _finite(amount), _finite(bid)
        counterparty = _check_counterparty(counterparty)
        details = (("KIND", kind.value), ("QUANTITY", str(amount)), ("BID", str(bid)))

        try:
            quoted = self.pricing.quote_buy(kind, amount)
            if bid <= ZERO:
                raise NonPositiveBid(bid)
            if self.reservations.buys.is_full():
                raise MaxLocksReached(self.reservations.buys.limit)
            if bid < quoted:
                raise BidTooLow(bid=bid, quoted=quoted)
        except MarketError as exc:
            self._reject("LOCK_BUY", counterparty, details, exc)
            raise

        tick = self.clock.tick
        token = make_token("lock_buy", counterparty, tick, self.clock.epoch)
        self.reservations.buys.check_insert(token)
        self.reservations.buys.add(BuyReservation(
            token=token,
            reserved_unit=self.inventory.take(kind, amount),
            agreed_price=bid,
            created_at=tick,
            counterparty=counterparty,
        ))

        self._record("LOCK_BUY", counterparty, details + (("TOKEN", token),))
        self._emit(MarketEvent(EventKind.RESERVED_BUY, kind, amount, bid))
        self.advance_clock()
        self._reprice(kind)
        return token

    def finalize_buy(self, token: str, payment: ResourceUnit) -> ResourceUnit:
        """
        Complete a buy reservation.

        The agreed price is split out of `payment` (the caller keeps any
        change) and the reserved unit is handed to the caller.

        Returns:
            The reserved unit

        Raises:
            UnrecognizedToken: If the token was never issued or is finalized
            ExpiredToken: If the reservation timed out
            WrongPaymentKind: If payment is not Reference
            InsufficientPayment: If payment holds less than the agreed price
        """
        _check_unit(payment)
        details = (("TOKEN", token),)

        try:
            reservation = self.reservations.get_buy(token)
            if payment.kind != ResourceKind.REFERENCE:
                raise WrongPaymentKind(payment.kind)
            if payment.amount < reservation.agreed_price:
                raise InsufficientPayment(
                    contained=payment.amount, required=reservation.agreed_price,
                )
        except MarketError as exc:
            self._reject("BUY", "", details, exc)
            raise

        self.inventory.receive(payment.split(reservation.agreed_price))
        self.reservations.buys.remove(token)
        goods = self.inventory.release(reservation.reserved_unit)

        self._record("BUY", reservation.counterparty, details)
        self._emit(MarketEvent(
            EventKind.FINALIZED_BUY, goods.kind, goods.amount, reservation.agreed_price,
        ))
        self.advance_clock()
        return goods

    # ========================================================================
    # SELL SIDE (Mutating)
    # ========================================================================

    def reserve_sell(self, kind: ResourceKind, amount: Any, offer: Any, counterparty: str) -> str:
        """
        Reserve the market's purchase of `amount` of `kind` at the offer price.

        The offer is split out of the Reference inventory immediately
        (pre-funding the trade) and held until finalize_sell() or expiry.

        Returns:
            The reservation token

        Raises:
            NonPositiveQuantity, InsufficientAvailable: From quote_sell()
            NonPositiveOffer: If offer <= 0
            MaxLocksReached: If the sell side is full
            OfferTooHigh: If offer is above the quoted price
        """
        kind = _check_kind(kind)
        amount, offer = _finite(amount), _finite(offer)
        counterparty = _check_counterparty(counterparty)
        details = (("KIND", kind.value), ("QUANTITY", str(amount)), ("OFFER", str(offer)))

        try:
            quoted = self.pricing.quote_sell(kind, amount)
            if offer <= ZERO:
                raise NonPositiveOffer(offer)
            if self.reservations.sells.is_full():
                raise MaxLocksReached(self.reservations.sells.limit)
            if offer > quoted:
                raise OfferTooHigh(offer=offer, quoted=quoted)
        except MarketError as exc:
            self._reject("LOCK_SELL", counterparty, details, exc)
            raise

        tick = self.clock.tick
        token = make_token("lock_sell", counterparty, tick, self.clock.epoch)
        self.reservations.sells.check_insert(token)
        self.reservations.sells.add(SellReservation(
            token=token,
            reserved_reference_unit=self.inventory.take(ResourceKind.REFERENCE, offer),
            agreed_kind=kind,
            agreed_amount=amount,
            created_at=tick,
            counterparty=counterparty,
        ))

        self._record("LOCK_SELL", counterparty, details + (("TOKEN", token),))
        self._emit(MarketEvent(EventKind.RESERVED_SELL, kind, amount, offer))
        self.advance_clock()
        self._reprice(kind)
        return token

    def finalize_sell(self, token: str, delivered: ResourceUnit) -> ResourceUnit:
        """
        Complete a sell reservation.

        The agreed amount is split out of `delivered` (the caller keeps any
        surplus) and the pre-funded Reference unit is handed to the caller.

        Returns:
            The Reference unit reserved for this trade

        Raises:
            UnrecognizedToken: If the token was never issued or is finalized
            ExpiredToken: If the reservation timed out
            WrongKind: If the delivered kind is not the agreed kind
            InsufficientAmount: If less than the agreed amount is delivered
        """
        _check_unit(delivered)
        details = (("TOKEN", token),)

        try:
            reservation = self.reservations.get_sell(token)
            if delivered.kind != reservation.agreed_kind:
                raise WrongKind(delivered=delivered.kind, agreed=reservation.agreed_kind)
            if delivered.amount < reservation.agreed_amount:
                raise InsufficientAmount(
                    contained=delivered.amount, required=reservation.agreed_amount,
                )
        except MarketError as exc:
            self._reject("SELL", "", details, exc)
            raise

        self.inventory.receive(delivered.split(reservation.agreed_amount))
        self.reservations.sells.remove(token)
        payout = self.inventory.release(reservation.reserved_reference_unit)

        self._record("SELL", reservation.counterparty, details)
        self._emit(MarketEvent(
            EventKind.FINALIZED_SELL, reservation.agreed_kind,
            reservation.agreed_amount, payout.amount,
        ))
        self.advance_clock()
        self._reprice(reservation.agreed_kind)
        return payout

    # ========================================================================
    # TIME (Mutating)
    # ========================================================================

    def advance_clock(self) -> None:
        """
        Advance the logical clock by one tick.

        Called after every completed mutating operation; the surrounding
        scheduler may also call it to simulate idle ticks.
        """
        if self.clock.at_limit():
            self._renormalize()
        now = self.clock.advance()

        self._sweep_expired(now)

        if self.rebalancer.roles_due(now):
            self.rebalancer.reset_roles()
        if self.rebalancer.should_fire():
            transfers = self.rebalancer.rebalance()
            if transfers:
                self.rebalance_log.extend(transfers)
                self.pricing.reprice_all()
                if self.verbose:
                    for t in transfers:
                        print(f"⇄ REBALANCE @{now}: {t.reference_amount} {t.source} → {t.dest}")

    def on_event(self, event: MarketEvent) -> None:
        """Hear about another market's event; every event is one idle tick."""
        self.advance_clock()

    def _renormalize(self) -> None:
        """Shift the clock and every reservation so the oldest sits at tick 0."""
        offset = self.reservations.min_created_at()
        if offset is None:
            offset = self.clock.tick
        self.reservations.rebase(offset)
        self.clock.rebase(offset)
        if self.verbose:
            print(f"↺ CLOCK RENORMALIZED by {offset} (epoch {self.clock.epoch})")

    def _sweep_expired(self, now: int) -> None:
        """Return expired reservations' quantity to the inventory."""
        expired_buys, expired_sells = self.reservations.expire(now, self.config.max_lock_ticks)

        touched = set()
        for buy in expired_buys:
            touched.add(buy.kind)
            self.inventory.put(buy.reserved_unit)
        for sell in expired_sells:
            touched.add(sell.kind)
            self.inventory.put(sell.reserved_reference_unit)

        # Once per sweep, however many reservations of a kind expired.
        for kind in sorted(touched, key=lambda k: k.order):
            self._reprice(kind)

        if self.verbose:
            for reservation in (*expired_buys, *expired_sells):
                print(f"⌛ EXPIRED @{now}: {reservation.token}")

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _reprice(self, kind: ResourceKind) -> None:
        if kind != ResourceKind.REFERENCE:
            self.pricing.reprice(kind)

    def _emit(self, event: MarketEvent) -> None:
        """
        Notify the sink. The state change is already committed, so a failing
        sink is audited as a NOTIFY error and the operation carries on.
        """
        self.event_log.append(event)
        if self.sink is None:
            return
        try:
            self.sink(event)
        except Exception as exc:
            self._reject("NOTIFY", "", (("EVENT", event.kind.value),), exc)

    def _record(
        self,
        operation: str,
        counterparty: str,
        details: Tuple[Tuple[str, str], ...],
    ) -> None:
        self.audit_trail.append(AuditRecord(
            market=self.name,
            tick=self.clock.tick,
            operation=operation,
            counterparty=counterparty,
            details=details,
            outcome=OUTCOME_OK,
        ))
        if self.verbose:
            summary = " ".join(f"{k}={v}" for k, v in details)
            print(f"✓ {operation} @{self.clock.tick} {counterparty} {summary}".rstrip())

    def _reject(
        self,
        operation: str,
        counterparty: str,
        details: Tuple[Tuple[str, str], ...],
        error: Exception,
    ) -> None:
        self.audit_trail.append(AuditRecord(
            market=self.name,
            tick=self.clock.tick,
            operation=operation,
            counterparty=counterparty,
            details=details,
            outcome=OUTCOME_ERROR,
            error=type(error).__name__,
        ))
        if self.verbose:
            print(f"✗ REJECTED {operation} @{self.clock.tick}: {error}")

    def __repr__(self) -> str:
        return (
            f"Market({self.name!r}, tick={self.clock.tick}, "
            f"buy_locks={self.active_buy_locks}, sell_locks={self.active_sell_locks})"
        )


def _check_kind(kind: Any) -> ResourceKind:
    if not isinstance(kind, ResourceKind):
        raise TypeError(f"Expected ResourceKind, got {type(kind).__name__}")
    return kind


def _check_unit(unit: Any) -> ResourceUnit:
    if not isinstance(unit, ResourceUnit):
        raise TypeError(f"Expected ResourceUnit, got {type(unit).__name__}")
    return unit


def _check_counterparty(counterparty: Any) -> str:
    if not isinstance(counterparty, str) or not counterparty.strip():
        raise ValueError("Counterparty must be a non-empty string")
    return counterparty


def _finite(value: Any) -> Decimal:
    value = to_decimal(value)
    if value.is_nan() or value.is_infinite():
        raise ValueError(f"Expected a finite number, got {value}")
    return value
