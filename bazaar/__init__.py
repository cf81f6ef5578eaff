"""
bazaar - Single-actor market simulator

A market that holds four resource kinds (a Reference numeraire and three
tradeable kinds), prices them from inventory pressure, and trades through
two-phase reservations that expire on a logical clock.

Usage:
    from bazaar import Market, ResourceKind, ResourceUnit

    market = Market.with_quantities(1000, 100, 100, 100)

    price = market.quote_buy(ResourceKind.A, 10)
    token = market.reserve_buy(ResourceKind.A, 10, price, "alice")
    goods = market.finalize_buy(token, ResourceUnit(ResourceKind.REFERENCE, price))
"""

# Core types
from .core import (
    ResourceKind,
    ResourceUnit,
    Role,
    EventKind,
    TokenStatus,
    MarketEvent,
    NotificationSink,
    MarketError,
    NonPositiveQuantity,
    InsufficientAvailable,
    NonPositiveBid,
    NonPositiveOffer,
    MaxLocksReached,
    BidTooLow,
    OfferTooHigh,
    TokenError,
    UnrecognizedToken,
    ExpiredToken,
    WrongPaymentKind,
    InsufficientPayment,
    WrongKind,
    InsufficientAmount,
    KindMismatch,
    MarketInvariantError,
    QUANTITY_EPSILON,
    to_decimal,
)

# Configuration
from .config import MarketConfig, DEFAULT_RATES

# Components
from .inventory import InventoryLedger, LedgerEntry, InventoryLabel
from .pricing import PricingEngine, compute_buy_rate, quantity_discount
from .reservations import (
    BuyReservation,
    SellReservation,
    OldestPointer,
    ReservationBook,
    ReservationLedger,
    find_oldest,
    make_token,
)
from .clock import LogicalClock, Rebalancer, RebalanceTransfer

# Market
from .market import Market, random_quantities

# Audit and fan-out
from .audit import AuditRecord, format_record, write_audit_log
from .broadcast import Broadcaster


__all__ = [
    # Core
    'ResourceKind', 'ResourceUnit', 'Role', 'EventKind', 'TokenStatus',
    'MarketEvent', 'NotificationSink', 'QUANTITY_EPSILON', 'to_decimal',
    # Errors
    'MarketError', 'NonPositiveQuantity', 'InsufficientAvailable',
    'NonPositiveBid', 'NonPositiveOffer', 'MaxLocksReached',
    'BidTooLow', 'OfferTooHigh', 'TokenError', 'UnrecognizedToken',
    'ExpiredToken', 'WrongPaymentKind', 'InsufficientPayment',
    'WrongKind', 'InsufficientAmount', 'KindMismatch', 'MarketInvariantError',
    # Configuration
    'MarketConfig', 'DEFAULT_RATES',
    # Components
    'InventoryLedger', 'LedgerEntry', 'InventoryLabel',
    'PricingEngine', 'compute_buy_rate', 'quantity_discount',
    'BuyReservation', 'SellReservation', 'OldestPointer',
    'ReservationBook', 'ReservationLedger', 'find_oldest', 'make_token',
    'LogicalClock', 'Rebalancer', 'RebalanceTransfer',
    # Market
    'Market', 'random_quantities',
    # Audit and fan-out
    'AuditRecord', 'format_record', 'write_audit_log', 'Broadcaster',
]
